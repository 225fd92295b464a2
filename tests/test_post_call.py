import json
import logging
import pytest
from ordercall.post_call import chunk_transcript_dump, log_call_ended
from ordercall.session import CallSession, OrderDraft
from ordercall.states import Speaker
from ordercall.tools import ValidatedItem


@pytest.fixture
def finished_session(known_customer):
    """A call that searched, drafted an order and said goodbye."""
    s = CallSession(call_id="CA_test_123", customer_phone="+525512345678", customer=known_customer)
    s.add_turn(Speaker.AGENT, "¡Hola Empresa ABC! ¿En qué puedo ayudarle?", {"intent": "greeting", "confidence": 1.0, "action": "speak"})
    s.add_turn(Speaker.CUSTOMER, "necesito una laptop")
    s.add_turn(Speaker.AGENT, "Encontré estos productos: LAP001", {"intent": "product_search", "confidence": 0.9, "action": "speak"})
    s.add_turn(Speaker.CUSTOMER, "gracias")
    s.add_turn(Speaker.AGENT, "Gracias por llamar.", {"intent": "end_conversation", "confidence": 0.9, "action": "end_call"})
    s.current_intent = "end_conversation"
    return s


class TestChunkTranscriptDump:
    def test_small_transcript_single_chunk(self):
        dump = {
            "call_id": "CA_test",
            "phone": "+15125551234",
            "final_intent": "end_conversation",
            "entries": [
                {"t": 0.0, "speaker": "agent", "text": "Hola."},
            ],
        }
        chunks = chunk_transcript_dump(dump, max_bytes=3500)
        assert len(chunks) == 1
        assert chunks[0].startswith("TRANSCRIPT_DUMP|1/1|")
        payload = json.loads(chunks[0].split("|", 2)[2])
        assert payload["call_id"] == "CA_test"
        assert len(payload["entries"]) == 1

    def test_empty_entries(self):
        chunks = chunk_transcript_dump({"call_id": "CA_empty", "entries": []})
        assert chunks == ['TRANSCRIPT_DUMP|1/1|{"call_id": "CA_empty", "entries": []}']

    def test_large_transcript_multiple_chunks(self):
        entries = [
            {"t": float(i), "speaker": "customer", "text": f"Mensaje número {i} con texto de relleno para ocupar espacio."}
            for i in range(50)
        ]
        dump = {"call_id": "CA_big", "phone": "+15125551234", "final_intent": "x", "entries": entries}
        chunks = chunk_transcript_dump(dump, max_bytes=1000)
        assert len(chunks) > 1
        for i, chunk in enumerate(chunks, 1):
            prefix = chunk.split("|", 2)
            assert prefix[0] == "TRANSCRIPT_DUMP"
            assert prefix[1] == f"{i}/{len(chunks)}"
        all_entries = []
        for chunk in chunks:
            payload = json.loads(chunk.split("|", 2)[2])
            all_entries.extend(payload.get("entries", []))
        assert [e["t"] for e in all_entries] == [float(i) for i in range(50)]

    def test_first_chunk_has_header_fields(self):
        entries = [{"t": float(i), "speaker": "agent", "text": "A" * 200} for i in range(20)]
        dump = {"call_id": "CA_hdr", "phone": "+1", "final_intent": "x", "entries": entries}
        chunks = chunk_transcript_dump(dump, max_bytes=1000)
        first = json.loads(chunks[0].split("|", 2)[2])
        rest = json.loads(chunks[1].split("|", 2)[2])
        assert first["call_id"] == "CA_hdr"
        assert "call_id" not in rest

    def test_keeps_accents_readable(self):
        dump = {"call_id": "c", "entries": [{"t": 0.0, "speaker": "agent", "text": "¿Qué más?"}]}
        assert "¿Qué más?" in chunk_transcript_dump(dump)[0]


class TestLogCallEnded:
    def test_emits_dump_and_summary(self, finished_session, caplog):
        with caplog.at_level(logging.INFO, logger="ordercall.post_call"):
            log_call_ended(finished_session, "agent_hangup")
        messages = [r.getMessage() for r in caplog.records]
        dumps = [m for m in messages if m.startswith("TRANSCRIPT_DUMP|")]
        assert len(dumps) == 1
        payload = json.loads(dumps[0].split("|", 2)[2])
        assert payload["call_id"] == "CA_test_123"
        assert payload["reason"] == "agent_hangup"
        assert payload["customer_id"] == "CUST001"
        assert payload["final_intent"] == "end_conversation"
        assert payload["pending_draft"] is False
        assert len(payload["entries"]) == 5
        assert payload["entries"][2]["intent"] == "product_search"
        assert any(m.startswith("Call ended: CA_test_123 reason=agent_hangup turns=5") for m in messages)

    def test_flags_pending_draft(self, finished_session, caplog):
        finished_session.draft_order = OrderDraft(
            items=[ValidatedItem("LAP001", "Laptop", 1, 850.0)], subtotal=850.0, discount=85.0, total=765.0,
        )
        with caplog.at_level(logging.INFO, logger="ordercall.post_call"):
            log_call_ended(finished_session, "disconnected")
        dump = next(r.getMessage() for r in caplog.records if r.getMessage().startswith("TRANSCRIPT_DUMP|"))
        assert json.loads(dump.split("|", 2)[2])["pending_draft"] is True
