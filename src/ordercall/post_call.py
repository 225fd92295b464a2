import json
import logging
import time

from ordercall.session import CallSession
from ordercall.transcript import to_timestamped_dump

logger = logging.getLogger(__name__)


def chunk_transcript_dump(dump: dict, max_bytes: int = 3500) -> list[str]:
    """Split a transcript dump into chunks that fit within log line limits.

    Each chunk is a string: TRANSCRIPT_DUMP|N/M|{json}
    The first chunk contains header fields + as many entries as fit.
    Subsequent chunks contain only entries.
    """
    header = {k: v for k, v in dump.items() if k != "entries"}
    entries = dump.get("entries", [])

    if not entries:
        payload = json.dumps({**header, "entries": []}, ensure_ascii=False)
        return [f"TRANSCRIPT_DUMP|1/1|{payload}"]

    groups: list[list[dict]] = []
    current: list[dict] = []
    budget = len(json.dumps({**header, "entries": []}, ensure_ascii=False).encode("utf-8"))
    size = budget

    for entry in entries:
        entry_size = len(json.dumps(entry, ensure_ascii=False).encode("utf-8")) + 2
        if current and size + entry_size > max_bytes:
            groups.append(current)
            current = []
            size = len(b'{"entries": []}')
        current.append(entry)
        size += entry_size

    if current:
        groups.append(current)

    total = len(groups)
    lines = []
    for i, group in enumerate(groups):
        body = {**header, "entries": group} if i == 0 else {"entries": group}
        lines.append(f"TRANSCRIPT_DUMP|{i + 1}/{total}|{json.dumps(body, ensure_ascii=False)}")
    return lines


def log_call_ended(session: CallSession, reason: str) -> None:
    """Emit the structured transcript dump for a finished call."""
    end_time = time.time()
    dump = to_timestamped_dump(
        session.history,
        start_time=session.start_time,
        call_id=session.call_id,
        phone=session.customer_phone,
        final_intent=session.current_intent,
    )
    dump["reason"] = reason
    dump["customer_id"] = session.customer.id
    dump["duration_s"] = round(end_time - session.start_time, 1) if session.start_time > 0 else 0
    dump["pending_draft"] = session.draft_order is not None
    for line in chunk_transcript_dump(dump):
        logger.info(line)

    logger.info(
        "Call ended: %s reason=%s turns=%d intent=%s",
        session.call_id,
        reason,
        len(session.history),
        session.current_intent or "-",
    )
