"""Call-control events and the orchestrator's reply, transport-agnostic."""

from dataclasses import dataclass, field

SPEAK = "speak"
HANGUP = "hangup"
ACKNOWLEDGE = "acknowledge"

CONNECTED = "CallConnected"
RECOGNIZED = "RecognizeCompleted"
DISCONNECTED = "CallDisconnected"


@dataclass(frozen=True)
class Connected:
    call_id: str
    customer_phone: str


@dataclass(frozen=True)
class SpeechRecognized:
    call_id: str
    customer_phone: str
    transcript: str


@dataclass(frozen=True)
class Disconnected:
    call_id: str


CallEvent = Connected | SpeechRecognized | Disconnected


@dataclass
class OrchestratorResult:
    action: str
    message: str | None = None
    intent: str | None = None
    confidence: float | None = None
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = {"action": self.action}
        if self.message is not None:
            d["message"] = self.message
        if self.intent is not None:
            d["intent"] = self.intent
        if self.confidence is not None:
            d["confidence"] = self.confidence
        if self.data:
            d["data"] = self.data
        return d


def event_from_payload(payload: dict) -> CallEvent:
    """Build an event from the JSON webhook body.

    Raises ValueError when required fields are missing. Unknown event types
    carrying a transcript are treated as speech.
    """
    if not isinstance(payload, dict):
        raise ValueError("event payload must be an object")
    call_id = str(payload.get("callId") or "").strip()
    if not call_id:
        raise ValueError("callId is required")
    event_type = payload.get("eventType")
    phone = str(payload.get("customerPhone") or "").strip()

    if event_type == DISCONNECTED:
        return Disconnected(call_id=call_id)
    if not phone:
        raise ValueError("customerPhone is required")
    if event_type == CONNECTED:
        return Connected(call_id=call_id, customer_phone=phone)
    return SpeechRecognized(
        call_id=call_id,
        customer_phone=phone,
        transcript=str(payload.get("transcribedText") or ""),
    )
