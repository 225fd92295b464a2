import time
from dataclasses import dataclass, field

from ordercall.states import CallState, Speaker
from ordercall.tools import Customer, ValidatedItem


@dataclass(frozen=True)
class Turn:
    speaker: Speaker
    text: str
    timestamp: float
    created_at: float = 0.0
    metadata: dict | None = None

    def to_dict(self) -> dict:
        d = {
            "speaker": self.speaker.value,
            "text": self.text,
            "timestamp": self.created_at,
        }
        if self.metadata:
            d["metadata"] = dict(self.metadata)
        return d


@dataclass
class OrderDraft:
    """A validated order awaiting the caller's confirmation."""

    items: list[ValidatedItem]
    subtotal: float
    discount: float
    total: float

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() for i in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "total": self.total,
        }


@dataclass
class CallSession:
    call_id: str
    customer_phone: str
    customer: Customer
    state: CallState = CallState.NEW

    history: list[Turn] = field(default_factory=list)
    current_intent: str = ""

    # From create_order_draft, cleared on confirm/cancel
    draft_order: OrderDraft | None = None

    # Metadata
    start_time: float = field(default_factory=time.time)
    turn_count: int = 0

    def add_turn(self, speaker: Speaker, text: str, metadata: dict | None = None) -> Turn:
        """Append a turn. Timestamps never go backwards within a session."""
        now = time.monotonic()
        if self.history and now <= self.history[-1].timestamp:
            now = self.history[-1].timestamp + 1e-6
        turn = Turn(
            speaker=speaker,
            text=text,
            timestamp=now,
            created_at=time.time(),
            metadata=metadata if speaker == Speaker.AGENT else None,
        )
        self.history.append(turn)
        return turn

    def recent_history(self, limit: int = 6) -> list[Turn]:
        return self.history[-limit:] if limit > 0 else []
