from ordercall.session import Turn


def to_timestamped_dump(
    history: list[Turn],
    start_time: float,
    call_id: str,
    phone: str,
    final_intent: str,
) -> dict:
    """Build a timestamped transcript dump dict for structured logging.

    Timestamps are relative seconds from call start. If start_time is 0 the
    first turn's wall-clock time is used as base.
    """
    base_time = start_time
    if base_time <= 0 and history:
        base_time = history[0].created_at

    entries = []
    for turn in history:
        e = {
            "t": round(turn.created_at - base_time, 1),
            "speaker": turn.speaker.value,
            "text": turn.text,
        }
        if turn.metadata:
            e.update({k: v for k, v in turn.metadata.items() if k in ("intent", "confidence", "action")})
        entries.append(e)

    return {
        "call_id": call_id,
        "phone": phone,
        "final_intent": final_intent,
        "entries": entries,
    }
