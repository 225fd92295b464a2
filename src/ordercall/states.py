from enum import Enum

TERMINAL_STATES = {"ending"}


class CallState(Enum):
    NEW = "new"
    GREETING = "greeting"
    LISTENING = "listening"
    PROCESSING = "processing"
    ENDING = "ending"

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STATES


TRANSITIONS = {
    CallState.NEW: {CallState.GREETING, CallState.PROCESSING, CallState.ENDING},
    CallState.GREETING: {CallState.LISTENING, CallState.ENDING},
    CallState.LISTENING: {CallState.PROCESSING, CallState.GREETING, CallState.ENDING},
    CallState.PROCESSING: {CallState.LISTENING, CallState.ENDING},
    CallState.ENDING: set(),
}


class Speaker(Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
