import asyncio
import logging

from ordercall.classifier import (
    CANCELLATION,
    END_CALL,
    END_CONVERSATION,
    GREETING,
    IntentClassifier,
)
from ordercall.dispatcher import FunctionDispatcher
from ordercall.events import (
    ACKNOWLEDGE,
    HANGUP,
    SPEAK,
    CallEvent,
    Connected,
    Disconnected,
    OrchestratorResult,
    SpeechRecognized,
)
from ordercall.post_call import log_call_ended
from ordercall.prompts import (
    DISCONNECT_ACK,
    NO_SPEECH_MESSAGE,
    TURN_LIMIT_MESSAGE,
    WelcomeSelector,
)
from ordercall.session import CallSession
from ordercall.states import TRANSITIONS, CallState, Speaker
from ordercall.store import ConversationStore
from ordercall.tools import BackendClient, Customer, Product

logger = logging.getLogger(__name__)

MAX_TURNS_PER_CALL = 30


def _transition(session: CallSession, new_state: CallState):
    if new_state != session.state and new_state not in TRANSITIONS.get(session.state, set()):
        logger.warning(
            "Unexpected transition %s -> %s for %s",
            session.state.value, new_state.value, session.call_id,
        )
    session.state = new_state


class CallOrchestrator:
    """Turns call-control events into the next spoken prompt and call action.

    NEW -> GREETING -> LISTENING <-> PROCESSING -> (LISTENING | ENDING)

    Each event runs under the store's per-call lock, so events for one call
    are applied in arrival order while other calls proceed in parallel. The
    work is shielded from cancellation: if the transport gives up waiting,
    the turn still lands in the session as a whole.
    """

    def __init__(
        self,
        store: ConversationStore,
        classifier: IntentClassifier,
        backend: BackendClient,
        dispatcher: FunctionDispatcher | None = None,
        welcome: WelcomeSelector | None = None,
        max_turns: int = MAX_TURNS_PER_CALL,
    ):
        self.store = store
        self.classifier = classifier
        self.backend = backend
        self.dispatcher = dispatcher or FunctionDispatcher()
        self.welcome = welcome or WelcomeSelector()
        self.max_turns = max_turns

    async def handle(self, event: CallEvent) -> OrchestratorResult:
        return await asyncio.shield(self._handle_serialized(event))

    async def _handle_serialized(self, event: CallEvent) -> OrchestratorResult:
        async with self.store.lock(event.call_id):
            if isinstance(event, Connected):
                return await self.on_connected(event)
            if isinstance(event, SpeechRecognized):
                return await self.on_speech_recognized(event)
            if isinstance(event, Disconnected):
                return self.on_disconnected(event)
            raise TypeError(f"unsupported event {event!r}")

    # ── Event handlers (caller must hold the call's lock) ──

    async def on_connected(self, event: Connected) -> OrchestratorResult:
        session = self.store.get(event.call_id)
        if session is not None:
            # Duplicate connect delivery: greet again, keep the history as is
            logger.warning("Connect for existing call %s, re-greeting", event.call_id)
            message = self.welcome.select(session.customer)
            return OrchestratorResult(
                action=SPEAK,
                message=message,
                intent=session.current_intent or GREETING,
                data=self._customer_data(session.customer),
            )

        logger.info("Call connected: %s from %s", event.call_id, event.customer_phone)
        customer = await self._lookup_customer(event.customer_phone)
        session = self.store.create(event.call_id, event.customer_phone, customer)
        _transition(session, CallState.GREETING)

        message = self.welcome.select(customer)
        session.add_turn(Speaker.AGENT, message, {"intent": GREETING, "confidence": 1.0, "action": SPEAK})
        session.current_intent = GREETING
        _transition(session, CallState.LISTENING)

        return OrchestratorResult(
            action=SPEAK,
            message=message,
            intent=GREETING,
            data=self._customer_data(customer),
        )

    async def on_speech_recognized(self, event: SpeechRecognized) -> OrchestratorResult:
        transcript = (event.transcript or "").strip()
        if not transcript:
            logger.info("Empty transcript for %s, asking caller to repeat", event.call_id)
            return OrchestratorResult(action=SPEAK, message=NO_SPEECH_MESSAGE)

        session = self.store.get(event.call_id)
        if session is None:
            logger.warning("Speech for unknown call %s, creating session", event.call_id)
            customer = await self._lookup_customer(event.customer_phone)
            session = self.store.create(event.call_id, event.customer_phone, customer)

        _transition(session, CallState.PROCESSING)
        session.turn_count += 1
        session.add_turn(Speaker.CUSTOMER, transcript)
        logger.info("[%s] Caller: %s", event.call_id, transcript)

        if self.max_turns and session.turn_count > self.max_turns:
            logger.warning("Per-call turn limit exceeded for %s, ending call", event.call_id)
            session.add_turn(
                Speaker.AGENT,
                TURN_LIMIT_MESSAGE,
                {"intent": END_CONVERSATION, "confidence": 1.0, "action": END_CALL},
            )
            session.current_intent = END_CONVERSATION
            self._end_call(session, "turn_limit")
            return OrchestratorResult(
                action=HANGUP,
                message=TURN_LIMIT_MESSAGE,
                intent=END_CONVERSATION,
                confidence=1.0,
            )

        catalog = await self._catalog_snapshot(session)
        decision = await self.classifier.classify(session, transcript, catalog)
        logger.info(
            "[%s] Intent: %s (%.2f) action=%s",
            event.call_id, decision.intent, decision.confidence, decision.action,
        )

        message = decision.message
        data: dict = {}
        if decision.requires_backend_query and decision.function_call is not None:
            result = await self.dispatcher.execute(decision.function_call, self.backend, session)
            message = result.message
            data = result.data
        elif decision.intent == CANCELLATION and session.draft_order is not None:
            logger.info("Draft order discarded for %s", event.call_id)
            session.draft_order = None

        session.add_turn(
            Speaker.AGENT,
            message,
            {"intent": decision.intent, "confidence": decision.confidence, "action": decision.action},
        )
        session.current_intent = decision.intent
        logger.info("[%s] Agent: %s", event.call_id, message)

        if decision.action == END_CALL:
            self._end_call(session, "agent_hangup")
            return OrchestratorResult(
                action=HANGUP,
                message=message,
                intent=decision.intent,
                confidence=decision.confidence,
                data=data,
            )

        _transition(session, CallState.LISTENING)
        return OrchestratorResult(
            action=SPEAK,
            message=message,
            intent=decision.intent,
            confidence=decision.confidence,
            data=data,
        )

    def on_disconnected(self, event: Disconnected) -> OrchestratorResult:
        session = self.store.get(event.call_id)
        if session is not None:
            self._end_call(session, "disconnected")
        else:
            logger.info("Disconnect for unknown call %s", event.call_id)
        return OrchestratorResult(action=ACKNOWLEDGE, message=DISCONNECT_ACK)

    # ── Helpers ──

    def _end_call(self, session: CallSession, reason: str):
        _transition(session, CallState.ENDING)
        self.store.delete(session.call_id)
        log_call_ended(session, reason)

    async def _lookup_customer(self, phone: str) -> Customer:
        try:
            return await self.backend.get_customer_by_phone(phone)
        except Exception as e:
            logger.warning("Customer lookup failed for %s, using guest: %s", phone, e)
            return Customer.guest(phone)

    async def _catalog_snapshot(self, session: CallSession) -> list[Product]:
        try:
            return await self.backend.get_all_products()
        except Exception as e:
            logger.warning("Catalog snapshot failed for %s: %s", session.call_id, e)
            return []

    @staticmethod
    def _customer_data(customer: Customer) -> dict:
        return {"customer": {"name": customer.name, "isKnownCustomer": not customer.is_guest}}
