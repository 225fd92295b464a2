"""Intent classifier contract.

The orchestrator only ever talks to ``IntentClassifier.classify``. Concrete
classifiers (keyword rules, hosted model) implement ``_classify``; whatever
they raise is turned into a low-confidence ``error`` decision here, so a
failing classifier still yields something the caller can hear.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ordercall.prompts import CLASSIFIER_ERROR_MESSAGE
from ordercall.session import CallSession
from ordercall.tools import OrderItem, Product

logger = logging.getLogger(__name__)

PRODUCT_SEARCH = "product_search"
PRICE_INQUIRY = "price_inquiry"
STOCK_INQUIRY = "stock_inquiry"
ORDER_CREATION = "order_creation"
CONFIRMATION = "confirmation"
CANCELLATION = "cancellation"
END_CONVERSATION = "end_conversation"
GENERAL_INQUIRY = "general_inquiry"
ERROR = "error"
GREETING = "greeting"

INTENTS = frozenset({
    PRODUCT_SEARCH, PRICE_INQUIRY, STOCK_INQUIRY, ORDER_CREATION,
    CONFIRMATION, CANCELLATION, END_CONVERSATION, GENERAL_INQUIRY, ERROR,
})

SPEAK = "speak"
END_CALL = "end_call"


# ── Function calls ──
# One record per backend function the classifier may request.

@dataclass(frozen=True)
class QueryProductInfo:
    product_code: str
    name = "query_product_info"

    def to_dict(self) -> dict:
        return {"product_code": self.product_code}


@dataclass(frozen=True)
class SearchProducts:
    search_term: str
    name = "search_products"

    def to_dict(self) -> dict:
        return {"search_term": self.search_term}


@dataclass(frozen=True)
class CreateOrderDraft:
    items: tuple[OrderItem, ...]
    name = "create_order_draft"

    def to_dict(self) -> dict:
        return {"items": [i.to_dict() for i in self.items]}


@dataclass(frozen=True)
class ConfirmOrder:
    """Persist the session's pending draft order."""

    name = "confirm_order"

    def to_dict(self) -> dict:
        return {}


FunctionCall = QueryProductInfo | SearchProducts | CreateOrderDraft | ConfirmOrder

FUNCTION_CALLS = {
    cls.name: cls
    for cls in (QueryProductInfo, SearchProducts, CreateOrderDraft, ConfirmOrder)
}


def parse_function_call(name: str, parameters: dict | None) -> FunctionCall:
    """Build a typed function call from a wire name and parameter dict.

    Raises ValueError for unknown names or missing/invalid parameters.
    """
    params = parameters or {}
    if name == QueryProductInfo.name:
        code = str(params.get("product_code", "")).strip()
        if not code:
            raise ValueError("query_product_info requires product_code")
        return QueryProductInfo(product_code=code.upper())
    if name == SearchProducts.name:
        term = str(params.get("search_term", "")).strip()
        if not term:
            raise ValueError("search_products requires search_term")
        return SearchProducts(search_term=term)
    if name == CreateOrderDraft.name:
        raw_items = params.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValueError("create_order_draft requires a non-empty items list")
        items = []
        for raw in raw_items:
            try:
                code = str(raw["product_code"]).strip().upper()
                quantity = int(raw["quantity"])
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"invalid order item {raw!r}") from e
            if not code or quantity <= 0:
                raise ValueError(f"invalid order item {raw!r}")
            items.append(OrderItem(product_code=code, quantity=quantity))
        return CreateOrderDraft(items=tuple(items))
    if name == ConfirmOrder.name:
        return ConfirmOrder()
    raise ValueError(f"unknown function {name!r}")


@dataclass
class IntentDecision:
    intent: str
    confidence: float
    message: str
    action: str = SPEAK
    requires_backend_query: bool = False
    function_call: FunctionCall | None = None

    def __post_init__(self):
        if self.intent not in INTENTS:
            raise ValueError(f"unknown intent {self.intent!r}")
        self.confidence = min(1.0, max(0.0, float(self.confidence)))
        if self.action not in (SPEAK, END_CALL):
            raise ValueError(f"unknown action {self.action!r}")
        if self.requires_backend_query and self.function_call is None:
            raise ValueError("requires_backend_query needs a function_call")


@dataclass
class FunctionResult:
    message: str
    data: dict = field(default_factory=dict)


def error_decision() -> IntentDecision:
    return IntentDecision(
        intent=ERROR,
        confidence=0.1,
        message=CLASSIFIER_ERROR_MESSAGE,
        action=SPEAK,
        requires_backend_query=False,
    )


class IntentClassifier(ABC):
    """Turns the latest caller utterance into an IntentDecision."""

    async def classify(
        self,
        session: CallSession,
        utterance: str,
        catalog: list[Product],
    ) -> IntentDecision:
        try:
            return await self._classify(session, utterance, catalog)
        except Exception as e:
            logger.error("%s failed for %s: %s", type(self).__name__, session.call_id, e)
            return error_decision()

    @abstractmethod
    async def _classify(
        self,
        session: CallSession,
        utterance: str,
        catalog: list[Product],
    ) -> IntentDecision:
        ...
