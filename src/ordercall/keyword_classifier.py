"""Rule-based intent classifier.

Deterministic: the same session, utterance and catalog always produce the
same decision. Keyword sets cover Spanish with a few English synonyms.
"""

import logging

from ordercall.classifier import (
    CANCELLATION,
    CONFIRMATION,
    END_CALL,
    END_CONVERSATION,
    GENERAL_INQUIRY,
    ORDER_CREATION,
    PRICE_INQUIRY,
    PRODUCT_SEARCH,
    SPEAK,
    STOCK_INQUIRY,
    ConfirmOrder,
    CreateOrderDraft,
    IntentClassifier,
    IntentDecision,
    QueryProductInfo,
    SearchProducts,
)
from ordercall.session import CallSession
from ordercall.tools import OrderItem, Product
from ordercall.validation import (
    extract_order_lines,
    extract_quantity,
    extract_search_term,
    match_any_keyword,
    match_catalog,
)

logger = logging.getLogger(__name__)

FAREWELL_SIGNALS = frozenset({
    "gracias", "adios", "terminar", "colgar", "hasta luego", "eso es todo",
    "es todo", "nada mas", "bye", "goodbye", "that's all",
})
YES_SIGNALS = frozenset({
    "si", "confirmo", "confirmar", "confirma", "correcto", "de acuerdo",
    "adelante", "claro", "perfecto", "esta bien", "yes", "ok", "okay",
})
CANCEL_SIGNALS = frozenset({
    "cancelar", "cancela", "cancelo", "anular", "anula", "mejor no", "olvidelo",
    "cancel",
})
NO_SIGNALS = frozenset({"no", "nope"})
ORDER_SIGNALS = frozenset({
    "pedido", "pedir", "comprar", "compra", "ordenar", "encargar", "llevar",
    "order", "buy",
})
WANT_SIGNALS = frozenset({"quiero", "quisiera", "queremos", "deseo"})
PRICE_SIGNALS = frozenset({
    "precio", "precios", "cuesta", "cuestan", "cuanto", "costo",
    "price", "cost",
})
STOCK_SIGNALS = frozenset({
    "stock", "disponible", "disponibles", "existencia", "existencias",
    "inventario", "quedan", "available",
})
SEARCH_SIGNALS = frozenset({
    "buscar", "busco", "necesito", "necesitamos", "tienen", "tiene", "informacion",
    "catalogo", "productos", "opciones", "search", "looking", "need",
})

# Trigger words that must not leak into a search term
_SEARCH_NOISE = ORDER_SIGNALS | PRICE_SIGNALS | STOCK_SIGNALS | SEARCH_SIGNALS | frozenset({
    "productos", "producto", "unidades", "unidad", "pedido",
})

PROVISIONAL_QUERY = "Consultando información del producto..."
PROVISIONAL_SEARCH = "Procesando búsqueda..."
PROVISIONAL_DRAFT = "Creando borrador de pedido..."
PROVISIONAL_CONFIRM = "Perfecto, procesando su confirmación..."

HELP_MESSAGE = (
    "Entiendo. ¿Podría ser más específico sobre lo que necesita? Puedo ayudarle con "
    "información de productos, precios o crear pedidos."
)
WHAT_TO_ORDER_MESSAGE = "Con gusto. ¿Qué producto y cuántas unidades desea pedir?"
NOTHING_PENDING_MESSAGE = "No tiene ningún pedido pendiente. ¿Desea pedir algún producto?"
CANCELLED_MESSAGE = "De acuerdo, he cancelado el borrador de su pedido. ¿Hay algo más en lo que pueda ayudarle?"
FAREWELL_MESSAGE = "Gracias por llamar a {company}. ¡Que tenga un excelente día!"


def extract_intent(text: str) -> str:
    """Coarse intent label from keywords alone, without session context."""
    if match_any_keyword(text, PRICE_SIGNALS):
        return PRICE_INQUIRY
    if match_any_keyword(text, STOCK_SIGNALS):
        return STOCK_INQUIRY
    if match_any_keyword(text, ORDER_SIGNALS):
        return ORDER_CREATION
    if match_any_keyword(text, SEARCH_SIGNALS | WANT_SIGNALS):
        return PRODUCT_SEARCH
    if match_any_keyword(text, YES_SIGNALS):
        return CONFIRMATION
    if match_any_keyword(text, CANCEL_SIGNALS | NO_SIGNALS):
        return CANCELLATION
    if match_any_keyword(text, FAREWELL_SIGNALS):
        return END_CONVERSATION
    return GENERAL_INQUIRY


class KeywordClassifier(IntentClassifier):
    def __init__(self, company_name: str = "nuestra empresa"):
        self.company_name = company_name

    async def _classify(
        self,
        session: CallSession,
        utterance: str,
        catalog: list[Product],
    ) -> IntentDecision:
        text = utterance.strip()
        pending = session.draft_order is not None

        if pending:
            decision = self._pending_draft(text)
            if decision is not None:
                return decision

        if match_any_keyword(text, CANCEL_SIGNALS):
            return IntentDecision(CANCELLATION, 0.8, NOTHING_PENDING_MESSAGE)

        lines = extract_order_lines(text, catalog)
        matches = match_catalog(text, catalog)

        # "quiero dos laptops" names one product and a quantity: that is an order
        named_with_quantity = len(matches) == 1 and extract_quantity(text, default=0) > 0
        wants_order = match_any_keyword(text, ORDER_SIGNALS) or (
            match_any_keyword(text, WANT_SIGNALS) and (bool(lines) or named_with_quantity)
        )
        if wants_order:
            return self._order(text, lines, matches)

        if match_any_keyword(text, PRICE_SIGNALS | STOCK_SIGNALS):
            intent = PRICE_INQUIRY if match_any_keyword(text, PRICE_SIGNALS) else STOCK_INQUIRY
            code = lines[0][0] if lines else (matches[0].code if len(matches) == 1 else "")
            if code:
                return IntentDecision(
                    intent, 0.9, PROVISIONAL_QUERY,
                    requires_backend_query=True,
                    function_call=QueryProductInfo(product_code=code),
                )
            return self._search(text, matches, intent=intent)

        if lines:
            # A bare product code reads as "tell me about this one"
            return IntentDecision(
                PRICE_INQUIRY, 0.8, PROVISIONAL_QUERY,
                requires_backend_query=True,
                function_call=QueryProductInfo(product_code=lines[0][0]),
            )

        if matches or match_any_keyword(text, SEARCH_SIGNALS | WANT_SIGNALS):
            return self._search(text, matches)

        if match_any_keyword(text, FAREWELL_SIGNALS):
            return self._farewell()

        if match_any_keyword(text, YES_SIGNALS):
            return IntentDecision(CONFIRMATION, 0.6, WHAT_TO_ORDER_MESSAGE)

        return IntentDecision(GENERAL_INQUIRY, 0.7, HELP_MESSAGE)

    def _pending_draft(self, text: str) -> IntentDecision | None:
        if match_any_keyword(text, CANCEL_SIGNALS | NO_SIGNALS):
            return IntentDecision(CANCELLATION, 0.9, CANCELLED_MESSAGE)
        if match_any_keyword(text, YES_SIGNALS):
            return IntentDecision(
                CONFIRMATION, 0.9, PROVISIONAL_CONFIRM,
                requires_backend_query=True,
                function_call=ConfirmOrder(),
            )
        return None

    def _farewell(self) -> IntentDecision:
        return IntentDecision(
            END_CONVERSATION, 0.9,
            FAREWELL_MESSAGE.format(company=self.company_name),
            action=END_CALL,
        )

    def _order(
        self,
        text: str,
        lines: list[tuple[str, int]],
        matches: list[Product],
    ) -> IntentDecision:
        if not lines and len(matches) == 1:
            lines = [(matches[0].code, extract_quantity(text))]
        if not lines:
            if matches:
                return self._search(text, matches, intent=ORDER_CREATION)
            return IntentDecision(ORDER_CREATION, 0.7, WHAT_TO_ORDER_MESSAGE)
        items = tuple(OrderItem(product_code=code, quantity=qty) for code, qty in lines)
        return IntentDecision(
            ORDER_CREATION, 0.9, PROVISIONAL_DRAFT,
            requires_backend_query=True,
            function_call=CreateOrderDraft(items=items),
        )

    def _search(
        self,
        text: str,
        matches: list[Product],
        intent: str = PRODUCT_SEARCH,
    ) -> IntentDecision:
        term = extract_search_term(text, extra_stopwords=_SEARCH_NOISE)
        if not term and matches:
            term = matches[0].name.split()[0].lower()
        if not term:
            return IntentDecision(
                intent, 0.6,
                "¿Qué producto está buscando? Puede decirme el nombre o el código.",
            )
        return IntentDecision(
            intent, 0.9, PROVISIONAL_SEARCH,
            requires_backend_query=True,
            function_call=SearchProducts(search_term=term),
        )
