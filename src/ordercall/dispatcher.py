import logging

from ordercall.classifier import (
    ConfirmOrder,
    CreateOrderDraft,
    FunctionCall,
    FunctionResult,
    QueryProductInfo,
    SearchProducts,
)
from ordercall.prompts import BACKEND_ERROR_MESSAGE
from ordercall.session import CallSession, OrderDraft
from ordercall.tools import BackendClient, Product

logger = logging.getLogger(__name__)

MAX_SPOKEN_RESULTS = 3


def format_money(amount: float) -> str:
    return f"${amount:,.2f}"


def describe_product(product: Product) -> str:
    return f"{product.code}: {product.name} - {format_money(product.unit_price)}"


class FunctionDispatcher:
    """Runs a classifier-requested backend function and phrases the result.

    Never raises: any failure becomes an apology with ``data["error"]``.
    """

    def __init__(self, max_spoken_results: int = MAX_SPOKEN_RESULTS):
        self.max_spoken_results = max_spoken_results

    async def execute(
        self,
        call: FunctionCall,
        backend: BackendClient,
        session: CallSession,
    ) -> FunctionResult:
        logger.info("Executing %s for %s: %s", call.name, session.call_id, call.to_dict())
        try:
            if isinstance(call, QueryProductInfo):
                result = await self._query_product_info(call, backend)
            elif isinstance(call, SearchProducts):
                result = await self._search_products(call, backend)
            elif isinstance(call, CreateOrderDraft):
                result = await self._create_order_draft(call, backend, session)
            elif isinstance(call, ConfirmOrder):
                result = await self._confirm_order(backend, session)
            else:
                raise TypeError(f"unsupported function call {call!r}")
        except Exception as e:
            logger.error("Backend function %s failed for %s: %s", call.name, session.call_id, e)
            return FunctionResult(
                message=BACKEND_ERROR_MESSAGE,
                data={"error": str(e) or type(e).__name__, "function": call.name},
            )
        logger.info("Function result (%s): %s", call.name, result.data)
        return result

    async def _query_product_info(self, call: QueryProductInfo, backend: BackendClient) -> FunctionResult:
        product = await backend.get_product(call.product_code)
        if product is None:
            return FunctionResult(
                message=(
                    f"Lo siento, no encontré el producto {call.product_code}. "
                    "¿Podría verificar el código o decirme el nombre del producto?"
                ),
                data={"productFound": False, "productCode": call.product_code},
            )
        if product.stock > 0:
            availability = f"Stock disponible: {product.stock} unidades. ¿Cuántas unidades necesita?"
        else:
            availability = "En este momento no tenemos unidades disponibles. ¿Le interesa otro producto?"
        return FunctionResult(
            message=(
                f"El producto {product.name} ({product.code}) tiene un precio de "
                f"{format_money(product.unit_price)}. {availability}"
            ),
            data={"productFound": True, "product": product.to_dict()},
        )

    async def _search_products(self, call: SearchProducts, backend: BackendClient) -> FunctionResult:
        results = await backend.search_products(call.search_term)
        if not results:
            return FunctionResult(
                message=(
                    f'No encontré productos relacionados con "{call.search_term}". '
                    "¿Podría ser más específico o probar con otro término?"
                ),
                data={"searchResults": []},
            )
        listing = ", ".join(describe_product(p) for p in results[: self.max_spoken_results])
        return FunctionResult(
            message=f"Encontré estos productos: {listing}. ¿Cuál le interesa?",
            data={"searchResults": [p.to_dict() for p in results]},
        )

    async def _create_order_draft(
        self,
        call: CreateOrderDraft,
        backend: BackendClient,
        session: CallSession,
    ) -> FunctionResult:
        validation = await backend.validate_order_items(list(call.items))
        if not validation.valid or not validation.validated_items:
            errors = validation.errors or ["no se pudo validar ningún producto"]
            return FunctionResult(
                message=(
                    f"Hay algunos problemas con su pedido: {', '.join(errors)}. "
                    "¿Desea ajustar las cantidades?"
                ),
                data={"orderValid": False, "errors": errors},
            )

        items = validation.validated_items
        subtotal = round(sum(i.line_total for i in items), 2)
        discount = round(subtotal * session.customer.discount_rate, 2)
        total = round(subtotal - discount, 2)
        session.draft_order = OrderDraft(items=list(items), subtotal=subtotal, discount=discount, total=total)

        summary = "Su pedido: " + ", ".join(f"{i.quantity} x {i.product_name}" for i in items) + ". "
        summary += f"Subtotal: {format_money(subtotal)}"
        if discount > 0:
            summary += f", Descuento: {format_money(discount)}"
        summary += f". Total: {format_money(total)}. ¿Confirma este pedido?"

        return FunctionResult(
            message=summary,
            data={
                "orderValid": True,
                "orderItems": [i.to_dict() for i in items],
                "totals": {"subtotal": subtotal, "discount": discount, "total": total},
            },
        )

    async def _confirm_order(self, backend: BackendClient, session: CallSession) -> FunctionResult:
        draft = session.draft_order
        if draft is None:
            return FunctionResult(
                message="No tiene ningún pedido pendiente de confirmar. ¿Qué producto desea pedir?",
                data={"orderCreated": False},
            )
        result = await backend.create_order(session.customer.id, draft.items)
        if not result.success:
            return FunctionResult(
                message=(
                    f"No pude registrar su pedido: {result.error}. "
                    "¿Desea intentarlo de nuevo o ajustar el pedido?"
                ),
                data={"orderCreated": False, "error": result.error},
            )
        session.draft_order = None
        return FunctionResult(
            message=(
                f"¡Listo! Su pedido {result.order_id} quedó registrado por un total de "
                f"{format_money(draft.total)}. ¿Hay algo más en lo que pueda ayudarle?"
            ),
            data={"orderCreated": True, "orderId": result.order_id, "order": draft.to_dict()},
        )
