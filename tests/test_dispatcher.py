import pytest
from ordercall.classifier import ConfirmOrder, CreateOrderDraft, QueryProductInfo, SearchProducts
from ordercall.dispatcher import FunctionDispatcher, describe_product, format_money
from ordercall.prompts import BACKEND_ERROR_MESSAGE
from ordercall.session import OrderDraft
from ordercall.tools import (
    BackendError,
    OrderItem,
    OrderResult,
    OrderValidation,
    ValidatedItem,
)


@pytest.fixture
def dispatcher():
    return FunctionDispatcher()


def _draft(*items):
    return CreateOrderDraft(items=tuple(OrderItem(code, qty) for code, qty in items))


class TestFormatting:
    def test_format_money(self):
        assert format_money(1000) == "$1,000.00"
        assert format_money(45.5) == "$45.50"

    def test_describe_product(self, catalog):
        assert describe_product(catalog[0]) == "LAP001: Laptop Dell Inspiron 15 - $850.00"


class TestQueryProductInfo:
    @pytest.mark.asyncio
    async def test_found(self, dispatcher, backend, session):
        result = await dispatcher.execute(QueryProductInfo("LAP001"), backend, session)
        assert result.data["productFound"] is True
        assert result.data["product"]["code"] == "LAP001"
        assert "$850.00" in result.message
        assert "25 unidades" in result.message

    @pytest.mark.asyncio
    async def test_out_of_stock(self, dispatcher, backend, session):
        result = await dispatcher.execute(QueryProductInfo("IMP001"), backend, session)
        assert result.data["productFound"] is True
        assert "no tenemos unidades disponibles" in result.message

    @pytest.mark.asyncio
    async def test_not_found(self, dispatcher, backend, session):
        result = await dispatcher.execute(QueryProductInfo("XXX999"), backend, session)
        assert result.data == {"productFound": False, "productCode": "XXX999"}
        assert "XXX999" in result.message


class TestSearchProducts:
    @pytest.mark.asyncio
    async def test_speaks_top_three_returns_all(self, dispatcher, backend, session, catalog):
        backend.search_products.side_effect = None
        backend.search_products.return_value = catalog
        result = await dispatcher.execute(SearchProducts("todo"), backend, session)
        assert "LAP001" in result.message
        assert "TEC001" in result.message
        assert "IMP001" not in result.message
        assert len(result.data["searchResults"]) == 4

    @pytest.mark.asyncio
    async def test_no_results(self, dispatcher, backend, session):
        result = await dispatcher.execute(SearchProducts("tractor"), backend, session)
        assert result.data == {"searchResults": []}
        assert '"tractor"' in result.message

    @pytest.mark.asyncio
    async def test_match_list(self, dispatcher, backend, session):
        result = await dispatcher.execute(SearchProducts("laptop"), backend, session)
        assert result.message.startswith("Encontré estos productos: LAP001")
        backend.search_products.assert_awaited_once_with("laptop")


class TestCreateOrderDraft:
    @pytest.mark.asyncio
    async def test_insufficient_stock_lists_every_line(self, dispatcher, backend, session):
        result = await dispatcher.execute(_draft(("LAP001", 30), ("MON001", 50)), backend, session)
        assert result.data["orderValid"] is False
        assert len(result.data["errors"]) == 2
        assert "LAP001" in result.message
        assert "MON001" in result.message
        assert session.draft_order is None

    @pytest.mark.asyncio
    async def test_discount_and_total(self, dispatcher, backend, session):
        backend.validate_order_items.side_effect = None
        backend.validate_order_items.return_value = OrderValidation(
            valid=True,
            validated_items=[ValidatedItem("SRV001", "Servidor", 2, 500.0)],
        )
        result = await dispatcher.execute(_draft(("SRV001", 2)), backend, session)
        assert result.data["orderValid"] is True
        assert result.data["totals"] == {"subtotal": 1000.0, "discount": 100.0, "total": 900.0}
        assert "$100.00" in result.message
        assert "$900.00" in result.message
        assert result.message.endswith("¿Confirma este pedido?")
        assert session.draft_order.total == 900.0

    @pytest.mark.asyncio
    async def test_guest_gets_no_discount(self, dispatcher, backend, guest_session):
        result = await dispatcher.execute(_draft(("LAP001", 1)), backend, guest_session)
        totals = result.data["totals"]
        assert totals["discount"] == 0
        assert totals["total"] == totals["subtotal"] == 850.0
        assert "Descuento" not in result.message

    @pytest.mark.asyncio
    async def test_multiple_lines(self, dispatcher, backend, session):
        result = await dispatcher.execute(_draft(("LAP001", 2), ("TEC001", 2)), backend, session)
        assert result.data["totals"]["subtotal"] == 1791.0
        assert [i["product_code"] for i in result.data["orderItems"]] == ["LAP001", "TEC001"]
        assert "2 x Laptop Dell Inspiron 15" in result.message


class TestConfirmOrder:
    @pytest.fixture
    def pending(self, session):
        items = [ValidatedItem("LAP001", "Laptop Dell Inspiron 15", 1, 850.0)]
        session.draft_order = OrderDraft(items=items, subtotal=850.0, discount=85.0, total=765.0)
        return session

    @pytest.mark.asyncio
    async def test_persists_pending_draft(self, dispatcher, backend, pending):
        items = pending.draft_order.items
        result = await dispatcher.execute(ConfirmOrder(), backend, pending)
        backend.create_order.assert_awaited_once_with("CUST001", items)
        assert result.data["orderCreated"] is True
        assert result.data["orderId"] == "ORD-1001"
        assert "ORD-1001" in result.message
        assert "$765.00" in result.message
        assert pending.draft_order is None

    @pytest.mark.asyncio
    async def test_rejection_keeps_draft(self, dispatcher, backend, pending):
        backend.create_order.return_value = OrderResult(success=False, error="Crédito insuficiente")
        result = await dispatcher.execute(ConfirmOrder(), backend, pending)
        assert result.data == {"orderCreated": False, "error": "Crédito insuficiente"}
        assert pending.draft_order is not None

    @pytest.mark.asyncio
    async def test_nothing_pending(self, dispatcher, backend, session):
        result = await dispatcher.execute(ConfirmOrder(), backend, session)
        assert result.data == {"orderCreated": False}
        backend.create_order.assert_not_awaited()


class TestBackendFailure:
    @pytest.mark.asyncio
    async def test_backend_error_becomes_apology(self, dispatcher, backend, session):
        backend.get_product.side_effect = BackendError("get_product failed: boom")
        result = await dispatcher.execute(QueryProductInfo("LAP001"), backend, session)
        assert result.message == BACKEND_ERROR_MESSAGE
        assert result.data["function"] == "query_product_info"
        assert "boom" in result.data["error"]

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_apology(self, dispatcher, backend, session):
        backend.validate_order_items.side_effect = KeyError("validatedItems")
        result = await dispatcher.execute(_draft(("LAP001", 1)), backend, session)
        assert result.message == BACKEND_ERROR_MESSAGE
        assert result.data["function"] == "create_order_draft"
        assert session.draft_order is None
