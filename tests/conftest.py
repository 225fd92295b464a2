import random
from unittest.mock import AsyncMock

import pytest
from ordercall.keyword_classifier import KeywordClassifier
from ordercall.orchestrator import CallOrchestrator
from ordercall.prompts import WelcomeSelector
from ordercall.session import CallSession
from ordercall.store import ConversationStore
from ordercall.tools import (
    BackendClient,
    Customer,
    OrderResult,
    OrderValidation,
    Product,
    ValidatedItem,
)
from ordercall.validation import normalize

CATALOG = [
    Product(code="LAP001", name="Laptop Dell Inspiron 15", unit_price=850.0, stock=25, category="Computadoras"),
    Product(code="MON001", name="Monitor Samsung 24 pulgadas", unit_price=320.0, stock=40, category="Monitores"),
    Product(code="TEC001", name="Teclado Logitech inalambrico", unit_price=45.5, stock=100, category="Accesorios"),
    Product(code="IMP001", name="Impresora HP LaserJet", unit_price=250.0, stock=0, category="Impresoras"),
]

KNOWN_PHONE = "+525512345678"


def _validate(items):
    by_code = {p.code: p for p in CATALOG}
    errors, validated = [], []
    for item in items:
        product = by_code.get(item.product_code)
        if product is None:
            errors.append(f"Producto {item.product_code} no encontrado")
        elif item.quantity > product.stock:
            errors.append(
                f"Stock insuficiente para {item.product_code}. Disponible: {product.stock}"
            )
        else:
            validated.append(ValidatedItem(
                product_code=product.code,
                product_name=product.name,
                quantity=item.quantity,
                unit_price=product.unit_price,
            ))
    return OrderValidation(valid=not errors, errors=errors, validated_items=validated)


def _search(term):
    needle = normalize(term)
    return [p for p in CATALOG if needle in normalize(f"{p.name} {p.category} {p.code}")]


@pytest.fixture
def catalog():
    return list(CATALOG)


@pytest.fixture
def known_customer():
    return Customer(
        id="CUST001",
        name="Empresa ABC",
        phone=KNOWN_PHONE,
        email="compras@empresaabc.com",
        discount_rate=0.10,
        credit_limit=50000.0,
    )


@pytest.fixture
def backend(known_customer):
    """Stand-in for BackendClient over the sample catalog."""
    b = AsyncMock(spec=BackendClient)
    b.get_customer_by_phone.side_effect = lambda phone: (
        known_customer if phone == KNOWN_PHONE else Customer.guest(phone)
    )
    b.get_all_products.return_value = list(CATALOG)
    b.get_product.side_effect = lambda code: next((p for p in CATALOG if p.code == code), None)
    b.search_products.side_effect = _search
    b.validate_order_items.side_effect = _validate
    b.create_order.return_value = OrderResult(success=True, order_id="ORD-1001")
    return b


@pytest.fixture
def session(known_customer):
    return CallSession(call_id="call-1", customer_phone=KNOWN_PHONE, customer=known_customer)


@pytest.fixture
def guest_session():
    phone = "+15550000000"
    return CallSession(call_id="call-guest", customer_phone=phone, customer=Customer.guest(phone))


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def classifier():
    return KeywordClassifier(company_name="Distribuidora Central")


@pytest.fixture
def orchestrator(store, classifier, backend):
    return CallOrchestrator(
        store=store,
        classifier=classifier,
        backend=backend,
        welcome=WelcomeSelector(company_name="Distribuidora Central", rng=random.Random(7)),
    )
