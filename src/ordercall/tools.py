import httpx
import logging
from dataclasses import dataclass, field

from ordercall.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

GUEST_CUSTOMER_ID = "GUEST"


class BackendError(Exception):
    """Transport-level failure talking to the order backend.

    Not-found conditions are never raised; they come back as ``None``,
    an empty list or the guest customer.
    """


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    phone: str
    email: str = ""
    discount_rate: float = 0.0
    credit_limit: float = 0.0

    @property
    def is_guest(self) -> bool:
        return self.id == GUEST_CUSTOMER_ID

    @classmethod
    def guest(cls, phone: str) -> "Customer":
        return cls(id=GUEST_CUSTOMER_ID, name="Cliente", phone=phone)

    @classmethod
    def from_api(cls, data: dict, phone: str = "") -> "Customer":
        return cls(
            id=str(data.get("id") or GUEST_CUSTOMER_ID),
            name=data.get("nombre") or "Cliente",
            phone=data.get("telefono") or phone,
            email=data.get("email") or "",
            discount_rate=float(data.get("descuento") or 0),
            credit_limit=float(data.get("credito_disponible") or 0),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "discount_rate": self.discount_rate,
            "credit_limit": self.credit_limit,
        }


@dataclass(frozen=True)
class Product:
    code: str
    name: str
    unit_price: float
    stock: int
    currency: str = "USD"
    category: str = ""
    description: str = ""
    active: bool = True

    @classmethod
    def from_api(cls, data: dict) -> "Product":
        return cls(
            code=data["codigo"],
            name=data.get("nombre", data["codigo"]),
            unit_price=float(data.get("precio_unitario", 0)),
            stock=int(data.get("stock_disponible", 0)),
            currency=data.get("moneda", "USD"),
            category=data.get("categoria", ""),
            description=data.get("descripcion", ""),
            active=bool(data.get("activo", True)),
        )

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "unit_price": self.unit_price,
            "stock": self.stock,
            "currency": self.currency,
            "category": self.category,
            "description": self.description,
            "active": self.active,
        }


@dataclass(frozen=True)
class OrderItem:
    product_code: str
    quantity: int

    def to_dict(self) -> dict:
        return {"product_code": self.product_code, "quantity": self.quantity}


@dataclass(frozen=True)
class ValidatedItem:
    product_code: str
    product_name: str
    quantity: int
    unit_price: float

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price

    @classmethod
    def from_api(cls, data: dict) -> "ValidatedItem":
        return cls(
            product_code=data["product_code"],
            product_name=data.get("product_name", data["product_code"]),
            quantity=int(data["quantity"]),
            unit_price=float(data["unit_price"]),
        )

    def to_dict(self) -> dict:
        return {
            "product_code": self.product_code,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total": self.line_total,
        }


@dataclass
class OrderValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    validated_items: list[ValidatedItem] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "OrderValidation":
        return cls(
            valid=bool(data.get("valid")),
            errors=[str(e) for e in data.get("errors", [])],
            validated_items=[ValidatedItem.from_api(i) for i in data.get("validatedItems", [])],
        )


@dataclass
class OrderResult:
    success: bool
    order_id: str | None = None
    error: str | None = None


class BackendClient:
    """HTTP client for the product/order backend.

    Wraps each call with a circuit breaker: after 3 consecutive transport
    failures calls are skipped for 60s and BackendError is raised straight
    away, so the dispatcher can apologise instead of hanging the caller.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=60.0,
            label="order backend",
        )
        if client is not None:
            self._client = client
        else:
            headers = {"Content-Type": "application/json"}
            if api_token:
                headers["Authorization"] = f"Bearer {api_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )

    async def close(self):
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        label: str,
        allow_status: tuple[int, ...] = (),
        **kwargs,
    ) -> httpx.Response:
        """Send one request; statuses in ``allow_status`` are returned, not raised."""
        if not self._circuit.allow_request():
            logger.warning("Backend circuit breaker open, skipping %s", label)
            raise BackendError("order backend unavailable")
        try:
            resp = await self._client.request(method, path, **kwargs)
            if resp.status_code not in allow_status:
                resp.raise_for_status()
        except httpx.HTTPError as e:
            self._circuit.record_failure()
            logger.error("%s failed: %s", label, e)
            raise BackendError(f"{label} failed: {e}") from e
        self._circuit.record_success()
        return resp

    async def get_customer_by_phone(self, phone: str) -> Customer:
        resp = await self._request(
            "GET",
            f"/customers/by-phone/{phone}",
            label="get_customer_by_phone",
            allow_status=(404,),
        )
        if resp.status_code == 404:
            logger.info("No customer on file for %s, using guest", phone)
            return Customer.guest(phone)
        return Customer.from_api(resp.json(), phone=phone)

    async def get_all_products(self) -> list[Product]:
        resp = await self._request("GET", "/products", label="get_all_products")
        return [Product.from_api(p) for p in resp.json()]

    async def get_product(self, code: str) -> Product | None:
        resp = await self._request(
            "GET", f"/products/{code}", label="get_product", allow_status=(404,)
        )
        if resp.status_code == 404:
            return None
        return Product.from_api(resp.json())

    async def search_products(self, term: str) -> list[Product]:
        resp = await self._request(
            "GET",
            "/products/search",
            label="search_products",
            allow_status=(404,),
            params={"q": term},
        )
        if resp.status_code == 404:
            logger.info("No products match %r", term)
            return []
        return [Product.from_api(p) for p in resp.json()]

    async def validate_order_items(self, items: list[OrderItem]) -> OrderValidation:
        resp = await self._request(
            "POST",
            "/orders/validate",
            label="validate_order_items",
            allow_status=(400,),
            json={"items": [i.to_dict() for i in items]},
        )
        return OrderValidation.from_api(resp.json())

    async def create_order(self, customer_id: str, items: list[ValidatedItem]) -> OrderResult:
        resp = await self._request(
            "POST",
            "/orders",
            label="create_order",
            allow_status=(400, 404, 409, 422),
            json={
                "customer_id": customer_id,
                "items": [
                    {
                        "product_code": i.product_code,
                        "quantity": i.quantity,
                        "unit_price": i.unit_price,
                    }
                    for i in items
                ],
            },
        )
        body = resp.json() if resp.content else {}
        if resp.is_error:
            error = body.get("error") or body.get("message") or "Error creando pedido"
            logger.warning("create_order rejected for %s: %s", customer_id, error)
            return OrderResult(success=False, error=error)
        return OrderResult(success=True, order_id=body.get("order_id"))
