import random

from ordercall.session import CallSession
from ordercall.states import Speaker
from ordercall.tools import Customer, Product

# Canned caller-facing lines. Spanish (es-MX) is the line's language.
NO_SPEECH_MESSAGE = "No pude escucharle claramente. ¿Podría repetir por favor?"
CLASSIFIER_ERROR_MESSAGE = (
    "Disculpe, tengo problemas técnicos temporales. ¿Podría repetir su solicitud?"
)
BACKEND_ERROR_MESSAGE = (
    "Disculpe, tuve un problema consultando nuestro sistema. ¿Podría intentar de nuevo?"
)
TURN_LIMIT_MESSAGE = (
    "Hemos hablado un buen rato. Para ayudarle mejor, un asesor le devolverá la llamada. "
    "¡Gracias por llamar!"
)
GATHER_PROMPT = "Por favor, dígame en qué puedo ayudarle."
DISCONNECT_ACK = "Llamada finalizada"
TECHNICAL_ERROR_MESSAGE = "Disculpe, tenemos problemas técnicos temporales."

GUEST_WELCOMES = (
    "¡Hola! Bienvenido a {company}. Soy su asistente virtual y estoy aquí para "
    "ayudarle con sus pedidos. ¿En qué puedo asistirle hoy?",
    "¡Buen día! Gracias por llamar a {company}. Puedo ayudarle a consultar productos, "
    "precios y a crear pedidos. ¿Qué necesita?",
)

KNOWN_WELCOMES = (
    "¡Hola {name}! Bienvenido de nuevo a {company}. Soy su asistente virtual. "
    "¿En qué puedo ayudarle con su pedido hoy?",
    "¡Qué gusto saludarle, {name}! Gracias por llamar a {company}. "
    "¿Qué le gustaría pedir hoy?",
)


class WelcomeSelector:
    """Picks a welcome line for a customer.

    Pass a seeded ``random.Random`` for repeatable picks in tests.
    """

    def __init__(
        self,
        company_name: str = "nuestra empresa",
        rng: random.Random | None = None,
        guest_templates: tuple[str, ...] = GUEST_WELCOMES,
        known_templates: tuple[str, ...] = KNOWN_WELCOMES,
    ):
        self.company_name = company_name
        self._rng = rng or random.Random()
        self.guest_templates = guest_templates
        self.known_templates = known_templates

    def select(self, customer: Customer) -> str:
        if customer.is_guest:
            template = self._rng.choice(self.guest_templates)
        else:
            template = self._rng.choice(self.known_templates)
        return template.format(company=self.company_name, name=customer.name)


PERSONA = """Eres un asistente telefónico profesional de {company}. Tu trabajo es ayudar a clientes empresariales a realizar pedidos por teléfono.

INSTRUCCIONES:
1. Sé profesional, amable y eficiente.
2. Ayuda al cliente a encontrar productos y crear pedidos.
3. Si no entiendes algo, pide aclaración.
4. Usa las funciones disponibles para consultar productos y crear borradores de pedido.
5. Mantén las respuestas concisas: es una conversación telefónica.
6. Nunca confirmes un pedido sin que el cliente lo apruebe; cuando lo apruebe usa confirm_order.
7. Para despedirte di "Gracias por llamar"."""


def get_system_prompt(session: CallSession, catalog: list[Product], company: str) -> str:
    customer = session.customer
    products = "\n".join(
        f"- {p.code}: {p.name} (${p.unit_price:.2f})" for p in catalog[:10]
    ) or "- (catálogo no disponible)"
    draft = ""
    if session.draft_order is not None:
        lines = ", ".join(f"{i.quantity} x {i.product_name}" for i in session.draft_order.items)
        draft = f"\n\nPEDIDO PENDIENTE DE CONFIRMACIÓN: {lines} (total ${session.draft_order.total:.2f})"
    return f"""{PERSONA.format(company=company)}

INFORMACIÓN DEL CLIENTE:
- Nombre: {customer.name}
- Teléfono: {session.customer_phone}
- Descuento: {customer.discount_rate * 100:.0f}%
- Crédito disponible: ${customer.credit_limit:.2f}

PRODUCTOS DISPONIBLES:
{products}{draft}"""


def history_messages(session: CallSession, limit: int = 6) -> list[dict]:
    """Recent turns as chat messages for the hosted classifier."""
    return [
        {
            "role": "user" if turn.speaker == Speaker.CUSTOMER else "assistant",
            "content": turn.text,
        }
        for turn in session.recent_history(limit)
    ]
