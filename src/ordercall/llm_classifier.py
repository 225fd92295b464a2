import json
import logging

import httpx

from ordercall.classifier import (
    END_CALL,
    END_CONVERSATION,
    SPEAK,
    IntentClassifier,
    IntentDecision,
    parse_function_call,
)
from ordercall.keyword_classifier import extract_intent
from ordercall.prompts import get_system_prompt, history_messages
from ordercall.session import CallSession
from ordercall.states import Speaker
from ordercall.tools import Product
from ordercall.validation import normalize

logger = logging.getLogger(__name__)

FAREWELL_PHRASES = ("gracias por llamar", "que tenga buen dia", "que tenga un excelente dia", "hasta luego")

TOOL_DEFINITIONS = [
    {
        "type": "function",
        "function": {
            "name": "query_product_info",
            "description": "Consultar información detallada de un producto específico",
            "parameters": {
                "type": "object",
                "properties": {
                    "product_code": {"type": "string", "description": "Código del producto a consultar"},
                },
                "required": ["product_code"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "search_products",
            "description": "Buscar productos por nombre o descripción",
            "parameters": {
                "type": "object",
                "properties": {
                    "search_term": {"type": "string", "description": "Término de búsqueda"},
                },
                "required": ["search_term"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "create_order_draft",
            "description": "Crear un borrador de pedido con los productos seleccionados",
            "parameters": {
                "type": "object",
                "properties": {
                    "items": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "product_code": {"type": "string"},
                                "quantity": {"type": "integer"},
                            },
                            "required": ["product_code", "quantity"],
                        },
                    },
                },
                "required": ["items"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "confirm_order",
            "description": "Enviar al sistema el borrador de pedido pendiente después de que el cliente lo confirme",
            "parameters": {"type": "object", "properties": {}},
        },
    },
]


def determine_action(reply: str) -> str:
    lower = normalize(reply)
    if any(phrase in lower for phrase in FAREWELL_PHRASES):
        return END_CALL
    return SPEAK


class LLMClassifier(IntentClassifier):
    """Hosted-model classifier over an OpenAI-compatible chat completions API.

    Non-deterministic. Tool calls become backend function requests; plain
    replies are spoken as-is. Failures surface through the base class as an
    ``error`` decision.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        company_name: str = "nuestra empresa",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.model = model
        self.company_name = company_name
        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(
                base_url=base_url.rstrip("/"),
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=timeout,
            )

    async def close(self):
        await self._client.aclose()

    def build_messages(self, session: CallSession, utterance: str, catalog: list[Product]) -> list[dict]:
        history = history_messages(session)
        # The orchestrator appends the caller turn before classifying
        last = session.history[-1] if session.history else None
        if last is not None and last.speaker == Speaker.CUSTOMER and last.text == utterance and history:
            history = history[:-1]
        return [
            {"role": "system", "content": get_system_prompt(session, catalog, self.company_name)},
            *history,
            {"role": "user", "content": utterance},
        ]

    async def _classify(
        self,
        session: CallSession,
        utterance: str,
        catalog: list[Product],
    ) -> IntentDecision:
        resp = await self._client.post(
            "/chat/completions",
            json={
                "model": self.model,
                "temperature": 0.3,
                "max_tokens": 500,
                "messages": self.build_messages(session, utterance, catalog),
                "tools": TOOL_DEFINITIONS,
                "tool_choice": "auto",
            },
        )
        resp.raise_for_status()
        message = resp.json()["choices"][0]["message"]
        intent = extract_intent(utterance)

        tool_calls = message.get("tool_calls") or []
        if tool_calls:
            fn = tool_calls[0]["function"]
            call = parse_function_call(fn["name"], json.loads(fn.get("arguments") or "{}"))
            logger.info("LLM requested %s for %s", call.name, session.call_id)
            return IntentDecision(
                intent=intent,
                confidence=0.8,
                message="Procesando su solicitud...",
                action=SPEAK,
                requires_backend_query=True,
                function_call=call,
            )

        reply = (message.get("content") or "").strip()
        if not reply:
            reply = "Disculpe, no pude procesar su solicitud."
        action = determine_action(reply)
        if action == END_CALL:
            intent = END_CONVERSATION
        return IntentDecision(
            intent=intent,
            confidence=0.9,
            message=reply,
            action=action,
        )
