import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from twilio.twiml.voice_response import Gather, VoiceResponse

from ordercall.config import Settings, build_classifier, load_settings, validate_config
from ordercall.events import (
    HANGUP,
    SPEAK,
    Connected,
    Disconnected,
    OrchestratorResult,
    SpeechRecognized,
    event_from_payload,
)
from ordercall.orchestrator import CallOrchestrator
from ordercall.prompts import GATHER_PROMPT, TECHNICAL_ERROR_MESSAGE, WelcomeSelector
from ordercall.store import ConversationStore
from ordercall.tools import BackendClient

load_dotenv()

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings) -> CallOrchestrator:
    backend = BackendClient(
        base_url=settings.erp_base_url,
        api_token=settings.erp_token,
        timeout=settings.erp_timeout,
    )
    return CallOrchestrator(
        store=ConversationStore(),
        classifier=build_classifier(settings),
        backend=backend,
        welcome=WelcomeSelector(company_name=settings.company_name),
        max_turns=settings.max_turns,
    )


def twiml_for(result: OrchestratorResult, settings: Settings) -> str:
    """Render an orchestrator result as TwiML for Twilio's <Gather> loop."""
    resp = VoiceResponse()
    if result.action == SPEAK:
        resp.say(result.message, voice=settings.twilio_voice, language=settings.twilio_language)
        gather = Gather(
            input="speech",
            action="/twilio",
            method="POST",
            language=settings.twilio_language,
            speech_timeout="auto",
            timeout=10,
        )
        gather.say(GATHER_PROMPT, voice=settings.twilio_voice, language=settings.twilio_language)
        resp.append(gather)
        # No speech before the timeout: come back with an empty SpeechResult
        resp.redirect("/twilio", method="POST")
    elif result.action == HANGUP:
        resp.say(result.message, voice=settings.twilio_voice, language=settings.twilio_language)
        resp.hangup()
    return str(resp)


def create_app(settings: Settings | None = None, orchestrator: CallOrchestrator | None = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.orchestrator is None
        if owned:
            app.state.orchestrator = build_orchestrator(settings)
        yield
        if owned:
            orch = app.state.orchestrator
            await orch.backend.close()
            close = getattr(orch.classifier, "close", None)
            if close is not None:
                await close()

    app = FastAPI(title="Order Call Agent", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    @app.get("/health")
    async def health():
        return PlainTextResponse("ok")

    @app.post("/events")
    async def events(request: Request):
        """JSON call-control webhook: CallConnected, RecognizeCompleted, CallDisconnected."""
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"success": False, "error": "invalid JSON body"})
        try:
            event = event_from_payload(payload)
        except ValueError as e:
            return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

        try:
            result = await app.state.orchestrator.handle(event)
        except Exception as e:
            logger.error("Event handling failed for %s: %s", event.call_id, e, exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "Error interno del servidor",
                    "message": TECHNICAL_ERROR_MESSAGE,
                },
            )
        return {"success": True, "callId": event.call_id, **result.to_dict()}

    @app.post("/twilio")
    async def twilio_webhook(request: Request):
        """Twilio voice webhook (form-encoded), answered with TwiML."""
        form = await request.form()
        call_sid = str(form.get("CallSid") or "")
        caller = str(form.get("From") or "")
        speech = str(form.get("SpeechResult") or "")
        status = str(form.get("CallStatus") or "")
        orch: CallOrchestrator = app.state.orchestrator

        if not call_sid:
            return PlainTextResponse("CallSid is required", status_code=400)

        if status == "completed":
            event = Disconnected(call_id=call_sid)
        # Read outside the call lock: two racing first webhooks may both
        # become Connected, and the orchestrator re-greets the second one.
        elif not speech and call_sid not in orch.store:
            event = Connected(call_id=call_sid, customer_phone=caller)
        else:
            event = SpeechRecognized(call_id=call_sid, customer_phone=caller, transcript=speech)

        try:
            result = await orch.handle(event)
        except Exception as e:
            logger.error("Twilio webhook failed for %s: %s", call_sid, e, exc_info=True)
            result = OrchestratorResult(action=HANGUP, message=TECHNICAL_ERROR_MESSAGE)

        return Response(content=twiml_for(result, settings), media_type="application/xml")

    return app


app = create_app()


if __name__ == "__main__":
    validate_config()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "ordercall.bot:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8765")),
    )
