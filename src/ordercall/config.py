"""Environment configuration.

``validate_config`` checks required variables before the server accepts
calls so that a missing key is a clear startup failure rather than a
mid-call surprise. ``load_settings`` reads everything into one object.
"""

import os
import sys
import logging
from dataclasses import dataclass

from ordercall.classifier import IntentClassifier
from ordercall.keyword_classifier import KeywordClassifier
from ordercall.llm_classifier import LLMClassifier

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "ERP_API_BASE_URL",
    "ERP_API_TOKEN",
]

OPTIONAL_VARS = [
    "COMPANY_NAME",
    "CLASSIFIER",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "MAX_TURNS_PER_CALL",
    "LOG_LEVEL",
]

CLASSIFIER_KEYWORD = "keyword"
CLASSIFIER_LLM = "llm"


@dataclass(frozen=True)
class Settings:
    erp_base_url: str = "http://localhost:3001/api"
    erp_token: str = ""
    erp_timeout: float = 10.0
    company_name: str = "nuestra empresa"
    classifier: str = CLASSIFIER_KEYWORD
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    max_turns: int = 30
    twilio_language: str = "es-MX"
    twilio_voice: str = "alice"
    log_level: str = "INFO"


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default


def load_settings() -> Settings:
    defaults = Settings()
    classifier = os.getenv("CLASSIFIER", defaults.classifier).strip().lower()
    if classifier not in (CLASSIFIER_KEYWORD, CLASSIFIER_LLM):
        logger.warning("Unknown CLASSIFIER=%r, using %s", classifier, CLASSIFIER_KEYWORD)
        classifier = CLASSIFIER_KEYWORD
    return Settings(
        erp_base_url=os.getenv("ERP_API_BASE_URL", defaults.erp_base_url),
        erp_token=os.getenv("ERP_API_TOKEN", defaults.erp_token),
        erp_timeout=_float("ERP_TIMEOUT_S", defaults.erp_timeout),
        company_name=os.getenv("COMPANY_NAME", defaults.company_name),
        classifier=classifier,
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_base_url=os.getenv("OPENAI_BASE_URL", defaults.openai_base_url),
        openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
        max_turns=_int("MAX_TURNS_PER_CALL", defaults.max_turns),
        twilio_language=os.getenv("TWILIO_LANGUAGE", defaults.twilio_language),
        twilio_voice=os.getenv("TWILIO_VOICE", defaults.twilio_voice),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )


def validate_config() -> None:
    """Validate environment variables at startup.

    Exits the process with a clear error if any required variable is missing
    or empty. Logs warnings for missing optional variables.
    """
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]

    if missing:
        print(
            f"\nFATAL: Missing required environment variables:\n"
            f"  {', '.join(missing)}\n"
            f"\nSet them in .env (local) or in the deployment's secrets.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    for var in OPTIONAL_VARS:
        if not os.getenv(var):
            logger.warning("Optional env var %s is not set", var)

    if os.getenv("CLASSIFIER", "").lower() == CLASSIFIER_LLM and not os.getenv("OPENAI_API_KEY"):
        logger.warning("CLASSIFIER=llm but OPENAI_API_KEY is not set, falling back to keyword rules")


def build_classifier(settings: Settings) -> IntentClassifier:
    """Pick the intent classifier for this process from settings."""
    if settings.classifier == CLASSIFIER_LLM and settings.openai_api_key:
        logger.info("Using LLM classifier (%s)", settings.openai_model)
        return LLMClassifier(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            company_name=settings.company_name,
        )
    logger.info("Using keyword classifier")
    return KeywordClassifier(company_name=settings.company_name)
