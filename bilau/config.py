"""Configuração via variáveis de ambiente (.env carregado pelo python-dotenv)."""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://bilau-backend.onrender.com/api"
DEFAULT_PENDING_KEY_PREFIX = "bilau:pending_payments"


@dataclass(frozen=True)
class Settings:
    telegram_token: str
    redis_url: str
    api_url: str = DEFAULT_API_URL
    payment_gateway: str = "http"
    request_timeout: float = 30.0
    request_retries: int = 3
    poll_interval: float = 30.0
    poll_max_attempts: int = 60
    safety_timeout: float = 30 * 60.0
    dismiss_grace: float = 3.0
    pending_key_prefix: str = DEFAULT_PENDING_KEY_PREFIX


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_number(name: str, default: float, cast=float):
    """Lê número positivo do ambiente; valor ausente ou inválido usa o padrão."""
    raw = _env(name)
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Valor inválido em %s=%r; usando %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Valor não positivo em %s=%r; usando %s", name, raw, default)
        return default
    return value


def load_settings() -> Settings:
    """Carrega .env (se existir) e monta Settings."""
    load_dotenv()
    return Settings(
        telegram_token=_env("TELEGRAM_BOT_TOKEN"),
        redis_url=_env("REDIS_URL"),
        api_url=_env("BILAU_API_URL", DEFAULT_API_URL).rstrip("/"),
        payment_gateway=_env("PAYMENT_GATEWAY", "http").lower(),
        request_timeout=_env_number("REQUEST_TIMEOUT_SECONDS", 30.0),
        request_retries=_env_number("REQUEST_RETRIES", 3, int),
        poll_interval=_env_number("POLL_INTERVAL_SECONDS", 30.0),
        poll_max_attempts=_env_number("POLL_MAX_ATTEMPTS", 60, int),
        safety_timeout=_env_number("PAYMENT_SAFETY_TIMEOUT_SECONDS", 30 * 60.0),
        dismiss_grace=_env_number("TIMEOUT_DISMISS_GRACE_SECONDS", 3.0),
        pending_key_prefix=_env("PENDING_KEY_PREFIX", DEFAULT_PENDING_KEY_PREFIX),
    )
