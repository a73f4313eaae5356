from bilau.config import DEFAULT_API_URL, load_settings
from bilau.payments.gateway import ExampleGateway, HttpGateway, get_gateway

ENV_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "REDIS_URL",
    "BILAU_API_URL",
    "PAYMENT_GATEWAY",
    "POLL_INTERVAL_SECONDS",
    "POLL_MAX_ATTEMPTS",
    "REQUEST_RETRIES",
)


def clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    clear_env(monkeypatch)
    settings = load_settings()

    assert settings.api_url == DEFAULT_API_URL
    assert settings.poll_interval == 30.0
    assert settings.poll_max_attempts == 60
    assert settings.safety_timeout == 1800.0
    assert settings.pending_key_prefix == "bilau:pending_payments"


def test_overrides_and_invalid_values(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("BILAU_API_URL", "http://localhost:3001/api/")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("POLL_MAX_ATTEMPTS", "dez")
    monkeypatch.setenv("REQUEST_RETRIES", "0")

    settings = load_settings()

    assert settings.api_url == "http://localhost:3001/api"
    assert settings.poll_interval == 5.0
    assert settings.poll_max_attempts == 60
    assert settings.request_retries == 3


def test_gateway_factory(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("PAYMENT_GATEWAY", "Example")
    assert isinstance(get_gateway(load_settings()), ExampleGateway)

    monkeypatch.setenv("PAYMENT_GATEWAY", "http")
    assert isinstance(get_gateway(load_settings()), HttpGateway)
