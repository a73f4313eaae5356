"""Factory do gateway do backend (retorna implementação conforme config)."""

from bilau.config import Settings
from bilau.payments.gateway.base import BackendGatewayProtocol
from bilau.payments.gateway.example import ExampleGateway
from bilau.payments.gateway.http import HttpGateway


def get_gateway(settings: Settings) -> BackendGatewayProtocol:
    """
    Retorna a implementação conforme PAYMENT_GATEWAY.
    'example' usa o sandbox em memória; qualquer outro valor usa a API HTTP.
    """
    if settings.payment_gateway == "example":
        return ExampleGateway()
    return HttpGateway(
        settings.api_url,
        timeout=settings.request_timeout,
        retries=settings.request_retries,
    )
