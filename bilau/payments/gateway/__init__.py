"""Gateway do backend de doações PIX (interface base + implementações)."""

from bilau.payments.gateway.base import (
    DEFAULT_CONFIG,
    DEFAULT_GOALS,
    BackendGatewayProtocol,
)
from bilau.payments.gateway.example import ExampleGateway
from bilau.payments.gateway.factory import get_gateway
from bilau.payments.gateway.http import HttpGateway

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_GOALS",
    "BackendGatewayProtocol",
    "ExampleGateway",
    "HttpGateway",
    "get_gateway",
]
