"""Interface do gateway com o backend da campanha (desacoplada do transporte HTTP)."""

from decimal import Decimal
from typing import Any, Protocol

from bilau.payments.models import CampaignStats, DonationRequest, PaymentDescriptor, PaymentStatus

DEFAULT_GOALS: dict[str, int] = {
    "aquatico": 500,
    "cowboy": 1000,
    "ballz": 1500,
    "saiyajin": 2000,
}

DEFAULT_CONFIG: dict[str, Any] = {
    "goals": DEFAULT_GOALS,
    "limits": {
        "minDonation": 1,
        "maxDonation": 10000,
        "customCardThreshold": 200,
    },
}


class BackendGatewayProtocol(Protocol):
    """Protocolo do backend de doações PIX."""

    async def create_donation(self, request: DonationRequest) -> PaymentDescriptor:
        """Cria a doação e a cobrança PIX. Propaga qualquer falha."""
        ...

    async def check_payment_status(self, pix_id: str) -> PaymentStatus:
        """Consulta o status do PIX (uma tentativa só, sem retry)."""
        ...

    async def confirm_payment(self, donation_id: str, payload: dict[str, Any] | None = None) -> Any:
        """Dispara a confirmação manual do pagamento."""
        ...

    async def regenerate_pix(self, donation_id: str, amount: Decimal) -> PaymentDescriptor:
        """Gera um novo código PIX para uma doação existente."""
        ...

    async def get_donation(self, donation_id: str) -> dict[str, Any]:
        ...

    async def get_donations(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        """Lista de doações (cosmético: lista vazia em caso de falha)."""
        ...

    async def get_stats(self) -> CampaignStats:
        """Estatísticas (cosmético: valores padrão em caso de falha)."""
        ...

    async def get_config(self) -> dict[str, Any]:
        """Metas e limites (cosmético: DEFAULT_CONFIG em caso de falha)."""
        ...

    async def health_check(self) -> bool:
        ...

    async def aclose(self) -> None:
        ...
