"""Implementação de exemplo (sandbox em memória) do backend (sem API externa)."""

import time
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from bilau.payments.errors import NotFoundError
from bilau.payments.gateway.base import DEFAULT_CONFIG
from bilau.payments.models import (
    CampaignStats,
    DonationRequest,
    DonationSummary,
    PaymentDescriptor,
    PaymentState,
    PaymentStatus,
    centimeters_for,
)


class ExampleGateway:
    """Backend fictício para desenvolver/testar o fluxo: paga quando confirm_payment é chamado."""

    def __init__(self, expires_in: timedelta = timedelta(minutes=30)):
        self._expires_in = expires_in
        self._donations: dict[str, dict[str, Any]] = {}
        self._pix_to_donation: dict[str, str] = {}

    def _new_payment(self, donation_id: str, amount: Decimal) -> PaymentDescriptor:
        pix_id = f"example-{uuid.uuid4().hex[:16]}"
        self._pix_to_donation[pix_id] = donation_id
        self._donations[donation_id]["pix_id"] = pix_id
        return PaymentDescriptor(
            donation_id=donation_id,
            pix_id=pix_id,
            pix_code=f"00020126580014br.gov.bcb.pix0136{pix_id}",
            amount=amount,
            centimeters=centimeters_for(amount),
            created_at=time.time(),
            external_reference=f"donation-{donation_id}",
            qr_code_url=f"https://example.com/pay/{pix_id}",
            expires_at=datetime.now(timezone.utc) + self._expires_in,
        )

    async def create_donation(self, request: DonationRequest) -> PaymentDescriptor:
        donation_id = uuid.uuid4().hex[:12]
        self._donations[donation_id] = {
            "id": donation_id,
            "name": request.name.strip(),
            "amount": request.amount,
            "centimeters": request.centimeters,
            "email": request.email,
            "confirmed": False,
        }
        return self._new_payment(donation_id, request.amount)

    async def check_payment_status(self, pix_id: str) -> PaymentStatus:
        donation_id = self._pix_to_donation.get(pix_id)
        if donation_id is None:
            raise NotFoundError(404, f"PIX {pix_id} não encontrado")
        donation = self._donations[donation_id]
        if donation["pix_id"] != pix_id:
            return PaymentStatus(state=PaymentState.EXPIRED)
        if donation["confirmed"]:
            return PaymentStatus(
                state=PaymentState.CONFIRMED,
                donation=DonationSummary(
                    name=donation["name"],
                    amount=donation["amount"],
                    centimeters=donation["centimeters"],
                    email=donation["email"],
                ),
                paid_at=donation.get("paid_at"),
            )
        return PaymentStatus(state=PaymentState.PENDING)

    async def confirm_payment(self, donation_id: str, payload: dict[str, Any] | None = None) -> Any:
        donation = self._donations.get(donation_id)
        if donation is None:
            raise NotFoundError(404, f"Doação {donation_id} não encontrada")
        donation["confirmed"] = True
        donation["paid_at"] = datetime.now(timezone.utc)
        return {"success": True}

    async def regenerate_pix(self, donation_id: str, amount: Decimal) -> PaymentDescriptor:
        if donation_id not in self._donations:
            raise NotFoundError(404, f"Doação {donation_id} não encontrada")
        return self._new_payment(donation_id, amount)

    async def get_donation(self, donation_id: str) -> dict[str, Any]:
        donation = self._donations.get(donation_id)
        if donation is None:
            raise NotFoundError(404, f"Doação {donation_id} não encontrada")
        return dict(donation)

    async def get_donations(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        confirmed = [dict(d) for d in self._donations.values() if d["confirmed"]]
        confirmed.sort(key=lambda d: d["amount"], reverse=True)
        return confirmed[offset : offset + limit]

    async def get_stats(self) -> CampaignStats:
        confirmed = [d for d in self._donations.values() if d["confirmed"]]
        return CampaignStats(
            current_size=CampaignStats().current_size + sum(d["centimeters"] for d in confirmed),
            total_donations=len(confirmed),
            total_amount=sum((d["amount"] for d in confirmed), Decimal("0")),
        )

    async def get_config(self) -> dict[str, Any]:
        return DEFAULT_CONFIG

    async def health_check(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
