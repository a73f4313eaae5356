"""Modelos do fluxo de doação: pedido, descritor PIX, status e mapeamento do payload da API."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from bilau.payments.errors import MalformedResponseError, ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50

# Tamanho do bilau quando a API de stats não responde
DEFAULT_SIZE_CM = 1652


def to_decimal(value: Any) -> Decimal:
    """Converte número vindo do usuário ou da API para Decimal (ValueError se inválido)."""
    if isinstance(value, bool):
        raise ValueError(f"valor inválido: {value!r}")
    try:
        result = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, AttributeError) as e:
        raise ValueError(f"valor inválido: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"valor inválido: {value!r}")
    return result


def centimeters_for(amount: Decimal) -> int:
    """R$ 1,00 = 1 cm, arredondando meio para cima."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def card_type_for(amount: Decimal, premium_threshold: Decimal = Decimal("200")) -> str:
    """Tipo do card do doador conforme o valor."""
    if amount >= premium_threshold:
        return "custom"
    if amount >= 50:
        return "red"
    if amount >= 10:
        return "yellow"
    return "green"


def parse_timestamp(value: Any) -> datetime | None:
    """ISO-8601 (aceita sufixo Z) para datetime com timezone; None se ausente."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise MalformedResponseError(f"timestamp inválido: {value!r}")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise MalformedResponseError(f"timestamp inválido: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class DonationLimits:
    """Limites de valor da campanha (podem vir do GET /config)."""

    min_donation: Decimal = Decimal("1")
    max_donation: Decimal = Decimal("10000")
    premium_threshold: Decimal = Decimal("200")

    @classmethod
    def from_config(cls, payload: Any) -> "DonationLimits":
        """Lê o bloco `limits` da configuração remota; campos ausentes ou inválidos usam o padrão."""
        defaults = cls()
        limits = payload.get("limits") if isinstance(payload, dict) else None
        if not isinstance(limits, dict):
            return defaults

        def pick(key: str, default: Decimal) -> Decimal:
            try:
                value = to_decimal(limits[key])
            except (KeyError, ValueError):
                return default
            return value if value > 0 else default

        return cls(
            min_donation=pick("minDonation", defaults.min_donation),
            max_donation=pick("maxDonation", defaults.max_donation),
            premium_threshold=pick("customCardThreshold", defaults.premium_threshold),
        )


@dataclass(frozen=True)
class DonationRequest:
    """Pedido de doação feito pelo visitante; imutável após o envio."""

    name: str
    amount: Decimal
    custom_design: str | None = None
    email: str | None = None

    @property
    def centimeters(self) -> int:
        return centimeters_for(self.amount)

    def is_premium(self, limits: DonationLimits) -> bool:
        return self.amount >= limits.premium_threshold

    def validate(self, limits: DonationLimits) -> None:
        """Levanta ValidationError com todas as mensagens de erro encontradas."""
        errors: list[str] = []
        name = (self.name or "").strip()
        if len(name) < NAME_MIN_LENGTH or len(name) > NAME_MAX_LENGTH:
            errors.append(f"Nome deve ter entre {NAME_MIN_LENGTH} e {NAME_MAX_LENGTH} caracteres")
        if self.amount < limits.min_donation:
            errors.append(f"Valor mínimo é R$ {limits.min_donation}")
        if self.amount > limits.max_donation:
            errors.append(f"Valor máximo é R$ {limits.max_donation}")
        if self.is_premium(limits):
            if not (self.custom_design or "").strip():
                errors.append("Descrição do card customizado é obrigatória")
            if not self.email or not EMAIL_PATTERN.match(self.email.strip()):
                errors.append("Email válido é obrigatório para cards customizados")
        if errors:
            raise ValidationError(errors)

    def to_wire(self) -> dict[str, Any]:
        """Body do POST /donations."""
        return {
            "name": self.name.strip(),
            "amount": float(self.amount),
            "centimeters": self.centimeters,
            "cardType": card_type_for(self.amount),
            "customDesign": _optional_str(self.custom_design),
            "email": _optional_str(self.email),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


@dataclass(frozen=True)
class PaymentDescriptor:
    """Dados do pagamento PIX devolvidos pelo backend para uma doação criada."""

    donation_id: str | None
    pix_id: str
    pix_code: str | None
    amount: Decimal
    centimeters: int
    created_at: float
    external_reference: str | None = None
    qr_code_base64: str | None = None
    qr_code_url: str | None = None
    expires_at: datetime | None = None
    recovered: bool = False

    @property
    def key(self) -> str:
        """Identidade do ciclo de vida (a doação, ou o PIX quando a doação é desconhecida)."""
        return self.donation_id or self.pix_id

    @classmethod
    def from_wire(cls, payload: Any, amount: Decimal, created_at: float) -> "PaymentDescriptor":
        """Mapeia a resposta do POST /donations."""
        if not isinstance(payload, dict):
            raise MalformedResponseError("resposta de criação não é um objeto")
        donation = payload.get("donation")
        if not isinstance(donation, dict):
            raise MalformedResponseError("resposta de criação sem 'donation'")
        donation_id = _optional_str(donation.get("id") or donation.get("_id"))
        if not donation_id:
            raise MalformedResponseError("resposta de criação sem id da doação")
        return cls.payment_from_wire(
            payload.get("payment"), donation_id=donation_id, amount=amount, created_at=created_at
        )

    @classmethod
    def payment_from_wire(
        cls,
        payment: Any,
        *,
        donation_id: str | None,
        amount: Decimal,
        created_at: float,
    ) -> "PaymentDescriptor":
        """Mapeia um bloco `payment` (criação ou POST /payments/regenerate)."""
        if not isinstance(payment, dict):
            raise MalformedResponseError("resposta sem bloco 'payment'")
        pix_id = _optional_str(payment.get("pixId"))
        pix_code = _optional_str(payment.get("qrCode"))
        if not pix_id:
            raise MalformedResponseError("pagamento sem pixId")
        if not pix_code:
            raise MalformedResponseError("pagamento sem código PIX")
        return cls(
            donation_id=donation_id,
            pix_id=pix_id,
            pix_code=pix_code,
            amount=amount,
            centimeters=centimeters_for(amount),
            created_at=created_at,
            external_reference=_optional_str(payment.get("externalReference")),
            qr_code_base64=_optional_str(payment.get("qrCodeBase64")),
            qr_code_url=_optional_str(payment.get("ticketUrl")),
            expires_at=parse_timestamp(payment.get("expiresAt")),
        )

    @classmethod
    def recovered_entry(cls, pix_id: str, created_at: float) -> "PaymentDescriptor":
        """Descritor mínimo para um PIX pendente encontrado no storage após reinício."""
        return cls(
            donation_id=None,
            pix_id=pix_id,
            pix_code=None,
            amount=Decimal("0"),
            centimeters=0,
            created_at=created_at,
            recovered=True,
        )


class PaymentState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class DonationSummary:
    """Doação confirmada, como devolvida junto do status."""

    name: str
    amount: Decimal
    centimeters: int
    email: str | None = None

    @classmethod
    def from_wire(cls, payload: Any) -> "DonationSummary":
        if not isinstance(payload, dict):
            raise MalformedResponseError("'donation' não é um objeto")
        try:
            amount = to_decimal(payload.get("amount", 0))
        except ValueError as e:
            raise MalformedResponseError(str(e)) from e
        raw_cm = payload.get("centimeters")
        try:
            centimeters = int(raw_cm) if raw_cm is not None else centimeters_for(amount)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"centímetros inválidos: {raw_cm!r}") from e
        return cls(
            name=str(payload.get("name") or "Anônimo"),
            amount=amount,
            centimeters=centimeters,
            email=_optional_str(payload.get("email")),
        )


@dataclass(frozen=True)
class PaymentStatus:
    """Resultado de uma consulta de status (nunca persistido)."""

    state: PaymentState
    donation: DonationSummary | None = None
    paid_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not PaymentState.PENDING

    @classmethod
    def from_wire(cls, payload: Any) -> "PaymentStatus":
        """Mapeia GET /payments/status/pix/{pixId}."""
        if not isinstance(payload, dict):
            raise MalformedResponseError("status não é um objeto")
        if not any(k in payload for k in ("confirmed", "expired", "pending", "status")):
            raise MalformedResponseError("status sem campos conhecidos")
        status = payload.get("status")
        if payload.get("confirmed") is True or status == "confirmed":
            donation = payload.get("donation")
            return cls(
                state=PaymentState.CONFIRMED,
                donation=DonationSummary.from_wire(donation) if donation is not None else None,
                paid_at=parse_timestamp(payload.get("paidAt")),
            )
        if payload.get("expired") is True or status == "expired":
            return cls(state=PaymentState.EXPIRED)
        return cls(state=PaymentState.PENDING)


@dataclass(frozen=True)
class CampaignStats:
    """Estatísticas da campanha (GET /bilau/stats)."""

    current_size: int = DEFAULT_SIZE_CM
    total_donations: int = 0
    total_amount: Decimal = Decimal("0")
    current_visual: str = "default"

    @classmethod
    def from_wire(cls, payload: Any) -> "CampaignStats":
        if not isinstance(payload, dict):
            raise MalformedResponseError("stats não é um objeto")
        try:
            return cls(
                current_size=int(payload.get("totalCentimeters") or DEFAULT_SIZE_CM),
                total_donations=int(payload.get("totalDonations") or 0),
                total_amount=to_decimal(payload.get("totalAmount") or 0),
                current_visual=str(payload.get("currentVisual") or "default"),
            )
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"stats inválidas: {e}") from e
