"""Gateway HTTP (httpx) para o backend da campanha: timeout, retry com backoff e mapeamento."""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable

import httpx

from bilau.payments.errors import (
    ConnectivityError,
    MalformedResponseError,
    PaymentError,
    error_for_status,
)
from bilau.payments.gateway.base import DEFAULT_CONFIG
from bilau.payments.models import (
    CampaignStats,
    DonationRequest,
    PaymentDescriptor,
    PaymentStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_ATTEMPTS = 3


def backoff_delay(attempt: int) -> float:
    """Espera após a tentativa `attempt` (1-based) que falhou: 2s, 4s, 8s..."""
    return float(2**attempt)


class HttpGateway:
    """Cliente do backend. Falhas viram subclasses de PaymentError."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retries: int = MAX_ATTEMPTS,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json"},
        )
        self._retries = max(1, retries)
        self._sleep = sleep
        self._clock = clock

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        retry: bool = True,
    ) -> Any:
        """
        Faz a requisição e devolve o JSON decodificado.
        Com retry=True tenta até `retries` vezes com backoff exponencial; a última falha é levantada.
        """
        attempts = self._retries if retry else 1
        last_error: PaymentError | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await self._request_once(method, path, body)
            except PaymentError as e:
                last_error = e
                logger.warning(
                    "Tentativa %d/%d falhou (%s %s): %s", attempt, attempts, method, path, e
                )
                if attempt == attempts:
                    break
                await self._sleep(backoff_delay(attempt))
        assert last_error is not None
        raise last_error

    async def _request_once(self, method: str, path: str, body: Any) -> Any:
        try:
            response = await self._client.request(method, path, json=body)
        except httpx.TimeoutException as e:
            raise ConnectivityError(
                "Timeout: requisição demorou muito para responder", timed_out=True
            ) from e
        except httpx.DecodingError as e:
            raise MalformedResponseError(f"corpo da resposta ilegível ({method} {path}): {e}") from e
        except httpx.RequestError as e:
            # TransportError, TooManyRedirects e demais falhas da requisição
            raise ConnectivityError(f"Erro de conexão: {e}") from e

        if not response.is_success:
            raise error_for_status(
                response.status_code, f"HTTP {response.status_code}: {response.reason_phrase}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"resposta não é JSON ({method} {path})") from e
        if not isinstance(data, (dict, list)):
            raise MalformedResponseError(f"JSON inesperado ({method} {path})")
        return data

    # ------------------------------------------------------------ pagamento

    async def create_donation(self, request: DonationRequest) -> PaymentDescriptor:
        payload = await self.request("POST", "/donations", request.to_wire())
        return PaymentDescriptor.from_wire(payload, amount=request.amount, created_at=self._clock())

    async def check_payment_status(self, pix_id: str) -> PaymentStatus:
        # Sem retry: o intervalo do poller já é o retry
        payload = await self.request("GET", f"/payments/status/pix/{pix_id}", retry=False)
        return PaymentStatus.from_wire(payload)

    async def confirm_payment(self, donation_id: str, payload: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", f"/payments/confirm/{donation_id}", payload or {})

    async def regenerate_pix(self, donation_id: str, amount: Decimal) -> PaymentDescriptor:
        payload = await self.request("POST", f"/payments/regenerate/{donation_id}")
        payment = payload.get("payment", payload) if isinstance(payload, dict) else payload
        return PaymentDescriptor.payment_from_wire(
            payment, donation_id=donation_id, amount=amount, created_at=self._clock()
        )

    async def get_donation(self, donation_id: str) -> dict[str, Any]:
        payload = await self.request("GET", f"/donations/{donation_id}")
        if not isinstance(payload, dict):
            raise MalformedResponseError("doação não é um objeto")
        return payload.get("donation", payload)

    # ------------------------------------------------------------ leituras cosméticas

    async def get_donations(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        try:
            payload = await self.request("GET", f"/donations?limit={limit}&offset={offset}")
        except PaymentError as e:
            logger.error("Erro ao buscar doações: %s", e)
            return []
        if isinstance(payload, dict):
            payload = payload.get("donations", [])
        return [d for d in payload if isinstance(d, dict)] if isinstance(payload, list) else []

    async def get_stats(self) -> CampaignStats:
        try:
            return CampaignStats.from_wire(await self.request("GET", "/bilau/stats"))
        except PaymentError as e:
            logger.error("Erro ao buscar stats do bilau: %s", e)
            return CampaignStats()

    async def get_config(self) -> dict[str, Any]:
        try:
            payload = await self.request("GET", "/config")
        except PaymentError as e:
            logger.error("Erro ao buscar configurações: %s", e)
            return DEFAULT_CONFIG
        return payload if isinstance(payload, dict) else DEFAULT_CONFIG

    async def health_check(self) -> bool:
        try:
            payload = await self.request("GET", "/health", retry=False)
        except PaymentError as e:
            logger.warning("Health check da API falhou: %s", e)
            return False
        return isinstance(payload, dict) and str(payload.get("status", "")).lower() == "ok"
