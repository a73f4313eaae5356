"""Verificação periódica do status de um PIX até confirmação, expiração ou timeout."""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from bilau.payments.errors import PaymentError
from bilau.payments.gateway.base import BackendGatewayProtocol
from bilau.payments.models import PaymentDescriptor, PaymentState, PaymentStatus
from bilau.scheduler import Scheduler

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30.0
MAX_POLL_ATTEMPTS = 60  # 30 minutos com checagem a cada 30s
SAFETY_TIMEOUT_SECONDS = 30 * 60.0


class PollListener(Protocol):
    """Quem recebe os desfechos terminais (o controller)."""

    async def on_payment_confirmed(self, descriptor: PaymentDescriptor, status: PaymentStatus) -> None: ...

    async def on_payment_expired(self, descriptor: PaymentDescriptor) -> None: ...

    async def on_payment_timed_out(self, descriptor: PaymentDescriptor) -> None: ...


@dataclass(eq=False)
class PollSession:
    """Estado em memória de uma verificação periódica; também serve de handle."""

    descriptor: PaymentDescriptor
    max_attempts: int
    interval: float
    started_at: float
    attempt_count: int = 0
    cancelled: bool = False
    in_flight: bool = False
    tick_token: Any = field(default=None, repr=False)
    deadline_token: Any = field(default=None, repr=False)

    @property
    def key(self) -> str:
        return self.descriptor.key


PollHandle = PollSession


class PaymentPoller:
    """
    Uma sessão viva por pagamento. Ticks a intervalo fixo, nunca com duas consultas
    simultâneas para o mesmo PIX; erros de consulta contam como tentativa sem progresso.
    """

    def __init__(
        self,
        gateway: BackendGatewayProtocol,
        scheduler: Scheduler,
        listener: PollListener,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        safety_timeout: float = SAFETY_TIMEOUT_SECONDS,
    ):
        self._gateway = gateway
        self._scheduler = scheduler
        self._listener = listener
        self.interval = interval
        self.max_attempts = max_attempts
        self.safety_timeout = safety_timeout
        self._sessions: dict[str, PollSession] = {}

    def start(self, descriptor: PaymentDescriptor) -> PollHandle:
        """Inicia a verificação; uma sessão anterior do mesmo pagamento é cancelada antes."""
        previous = self._sessions.get(descriptor.key)
        if previous is not None:
            logger.info("Substituindo verificação anterior de %s", descriptor.key)
            self.stop(previous)

        session = PollSession(
            descriptor=descriptor,
            max_attempts=self.max_attempts,
            interval=self.interval,
            started_at=self._scheduler.now(),
        )
        self._sessions[descriptor.key] = session
        session.tick_token = self._scheduler.after(self.interval, lambda: self._tick(session))
        # Backstop por relógio: um intervalo de folga além do limite absoluto
        deadline = descriptor.created_at + self.safety_timeout + self.interval
        session.deadline_token = self._scheduler.after(
            deadline - self._scheduler.now(), lambda: self._on_deadline(session)
        )
        logger.info(
            "Verificação iniciada para PIX %s (a cada %ss, máx %d tentativas)",
            descriptor.pix_id,
            self.interval,
            self.max_attempts,
        )
        return session

    def stop(self, handle: PollHandle | None) -> None:
        """Cancela a sessão; idempotente. Respostas que chegarem depois são descartadas."""
        if handle is None or handle.cancelled:
            return
        handle.cancelled = True
        self._scheduler.cancel(handle.tick_token)
        self._scheduler.cancel(handle.deadline_token)
        handle.tick_token = None
        handle.deadline_token = None
        if self._sessions.get(handle.key) is handle:
            del self._sessions[handle.key]

    def stop_all(self) -> None:
        for session in list(self._sessions.values()):
            self.stop(session)

    def is_active(self, handle: PollHandle | None) -> bool:
        return handle is not None and not handle.cancelled and self._sessions.get(handle.key) is handle

    def session_for(self, key: str) -> PollSession | None:
        return self._sessions.get(key)

    def _tick(self, session: PollSession):
        if not self.is_active(session):
            return None
        # Próximo tick agendado antes da consulta (intervalo fixo)
        session.tick_token = self._scheduler.after(session.interval, lambda: self._tick(session))
        if session.in_flight:
            logger.debug("Consulta anterior de %s ainda em andamento; tick ignorado", session.key)
            return None
        session.in_flight = True
        return self._poll(session)

    async def _poll(self, session: PollSession) -> None:
        descriptor = session.descriptor
        try:
            status: PaymentStatus | None = await self._gateway.check_payment_status(descriptor.pix_id)
        except PaymentError as e:
            logger.warning("Erro ao verificar pagamento %s: %s", descriptor.pix_id, e)
            status = None
        finally:
            session.in_flight = False

        if not self.is_active(session):
            logger.debug("Resposta de %s descartada (verificação encerrada)", descriptor.pix_id)
            return

        if status is not None and status.state is PaymentState.CONFIRMED:
            self.stop(session)
            logger.info("Pagamento %s confirmado", descriptor.pix_id)
            await self._listener.on_payment_confirmed(descriptor, status)
            return
        if status is not None and status.state is PaymentState.EXPIRED:
            self.stop(session)
            logger.info("Pagamento %s expirado", descriptor.pix_id)
            await self._listener.on_payment_expired(descriptor)
            return

        session.attempt_count += 1
        elapsed = self._scheduler.now() - descriptor.created_at
        if session.attempt_count >= session.max_attempts or elapsed >= self.safety_timeout:
            await self._time_out(session)

    def _on_deadline(self, session: PollSession):
        if not self.is_active(session):
            return None
        return self._time_out(session)

    async def _time_out(self, session: PollSession) -> None:
        self.stop(session)
        logger.info(
            "Tempo limite atingido para PIX %s (%d tentativas)",
            session.descriptor.pix_id,
            session.attempt_count,
        )
        await self._listener.on_payment_timed_out(session.descriptor)
