"""Ciclo de vida da doação: criação, PIX aguardando, confirmação/expiração/timeout e recuperação."""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from bilau.campaign import SizeTracker
from bilau.payments.errors import LifecycleError, PaymentError, user_message
from bilau.payments.gateway.base import BackendGatewayProtocol
from bilau.payments.models import (
    DonationLimits,
    DonationRequest,
    DonationSummary,
    PaymentDescriptor,
    PaymentState,
    PaymentStatus,
)
from bilau.payments.poller import (
    MAX_POLL_ATTEMPTS,
    POLL_INTERVAL_SECONDS,
    SAFETY_TIMEOUT_SECONDS,
    PaymentPoller,
    PollSession,
)
from bilau.payments.store import PendingPaymentStore
from bilau.scheduler import Scheduler

logger = logging.getLogger(__name__)

DISMISS_GRACE_SECONDS = 3.0


class LifecycleState(str, Enum):
    CREATED = "created"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CLOSED = "closed"


TERMINAL_STATES = frozenset(
    {LifecycleState.CONFIRMED, LifecycleState.EXPIRED, LifecycleState.TIMED_OUT}
)


class PaymentListener(Protocol):
    """Eventos emitidos para a camada de apresentação."""

    async def payment_awaiting(self, descriptor: PaymentDescriptor) -> None: ...

    async def payment_confirmed(
        self, descriptor: PaymentDescriptor, donation: DonationSummary | None
    ) -> None: ...

    async def payment_expired(self, descriptor: PaymentDescriptor) -> None: ...

    async def payment_timed_out(self, descriptor: PaymentDescriptor) -> None: ...

    async def payment_closed(self, descriptor: PaymentDescriptor) -> None: ...

    async def payment_failed(self, message: str) -> None: ...

    async def dismiss_payment(self, descriptor: PaymentDescriptor) -> None: ...


@dataclass(eq=False)
class PaymentLifecycle:
    state: LifecycleState
    request: DonationRequest | None = None
    descriptor: PaymentDescriptor | None = None
    poll: PollSession | None = None
    resolved: bool = False
    error: PaymentError | None = None
    dismiss_token: Any = None

    @property
    def key(self) -> str | None:
        return self.descriptor.key if self.descriptor else None


class PaymentController:
    """
    Orquestra o gateway, a lista de pendentes e o poller para uma sessão de usuário.
    Invariante: um PIX está na lista de pendentes se e somente se o ciclo está em AWAITING_PAYMENT.
    """

    def __init__(
        self,
        gateway: BackendGatewayProtocol,
        store: PendingPaymentStore,
        scheduler: Scheduler,
        listener: PaymentListener,
        *,
        tracker: SizeTracker | None = None,
        limits: DonationLimits | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        safety_timeout: float = SAFETY_TIMEOUT_SECONDS,
        dismiss_grace: float = DISMISS_GRACE_SECONDS,
    ):
        self._gateway = gateway
        self._store = store
        self._scheduler = scheduler
        self._listener = listener
        self._tracker = tracker
        self.limits = limits or DonationLimits()
        self.dismiss_grace = dismiss_grace
        self.poller = PaymentPoller(
            gateway,
            scheduler,
            self,
            interval=poll_interval,
            max_attempts=max_attempts,
            safety_timeout=safety_timeout,
        )
        self._lifecycles: dict[str, PaymentLifecycle] = {}

    # ------------------------------------------------------------ consulta

    def lifecycle(self, key: str) -> PaymentLifecycle | None:
        return self._lifecycles.get(key)

    def lifecycles(self) -> list[PaymentLifecycle]:
        return list(self._lifecycles.values())

    def awaiting(self) -> list[PaymentLifecycle]:
        return [lc for lc in self._lifecycles.values() if lc.state is LifecycleState.AWAITING_PAYMENT]

    def _find_by_pix(self, pix_id: str) -> PaymentLifecycle | None:
        return next(
            (lc for lc in self._lifecycles.values() if lc.descriptor and lc.descriptor.pix_id == pix_id),
            None,
        )

    # ------------------------------------------------------------ criação

    async def donate(self, request: DonationRequest) -> PaymentLifecycle:
        """
        Valida localmente (ValidationError antes de qualquer rede) e cria a doação.
        Falha na criação: estado FAILED, mensagem ao usuário, nada gravado nem verificado.
        """
        request.validate(self.limits)
        lifecycle = PaymentLifecycle(state=LifecycleState.CREATED, request=request)
        try:
            descriptor = await self._gateway.create_donation(request)
        except PaymentError as e:
            logger.error("Erro ao criar doação de %s (R$ %s): %s", request.name, request.amount, e)
            lifecycle.state = LifecycleState.FAILED
            lifecycle.error = e
            await self._listener.payment_failed(user_message(e))
            return lifecycle

        lifecycle.descriptor = replace(descriptor, created_at=self._scheduler.now())
        logger.info(
            "Doação %s criada: PIX %s, R$ %s", descriptor.donation_id, descriptor.pix_id, request.amount
        )
        await self._enter_awaiting(lifecycle)
        return lifecycle

    async def _enter_awaiting(self, lifecycle: PaymentLifecycle) -> None:
        descriptor = lifecycle.descriptor
        lifecycle.state = LifecycleState.AWAITING_PAYMENT
        lifecycle.resolved = False
        self._lifecycles[descriptor.key] = lifecycle
        await self._store.add(descriptor.pix_id)
        lifecycle.poll = self.poller.start(descriptor)
        await self._listener.payment_awaiting(descriptor)

    # ------------------------------------------------------------ desfechos do poller

    def _current(self, descriptor: PaymentDescriptor) -> PaymentLifecycle | None:
        lifecycle = self._lifecycles.get(descriptor.key)
        if lifecycle is None or lifecycle.descriptor.pix_id != descriptor.pix_id:
            logger.info("Notificação ignorada para PIX %s (sem ciclo ativo)", descriptor.pix_id)
            return None
        return lifecycle

    async def on_payment_confirmed(self, descriptor: PaymentDescriptor, status: PaymentStatus) -> None:
        lifecycle = self._current(descriptor)
        if lifecycle is not None:
            await self._resolve_confirmed(lifecycle, status)

    async def on_payment_expired(self, descriptor: PaymentDescriptor) -> None:
        lifecycle = self._current(descriptor)
        if lifecycle is not None:
            await self._resolve_expired(lifecycle)

    async def on_payment_timed_out(self, descriptor: PaymentDescriptor) -> None:
        lifecycle = self._current(descriptor)
        if lifecycle is None or lifecycle.resolved:
            return
        lifecycle.resolved = True
        lifecycle.state = LifecycleState.TIMED_OUT
        self.poller.stop(lifecycle.poll)
        await self._store.remove(descriptor.pix_id)
        await self._listener.payment_timed_out(descriptor)
        lifecycle.dismiss_token = self._scheduler.after(
            self.dismiss_grace, lambda: self._auto_dismiss(lifecycle)
        )

    async def _resolve_confirmed(self, lifecycle: PaymentLifecycle, status: PaymentStatus) -> None:
        if lifecycle.resolved:
            return
        lifecycle.resolved = True
        lifecycle.state = LifecycleState.CONFIRMED
        descriptor = lifecycle.descriptor
        self.poller.stop(lifecycle.poll)
        await self._store.remove(descriptor.pix_id)

        donation = status.donation
        if donation is None and lifecycle.request is not None:
            request = lifecycle.request
            donation = DonationSummary(
                name=request.name.strip(),
                amount=request.amount,
                centimeters=request.centimeters,
                email=request.email,
            )
        centimeters = donation.centimeters if donation is not None else descriptor.centimeters
        if self._tracker is not None and centimeters > 0:
            self._tracker.grow(centimeters)
        logger.info("Pagamento %s confirmado (+%d cm)", descriptor.pix_id, centimeters)
        await self._listener.payment_confirmed(descriptor, donation)

    async def _resolve_expired(self, lifecycle: PaymentLifecycle) -> None:
        if lifecycle.resolved:
            return
        lifecycle.resolved = True
        lifecycle.state = LifecycleState.EXPIRED
        self.poller.stop(lifecycle.poll)
        await self._store.remove(lifecycle.descriptor.pix_id)
        logger.info("Pagamento %s expirado", lifecycle.descriptor.pix_id)
        await self._listener.payment_expired(lifecycle.descriptor)

    async def _auto_dismiss(self, lifecycle: PaymentLifecycle) -> None:
        lifecycle.dismiss_token = None
        if self._lifecycles.get(lifecycle.key) is not lifecycle:
            return
        if lifecycle.state is not LifecycleState.TIMED_OUT:
            return
        await self._listener.dismiss_payment(lifecycle.descriptor)
        await self.acknowledge(lifecycle.key)

    # ------------------------------------------------------------ ações do usuário

    async def acknowledge(self, key: str) -> bool:
        """Fecha um ciclo já resolvido (ex.: modal dispensado). Idempotente."""
        lifecycle = self._lifecycles.get(key)
        if lifecycle is None or lifecycle.state not in TERMINAL_STATES:
            return False
        self._scheduler.cancel(lifecycle.dismiss_token)
        lifecycle.dismiss_token = None
        lifecycle.state = LifecycleState.CLOSED
        del self._lifecycles[key]
        await self._listener.payment_closed(lifecycle.descriptor)
        return True

    async def cancel(self, key: str) -> bool:
        """Usuário desistiu de um PIX aguardando pagamento."""
        lifecycle = self._lifecycles.get(key)
        if lifecycle is None or lifecycle.state is not LifecycleState.AWAITING_PAYMENT:
            return False
        lifecycle.resolved = True
        self.poller.stop(lifecycle.poll)
        await self._store.remove(lifecycle.descriptor.pix_id)
        lifecycle.state = LifecycleState.CLOSED
        del self._lifecycles[key]
        logger.info("Pagamento %s cancelado pelo usuário", lifecycle.descriptor.pix_id)
        await self._listener.payment_closed(lifecycle.descriptor)
        return True

    async def regenerate(self, key: str) -> PaymentDescriptor:
        """Gera novo PIX para a mesma doação (aguardando ou expirada) e reinicia a verificação."""
        lifecycle = self._lifecycles.get(key)
        allowed = (LifecycleState.AWAITING_PAYMENT, LifecycleState.EXPIRED)
        if lifecycle is None or lifecycle.state not in allowed:
            raise LifecycleError("Nenhum pagamento ativo para gerar novo PIX")
        old = lifecycle.descriptor
        if old.donation_id is None:
            raise LifecycleError("Pagamento recuperado sem doação associada; faça uma nova doação")

        try:
            fresh = await self._gateway.regenerate_pix(old.donation_id, old.amount)
        except PaymentError as e:
            logger.error("Erro ao gerar novo PIX para doação %s: %s", old.donation_id, e)
            raise
        if self._lifecycles.get(key) is not lifecycle or lifecycle.state not in allowed:
            raise LifecycleError("O pagamento mudou de estado enquanto o novo PIX era gerado")

        self.poller.stop(lifecycle.poll)
        if lifecycle.state is LifecycleState.AWAITING_PAYMENT:
            await self._store.remove(old.pix_id)
        lifecycle.descriptor = replace(fresh, created_at=self._scheduler.now())
        logger.info("Novo PIX %s gerado para doação %s (antes %s)", fresh.pix_id, old.donation_id, old.pix_id)
        await self._enter_awaiting(lifecycle)
        return lifecycle.descriptor

    async def confirm(self, key: str, payload: dict[str, Any] | None = None) -> Any:
        """
        Dispara a confirmação manual no backend. Falha é reportada (levantada) sem alterar o estado:
        a próxima verificação periódica observa o pagamento liquidado.
        """
        lifecycle = self._lifecycles.get(key)
        if lifecycle is None or lifecycle.state is not LifecycleState.AWAITING_PAYMENT:
            raise LifecycleError("Nenhum pagamento aguardando confirmação")
        donation_id = lifecycle.descriptor.donation_id
        if donation_id is None:
            raise LifecycleError("Pagamento recuperado sem doação associada")
        try:
            return await self._gateway.confirm_payment(donation_id, payload)
        except PaymentError as e:
            logger.error("Erro ao confirmar pagamento da doação %s: %s", donation_id, e)
            raise

    # ------------------------------------------------------------ recuperação

    async def recover(self) -> list[PaymentLifecycle]:
        """
        Reconcilia os PIX pendentes gravados: consulta o status na hora e resolve
        (confirmado/expirado) ou volta a aguardar com uma verificação nova.
        """
        recovered = []
        for pix_id in await self._store.list():
            if self._find_by_pix(pix_id) is not None:
                continue
            descriptor = PaymentDescriptor.recovered_entry(pix_id, self._scheduler.now())
            lifecycle = PaymentLifecycle(state=LifecycleState.AWAITING_PAYMENT, descriptor=descriptor)
            self._lifecycles[descriptor.key] = lifecycle
            recovered.append(lifecycle)

            try:
                status = await self._gateway.check_payment_status(pix_id)
            except PaymentError as e:
                logger.warning("Erro ao verificar pagamento pendente %s: %s", pix_id, e)
                status = None
            if self._lifecycles.get(descriptor.key) is not lifecycle or lifecycle.resolved:
                continue

            if status is not None and status.state is PaymentState.CONFIRMED:
                await self._resolve_confirmed(lifecycle, status)
            elif status is not None and status.state is PaymentState.EXPIRED:
                await self._resolve_expired(lifecycle)
            else:
                lifecycle.poll = self.poller.start(descriptor)
                await self._listener.payment_awaiting(descriptor)
        if recovered:
            logger.info("%d pagamento(s) pendente(s) recuperado(s)", len(recovered))
        return recovered

    def shutdown(self) -> None:
        """Para as verificações sem mexer na lista de pendentes (retomadas no próximo início)."""
        self.poller.stop_all()
        for lifecycle in self._lifecycles.values():
            self._scheduler.cancel(lifecycle.dismiss_token)
            lifecycle.dismiss_token = None
