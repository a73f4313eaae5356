"""Fixtures compartilhadas: relógio simulado, Redis fake e colaboradores mockados."""

import asyncio
import inspect
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest

from bilau.payments.models import (
    DonationSummary,
    PaymentDescriptor,
    PaymentState,
    PaymentStatus,
)
from bilau.payments.store import PendingPaymentStore


@dataclass(eq=False)
class _Timer:
    when: float
    seq: int
    fn: Callable[[], Any] = field(repr=False)
    cancelled: bool = False


class ManualScheduler:
    """Scheduler com relógio controlado pelo teste (advance dispara os timers vencidos em ordem)."""

    def __init__(self, start: float = 1_000.0):
        self._now = start
        self._seq = 0
        self._timers: list[_Timer] = []
        self._tasks: set[asyncio.Future] = set()

    def now(self) -> float:
        return self._now

    def after(self, delay: float, fn: Callable[[], Any]) -> _Timer:
        self._seq += 1
        timer = _Timer(when=self._now + max(0.0, delay), seq=self._seq, fn=fn)
        self._timers.append(timer)
        return timer

    def cancel(self, token: Any) -> None:
        if token is not None:
            token.cancelled = True

    def pending(self) -> list[_Timer]:
        return sorted((t for t in self._timers if not t.cancelled), key=lambda t: (t.when, t.seq))

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self.pending() if t.when <= target]
            if not due:
                break
            timer = due[0]
            self._timers.remove(timer)
            self._now = timer.when
            result = timer.fn()
            if inspect.isawaitable(result):
                self._tasks.add(asyncio.ensure_future(result))
            await self.settle()
        self._now = target
        await self.settle()

    async def settle(self) -> None:
        """Deixa as tasks disparadas rodarem; tasks bloqueadas de propósito ficam pendentes."""
        running = {t for t in self._tasks if not t.done()}
        if running:
            await asyncio.wait(running, timeout=0.05)
        for task in [t for t in self._tasks if t.done()]:
            self._tasks.discard(task)
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def store(fake_redis):
    return PendingPaymentStore(fake_redis, "bilau:pending_payments:42")


@pytest.fixture
def listener():
    """Colaborador de apresentação (todos os eventos são AsyncMock)."""
    return AsyncMock()


@pytest.fixture
def tracker():
    mock = MagicMock()
    mock.grow = MagicMock(return_value=[])
    return mock


@pytest.fixture
def gateway():
    mock = AsyncMock()
    mock.check_payment_status = AsyncMock(return_value=PaymentStatus(state=PaymentState.PENDING))
    return mock


def make_descriptor(
    pix_id: str = "pix-1",
    donation_id: str | None = "don-1",
    amount: str = "25",
    created_at: float = 1_000.0,
) -> PaymentDescriptor:
    value = Decimal(amount)
    return PaymentDescriptor(
        donation_id=donation_id,
        pix_id=pix_id,
        pix_code=f"00020126580014br.gov.bcb.pix0136{pix_id}",
        amount=value,
        centimeters=int(value),
        created_at=created_at,
        external_reference=f"ref-{pix_id}",
    )


def confirmed_status(name: str = "Maria Santos", amount: str = "25", email: str | None = None) -> PaymentStatus:
    value = Decimal(amount)
    return PaymentStatus(
        state=PaymentState.CONFIRMED,
        donation=DonationSummary(name=name, amount=value, centimeters=int(value), email=email),
    )


PENDING = PaymentStatus(state=PaymentState.PENDING)
EXPIRED = PaymentStatus(state=PaymentState.EXPIRED)
