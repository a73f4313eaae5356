"""Agendador de timers sobre o event loop (substituível por relógio simulado nos testes)."""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Any]


class Scheduler(Protocol):
    """Capacidade de tempo injetada no poller e no controller."""

    def now(self) -> float:
        """Tempo atual em segundos."""
        ...

    def after(self, delay: float, fn: TimerCallback) -> Any:
        """Agenda fn para daqui a `delay` segundos; se fn devolver corrotina, ela vira task."""
        ...

    def cancel(self, token: Any) -> None:
        """Cancela um timer agendado (no-op se já disparou ou se token é None)."""
        ...


class AsyncioScheduler:
    """Implementação real: loop.call_later + tasks rastreadas."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._tasks: set[asyncio.Future] = set()

    def now(self) -> float:
        return time.time()

    def after(self, delay: float, fn: TimerCallback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), self._fire, fn)

    def cancel(self, token: Any) -> None:
        if token is not None:
            token.cancel()

    def spawn(self, awaitable: Awaitable[Any]) -> asyncio.Future:
        """Roda a corrotina em background guardando referência até terminar."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _fire(self, fn: TimerCallback) -> None:
        try:
            result = fn()
        except Exception:
            logger.exception("Erro em callback agendado")
            return
        if inspect.isawaitable(result):
            self.spawn(result)

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Task agendada falhou: %s", exc, exc_info=exc)

    async def aclose(self) -> None:
        """Cancela tasks ainda em execução (shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
