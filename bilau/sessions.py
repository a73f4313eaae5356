"""Um PaymentController por chat do Telegram (cada chat é uma sessão de usuário)."""

import logging

from redis.asyncio import Redis
from telegram import Bot

from bilau.campaign import CampaignTracker
from bilau.config import Settings
from bilau.payments.controller import PaymentController
from bilau.payments.gateway.base import BackendGatewayProtocol
from bilau.payments.models import DonationLimits
from bilau.payments.store import PendingPaymentStore, stored_scopes
from bilau.presenter import TelegramPresenter
from bilau.scheduler import Scheduler

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        bot: Bot,
        gateway: BackendGatewayProtocol,
        redis: Redis,
        scheduler: Scheduler,
        settings: Settings,
        tracker: CampaignTracker,
        limits: DonationLimits | None = None,
    ):
        self._bot = bot
        self._gateway = gateway
        self._redis = redis
        self._scheduler = scheduler
        self._settings = settings
        self.tracker = tracker
        self.limits = limits or DonationLimits()
        self._controllers: dict[int, PaymentController] = {}

    def store_key(self, chat_id: int) -> str:
        return f"{self._settings.pending_key_prefix}:{chat_id}"

    def for_chat(self, chat_id: int) -> PaymentController:
        controller = self._controllers.get(chat_id)
        if controller is None:
            controller = PaymentController(
                self._gateway,
                PendingPaymentStore(self._redis, self.store_key(chat_id)),
                self._scheduler,
                TelegramPresenter(self._bot, chat_id, self.tracker, self.limits),
                tracker=self.tracker,
                limits=self.limits,
                poll_interval=self._settings.poll_interval,
                max_attempts=self._settings.poll_max_attempts,
                safety_timeout=self._settings.safety_timeout,
                dismiss_grace=self._settings.dismiss_grace,
            )
            self._controllers[chat_id] = controller
        return controller

    async def recover_all(self) -> int:
        """Retoma os PIX pendentes de todos os chats gravados no Redis."""
        total = 0
        for key in await stored_scopes(self._redis, self._settings.pending_key_prefix):
            raw_chat_id = key.rsplit(":", 1)[-1]
            try:
                chat_id = int(raw_chat_id)
            except ValueError:
                logger.warning("Chave de pendentes com chat inválido: %s", key)
                continue
            total += len(await self.for_chat(chat_id).recover())
        return total

    def shutdown(self) -> None:
        for controller in self._controllers.values():
            controller.shutdown()
