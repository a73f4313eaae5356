"""Testes da camada Telegram: parsing do /doar, apresentação e registro de sessões."""

import base64
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from telegram.error import TelegramError

from bilau.campaign import CampaignTracker
from bilau.config import Settings
from bilau.handlers import (
    DOAR_USAGE,
    cmd_cancelar,
    cmd_doadores,
    cmd_meta,
    handle_payment_button,
    parse_donation,
)
from bilau.payments.errors import ValidationError
from bilau.payments.gateway import ExampleGateway
from bilau.payments.models import DonationLimits, DonationRequest, DonationSummary, PaymentDescriptor
from bilau.payments.store import PendingPaymentStore
from bilau.presenter import TelegramPresenter, format_brl, payment_keyboard, qr_image
from bilau.sessions import SessionRegistry

from conftest import make_descriptor

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


class TestParseDonation:
    def test_simple(self):
        request = parse_donation("25 Maria Santos")
        assert request == DonationRequest("Maria Santos", Decimal("25"))

    def test_brl_prefix_and_comma(self):
        assert parse_donation("R$12,50 Ana").amount == Decimal("12.50")

    def test_premium_fields(self):
        request = parse_donation("250 Fulano | fulano@email.com | Bilau de cowboy | chapéu rosa")
        assert request.email == "fulano@email.com"
        assert request.custom_design == "Bilau de cowboy | chapéu rosa"

    def test_missing_name(self):
        with pytest.raises(ValidationError) as exc:
            parse_donation("25")
        assert exc.value.errors == [DOAR_USAGE]

    def test_invalid_amount(self):
        with pytest.raises(ValidationError) as exc:
            parse_donation("muito Maria")
        assert "Valor inválido" in exc.value.errors[0]


@pytest.mark.parametrize(
    "amount,text",
    [(Decimal("25"), "R$ 25,00"), (Decimal("1234.5"), "R$ 1.234,50"), (0, "R$ 0,00")],
)
def test_format_brl(amount, text):
    assert format_brl(amount) == text


def test_qr_image_prefers_backend_base64():
    encoded = base64.b64encode(b"imagem").decode()
    descriptor = PaymentDescriptor(
        donation_id="d",
        pix_id="p",
        pix_code="000201",
        amount=Decimal("1"),
        centimeters=1,
        created_at=0.0,
        qr_code_base64=f"data:image/png;base64,{encoded}",
    )
    assert qr_image(descriptor) == b"imagem"


def test_qr_image_generated_from_pix_code():
    assert qr_image(make_descriptor()).startswith(PNG_HEADER)


def test_qr_image_absent_for_recovered_entry():
    assert qr_image(PaymentDescriptor.recovered_entry("p", 0.0)) is None


def test_payment_keyboard_without_donation_has_no_confirm():
    keyboard = payment_keyboard(PaymentDescriptor.recovered_entry("p", 0.0))
    assert [b.callback_data for b in keyboard.inline_keyboard[0]] == ["close:p"]


@pytest.fixture
def bot():
    mock = AsyncMock()
    mock.send_photo.return_value = SimpleNamespace(message_id=77)
    mock.send_message.return_value = SimpleNamespace(message_id=78)
    return mock


class TestTelegramPresenter:
    @pytest.mark.asyncio
    async def test_awaiting_sends_qr_and_confirm_removes_it(self, bot):
        presenter = TelegramPresenter(bot, 42, CampaignTracker(size=1700))
        descriptor = make_descriptor()

        await presenter.payment_awaiting(descriptor)
        kwargs = bot.send_photo.await_args.kwargs
        assert kwargs["chat_id"] == 42
        assert descriptor.pix_code in kwargs["caption"]

        await presenter.payment_confirmed(
            descriptor, DonationSummary("Ana", Decimal("250"), 250, "ana@x.com")
        )
        bot.delete_message.assert_awaited_once_with(chat_id=42, message_id=77)
        text = bot.send_message.await_args.kwargs["text"]
        assert "Obrigado Ana" in text
        assert "ana@x.com" in text
        assert "1700 cm" in text

    @pytest.mark.asyncio
    async def test_premium_threshold_follows_campaign_limits(self, bot):
        presenter = TelegramPresenter(bot, 42, limits=DonationLimits(premium_threshold=Decimal("100")))

        await presenter.payment_confirmed(
            make_descriptor(amount="150"), DonationSummary("Ana", Decimal("150"), 150, "ana@x.com")
        )
        assert "card customizado" in bot.send_message.await_args.kwargs["text"]

        await TelegramPresenter(bot, 42).payment_confirmed(
            make_descriptor(amount="150"), DonationSummary("Ana", Decimal("150"), 150, "ana@x.com")
        )
        assert "card customizado" not in bot.send_message.await_args.kwargs["text"]

    @pytest.mark.asyncio
    async def test_telegram_errors_are_logged(self, bot):
        bot.send_message.side_effect = TelegramError("bloqueado")
        presenter = TelegramPresenter(bot, 42)

        await presenter.payment_failed("Erro de conexão. Verifique sua internet.")
        await presenter.payment_timed_out(make_descriptor())

        assert bot.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_expired_offers_new_pix(self, bot):
        presenter = TelegramPresenter(bot, 42)
        descriptor = make_descriptor()
        await presenter.payment_awaiting(descriptor)

        await presenter.payment_expired(descriptor)

        bot.edit_message_reply_markup.assert_awaited_once()
        markup = bot.send_message.await_args.kwargs["reply_markup"]
        assert markup.inline_keyboard[0][0].callback_data == "regen:don-1"


class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_controller_per_chat_and_recover_all(self, bot, fake_redis, scheduler):
        gateway = ExampleGateway()
        pending = await gateway.create_donation(DonationRequest("Ana", Decimal("30")))
        paid = await gateway.create_donation(DonationRequest("Bia", Decimal("40")))
        await gateway.confirm_payment(paid.donation_id)
        await PendingPaymentStore(fake_redis, "bilau:pending_payments:1").add(pending.pix_id)
        await PendingPaymentStore(fake_redis, "bilau:pending_payments:2").add(paid.pix_id)
        await fake_redis.set("bilau:pending_payments:lixo", "[]")

        tracker = CampaignTracker(size=1000)
        registry = SessionRegistry(
            bot, gateway, fake_redis, scheduler, Settings(telegram_token="t", redis_url="r"), tracker
        )
        assert registry.for_chat(1) is registry.for_chat(1)
        assert registry.for_chat(1) is not registry.for_chat(2)

        assert await registry.recover_all() == 2

        assert tracker.current_size == 1040
        assert len(registry.for_chat(1).awaiting()) == 1
        assert registry.for_chat(2).awaiting() == []
        assert await fake_redis.get("bilau:pending_payments:2") is None

        registry.shutdown()
        assert scheduler.pending() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("command", [cmd_cancelar, cmd_meta, cmd_doadores])
async def test_commands_ignore_updates_without_message(command):
    context = SimpleNamespace(bot_data={})

    await command(SimpleNamespace(message=None), context)


@pytest.mark.asyncio
async def test_button_ignores_query_without_message():
    query = SimpleNamespace(data="close:don-1", message=None, answer=AsyncMock())
    context = SimpleNamespace(bot_data={})

    await handle_payment_button(SimpleNamespace(callback_query=query), context)

    query.answer.assert_not_awaited()
