"""Apresentação no Telegram dos eventos de pagamento (QR code, confirmação, expiração)."""

import base64
import binascii
import io
import logging
from decimal import Decimal

import qrcode
from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError

from bilau.campaign import CampaignTracker
from bilau.payments.models import DonationLimits, DonationSummary, PaymentDescriptor

logger = logging.getLogger(__name__)


def format_brl(amount: Decimal | int | float) -> str:
    """Valor em reais no formato R$ 1.234,56."""
    text = f"{Decimal(str(amount)):,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def render_qr_png(pix_code: str) -> bytes:
    """Gera o PNG do QR code a partir do código PIX copia e cola."""
    qr = qrcode.QRCode(box_size=10, border=4)
    qr.add_data(pix_code)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffered = io.BytesIO()
    img.save(buffered, format="PNG")
    return buffered.getvalue()


def qr_image(descriptor: PaymentDescriptor) -> bytes | None:
    """Imagem do QR: a enviada pelo backend (base64) ou gerada localmente a partir do código."""
    if descriptor.qr_code_base64:
        raw = descriptor.qr_code_base64.split(",", 1)[-1]
        try:
            return base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("qrCodeBase64 inválido para PIX %s; gerando localmente", descriptor.pix_id)
    if descriptor.pix_code:
        return render_qr_png(descriptor.pix_code)
    return None


def payment_keyboard(descriptor: PaymentDescriptor) -> InlineKeyboardMarkup:
    buttons = []
    if descriptor.donation_id:
        buttons.append(InlineKeyboardButton("Já paguei", callback_data=f"confirm:{descriptor.key}"))
    buttons.append(InlineKeyboardButton("Cancelar", callback_data=f"close:{descriptor.key}"))
    return InlineKeyboardMarkup([buttons])


def retry_keyboard(descriptor: PaymentDescriptor) -> InlineKeyboardMarkup:
    buttons = []
    if descriptor.donation_id:
        buttons.append(InlineKeyboardButton("Gerar novo PIX", callback_data=f"regen:{descriptor.key}"))
    buttons.append(InlineKeyboardButton("Fechar", callback_data=f"close:{descriptor.key}"))
    return InlineKeyboardMarkup([buttons])


def close_keyboard(descriptor: PaymentDescriptor) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Fechar", callback_data=f"close:{descriptor.key}")]])


class TelegramPresenter:
    """Recebe os eventos do PaymentController de um chat e os mostra como mensagens."""

    def __init__(
        self,
        bot: Bot,
        chat_id: int,
        tracker: CampaignTracker | None = None,
        limits: DonationLimits | None = None,
    ):
        self._bot = bot
        self.chat_id = chat_id
        self._tracker = tracker
        self._limits = limits or DonationLimits()
        self._qr_messages: dict[str, int] = {}

    async def _send(self, text: str, **kwargs) -> None:
        try:
            await self._bot.send_message(chat_id=self.chat_id, text=text, **kwargs)
        except TelegramError as e:
            logger.warning("Erro ao enviar mensagem para chat %s: %s", self.chat_id, e)

    async def _remove_qr(self, descriptor: PaymentDescriptor) -> None:
        message_id = self._qr_messages.pop(descriptor.key, None)
        if message_id is None:
            return
        try:
            await self._bot.delete_message(chat_id=self.chat_id, message_id=message_id)
        except TelegramError as e:
            logger.info("Mensagem do QR %s não removida: %s", message_id, e)

    async def payment_awaiting(self, descriptor: PaymentDescriptor) -> None:
        await self._remove_qr(descriptor)
        if descriptor.recovered:
            await self._send(
                f"Ainda aguardando o pagamento do PIX {descriptor.pix_id}. "
                "Avisaremos aqui assim que for confirmado.",
                reply_markup=payment_keyboard(descriptor),
            )
            return

        lines = [
            f"Doação de {format_brl(descriptor.amount)} ({descriptor.centimeters} cm)",
            "",
            "PIX copia e cola:",
            descriptor.pix_code or "",
        ]
        if descriptor.qr_code_url:
            lines += ["", f"Ou pague pelo link: {descriptor.qr_code_url}"]
        if descriptor.expires_at:
            lines += ["", f"Válido até {descriptor.expires_at:%d/%m/%Y %H:%M} (UTC)"]
        text = "\n".join(lines)
        keyboard = payment_keyboard(descriptor)

        image = qr_image(descriptor)
        try:
            if image is not None and len(text) <= 1024:
                message = await self._bot.send_photo(
                    chat_id=self.chat_id, photo=image, caption=text, reply_markup=keyboard
                )
            else:
                message = await self._bot.send_message(
                    chat_id=self.chat_id, text=text, reply_markup=keyboard
                )
        except TelegramError as e:
            logger.warning("Erro ao enviar QR code para chat %s: %s", self.chat_id, e)
            return
        self._qr_messages[descriptor.key] = message.message_id

    async def payment_confirmed(
        self, descriptor: PaymentDescriptor, donation: DonationSummary | None
    ) -> None:
        await self._remove_qr(descriptor)
        if donation is None:
            await self._send(f"🎉 Pagamento do PIX {descriptor.pix_id} confirmado!")
            return
        lines = [
            f"🎉 Pagamento confirmado! Obrigado {donation.name}!",
            f"Sua doação de {format_brl(donation.amount)} fez o bilau crescer {donation.centimeters} cm.",
        ]
        if donation.amount >= self._limits.premium_threshold:
            lines.append("Doação premium: seu card customizado será criado")
            if donation.email:
                lines[-1] += f" e enviado para {donation.email}"
            lines[-1] += "."
        if self._tracker is not None:
            lines.append(f"Tamanho atual: {self._tracker.current_size} cm")
        await self._send("\n".join(lines), reply_markup=close_keyboard(descriptor))

    async def payment_expired(self, descriptor: PaymentDescriptor) -> None:
        message_id = self._qr_messages.get(descriptor.key)
        if message_id is not None:
            try:
                await self._bot.edit_message_reply_markup(
                    chat_id=self.chat_id, message_id=message_id, reply_markup=None
                )
            except TelegramError as e:
                logger.info("Não foi possível atualizar a mensagem do QR %s: %s", message_id, e)
        await self._send(
            "Tempo para pagamento expirado. Gere um novo código PIX.",
            reply_markup=retry_keyboard(descriptor),
        )

    async def payment_timed_out(self, descriptor: PaymentDescriptor) -> None:
        await self._send("Tempo limite para pagamento atingido. Tente novamente.")

    async def dismiss_payment(self, descriptor: PaymentDescriptor) -> None:
        await self._remove_qr(descriptor)

    async def payment_closed(self, descriptor: PaymentDescriptor) -> None:
        await self._remove_qr(descriptor)

    async def payment_failed(self, message: str) -> None:
        await self._send(f"Erro ao processar doação. {message}")
