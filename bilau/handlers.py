"""Handlers do bot: comandos de doação, metas e botões dos pagamentos."""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from bilau.payments.errors import PaymentError, ValidationError, user_message
from bilau.payments.models import DonationRequest, to_decimal
from bilau.presenter import format_brl
from bilau.sessions import SessionRegistry

logger = logging.getLogger(__name__)

DOAR_USAGE = (
    "Uso: /doar <valor> <nome>\n"
    "Doações a partir de R$ 200,00 (card customizado) precisam de email e descrição:\n"
    "/doar 250 Fulano | fulano@email.com | Bilau de cowboy com chapéu rosa"
)


def parse_donation(text: str) -> DonationRequest:
    """
    Interpreta o texto após /doar: "<valor> <nome> [| email | descrição]".
    Levanta ValidationError se o valor ou o nome não puderem ser lidos.
    """
    parts = [p.strip() for p in text.split("|")]
    head = parts[0].split(maxsplit=1)
    if len(head) < 2:
        raise ValidationError(DOAR_USAGE)
    try:
        amount = to_decimal(head[0].replace("R$", ""))
    except ValueError:
        raise ValidationError(f"Valor inválido: {head[0]}")
    email = parts[1] if len(parts) > 1 and parts[1] else None
    custom_design = " | ".join(parts[2:]).strip() if len(parts) > 2 else None
    return DonationRequest(
        name=head[1].strip(),
        amount=amount,
        custom_design=custom_design or None,
        email=email,
    )


def _registry(context: ContextTypes.DEFAULT_TYPE) -> SessionRegistry:
    return context.bot_data["sessions"]


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Responde ao comando /start."""
    await update.message.reply_text(
        "Olá! Ajude o bilau a crescer: cada R$ 1,00 doado via PIX vale 1 cm.\n"
        "Use /doar <valor> <nome> para gerar o seu PIX. /help mostra todos os comandos."
    )


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Responde ao comando /help."""
    await update.message.reply_text(
        "Comandos:\n"
        "/start - Início\n"
        "/help - Esta ajuda\n"
        "/doar <valor> <nome> - Gera um PIX para doar\n"
        "/meta - Tamanho atual e próxima meta\n"
        "/doadores - Maiores doações\n"
        "/cancelar - Cancela o PIX aguardando pagamento\n\n" + DOAR_USAGE
    )


async def cmd_doar(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Valida o pedido e inicia o ciclo de pagamento; o QR code chega pelo presenter."""
    if not update.message or not update.message.text:
        return
    text = update.message.text.partition(" ")[2].strip()
    if not text:
        await update.message.reply_text(DOAR_USAGE)
        return
    controller = _registry(context).for_chat(update.message.chat_id)
    try:
        request = parse_donation(text)
        lifecycle = await controller.donate(request)
    except ValidationError as e:
        await update.message.reply_text(user_message(e))
        return
    logger.info(
        "Doação solicitada no chat %s: %s (%s)",
        update.message.chat_id,
        format_brl(request.amount),
        lifecycle.state.value,
    )


async def cmd_cancelar(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message:
        return
    controller = _registry(context).for_chat(update.message.chat_id)
    cancelled = 0
    for lifecycle in controller.awaiting():
        if await controller.cancel(lifecycle.key):
            cancelled += 1
    if cancelled:
        await update.message.reply_text("Pagamento cancelado.")
    else:
        await update.message.reply_text("Nenhum pagamento aguardando.")


async def cmd_meta(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Tamanho atual (GET /bilau/stats) e progresso até a próxima meta."""
    if not update.message:
        return
    registry = _registry(context)
    tracker = registry.tracker
    stats = await context.bot_data["gateway"].get_stats()
    tracker.apply_stats(stats)
    lines = [
        f"Tamanho atual: {tracker.current_size} cm",
        f"Doações: {stats.total_donations} ({format_brl(stats.total_amount)})",
    ]
    goal = tracker.next_goal()
    if goal is None:
        lines.append("Todas as metas foram atingidas!")
    else:
        lines.append(
            f"Próxima meta: {goal.name} em {goal.size} cm "
            f"(faltam {goal.size - tracker.current_size} cm, {tracker.progress():.0f}%)"
        )
    unlocked = [g.name for g in tracker.unlocked()]
    if unlocked:
        lines.append("Desbloqueados: " + ", ".join(unlocked))
    await update.message.reply_text("\n".join(lines))


async def cmd_doadores(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Maiores doações confirmadas (GET /donations)."""
    if not update.message:
        return
    donations = await context.bot_data["gateway"].get_donations(limit=100)
    ranked = []
    for donation in donations:
        try:
            ranked.append((to_decimal(donation.get("amount", 0)), str(donation.get("name") or "Anônimo")))
        except ValueError:
            continue
    if not ranked:
        await update.message.reply_text("Nenhuma doação por enquanto. Seja o primeiro: /doar")
        return
    ranked.sort(key=lambda item: item[0], reverse=True)
    lines = [f"{i}. {name} - {format_brl(amount)}" for i, (amount, name) in enumerate(ranked[:10], 1)]
    await update.message.reply_text("Maiores doadores:\n" + "\n".join(lines))


async def handle_payment_button(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Botões inline: confirm:<key>, regen:<key>, close:<key>."""
    query = update.callback_query
    if not query or not query.data or not query.message:
        return
    action, _, key = query.data.partition(":")
    controller = _registry(context).for_chat(query.message.chat_id)

    if action == "close":
        if not await controller.acknowledge(key):
            await controller.cancel(key)
        await query.answer()
        return

    try:
        if action == "confirm":
            await controller.confirm(key)
            await query.answer("Confirmação enviada. Aguarde a verificação do pagamento.")
        elif action == "regen":
            await controller.regenerate(key)
            await query.answer("Novo PIX gerado.")
        else:
            await query.answer()
    except PaymentError as e:
        logger.warning("Ação %s falhou para %s: %s", action, key, e)
        await query.answer(user_message(e), show_alert=True)
