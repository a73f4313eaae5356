"""Entrypoint do bot: configura Application, recupera PIX pendentes e inicia polling."""

import logging

from redis.asyncio import Redis
from telegram import Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from bilau.campaign import CampaignTracker
from bilau.config import Settings, load_settings
from bilau.handlers import (
    cmd_cancelar,
    cmd_doadores,
    cmd_doar,
    cmd_help,
    cmd_meta,
    cmd_start,
    handle_payment_button,
)
from bilau.payments.gateway.factory import get_gateway
from bilau.payments.models import DonationLimits
from bilau.scheduler import AsyncioScheduler
from bilau.sessions import SessionRegistry

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

# Não emite logs de requisição HTTP do httpx (getUpdates e consultas de status a cada ciclo)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def post_init(app: Application) -> None:
    """Chamado após a aplicação inicializar (deve ser coroutine)."""
    settings: Settings = app.bot_data["settings"]
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    app.bot_data["redis"] = redis

    gateway = get_gateway(settings)
    app.bot_data["gateway"] = gateway
    if await gateway.health_check():
        logger.info("API online e funcionando (%s)", settings.api_url)
    else:
        logger.warning("API offline - funcionalidades limitadas até o backend responder")

    config = await gateway.get_config()
    tracker = CampaignTracker()
    tracker.apply_config(config)
    tracker.apply_stats(await gateway.get_stats())

    scheduler = AsyncioScheduler()
    app.bot_data["scheduler"] = scheduler
    sessions = SessionRegistry(
        app.bot,
        gateway,
        redis,
        scheduler,
        settings,
        tracker,
        limits=DonationLimits.from_config(config),
    )
    app.bot_data["sessions"] = sessions

    recovered = await sessions.recover_all()
    logger.info("Bot iniciado (tamanho atual %d cm, %d PIX pendente(s) recuperado(s))",
                tracker.current_size, recovered)


async def post_shutdown(app: Application) -> None:
    """Para as verificações e fecha conexões; a lista de pendentes fica no Redis para o próximo início."""
    sessions = app.bot_data.get("sessions")
    scheduler = app.bot_data.get("scheduler")
    gateway = app.bot_data.get("gateway")
    redis = app.bot_data.get("redis")
    if sessions:
        sessions.shutdown()
    if scheduler:
        await scheduler.aclose()
    if gateway:
        await gateway.aclose()
    if redis:
        await redis.aclose()


async def error_handler(
    update: object, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Log de exceções para não derrubar o processo."""
    logger.exception("Exceção ao processar update: %s", context.error)


def main() -> None:
    settings = load_settings()
    if not settings.telegram_token:
        raise SystemExit("Defina TELEGRAM_BOT_TOKEN no ambiente ou no .env")
    if not settings.redis_url:
        raise SystemExit("Defina REDIS_URL no ambiente ou no .env para guardar os PIX pendentes")

    app = (
        Application.builder()
        .token(settings.telegram_token)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    app.bot_data["settings"] = settings

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("doar", cmd_doar))
    app.add_handler(CommandHandler("cancelar", cmd_cancelar))
    app.add_handler(CommandHandler("meta", cmd_meta))
    app.add_handler(CommandHandler("doadores", cmd_doadores))
    app.add_handler(CallbackQueryHandler(handle_payment_button, pattern=r"^(confirm|regen|close):"))
    app.add_error_handler(error_handler)

    app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
