import asyncio
import sys
from zoneinfo import ZoneInfo

from aiogram import Bot, Dispatcher
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from redis.asyncio import Redis

from core.config import settings
from core.exceptions import BankError
from core.logger import setup_logging, logger
from db.session import AsyncSessionLocal, engine
from handlers import testing
from handlers.common import set_bot_commands
from services.monitoring_service import report_stalled_sessions
from services.notification_service import EmailSender, NotificationService
from services.question_bank import QuestionBank
from services.task_manager import task_manager
from utils.middleware import DbSessionMiddleware, IdentityLockMiddleware
from utils.transport import TelegramTransport

MODES = ("bot", "api", "all")


async def start_api(bot: Bot = None, dp: Dispatcher = None):
    import uvicorn
    from api.main import app
    # Webhook updates are fed to the dispatcher from the API process
    app.state.bot = bot
    app.state.dp = dp
    config = uvicorn.Config(app, host=settings.API_HOST, port=settings.API_PORT, log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


def build_dispatcher(bot: Bot, redis: Redis, bank: QuestionBank) -> Dispatcher:
    transport = TelegramTransport(bot)
    notifier = NotificationService(AsyncSessionLocal, transport, email_sender=EmailSender.from_settings())

    dp = Dispatcher()
    dp["question_bank"] = bank
    dp["notifier"] = notifier

    # Lock first so the database session is opened only by the update that owns the identity
    dp.update.outer_middleware(IdentityLockMiddleware(redis))
    dp.update.outer_middleware(DbSessionMiddleware())
    dp.include_router(testing.router)
    return dp


def build_scheduler(bot: Bot) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=ZoneInfo(settings.TIMEZONE))
    scheduler.add_job(
        report_stalled_sessions,
        trigger="interval",
        minutes=settings.MONITOR_INTERVAL_MINUTES,
        args=[TelegramTransport(bot)],
        id=settings.MONITOR_JOB_ID,
        replace_existing=True,
    )
    return scheduler


async def run_bot(mode: str):
    bank = QuestionBank()
    try:
        bank.preload(settings.TEST_VARIANTS)
    except BankError as e:
        logger.critical("Question bank is unusable, refusing to start", error=str(e))
        raise SystemExit(1)

    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    bot = Bot(token=settings.BOT_TOKEN)
    dp = build_dispatcher(bot, redis, bank)

    scheduler = build_scheduler(bot)
    scheduler.start()
    logger.info("Scheduler started (stalled session monitor).", interval_minutes=settings.MONITOR_INTERVAL_MINUTES)

    await set_bot_commands(bot, settings.LANGUAGE)

    try:
        if settings.DELIVERY_MODE == "webhook":
            url = settings.WEBHOOK_URL.rstrip("/") + settings.WEBHOOK_PATH
            await bot.set_webhook(url, secret_token=settings.WEBHOOK_SECRET or None, drop_pending_updates=False)
            logger.info("Starting Bot Webhook Mode...", url=url, env=settings.ENV)
            await start_api(bot, dp)
        elif mode == "bot":
            logger.info("Starting Bot Polling Mode...", env=settings.ENV)
            await bot.delete_webhook(drop_pending_updates=False)
            await dp.start_polling(bot)
        else:
            logger.info("Starting All (Bot + API)...", env=settings.ENV)
            await bot.delete_webhook(drop_pending_updates=False)
            await asyncio.gather(dp.start_polling(bot), start_api())
    finally:
        scheduler.shutdown(wait=False)
        await task_manager.drain()
        await redis.aclose()
        await bot.session.close()
        await engine.dispose()


async def main():
    mode = "all"
    for arg in sys.argv[1:]:
        if arg in MODES:
            mode = arg

    setup_logging()

    if mode == "api":
        logger.info("Starting API Only Mode...")
        await start_api()
        return

    await run_bot(mode)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Application stopped.")
