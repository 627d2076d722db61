import asyncio
import logging

from aiogram import Bot, Dispatcher

from coursepay.bot.handlers import staff as staff_handlers
from coursepay.bot.handlers import student as student_handlers
from coursepay.bot.middlewares.correlation import CorrelationMiddleware
from coursepay.bot.middlewares.identity import IdentityMiddleware
from coursepay.bot.middlewares.rate_limit import RateLimitMiddleware
from coursepay.config import settings
from coursepay.db.session import dispose_engine
from coursepay.logging_config import setup_logging
from coursepay.payment.enrollment import aclose_shared as aclose_enrollment
from coursepay.services.notifications import aclose_bot
from coursepay.services.scheduler import run_scheduler


def build_dispatcher() -> Dispatcher:
    dp = Dispatcher()

    # Correlation id first so every later log line carries it
    corr = CorrelationMiddleware()
    dp.message.middleware(corr)
    dp.callback_query.middleware(corr)

    identity = IdentityMiddleware()
    dp.message.middleware(identity)
    dp.callback_query.middleware(identity)

    rate_limiter = RateLimitMiddleware(max_per_minute=settings.rate_limit_user_msg_per_min)
    dp.message.middleware(rate_limiter)
    dp.callback_query.middleware(rate_limiter)

    # Staff commands before student ones; neither router has catch-all text handlers
    dp.include_router(staff_handlers.router)
    dp.include_router(student_handlers.router)
    return dp


async def main() -> None:
    setup_logging()

    token = settings.telegram_bot_token
    if not token:
        logging.error("TELEGRAM_BOT_TOKEN is not set. Put it in the .env file.")
        raise SystemExit(1)

    bot = Bot(token=token)
    dp = build_dispatcher()

    sweeper_task = asyncio.create_task(run_scheduler())

    logging.info("Starting Telegram bot polling ...")
    await bot.delete_webhook(drop_pending_updates=True)
    try:
        await dp.start_polling(bot)
    finally:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
        await aclose_bot()
        await aclose_enrollment()
        await dispose_engine()
        await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
