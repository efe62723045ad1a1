# wheelbot/main.py
import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from wheelbot.config import Settings
from wheelbot.database import Database

# IMPORTANT: register models
from wheelbot.database.models import *  # noqa: F401,F403

from wheelbot.handlers import router as handlers_router
from wheelbot.services.engine import build_engine
from wheelbot.utils.middleware import DbSessionMiddleware


def setup_logging(is_dev: bool) -> None:
    """
    Clean production logging:
    - app logs: INFO (or DEBUG in dev)
    - SQLAlchemy logs: WARNING+ (no query/pool spam)
    """
    app_level = logging.DEBUG if is_dev else logging.INFO

    logging.basicConfig(
        level=app_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    for name in (
        "sqlalchemy",
        "sqlalchemy.engine",
        "sqlalchemy.pool",
        "sqlalchemy.orm",
        "aiosqlite",
        "aiogram.event",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


async def main() -> None:
    settings = Settings.load()
    setup_logging(settings.is_dev)
    log = logging.getLogger("wheelbot")

    db = Database(settings.database_url)
    await db.init_models()
    log.info("DB initialized")

    engine = build_engine(settings)
    log.info(
        "Engine ready: tz=%s quota=%s/period %s/day rewards=%s/day streak=%sd",
        settings.timezone,
        settings.max_draws_per_period,
        settings.max_draws_per_day,
        settings.max_rewards_per_day,
        settings.streak_milestone_days,
    )

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )

    dp = Dispatcher()

    # Inject workflow data
    dp.workflow_data["settings"] = settings
    dp.workflow_data["db"] = db
    dp.workflow_data["engine"] = engine

    # DB session per update
    dp.update.middleware(DbSessionMiddleware(db))

    dp.include_router(handlers_router)

    try:
        await dp.start_polling(bot)
    except (asyncio.CancelledError, KeyboardInterrupt):
        pass
    except Exception:
        log.exception("Bot crashed")
        raise
    finally:
        # Close DB + bot session
        try:
            await db.close()
        except Exception:
            log.exception("Failed to close DB")

        try:
            await bot.session.close()
        except Exception:
            log.exception("Failed to close bot session")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
