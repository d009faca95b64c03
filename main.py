# main.py
# Process entry point; runs the bot until the client disconnects

import asyncio
import logging
import os
import sys

from telethon import TelegramClient

from config import load_settings
from handlers import register_handlers
from router import Router
from store import JsonStore
from tele_utils import TelethonTransport

logger = logging.getLogger(__name__)


async def main(settings):
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    store = JsonStore(settings.DATA_DIR)

    bot = TelegramClient(os.path.join(settings.DATA_DIR, settings.SESSION_NAME), settings.API_ID, settings.API_HASH)
    await bot.start(bot_token=settings.BOT_TOKEN)
    logger.info("✅ Bot connected successfully")

    router = Router(TelethonTransport(bot), store, settings)
    register_handlers(bot, router)
    logger.info("🔗 Handlers registered")
    logger.info(f"📋 Admin IDs: {', '.join(map(str, sorted(settings.admin_ids))) or 'None configured'}")

    try:
        await bot.run_until_disconnected()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        router.shutdown()
        await router.wait_idle()
        if bot.is_connected():
            await bot.disconnect()
        logger.info("🛑 Shutdown cleanly")


def run():
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
    )

    missing = settings.missing_required()
    if missing:
        logger.error(f"❌ Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)
    if not settings.admin_ids:
        logger.warning("⚠️ No admin IDs configured. Admin features will be inaccessible.")

    if settings.USE_UVLOOP and sys.platform != "win32":
        import uvloop
        logger.info("⚡ Using uvloop")
        uvloop.run(main(settings))
    else:
        asyncio.run(main(settings))


if __name__ == "__main__":
    run()
