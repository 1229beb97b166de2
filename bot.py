import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from loguru import logger
import uvicorn

import models  # noqa: F401 регистрирует все таблицы в Base.metadata
from api.routes import app as api_app
from config import API_HOST, API_PORT, BOT_TOKEN, LOG_PATH
from database import Base, engine
from handlers import evidence, menu, reviews

# Создаём таблицы (один раз)
Base.metadata.create_all(bind=engine)

logger.add(LOG_PATH, rotation="10 MB", compression="zip")


async def main():
    # Запускаем HTTP API в фоне
    config = uvicorn.Config(api_app, host=API_HOST, port=API_PORT, log_level="info")
    server = uvicorn.Server(config)
    loop = asyncio.get_running_loop()
    api_task = loop.create_task(server.serve())

    if not BOT_TOKEN:
        logger.error("BOT_TOKEN is not set! Running HTTP API only.")
        await api_task
        return

    bot = Bot(token=BOT_TOKEN, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher(storage=MemoryStorage())

    # Регистрируем все хендлеры
    menu.register_menu_handlers(dp)
    evidence.register_evidence_handlers(dp)
    reviews.register_reviews_handlers(dp)

    logger.info(f"Bot started with HTTP API on port {API_PORT}")

    # Запускаем Telegram polling
    await dp.start_polling(bot)


if __name__ == "__main__":
    asyncio.run(main())
