import os

BOT_TOKEN = os.getenv("BOT_TOKEN", "")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./rentals.db")

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_PATH = os.getenv("LOG_PATH", "logs/bot.log")

# Правило достаточности: 3 фото ИЛИ 1 видео на сторону и фазу
MIN_PHOTOS_PER_PHASE = int(os.getenv("MIN_PHOTOS_PER_PHASE", "3"))
MIN_VIDEOS_PER_PHASE = int(os.getenv("MIN_VIDEOS_PER_PHASE", "1"))

STATUS_WRITE_MAX_ATTEMPTS = int(os.getenv("STATUS_WRITE_MAX_ATTEMPTS", "3"))
RETURN_OVERDUE_HOURS = int(os.getenv("RETURN_OVERDUE_HOURS", "72"))
LOCATION_TTL_SECONDS = int(os.getenv("LOCATION_TTL_SECONDS", "600"))
