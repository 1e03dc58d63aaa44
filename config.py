import logging
import os
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# 1. Load environment variables from .env file
load_dotenv()

# 2. Database URL is mandatory, fail fast without it
DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Please check your .env file.")

DB_ISOLATION_LEVEL = os.environ.get("DB_ISOLATION_LEVEL") or None
DB_ECHO = os.environ.get("DB_ECHO", "false").lower() in ("1", "true", "yes")

# 3. All halls are in one building, so one timezone for every slot
HALLS_TIMEZONE = ZoneInfo(os.environ.get("HALLS_TIMEZONE", "Asia/Bahrain"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
SEED_REFERENCE_DATA = os.environ.get("SEED_REFERENCE_DATA", "true").lower() in ("1", "true", "yes")

# 4. Booking bounds, applied by every entry point
MIN_EVENT_DAYS = 1
MAX_EVENT_DAYS = 30
MAX_BUFFER_DAYS = 10
DEFAULT_CURRENCY = "BHD"


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
