import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except ValueError:
        return int(default)


class Settings:
    MARGIN_THRESHOLD = _get_int("STAR_MARGIN_THRESHOLD", 3)
    MONTHLY_AWARD = _get_int("STAR_MONTHLY_AWARD", 10)
    MARGIN_BONUS_CAP = _get_int("STAR_MARGIN_BONUS_CAP", 5)
    BONUS_BATCH_SIZE = max(1, _get_int("STAR_BONUS_BATCH_SIZE", 400))
    CATALOG_PATH = os.getenv("STAR_CATALOG_PATH", "").strip()
    LOG_LEVEL = os.getenv("STAR_LOG_LEVEL", "INFO").strip().upper()


settings = Settings()
