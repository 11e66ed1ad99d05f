import logging
import os
from functools import lru_cache

from pydantic import BaseModel


class Settings(BaseModel):
    CITY_CENTER_LAT: float = float(os.getenv("CITY_CENTER_LAT", "48.8566"))
    CITY_CENTER_LNG: float = float(os.getenv("CITY_CENTER_LNG", "2.3522"))
    URBAN_RADIUS_KM: float = float(os.getenv("URBAN_RADIUS_KM", "5.0"))
    FALLBACK_MAX_OFFSET_DEG: float = float(os.getenv("FALLBACK_MAX_OFFSET_DEG", "0.05"))

    PROMOTION_MODE: str = os.getenv("PROMOTION_MODE", "rules")
    RESERVED_FLAG_POLICY: str = os.getenv("RESERVED_FLAG_POLICY", "pass")
    APPLY_SURCHARGE_FACTORS: bool = os.getenv("APPLY_SURCHARGE_FACTORS", "false").lower() in ("1", "true", "yes")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def configure_logging(level: str | None = None) -> None:
    """Install a basic stream handler for the engine's loggers."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
