import logging
import sys
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TURNFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DEBUG: bool = False

    # Flow interpreter ceilings
    FLOW_MAX_ITERATIONS: int = 10000
    LOOP_MAX_ITERATIONS: int = 10000

    # Warn when a flow step names an action that was never registered
    WARN_UNKNOWN_ACTIONS: bool = True

    @field_validator("FLOW_MAX_ITERATIONS", "LOOP_MAX_ITERATIONS")
    @classmethod
    def validate_ceiling(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Iteration ceilings must be positive")
        return v


def configure_logging(debug: bool = False) -> None:
    """Configure logging for the engine."""
    log_level = logging.DEBUG if debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    configure_logging(settings.DEBUG)
    logger.info("Settings loaded successfully")
    logger.debug(
        "Flow ceilings: run=%d, loop=%d",
        settings.FLOW_MAX_ITERATIONS,
        settings.LOOP_MAX_ITERATIONS,
    )
    return settings
