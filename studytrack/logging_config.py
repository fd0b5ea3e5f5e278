import os
from logging.config import dictConfig
from typing import Any, Dict, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes"}


def build_logging_config(level: Optional[str] = None) -> Dict[str, Any]:
    """dictConfig for the service; telemetry lines can be tuned separately from the root level."""
    root_level = (level or os.getenv("STUDYTRACK_LOG_LEVEL", "INFO")).upper()
    telemetry_level = os.getenv("STUDYTRACK_TELEMETRY_LOG_LEVEL", root_level).upper()

    loggers: Dict[str, Any] = {
        "studytrack.telemetry": {"level": telemetry_level},
    }
    if _flag("STUDYTRACK_DEBUG_SQL"):
        loggers["sqlalchemy.engine"] = {"level": "INFO"}
    if _flag("STUDYTRACK_DEBUG_HTTP"):
        loggers["uvicorn.access"] = {"level": "DEBUG"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": DEFAULT_LOG_FORMAT}},
        "handlers": {"default": {"class": "logging.StreamHandler", "formatter": "default"}},
        "loggers": loggers,
        "root": {"handlers": ["default"], "level": root_level},
    }


def configure_logging(level: Optional[str] = None) -> None:
    dictConfig(build_logging_config(level))
