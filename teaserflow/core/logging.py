import sys
from logging.config import dictConfig

from teaserflow.core.config import settings

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(levelname)-8s %(asctime)s [%(name)s] %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stderr,
            "level": "DEBUG",
        },
    },
    "loggers": {
        "root": {"handlers": ["default"], "level": "WARNING", "propagate": False},
        "httpx": {"handlers": ["default"], "level": "WARNING", "propagate": False},
        "teaserflow": {"handlers": ["default"], "level": "INFO", "propagate": False},
    },
}


def setup_logging(level: str | None = None) -> None:
    """Configures client-wide logging using dictConfig."""
    config = dict(LOGGING_CONFIG)
    loggers = dict(config["loggers"])  # type: ignore[arg-type]
    loggers["teaserflow"] = {**loggers["teaserflow"], "level": (level or settings.log_level).upper()}
    config["loggers"] = loggers
    dictConfig(config)
