import logging
import logging.config

from protocol_bridge.config import get_settings


def setup_logging():
    """
    Configure log output for the converter package.

    Intended for host applications and scripts; importing the package never
    installs handlers on its own.
    """
    settings = get_settings()
    log_level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL.upper()

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "protocol_bridge": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)
