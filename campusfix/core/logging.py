import logging
import logging.config
import os

from campusfix.core.config import settings


def setup_logging() -> None:
    """
    Настраивает логирование приложения: консоль и, если задан LOG_FILE, файл с ротацией.
    """
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    }
    if settings.LOG_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "filename": settings.LOG_FILE,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                },
            },
            "handlers": handlers,
            "root": {
                "level": settings.LOG_LEVEL,
                "handlers": list(handlers),
            },
            "loggers": {
                # SQL-запросы логируются только при DB_ECHO
                "sqlalchemy.engine": {"level": "WARNING"},
                "aiokafka": {"level": "WARNING"},
            },
        }
    )
