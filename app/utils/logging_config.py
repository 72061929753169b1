import logging
from logging.config import dictConfig

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
JSON_LOG_FORMAT = (
    '{"time":"%(asctime)s","level":"%(levelname)s",'
    '"logger":"%(name)s","message":"%(message)s"}'
)


def setup_logging(level: str = "INFO", json_logs: bool = False):
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": LOG_FORMAT,
                },
                "json": {  # structured logs for prod
                    "format": JSON_LOG_FORMAT,
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "default",
                },
            },
            "loggers": {
                # supabase realtime is chatty at INFO
                "realtime": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
            "root": {
                "level": level.upper(),
                "handlers": ["console"],
            },
        }
    )
    logging.getLogger(__name__).debug(f"logging_configured level={level}")
