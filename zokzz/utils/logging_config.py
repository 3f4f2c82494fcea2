import os
from logging.config import dictConfig

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
JSON_LOG_FORMAT = (
    '{"time":"%(asctime)s","level":"%(levelname)s",'
    '"logger":"%(name)s","message":"%(message)s"}'
)

FORMATTERS = {
    "default": {"format": LOG_FORMAT},
    "json": {"format": JSON_LOG_FORMAT},
}

# HTTP client libraries log every round trip to Supabase at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "supabase")


def setup_logging(level: str = None, formatter: str = None):
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    formatter = (formatter or os.getenv("LOG_FORMAT", "default")).lower()
    if formatter not in FORMATTERS:
        formatter = "default"

    loggers = {name: {"level": "WARNING"} for name in QUIET_LOGGERS}
    # core.middleware already logs one start/end pair per request
    loggers["uvicorn.access"] = {"level": "WARNING"}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": FORMATTERS,
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                },
            },
            "loggers": loggers,
            "root": {
                "level": level,
                "handlers": ["console"],
            },
        }
    )
