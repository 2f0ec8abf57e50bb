import logging
import logging.config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Loggers that narrate ledger activity (moves, assemblies, deliveries).
APP_LOGGERS = ("core", "services", "scripts")


def _level_name(level: str) -> str:
    name = (level or "").strip().upper()
    return name if isinstance(logging.getLevelName(name), int) else "INFO"


def setup_logging(level: str = "INFO", sql_echo: bool = False) -> str:
    """
    Route every logger to one stdout handler.

    Unknown level names fall back to INFO. SQL statements are logged only
    when `sql_echo` is set or the level is DEBUG. Returns the level used.
    """
    name = _level_name(level)
    sql_level = "INFO" if sql_echo or name == "DEBUG" else "WARNING"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"plain": {"format": LOG_FORMAT}},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "plain",
                }
            },
            "root": {"level": name, "handlers": ["stdout"]},
            "loggers": {
                **{app: {"level": name} for app in APP_LOGGERS},
                "sqlalchemy.engine": {"level": sql_level},
                "uvicorn.access": {"level": "INFO"},
            },
        }
    )
    if name != (level or "").strip().upper():
        logging.getLogger(__name__).warning("unknown LOG_LEVEL %r, using INFO", level)
    return name
