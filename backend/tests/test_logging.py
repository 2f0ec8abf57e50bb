import logging

import pytest

from core.logging_config import APP_LOGGERS, LOG_FORMAT, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    level = root.level
    names = APP_LOGGERS + ("sqlalchemy.engine", "uvicorn.access")
    levels = {n: logging.getLogger(n).level for n in names}
    yield
    for h in list(root.handlers):
        if h.formatter is not None and h.formatter._fmt == LOG_FORMAT:
            root.removeHandler(h)
    root.setLevel(level)
    for n, lvl in levels.items():
        logging.getLogger(n).setLevel(lvl)


def test_level_applies_to_app_loggers():
    assert setup_logging("debug") == "DEBUG"
    assert logging.getLogger("services").level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO


def test_sql_quiet_unless_echo():
    setup_logging("INFO")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    setup_logging("INFO", sql_echo=True)
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO


def test_unknown_level_falls_back_to_info():
    assert setup_logging("chatty") == "INFO"
    assert logging.getLogger().level == logging.INFO
    ours = [h for h in logging.getLogger().handlers if h.formatter is not None and h.formatter._fmt == LOG_FORMAT]
    assert len(ours) == 1
