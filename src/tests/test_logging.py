import logging
import sys

import pytest

from sales_pivot.core.logging_config import NamespaceFilter, configure_logging

MANAGED_LOGGERS = [
    "sales_pivot", "sales_pivot.features.pivot", "sales_pivot.features.pivot.fetcher",
    "sales_pivot.features.transactions", "sales_pivot.main",
]


class RecordingHandler(logging.Handler):
    """Keeps every record that passes the handler's filters."""

    def __init__(self):
        super().__init__(level=logging.NOTSET)
        self.records = []

    def emit(self, record):
        self.records.append(record)

    @property
    def messages(self):
        return [f"{r.name}:{r.levelname}:{r.getMessage()}" for r in self.records]


def _reset_loggers():
    for name in MANAGED_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers = []
        logger.filters = []
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def logging_env(monkeypatch):
    """
    Clean ``sales_pivot`` loggers before and after each test, and clear the
    logging environment variables read by configure_logging.
    """
    for var in ("SALES_PIVOT_LOG_LEVEL", "SALES_PIVOT_LOG_NAMESPACES", "SALES_PIVOT_FETCH_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    _reset_loggers()
    handler = RecordingHandler()
    yield handler
    _reset_loggers()


def _setup_logger(name, level, handler):
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False
    return logger


def test_default_level_propagation(logging_env):
    """Child loggers inherit the level of the package logger."""
    _setup_logger("sales_pivot", logging.INFO, logging_env)

    pivot_logger = logging.getLogger("sales_pivot.features.pivot")
    pivot_logger.debug("Pivot debug message")
    pivot_logger.info("Pivot info message")
    logging.getLogger("sales_pivot.features.transactions").warning("Transactions warning")

    assert "sales_pivot.features.pivot:DEBUG:Pivot debug message" not in logging_env.messages
    assert "sales_pivot.features.pivot:INFO:Pivot info message" in logging_env.messages
    assert "sales_pivot.features.transactions:WARNING:Transactions warning" in logging_env.messages


def test_namespace_specific_level(logging_env):
    _setup_logger("sales_pivot", logging.INFO, logging_env)
    logging.getLogger("sales_pivot.features.pivot.fetcher").setLevel(logging.DEBUG)

    logging.getLogger("sales_pivot.features.pivot.fetcher").debug("Fetching batch 1/3")
    logging.getLogger("sales_pivot.features.transactions").debug("Transactions debug")

    assert "sales_pivot.features.pivot.fetcher:DEBUG:Fetching batch 1/3" in logging_env.messages
    assert "sales_pivot.features.transactions:DEBUG:Transactions debug" not in logging_env.messages


def test_namespace_filter_allow(logging_env):
    _setup_logger("sales_pivot", logging.DEBUG, logging_env)
    logging_env.addFilter(NamespaceFilter(allowed_namespaces=["sales_pivot.features.pivot"]))

    logging.getLogger("sales_pivot.features.pivot.fetcher").info("Pivot message")
    logging.getLogger("sales_pivot.features.transactions").info("Transactions message")
    logging.getLogger("sales_pivot.main").info("Main message")

    assert logging_env.messages == ["sales_pivot.features.pivot.fetcher:INFO:Pivot message"]


def test_namespace_filter_allow_all_if_empty(logging_env):
    _setup_logger("sales_pivot", logging.DEBUG, logging_env)
    logging_env.addFilter(NamespaceFilter(allowed_namespaces=[]))

    logging.getLogger("sales_pivot.features.pivot").info("Pivot message")
    logging.getLogger("sales_pivot.main").info("Main message")

    assert len(logging_env.messages) == 2


def test_configure_logging_adds_console_handler_once(logging_env):
    logger = configure_logging()
    configure_logging()

    console_handlers = [h for h in logger.handlers if getattr(h, "_sales_pivot_console", False)]
    assert len(console_handlers) == 1
    assert console_handlers[0].stream is sys.stdout
    assert logger.level == logging.INFO


def test_configure_logging_reads_environment(logging_env, monkeypatch):
    monkeypatch.setenv("SALES_PIVOT_LOG_LEVEL", "debug")
    monkeypatch.setenv("SALES_PIVOT_LOG_NAMESPACES", "sales_pivot.features.pivot, sales_pivot.main")
    monkeypatch.setenv("SALES_PIVOT_FETCH_LOG_LEVEL", "WARNING")

    logger = configure_logging()

    assert logger.level == logging.DEBUG
    assert logging.getLogger("sales_pivot.features.pivot.fetcher").level == logging.WARNING
    (console_handler,) = [h for h in logger.handlers if getattr(h, "_sales_pivot_console", False)]
    (namespace_filter,) = [f for f in console_handler.filters if isinstance(f, NamespaceFilter)]
    assert namespace_filter.allowed_namespaces == ["sales_pivot.features.pivot", "sales_pivot.main"]
