import logging
import os
import sys

class NamespaceFilter(logging.Filter):
    def __init__(self, allowed_namespaces=None):
        super().__init__()
        self.allowed_namespaces = allowed_namespaces if allowed_namespaces is not None else []

    def filter(self, record):
        if not self.allowed_namespaces:
            return True # If no namespaces are specified, allow all records
        return any(record.name.startswith(ns) for ns in self.allowed_namespaces)

log_formatter = logging.Formatter(
    fmt="%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def configure_logging(level=None, allowed_namespaces=None) -> logging.Logger:
    """Attach the console handler to the ``sales_pivot`` logger.

    Safe to call more than once; the handler is only added the first time.
    ``SALES_PIVOT_LOG_LEVEL`` and ``SALES_PIVOT_LOG_NAMESPACES`` (comma separated)
    are read from the environment when the arguments are omitted.
    """
    if level is None:
        level = os.getenv("SALES_PIVOT_LOG_LEVEL", "INFO").upper()
    if allowed_namespaces is None:
        raw = os.getenv("SALES_PIVOT_LOG_NAMESPACES", "")
        allowed_namespaces = [ns.strip() for ns in raw.split(",") if ns.strip()]

    app_logger = logging.getLogger("sales_pivot")
    app_logger.setLevel(level)

    if not any(getattr(h, "_sales_pivot_console", False) for h in app_logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(log_formatter)
        console_handler._sales_pivot_console = True
        if allowed_namespaces:
            console_handler.addFilter(NamespaceFilter(allowed_namespaces))
        app_logger.addHandler(console_handler)

    # Page-by-page fetch logging is noisy; keep it at INFO unless asked for.
    logging.getLogger("sales_pivot.features.pivot.fetcher").setLevel(
        os.getenv("SALES_PIVOT_FETCH_LOG_LEVEL", "INFO").upper()
    )
    return app_logger
