"""
Logging setup.

Every module logs through ``logging.getLogger(__name__)``; this installs
the root handler once at start-up. Each record carries the id of the
request being served (bound by the request context middleware) so lines
from one booking can be grepped together.
"""
from __future__ import annotations
from contextvars import ContextVar
import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


def get_request_id() -> str:
    return _request_id.get()


def bind_request_id(request_id: str):
    """Bind a request id for the current task. Returns a reset token."""
    return _request_id.set(request_id)


def unbind_request_id(token) -> None:
    _request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """Injects the current request id into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger from LOG_LEVEL (default INFO)."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, logging.StreamHandler) and any(
            isinstance(f, RequestIdFilter) for f in existing.filters
        ):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))
