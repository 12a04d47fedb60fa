"""
JSON log lines tagged with the host request and the diverted query.

The engine binds a query id while it talks to the index, so every line a
diversion produces (backend errors included) can be grouped after the
fact. The host binds the request id once per incoming request. Both are
kept in ``contextvars`` and therefore stay correct under threads and
asyncio tasks.

Usage::

    from searchdivert.logging import configure_logging, bind_request_id
    configure_logging()
    bind_request_id("req-42")
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO

_PACKAGE_LOGGER = "searchdivert"
_TEXT_FORMAT = "%(asctime)s %(levelname)-5s [%(request_id)s/%(query_id)s] %(name)s - %(message)s"

_request_id_var: ContextVar[str] = ContextVar("searchdivert_request_id", default="")
_query_id_var: ContextVar[str] = ContextVar("searchdivert_query_id", default="")

_CORRELATION_VARS = {"request_id": _request_id_var, "query_id": _query_id_var}
_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | frozenset(
    _CORRELATION_VARS
)


def bind_request_id(request_id: str | None = None) -> str:
    """Tag this context with *request_id*, or with a short random hex id."""
    rid = request_id or uuid.uuid4().hex[:12]
    _request_id_var.set(rid)
    return rid


def get_request_id() -> str:
    return _request_id_var.get()


def bind_query_id(query_id: str) -> None:
    # "" unbinds
    _query_id_var.set(query_id)


def get_query_id() -> str:
    return _query_id_var.get()


class _CorrelationFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for name, var in _CORRELATION_VARS.items():
            setattr(record, name, var.get())
        return True


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON document.

    An id set on the record wins over the one bound in the context; unset
    ids are left out. Non-standard record attributes (``extra=``) are copied
    in as-is.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, object] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name, var in _CORRELATION_VARS.items():
            value = getattr(record, name, "") or var.get()
            if value:
                payload[name] = value

        payload.update(
            (key, val) for key, val in vars(record).items() if key not in _RESERVED
        )
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Route ``searchdivert.*`` loggers to a single handler.

    Calling it again replaces the handler rather than stacking another.

    Args:
        level: Threshold for the package logger.
        json_format: ``False`` switches to a plain text layout that shows
            ``[request_id/query_id]`` in brackets.
        stream: Where lines go (stderr when omitted).
    """
    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            _TEXT_FORMAT, defaults={name: "" for name in _CORRELATION_VARS}
        )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(_CorrelationFilter())

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False
