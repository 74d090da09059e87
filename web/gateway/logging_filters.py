"""Logging filter stamping the current request id on log records.

Add ``RequestIdFilter`` to a handler so formatters can reference
``%(request_id)s``; the value comes from the context variable set by
``RequestIdMiddleware`` and is ``"-"`` outside a request.
"""

from logging import Filter, LogRecord
from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to every record passing through."""

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
