"""Logging filter enriching records with the current request id.

The id comes from the ContextVar populated by ``RequestIdMiddleware``. Outbound
sends run in a copy of the request context, so their log lines keep the id;
lines logged outside any request carry the placeholder ``-``.
"""

from logging import Filter, LogRecord
from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    A record that already carries ``request_id`` (passed through ``extra``)
    keeps it; otherwise the ContextVar value is used, so formatters can always
    reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
