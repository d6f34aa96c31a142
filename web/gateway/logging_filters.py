"""Logging filter adding request context to every record.

Values come from the ContextVars populated by ``gateway.middleware`` so log
statements never pass them explicitly. Outside a request both attributes
are ``"-"``, which keeps formatters referencing ``%(request_id)s`` and
``%(user_id)s`` safe.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX, USER_ID_CTX


class RequestIdFilter(Filter):
    """Attach ``request_id`` and ``user_id`` (unless set via ``extra``) to records."""

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        if not hasattr(record, "user_id"):
            record.user_id = USER_ID_CTX.get()
        return True
