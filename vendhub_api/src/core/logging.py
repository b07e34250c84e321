from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | tenant=%(tenant_id)s | "
    "%(message)s"
)


class LoggingContextFilter(logging.Filter):
    """
    Inject correlation_id and tenant_id from contextvars into every record.

    Records emitted outside a request (jobs, startup) get "-" placeholders.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.correlation_id = correlation_id_var.get() or "-"
        record.tenant_id = tenant_id_var.get() or "-"
        return True


# PUBLIC_INTERFACE
def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging with the pipe-delimited format and context filter."""
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(LoggingContextFilter())

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)


# PUBLIC_INTERFACE
@contextmanager
def log_context(
    tenant_id: Optional[str] = None, correlation_id: Optional[str] = None
) -> Iterator[None]:
    """
    Temporarily bind tenant/correlation ids for code running outside HTTP requests,
    such as scheduled jobs and provider webhooks resolved from the URL path.
    """
    token_tenant = tenant_id_var.set(tenant_id) if tenant_id is not None else None
    token_corr = correlation_id_var.set(correlation_id) if correlation_id is not None else None
    try:
        yield
    finally:
        if token_tenant is not None:
            tenant_id_var.reset(token_tenant)
        if token_corr is not None:
            correlation_id_var.reset(token_corr)
