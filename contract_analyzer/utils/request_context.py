"""
Request context management for correlating log lines with one HTTP request.
"""

import uuid
from contextvars import ContextVar
from typing import Optional
import structlog

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Incoming ID to reuse. Blank or missing values get a fresh UUID.

    Returns:
        The request ID that was set.
    """
    if not request_id or not request_id.strip():
        request_id = str(uuid.uuid4())
    else:
        request_id = request_id.strip()[:128]

    request_id_var.set(request_id)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    return request_id


def bind_request_context(**values) -> None:
    """Attach extra fields (contract id, caller id) to every log line of this request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context():
    """Clear the request context at end of request."""
    request_id_var.set(None)
    structlog.contextvars.clear_contextvars()
