"""Request ID helper for endpoints and error handlers.

The id is stored on request.state by RequestIdMiddleware; the logging
context var is used as a fallback when the state is missing.
"""

from __future__ import annotations

from fastapi import Request

from app.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"
REQUEST_ID_HEADER = "X-Request-Id"


def get_request_id(request: Request | None = None, default: str = "unknown") -> str:
    """Return the current request id if bound, else a default."""
    if request is not None:
        rid = getattr(request.state, REQUEST_ID_ATTR, None)
        if rid:
            return str(rid)
    return obs_logging.current_request_id() or default
