"""ASGI middlewares wrapped around every page request."""

from __future__ import annotations

from .request_id import REQUEST_ID_HEADER, RequestIdMiddleware, principal_ctx_var, request_id_ctx_var
from .security_headers import SecurityHeadersMiddleware

__all__ = [
    "REQUEST_ID_HEADER",
    "RequestIdMiddleware",
    "SecurityHeadersMiddleware",
    "principal_ctx_var",
    "request_id_ctx_var",
]
