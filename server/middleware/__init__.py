"""
Middleware components for the darts scoring server.

Provides:
- RequestIDMiddleware: Request tracing with X-Request-ID and game context
"""

from .request_id import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
]
