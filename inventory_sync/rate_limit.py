"""Shared inbound rate limiter for the function endpoints.

In-memory storage: the service runs as short-lived invocations behind a
single worker, so limits are per process.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)
