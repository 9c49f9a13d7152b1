"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and by the route modules
that apply per-route limits with @limiter.limit(), such as the login route.

One shared instance means every route counts against the same in-memory
store. default_limits applies the general API budget to routes with no
explicit decorator; RATE_LIMIT_ENABLED=false turns limiting off (tests).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_settings.default_rate_limit],
    storage_uri="memory://",
    enabled=_settings.rate_limit_enabled,
)
