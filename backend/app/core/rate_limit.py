"""
Shared slowapi limiter.

Lives outside ``app.main`` so routers can decorate endpoints without importing
the application module.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
