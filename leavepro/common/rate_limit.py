"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that routers import for
per-endpoint limits; it is wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# 120 requests/minute per client IP unless a route overrides it.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120/minute"],
)
