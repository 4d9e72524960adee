"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that routers import for per-endpoint
limits, wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Admin password guesses are throttled per client IP.
ADMIN_REPORT_LIMIT = "10/minute"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)
