"""
Rate Limiter Configuration

Two layers:
- slowapi limiter keyed on client IP for route-level limits
- per-user moving-window limiter for booking claim attempts

Both use Redis when REDIS_URL is set, otherwise in-memory storage
(per process).
"""

import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from limits import parse
from limits.storage import MemoryStorage, storage_from_string
from limits.strategies import MovingWindowRateLimiter

from ..config import settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """Get real client IP behind reverse proxy"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def create_limiter() -> Limiter:
    """
    Create a rate limiter with appropriate storage backend.
    Uses Redis if configured, otherwise in-memory.
    """
    if settings.redis_url:
        logger.info("Using Redis rate limiter storage")
        return Limiter(
            key_func=get_real_client_ip,
            storage_uri=settings.redis_url,
            default_limits=["100/minute"]
        )

    logger.info("Using in-memory rate limiter storage")
    return Limiter(
        key_func=get_real_client_ip,
        default_limits=["100/minute"]
    )


# Global rate limiter instance
limiter = create_limiter()


# ================================
# RATE LIMIT CONFIGURATIONS
# ================================

RATE_LIMITS = {
    # Authentication - strict limits
    "login": "5/minute",
    "register": "10/hour",

    # Guest lookups - moderate limits
    "booking_create": "30/minute",
    "booking_track": "20/minute",
    "booking_claim": "20/minute",

    # Payments
    "checkout": "20/minute",
    "webhook": "300/minute",

    # Reviews
    "review_validate": "30/minute",
    "review_submit": "10/minute",
}


def get_rate_limit(operation: str) -> str:
    """Get rate limit for a specific operation."""
    return RATE_LIMITS.get(operation, "100/minute")


class UserRateLimiter:
    """
    Moving-window limiter keyed on an arbitrary identifier (user id).

    hit() consumes one attempt and returns False once the window is full.
    """

    def __init__(self, limit: str, storage=None, namespace: str = "user"):
        self.limit = parse(limit)
        self.storage = storage or MemoryStorage()
        self.strategy = MovingWindowRateLimiter(self.storage)
        self.namespace = namespace

    def hit(self, key: str) -> bool:
        return self.strategy.hit(self.limit, self.namespace, key)

    def reset(self) -> None:
        self.storage.reset()


def create_claim_limiter() -> UserRateLimiter:
    storage = storage_from_string(settings.redis_url) if settings.redis_url else MemoryStorage()
    return UserRateLimiter(settings.claim_rate_limit, storage=storage, namespace="booking_claim")


claim_limiter = create_claim_limiter()
