from django.conf import settings
from rest_framework.throttling import BaseThrottle

from common.ratelimit import FixedWindowRateLimiter

_subscribe_limiter = None


def get_subscribe_limiter() -> FixedWindowRateLimiter:
    global _subscribe_limiter
    if _subscribe_limiter is None:
        _subscribe_limiter = FixedWindowRateLimiter(
            limit=settings.PUSH_SUBSCRIBE_RATE_LIMIT,
            window_seconds=settings.PUSH_SUBSCRIBE_RATE_WINDOW,
        )
    return _subscribe_limiter


def client_ip(request) -> str:
    """First hop of X-Forwarded-For, else the socket address."""
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    for part in forwarded.split(","):
        if part.strip():
            return part.strip()
    return request.META.get("REMOTE_ADDR", "") or "unknown"


class PushSubscribeThrottle(BaseThrottle):
    """
    Limits anonymous subscribe calls per client IP.

    Views may set ``rate_limiter`` to use their own limiter instance.
    """

    def get_limiter(self, view) -> FixedWindowRateLimiter:
        return getattr(view, "rate_limiter", None) or get_subscribe_limiter()

    def allow_request(self, request, view):
        self.limiter = self.get_limiter(view)
        self.key = client_ip(request)
        return self.limiter.hit(self.key)

    def wait(self):
        return self.limiter.retry_after(self.key)
