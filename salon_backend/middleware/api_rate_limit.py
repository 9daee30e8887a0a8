from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from salon_backend.core.rate_limiter import RateLimiterService, api_rate_limiter
from salon_backend.errors import RateLimitError, error_response
from salon_backend.services.security_audit import client_ip

LIMITED_PREFIXES = ("/api/", "/auth/")


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request budget for the API and auth surfaces."""

    def __init__(self, app, *, rate_limiter: RateLimiterService | None = None) -> None:
        super().__init__(app)
        self._rate_limiter = rate_limiter or api_rate_limiter

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if request.method == "OPTIONS" or not path.startswith(LIMITED_PREFIXES):
            return await call_next(request)

        identifier = client_ip(request) or "unknown"
        decision = self._rate_limiter.check(identifier=identifier, scope="api")
        if not decision.allowed:
            return error_response(
                429,
                RateLimitError.default_message,
                retry_after=decision.retry_after_seconds,
                headers={
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": str(decision.remaining),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response
