"""
Fake auth middleware for local development.

Injects user_id = 1 into every request's state; routes use it as the
caller identity when deriving idempotency keys.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

DEV_USER_ID = 1


class FakeAuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request.state.user_id = DEV_USER_ID
        return await call_next(request)
