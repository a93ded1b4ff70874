"""
Auth & throttling dependencies — the gatekeepers in front of every route.

`require_permission` is a *dependency factory*: call it with one or
more permission codes and it returns a FastAPI dependency that will:

1. Resolve the caller's session (via `resolve_session`).
2. Return 401 when there is no live session.
3. Verify the caller's role grants every required code.
4. Return 403 on failure — with NO details about which permissions
   exist (prevents enumeration attacks).

`rate_limit` follows the same pattern for request throttling.

Usage in a route:
    @router.post("/lines", dependencies=[Depends(rate_limit("api"))])
    async def create_line(identity: Identity = Depends(require_permission("lines:create"))): ...
"""

import logging
import math

from fastapi import Depends, HTTPException, Request, Response, status

from worksync.core.config import settings
from worksync.core.security import Identity, forwarded_headers, get_client_ip, resolve_session
from worksync.rbac.permissions import has_permission
from worksync.services.rate_limiter import rate_limiter

logger = logging.getLogger("rbac")


def _authentication_required(response: Response) -> HTTPException:
    # Carries the cookie deletion queued by resolve_session for a dead token
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "authentication_required", "message": "Authentication required"},
        headers=forwarded_headers(response),
    )


async def require_identity(
    response: Response,
    identity: Identity | None = Depends(resolve_session),
) -> Identity:
    """Dependency — any authenticated caller, no permission check."""
    if identity is None:
        raise _authentication_required(response)
    return identity


class require_permission:
    """
    Dependency factory.

    Can be used as:
        Depends(require_permission("lines:read"))
        Depends(require_permission("progress:update", "assignments:update"))
    """

    def __init__(self, *permission_codes: str):
        self.required_codes = set(permission_codes)

    async def __call__(
        self,
        response: Response,
        identity: Identity | None = Depends(resolve_session),
    ) -> Identity:
        if identity is None:
            raise _authentication_required(response)

        missing = {code for code in self.required_codes if not has_permission(identity.role, code)}
        if missing:
            logger.warning(
                "Permission denied for user %s (role %s) — required: %s",
                identity.username,
                identity.role,
                self.required_codes,
            )
            # Intentionally vague — do NOT reveal which codes are missing
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "forbidden", "message": "Insufficient permissions"},
                headers=forwarded_headers(response),
            )

        return identity


class rate_limit:
    """
    Dependency factory — fixed-window throttling keyed by ``<purpose>:<ip>``.

        Depends(rate_limit("api"))                       # general traffic
        Depends(rate_limit("login", 900, 5, message=...)) # brute-force guard

    Different purposes never share a window, so hammering the login form
    does not eat into the caller's general API budget (or vice versa).
    """

    def __init__(
        self,
        purpose: str,
        window_seconds: float | None = None,
        max_requests: int | None = None,
        *,
        message: str = "Too many requests, please try again later",
    ):
        self.purpose = purpose
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.max_requests = max_requests or settings.RATE_LIMIT_MAX
        self.message = message

    async def __call__(self, request: Request, response: Response) -> None:
        key = f"{self.purpose}:{get_client_ip(request)}"
        result = rate_limiter.check_and_increment(key, self.window_seconds, self.max_requests)

        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
        }
        if not result.allowed:
            retry_after = math.ceil(result.retry_after)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"code": "rate_limited", "message": self.message, "retry_after": retry_after},
                headers={**(forwarded_headers(response) or {}), **headers, "Retry-After": str(retry_after)},
            )
        response.headers.update(headers)


api_rate_limit = rate_limit("api")

login_rate_limit = rate_limit(
    "login",
    settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    settings.LOGIN_RATE_LIMIT_MAX,
    message="Too many login attempts, please try again in 15 minutes",
)
