"""Password hashing, access tokens, and security response headers."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from taskmaster.errors import Unauthenticated
from taskmaster.models import User, UserRole

JWT_ALGORITHM = "HS256"
TOKEN_TYPE_ACCESS = "access"

_password_hasher = PasswordHasher()


# -- passwords ----------------------------------------------------------------


def hash_password(password: str) -> str:
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


# -- tokens -------------------------------------------------------------------


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    role: UserRole


def create_access_token(user: User, secret: str, expires_minutes: int) -> str:
    """Sign an HS256 access token for ``user``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "role": user.role.value,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
        "typ": TOKEN_TYPE_ACCESS,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, secret: str) -> TokenClaims:
    """Verify signature and expiry and return the claims.

    Raises:
        Unauthenticated: if the token is expired, tampered with, or malformed.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise Unauthenticated("Invalid or expired token") from exc

    if payload.get("typ", TOKEN_TYPE_ACCESS) != TOKEN_TYPE_ACCESS:
        raise Unauthenticated("Invalid or expired token")

    try:
        user_id = uuid.UUID(str(payload["sub"]))
        role = UserRole(payload.get("role", UserRole.user.value))
    except ValueError as exc:
        raise Unauthenticated("Invalid or expired token") from exc

    return TokenClaims(user_id=user_id, role=role)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from ``Authorization: Bearer <token>``, or None."""
    if not authorization:
        return None
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


# -- response headers ---------------------------------------------------------

_CSP = (
    "default-src 'self'; "
    "base-uri 'self'; "
    "font-src 'self' https: data:; "
    "frame-ancestors 'self'; "
    "img-src 'self' data:; "
    "object-src 'none'; "
    "script-src 'self'; "
    "style-src 'self' https: 'unsafe-inline'"
)

# The docs page loads its assets from a CDN.
_DOCS_CSP = (
    "default-src 'self'; "
    "img-src 'self' data: https://fastapi.tiangolo.com; "
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net"
)

_DOCS_PATHS = {"/api-docs", "/redoc"}


def apply_security_headers(request: Request, response: Response, is_production: bool) -> Response:
    """Set hardening headers on ``response``. HSTS only in production over HTTPS."""
    headers = response.headers
    headers["X-Content-Type-Options"] = "nosniff"
    headers["X-Frame-Options"] = "SAMEORIGIN"
    headers["X-DNS-Prefetch-Control"] = "off"
    headers["Referrer-Policy"] = "no-referrer"
    headers["Cross-Origin-Opener-Policy"] = "same-origin"
    headers["Cross-Origin-Resource-Policy"] = "same-origin"
    headers["Content-Security-Policy"] = (
        _DOCS_CSP if request.url.path in _DOCS_PATHS else _CSP
    )

    if is_production:
        proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "").lower()
        if proto == "https":
            headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"
    return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds hardening headers to every response that passes through the app.

    Unhandled errors are answered outside the middleware stack, so the 500
    handler applies the same headers itself.
    """

    def __init__(self, app, is_production: bool = False):
        super().__init__(app)
        self._is_production = is_production

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        return apply_security_headers(request, response, self._is_production)
