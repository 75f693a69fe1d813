# servicepoint/api/deps.py
"""
Request guards shared by the routers.

Every guard is a FastAPI dependency. Routers stack them in order: rate limit,
then session age, then authentication, then role or ownership checks.
"""
import time
from typing import Iterable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from servicepoint.core.config import get_settings
from servicepoint.core.exceptions import (
    AuthenticationError,
    Forbidden,
    RateLimitExceeded,
    TokenError,
)
from servicepoint.core.rate_limit import RateLimitStore
from servicepoint.core.security import TokenService, get_token_service
from servicepoint.db.base import get_db
from servicepoint.db.models.admin import Admin
from servicepoint.db.models.garage import Garage

NO_TOKEN = "Access denied. No token provided."


def _bearer(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if header and header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


async def body_token(request: Request) -> Optional[str]:
    """`token` field of a JSON body, if any. Reads the body only; no other work."""
    if not request.headers.get("content-type", "").startswith("application/json"):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("token"), str) and body["token"]:
        return body["token"]
    return None


def extract_token(
    request: Request,
    cookie_names: Iterable[str] = ("token",),
    from_body: Optional[str] = None,
) -> Optional[str]:
    """Authorization header, then cookie, then JSON body `token`, then query `token`."""
    token = _bearer(request)
    if token:
        return token

    for name in cookie_names:
        if request.cookies.get(name):
            return request.cookies[name]

    if from_body:
        return from_body

    return request.query_params.get("token") or None


# --------------------------------------------------
# authentication
# --------------------------------------------------

def authenticate(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
    from_body: Optional[str] = Depends(body_token),
) -> dict:
    token = extract_token(request, from_body=from_body)
    if not token:
        raise AuthenticationError(NO_TOKEN)
    try:
        return tokens.verify(token)
    except TokenError as e:
        raise AuthenticationError("Invalid token", error=e.message)


def _session_error(label: str, exc: TokenError) -> AuthenticationError:
    expired = "expired" in exc.message.lower()
    if expired:
        message = f"Your {label}session has expired. Please log in again."
    else:
        message = f"Invalid {label}token"
    return AuthenticationError(message, error=exc.message, requires_login=True, session_expired=expired)


def authenticate_admin(
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    from_body: Optional[str] = Depends(body_token),
) -> Admin:
    token = extract_token(request, ("admin_token", "token"), from_body)
    if not token:
        raise AuthenticationError("Admin access denied. No token provided.", requires_login=True)
    try:
        payload = tokens.verify(token)
    except TokenError as e:
        raise _session_error("admin ", e)

    admin = None
    if payload.get("type") == "admin":
        admin = db.query(Admin).filter(Admin.id == payload.get("id")).first()
    if not admin or not admin.is_active:
        raise AuthenticationError("Admin not found or inactive", requires_login=True)
    return admin


def authenticate_garage(
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    from_body: Optional[str] = Depends(body_token),
) -> Garage:
    token = extract_token(request, ("garage_token", "token"), from_body)
    if not token:
        raise AuthenticationError("Garage access denied. No token provided.", requires_login=True)
    try:
        payload = tokens.verify(token)
    except TokenError as e:
        raise _session_error("", e)

    garage = None
    if payload.get("type") == "garage":
        garage = db.query(Garage).filter(Garage.id == payload.get("id")).first()
    if not garage or not garage.is_active:
        raise AuthenticationError("Garage not found or inactive", requires_login=True)
    return garage


def validate_session_timeout(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
) -> None:
    """Reject bearer tokens issued too long ago, whatever their exp says.

    Only the Authorization header is inspected. Missing or unverifiable
    tokens pass through to the authentication stage.
    """
    token = _bearer(request)
    if not token:
        return
    try:
        payload = tokens.verify_signature(token)
    except TokenError:
        return

    max_age = get_settings().session_max_age_minutes * 60
    if tokens.token_age(payload, time.time()) > max_age:
        raise AuthenticationError(
            "Session has expired due to inactivity. Please log in again.",
            requires_login=True,
            session_expired=True,
        )


# --------------------------------------------------
# authorization
# --------------------------------------------------

def require_roles(*roles: str, message: Optional[str] = None):
    def checker(admin: Admin = Depends(authenticate_admin)) -> Admin:
        if admin.role not in roles:
            raise Forbidden(message)
        return admin

    return checker


require_main_admin = require_roles("main_admin", message="Access denied. Main admin privileges required.")
require_admin_or_higher = require_roles(
    "admin", "main_admin", message="Access denied. Admin privileges required."
)


def authorize_garage_owner(garage_id: int, garage: Garage = Depends(authenticate_garage)) -> Garage:
    if garage_id != garage.id:
        raise Forbidden("Access denied. Can only access own garage data.")
    return garage


# --------------------------------------------------
# rate limiting
# --------------------------------------------------

def get_rate_limit_store(request: Request) -> RateLimitStore:
    return request.app.state.rate_limit_store


class RateLimiter:
    """Sliding-window limit per client address, counted separately per scope.

    Keys are `scope:address`, so each router has its own budget rather than
    one shared counter per address across the whole API.
    """

    def __init__(self, scope: str, max_requests: int, window_seconds: int = 15 * 60):
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def __call__(self, request: Request, store: RateLimitStore = Depends(get_rate_limit_store)) -> None:
        client = request.client.host if request.client else "unknown"
        allowed, retry_after = store.hit(
            f"{self.scope}:{client}", self.window_seconds, self.max_requests
        )
        if not allowed:
            raise RateLimitExceeded(retry_after)
