"""Authentication helpers and FastAPI security dependencies.

This module provides the cookie names and cookie setters shared by the
auth endpoints, and the `get_current_identity` dependency that reads the
access token (cookie first, then an `Authorization: Bearer` header),
verifies it and returns the matching `Admin` or `User` row. Role checks
(`require_admin`, `require_super_admin`, `require_user`) build on it.

Verification failures raise `AuthError`, which the application's
exception handlers turn into a 401 envelope.
"""

import logging
from typing import Optional
from fastapi import Depends, Request, Response, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session
from . import models
from .config import settings
from .database import get_session
from .errors import AuthError, AuthFailure, ForbiddenError
from .services import AuthService, Identity, TokenService

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
REFRESH_COOKIE_PATH = "/auth"

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("app.auth")


def set_access_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        token,
        max_age=int(settings.access_lifetime.total_seconds()),
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict" if settings.COOKIE_SECURE else "lax",
        domain=settings.COOKIE_DOMAIN,
        path="/",
    )


def set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=int(settings.refresh_lifetime.total_seconds()),
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict" if settings.COOKIE_SECURE else "lax",
        domain=settings.COOKIE_DOMAIN,
        path=REFRESH_COOKIE_PATH,
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE, path="/", domain=settings.COOKIE_DOMAIN)
    response.delete_cookie(REFRESH_COOKIE, path=REFRESH_COOKIE_PATH, domain=settings.COOKIE_DOMAIN)


def extract_access_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if not token and credentials is not None:
        token = credentials.credentials
    return token or None


def get_access_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> dict:
    """FastAPI dependency that returns the verified access-token claims."""
    token = extract_access_token(request, credentials)
    if not token:
        raise AuthError(AuthFailure.MISSING_TOKEN)
    try:
        return TokenService().verify_access_token(token)
    except AuthError as e:
        logger.info("token_rejected reason=%s path=%s", e.reason.value, request.url.path)
        raise


def get_current_identity(claims: dict = Depends(get_access_claims), db: Session = Depends(get_session)) -> Identity:
    """FastAPI dependency that returns the authenticated admin or user.

    The token's identity is looked up again so deleted accounts are
    rejected even while their token is still unexpired.
    """
    identity = AuthService(db).get_identity(claims["identity_id"], claims.get("kind", "user"))
    if not identity:
        raise AuthError(AuthFailure.NOT_FOUND, "Invalid or expired token")
    return identity


def require_active_identity(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Like `get_current_identity` but rejects deactivated accounts with 403."""
    if not identity.is_active:
        raise ForbiddenError("Account is deactivated")
    return identity


def require_admin(identity: Identity = Depends(require_active_identity)) -> models.Admin:
    """Admit active admins (super or not); anyone else gets 403."""
    if not isinstance(identity, models.Admin):
        raise ForbiddenError("Admin access required")
    return identity


def require_super_admin(admin: models.Admin = Depends(require_admin)) -> models.Admin:
    if not admin.is_super_admin:
        raise ForbiddenError("Super admin access required")
    return admin


def require_user(identity: Identity = Depends(require_active_identity)) -> models.User:
    """Admit active student accounts only."""
    if not isinstance(identity, models.User):
        raise ForbiddenError("Student access required")
    return identity
