"""
Supabase access token verification.

Supabase Auth is the authentication authority; this module only verifies
the HS256 access tokens it issues (signed with the project's JWT secret)
and exposes FastAPI dependencies for routes.

Tokens are read from:
- Authorization: Bearer <token>
- sb-access-token cookie
"""

import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, Request, status
from jwt.exceptions import ExpiredSignatureError, InvalidAudienceError, InvalidTokenError
from pydantic import BaseModel, ConfigDict, Field

from panelpass.config.settings import get_settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"


class SupabaseVerificationError(Exception):
    """Exception raised when access token verification fails."""

    def __init__(self, message: str, error_code: str = "verification_failed"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AuthenticatedUser(BaseModel):
    """Claims of a verified Supabase access token."""

    sub: str = Field(..., description="Supabase user id (profiles.id)")
    email: Optional[str] = None
    role: Optional[str] = None
    exp: Optional[int] = None
    session_id: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @property
    def user_id(self) -> str:
        return self.sub


class SupabaseTokenVerifier:
    """Verifies Supabase-issued HS256 access tokens."""

    # Clock skew allowance between Supabase and this service
    CLOCK_SKEW_SECONDS = 30

    def __init__(self, jwt_secret: str, audience: str = "authenticated"):
        if not jwt_secret:
            raise SupabaseVerificationError(
                "SUPABASE_JWT_SECRET is not configured",
                error_code="not_configured",
            )
        self._secret = jwt_secret
        self._audience = audience

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify an access token and return its claims.

        Raises:
            SupabaseVerificationError: If verification fails
        """
        if not token:
            raise SupabaseVerificationError("Token is required", error_code="missing_token")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                audience=self._audience,
                options={"require": ["sub", "exp"]},
                leeway=self.CLOCK_SKEW_SECONDS,
            )
        except ExpiredSignatureError:
            logger.warning("Access token has expired")
            raise SupabaseVerificationError("Token has expired", error_code="token_expired")
        except InvalidAudienceError:
            logger.warning("Invalid access token audience")
            raise SupabaseVerificationError("Invalid token audience", error_code="invalid_audience")
        except InvalidTokenError as e:
            logger.warning("Invalid access token", extra={"error": str(e)})
            raise SupabaseVerificationError(f"Invalid token: {e}", error_code="invalid_token")

    def get_user(self, token: str) -> AuthenticatedUser:
        return AuthenticatedUser(**self.verify_token(token))


def _extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


def get_current_user_optional(request: Request) -> Optional[AuthenticatedUser]:
    """
    FastAPI dependency: the verified user, or None.

    A missing, invalid or unverifiable token yields None.
    """
    token = _extract_token(request)
    if not token:
        return None

    settings = get_settings()
    try:
        verifier = SupabaseTokenVerifier(
            settings.supabase_jwt_secret,
            audience=settings.supabase_jwt_audience,
        )
        return verifier.get_user(token)
    except SupabaseVerificationError as e:
        logger.info("Ignoring unverified access token", extra={"error_code": e.error_code})
        return None


def get_current_user(request: Request) -> AuthenticatedUser:
    """
    FastAPI dependency: the verified user.

    Raises:
        HTTPException: 401 if no valid token is presented
    """
    user = get_current_user_optional(request)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
