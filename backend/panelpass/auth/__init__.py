"""
Authentication: Supabase access token verification.
"""

from panelpass.auth.supabase import (
    AuthenticatedUser,
    SupabaseTokenVerifier,
    SupabaseVerificationError,
    get_current_user,
    get_current_user_optional,
)

__all__ = [
    "AuthenticatedUser",
    "SupabaseTokenVerifier",
    "SupabaseVerificationError",
    "get_current_user",
    "get_current_user_optional",
]
