from .google_oauth import GoogleAuthError, GoogleProfile, resolve_google_profile
from .security import (
    TokenError,
    bearer_token,
    create_session_token,
    decode_session_token,
    hash_password,
    verify_password,
)

__all__ = [
    "GoogleAuthError",
    "GoogleProfile",
    "TokenError",
    "bearer_token",
    "create_session_token",
    "decode_session_token",
    "hash_password",
    "resolve_google_profile",
    "verify_password",
]
