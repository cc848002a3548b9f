from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

logger = logging.getLogger(__name__)

GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
CREDENTIAL_ACCESS_TOKEN = "access_token"
CREDENTIAL_ID_TOKEN = "id_token"


class GoogleAuthError(Exception):
    pass


@dataclass
class GoogleProfile:
    google_id: str
    email: str
    name: str | None
    picture: str | None


def _profile_from_claims(claims: dict[str, Any]) -> GoogleProfile:
    subject = str(claims.get("sub") or "").strip()
    email = str(claims.get("email") or "").strip()
    if not subject or not email:
        raise GoogleAuthError("Invalid Google token")
    return GoogleProfile(
        google_id=subject,
        email=email,
        name=claims.get("name") or None,
        picture=claims.get("picture") or None,
    )


def fetch_userinfo(access_token: str, *, timeout_seconds: float = 10.0) -> GoogleProfile:
    try:
        with httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=5.0)) as client:
            response = client.get(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.HTTPError as exc:
        raise GoogleAuthError("Failed to reach Google userinfo endpoint") from exc
    if response.status_code >= 400:
        raise GoogleAuthError("Failed to fetch user info with access token")
    try:
        claims = response.json()
    except ValueError as exc:
        raise GoogleAuthError("Google userinfo returned invalid JSON") from exc
    return _profile_from_claims(claims if isinstance(claims, dict) else {})


def verify_identity_token(credential: str, client_id: str) -> GoogleProfile:
    if not client_id:
        raise GoogleAuthError("Google sign-in is not configured")
    try:
        claims = id_token.verify_oauth2_token(credential, google_requests.Request(), client_id)
    except (ValueError, google_exceptions.GoogleAuthError) as exc:
        logger.warning("google identity token rejected: %s", exc)
        raise GoogleAuthError("Invalid Google token") from exc
    return _profile_from_claims(claims)


def resolve_google_profile(credential: str, credential_type: str | None, client_id: str) -> GoogleProfile:
    if credential_type == CREDENTIAL_ACCESS_TOKEN:
        return fetch_userinfo(credential)
    return verify_identity_token(credential, client_id)
