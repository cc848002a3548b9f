from __future__ import annotations

from datetime import timedelta
from typing import Any

import bcrypt
import jwt

from storage.time_utils import utc_now

JWT_ALGORITHM = "HS256"
BCRYPT_ROUNDS = 10
# bcrypt only reads the first 72 bytes; newer releases refuse longer input.
BCRYPT_MAX_BYTES = 72


class TokenError(Exception):
    pass


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_session_token(*, user_id: str, email: str, secret: str, expire_days: int = 7) -> str:
    expire = utc_now() + timedelta(days=expire_days)
    return jwt.encode({"userId": user_id, "email": email, "exp": expire}, secret, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str, secret: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Session token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("Invalid session token") from exc
    if not payload.get("userId"):
        raise TokenError("Invalid session token")
    return payload


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    raw = authorization.strip()
    if raw.lower().startswith("bearer"):
        raw = raw[6:].strip()
    return raw or None
