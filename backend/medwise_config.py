from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BACKEND_DIR = Path(__file__).resolve().parent


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def bootstrap_local_env() -> None:
    repo_root = _BACKEND_DIR.parent
    for candidate in (repo_root / ".env", _BACKEND_DIR / ".env"):
        if candidate.exists():
            _load_local_env_file(candidate)


def _env_str(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env_str(name, str(default)))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env_str(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: str
    jwt_secret: str
    jwt_expire_days: int
    google_client_id: str
    gemini_api_key: str
    ai_model: str
    gemini_api_base: str
    ai_timeout_seconds: float
    chat_store: str
    chat_ttl_seconds: float
    chat_sweep_seconds: float
    donation_centers_path: str
    max_upload_bytes: int
    allowed_origins: list[str]
    ping_message: str

    @classmethod
    def from_env(cls) -> "Settings":
        origins = _env_str("ALLOWED_ORIGINS", "*")
        chat_store = _env_str("MEDWISE_CHAT_STORE", "sqlite").lower()
        if chat_store not in {"sqlite", "memory"}:
            chat_store = "sqlite"
        return cls(
            db_path=_env_str("MEDWISE_DB_PATH", str(_BACKEND_DIR / "medwise.sqlite")),
            jwt_secret=_env_str("JWT_SECRET", "your-secret-key"),
            jwt_expire_days=_env_int("JWT_EXPIRE_DAYS", 7),
            google_client_id=_env_str("GOOGLE_CLIENT_ID", ""),
            gemini_api_key=_env_str("GEMINI_API_KEY", ""),
            ai_model=_env_str("AI_MODEL", "gemini-2.0-flash"),
            gemini_api_base=_env_str(
                "GEMINI_API_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
            ).rstrip("/"),
            ai_timeout_seconds=_env_float("MEDWISE_AI_TIMEOUT_SECONDS", 30.0),
            chat_store=chat_store,
            chat_ttl_seconds=_env_float("MEDWISE_CHAT_TTL_SECONDS", 3600.0),
            chat_sweep_seconds=_env_float("MEDWISE_CHAT_SWEEP_SECONDS", 3600.0),
            donation_centers_path=_env_str(
                "MEDWISE_DONATION_CENTERS_PATH", str(_BACKEND_DIR / "data" / "donation_centers.json")
            ),
            max_upload_bytes=_env_int("MEDWISE_MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
            allowed_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
            ping_message=os.getenv("PING_MESSAGE") or "ping",
        )
