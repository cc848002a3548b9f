from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    db_path = tmp_path / "medwise-test.sqlite"
    monkeypatch.setenv("MEDWISE_DB_PATH", str(db_path))
    monkeypatch.setenv("MEDWISE_CHAT_STORE", "memory")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
    # Keep CI offline; tests that need model output patch the gateway.
    monkeypatch.setenv("GEMINI_API_KEY", "")

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def model_reply(backend_module, monkeypatch) -> Callable[[str], None]:
    """Make every gateway call answer with the given text."""

    def _install(text: str) -> None:
        from medwise_ai import AIResult

        monkeypatch.setattr(backend_module.container.gateway, "generate", lambda prompt: AIResult.success(text))

    return _install


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _make(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    return _make
