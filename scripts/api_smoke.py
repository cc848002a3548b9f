#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  check: Callable[[TestClient], dict[str, Any]]


def _json(response) -> dict[str, Any]:
  try:
    body = response.json()
  except ValueError:
    return {"raw": response.text[:500]}
  return body if isinstance(body, dict) else {"raw": body}


def check_register_and_login(client: TestClient) -> dict[str, Any]:
  email = f"smoke-{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S%f')}@example.com"
  registered = client.post("/api/auth/register", json={"email": email, "password": "pw123456", "name": "Alice"})
  login = client.post("/api/auth/login", json={"email": email, "password": "pw123456"})
  bad_login = client.post("/api/auth/login", json={"email": email, "password": "wrong"})
  body = _json(login)
  return {
    "pass": registered.status_code == 200
    and login.status_code == 200
    and bool(body.get("token"))
    and bad_login.status_code == 401,
    "status_codes": [registered.status_code, login.status_code, bad_login.status_code],
    "body": {"user": body.get("user")},
  }


def check_chat_headache(client: TestClient) -> dict[str, Any]:
  started = _json(client.post("/api/chatbot/start"))
  session_id = (started.get("data") or {}).get("sessionId")
  reply = client.post("/api/chatbot/message", json={"sessionId": session_id, "message": "I have a headache"})
  data = _json(reply).get("data") or {}
  suggestions = data.get("suggestions") or []
  client.delete(f"/api/chatbot/session/{session_id}")
  return {
    "pass": reply.status_code == 200 and "Get OTC recommendations" in suggestions,
    "status_codes": [reply.status_code],
    "body": {"suggestions": suggestions, "bot": (data.get("botMessage") or {}).get("message", "")[:240]},
  }


def check_expired_dispose(client: TestClient) -> dict[str, Any]:
  response = client.post(
    "/api/donate-dispose/recommendation",
    json={"medicineInfo": {"name": "Paracetamol", "expiryDate": "2020-01-01", "condition": "unopened"}},
  )
  data = _json(response).get("data") or {}
  return {
    "pass": response.status_code == 200 and data.get("recommendation") == "dispose",
    "status_codes": [response.status_code],
    "body": {"recommendation": data.get("recommendation"), "isExpired": data.get("isExpired")},
  }


def check_donation_centers(client: TestClient) -> dict[str, Any]:
  first = _json(client.get("/api/donate-dispose/donation-centers", params={"location": "Mumbai"}))
  second = _json(client.get("/api/donate-dispose/donation-centers", params={"location": "Mumbai"}))
  first_centers = (first.get("data") or {}).get("centers")
  return {
    "pass": bool(first_centers) and first_centers == (second.get("data") or {}).get("centers"),
    "status_codes": [],
    "body": {"total": (first.get("data") or {}).get("total")},
  }


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Throwaway database so smoke runs never touch real accounts.
  scratch = tempfile.mkdtemp(prefix="medwise-smoke-")
  os.environ.setdefault("MEDWISE_DB_PATH", str(Path(scratch) / "smoke.sqlite"))
  os.environ.setdefault("MEDWISE_CHAT_STORE", "memory")

  backend_module = importlib.import_module("main")

  scenarios = [
    Scenario(name="Register And Login", check=check_register_and_login),
    Scenario(name="Chat Headache Suggestions", check=check_chat_headache),
    Scenario(name="Expired Medicine Disposal", check=check_expired_dispose),
    Scenario(name="Donation Center Lookup", check=check_donation_centers),
  ]

  results: list[dict[str, Any]] = []
  with TestClient(backend_module.app) as client:
    for scenario in scenarios:
      outcome = scenario.check(client)
      outcome["name"] = scenario.name
      results.append(outcome)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# API Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Model configured: `{backend_module.container.gateway.configured}`",
    f"- AI_MODEL: `{backend_module.settings.ai_model}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]
  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Status codes: `{item.get('status_codes')}`")
    report_lines.append("```json")
    report_lines.append(json.dumps(item.get("body"), indent=2, ensure_ascii=True))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "API_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
