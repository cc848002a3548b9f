from __future__ import annotations

import importlib

from fastapi.testclient import TestClient

from medwise_ai import AIResult
from medwise_ai.fallbacks import CHATBOT_FALLBACK_REPLY, PRESCRIPTION_FORMAT_MESSAGE

PRESCRIPTION_TEXT = "Rx: Amoxicillin 500mg, one capsule three times daily for 7 days."


def _fail_with(backend_module, monkeypatch, failure: str) -> None:
    monkeypatch.setattr(
        backend_module.container.gateway,
        "generate",
        lambda prompt: AIResult.failed(failure, "provider said no"),
    )


def test_ping_uses_configured_message(backend_module, monkeypatch):
    monkeypatch.setenv("PING_MESSAGE", "pong")
    module = importlib.reload(backend_module)
    with TestClient(module.app) as test_client:
        assert test_client.get("/api/ping").json() == {"message": "pong"}


def test_prescription_upload_falls_back_when_model_unconfigured(client, backend_module, monkeypatch):
    monkeypatch.setattr(backend_module, "extract_text", lambda upload: PRESCRIPTION_TEXT * 20)

    response = client.post(
        "/api/prescription/upload",
        files={"prescription": ("rx.png", b"\x89PNG fake bytes", "image/png")},
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    data = payload["data"]
    assert data["summary"] == "AI analysis service is temporarily unavailable"
    assert data["medications"][0]["name"] == "Analysis unavailable"
    assert data["importantNotes"]
    assert data["disclaimer"]
    assert data["fileInfo"] == {"name": "rx.png", "size": "15 Bytes", "type": "image/png"}
    assert data["extractedText"].endswith("...")
    assert len(data["extractedText"]) == 503


def test_prescription_fallback_message_follows_failure_reason(client, backend_module, monkeypatch):
    monkeypatch.setattr(backend_module, "extract_text", lambda upload: PRESCRIPTION_TEXT)
    files = {"prescription": ("rx.pdf", b"%PDF-1.4 fake", "application/pdf")}

    _fail_with(backend_module, monkeypatch, "quota")
    quota = client.post("/api/prescription/upload", files=files).json()["data"]
    assert quota["summary"] == "AI Quota exceeded. Please check your Gemini billing details."

    _fail_with(backend_module, monkeypatch, "invalid_credential")
    bad_key = client.post("/api/prescription/upload", files=files).json()["data"]
    assert bad_key["summary"] == "Invalid Gemini API key. Please check your .env configuration."


def test_prescription_unparseable_answer_uses_format_fallback(client, backend_module, monkeypatch, model_reply):
    monkeypatch.setattr(backend_module, "extract_text", lambda upload: PRESCRIPTION_TEXT)
    model_reply("Sorry, I cannot help with that.")

    response = client.post(
        "/api/prescription/upload",
        files={"prescription": ("rx.jpg", b"jpeg-bytes", "image/jpeg")},
    )
    assert response.status_code == 200
    assert response.json()["data"]["summary"] == PRESCRIPTION_FORMAT_MESSAGE


def test_prescription_uses_model_json_inside_fences(client, backend_module, monkeypatch, model_reply):
    monkeypatch.setattr(backend_module, "extract_text", lambda upload: PRESCRIPTION_TEXT)
    model_reply(
        '```json\n{"summary": "One antibiotic course.", "medications": [{"name": "Amoxicillin"}],'
        ' "importantNotes": [], "disclaimer": "Ask your doctor."}\n```'
    )

    data = client.post(
        "/api/prescription/upload",
        files={"prescription": ("rx.jpg", b"jpeg-bytes", "image/jpeg")},
    ).json()["data"]
    assert data["summary"] == "One antibiotic course."
    assert data["medications"] == [{"name": "Amoxicillin"}]
    assert data["extractedText"] == PRESCRIPTION_TEXT


def test_prescription_rejects_short_text_bad_type_and_missing_file(client, backend_module, monkeypatch):
    monkeypatch.setattr(backend_module, "extract_text", lambda upload: "  short ")

    short = client.post("/api/prescription/upload", files={"prescription": ("rx.png", b"img", "image/png")})
    assert short.status_code == 400
    assert short.json()["error"] == "No readable text found"

    wrong_type = client.post("/api/prescription/upload", files={"prescription": ("rx.png", b"img", "text/plain")})
    assert wrong_type.status_code == 400
    assert wrong_type.json()["error"] == "Invalid file type"

    wrong_extension = client.post(
        "/api/prescription/upload",
        files={"prescription": ("rx.exe", b"img", "image/png")},
    )
    assert wrong_extension.status_code == 400

    missing = client.post("/api/prescription/upload")
    assert missing.status_code == 400
    assert missing.json() == {
        "success": False,
        "error": "No file uploaded",
        "message": "Please upload a prescription file (PDF or image)",
    }


def test_upload_limits(backend_module, monkeypatch):
    monkeypatch.setenv("MEDWISE_MAX_UPLOAD_BYTES", str(2 * 1024 * 1024))
    module = importlib.reload(backend_module)

    with TestClient(module.app) as test_client:
        empty = test_client.post("/api/ocr/scan", files={"stripImage": ("strip.png", b"", "image/png")})
        assert empty.status_code == 400

        oversized = b"x" * (2 * 1024 * 1024 + 1)
        too_large = test_client.post("/api/ocr/scan", files={"stripImage": ("strip.png", oversized, "image/png")})
    assert too_large.status_code == 413
    assert too_large.json() == {
        "success": False,
        "error": "File too large",
        "message": "File size exceeds 2MB limit",
    }


def test_ocr_scan_fallback_and_pdf_rejected(client, backend_module, monkeypatch):
    monkeypatch.setattr(backend_module, "extract_text_from_image", lambda data: "PARACETAMOL 500 EXP 05/2019")

    response = client.post("/api/ocr/scan", files={"stripImage": ("strip.webp", b"webp", "image/webp")})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "OCR analysis service is temporarily unavailable"
    assert data["recommendation"] == "dispose"
    assert data["confidence"] == "high"
    assert data["ocrText"] == "PARACETAMOL 500 EXP 05/2019"
    assert data["fileInfo"]["type"] == "image/webp"

    pdf = client.post("/api/ocr/scan", files={"stripImage": ("strip.pdf", b"%PDF", "application/pdf")})
    assert pdf.status_code == 400
    assert pdf.json()["error"] == "Invalid file type"


def test_ocr_scan_overrides_expired_strip(client, backend_module, monkeypatch, model_reply):
    monkeypatch.setattr(backend_module, "extract_text_from_image", lambda data: "CROCIN 650 EXP 01/2020")
    model_reply(
        '{"name": "Crocin", "manufacturer": "GSK", "expiryDate": "2020-01-31", "batchNumber": "B1",'
        ' "strength": "650mg", "recommendation": "donate", "reasoning": "Looks fine"}'
    )

    data = client.post("/api/ocr/scan", files={"stripImage": ("s.jpg", b"jpg", "image/jpeg")}).json()["data"]
    assert data["isExpired"] is True
    assert data["recommendation"] == "dispose"
    assert data["reasoning"].startswith("Medicine has expired")


def test_ocr_scan_unexpired_keep_becomes_donate(client, backend_module, monkeypatch, model_reply):
    monkeypatch.setattr(backend_module, "extract_text_from_image", lambda data: "CROCIN 650 EXP 01/2099")
    model_reply('{"name": "Crocin", "expiryDate": "2099-01-31", "recommendation": "keep"}')

    data = client.post("/api/ocr/scan", files={"stripImage": ("s.jpg", b"jpg", "image/jpeg")}).json()["data"]
    assert data["isExpired"] is False
    assert data["recommendation"] == "donate"


def test_ocr_scan_reports_unreadable_image(client, backend_module, monkeypatch):
    monkeypatch.setattr(backend_module, "extract_text_from_image", lambda data: " a ")
    response = client.post("/api/ocr/scan", files={"stripImage": ("s.png", b"png", "image/png")})
    assert response.status_code == 400
    assert "well-lit" in response.json()["message"]


def test_ocr_update_merges_recommendation(client):
    medicine = {"name": "Ibuprofen", "expiryDate": "2019-03-31", "condition": "unopened"}
    response = client.post("/api/ocr/update", json={"medicineInfo": medicine})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Ibuprofen"
    assert data["recommendation"] == "dispose"
    assert data["isExpired"] is True
    assert data["updatedAt"]

    assert client.post("/api/ocr/update", json={}).status_code == 400


def test_history_placeholders(client):
    prescriptions = client.get("/api/prescription/history").json()["data"]
    scans = client.get("/api/ocr/history").json()["data"]
    assert prescriptions["history"] == [] and "coming soon" in prescriptions["message"]
    assert scans["history"] == [] and "coming soon" in scans["message"]


def test_otc_recommendations_fallback_and_validation(client):
    response = client.post(
        "/api/otc/recommendations",
        json={"symptoms": "mild headache", "age": 30, "allergies": ["aspirin"]},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["recommendations"][0]["medicine"] == "Consult pharmacist for recommendations"
    assert data["query"] == {
        "symptoms": "mild headache",
        "userInfo": {"age": 30, "weight": None, "allergies": ["aspirin"], "currentMedications": []},
    }
    assert data["timestamp"]

    for bad in ({"symptoms": " a "}, {"symptoms": 42}, {}):
        rejected = client.post("/api/otc/recommendations", json=bad)
        assert rejected.status_code == 400
        assert rejected.json()["error"] == "Invalid symptoms"


def test_otc_search_and_categories(client):
    pain = client.get("/api/otc/search", params={"query": "PAIN"}).json()["data"]
    assert [item["name"] for item in pain["results"]] == ["Paracetamol"]
    assert pain["total"] == 1

    digestive = client.get("/api/otc/search", params={"query": "digest"}).json()["data"]
    assert digestive["results"][0]["name"] == "Antacid"

    assert client.get("/api/otc/search").status_code == 400

    categories = client.get("/api/otc/categories").json()["data"]
    assert categories["total"] == 6
    assert categories["categories"][0]["name"] == "Pain Relief"


def test_disposal_guidelines_fallback(client):
    response = client.get("/api/donate-dispose/disposal-guidelines", params={"medicineType": "liquid"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["guidelines"]["general"]
    assert data["localResources"]
    assert data["searchCriteria"] == {"medicineType": "liquid", "location": "general"}
    assert data["lastUpdated"]
    assert data["disclaimer"].startswith("Guidelines may vary")


def test_chatbot_failure_uses_apology_reply(client, backend_module, monkeypatch):
    _fail_with(backend_module, monkeypatch, "network")
    session_id = client.post("/api/chatbot/start").json()["data"]["sessionId"]
    reply = client.post("/api/chatbot/message", json={"sessionId": session_id, "message": "hello"})
    assert reply.status_code == 200
    assert reply.json()["data"]["botMessage"]["message"] == CHATBOT_FALLBACK_REPLY


def test_unexpected_errors_use_envelope(backend_module, monkeypatch):
    def boom():
        raise RuntimeError("catalog exploded")

    monkeypatch.setattr(backend_module.container.donation_centers, "search", lambda location: boom())
    with TestClient(backend_module.app, raise_server_exceptions=False) as test_client:
        response = test_client.get("/api/donate-dispose/donation-centers")
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Internal server error",
        "message": "Something went wrong on our end",
    }


def test_malformed_json_is_a_client_error(client):
    response = client.post(
        "/api/otc/recommendations",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
