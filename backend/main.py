from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import string
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, Header, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts import (
    GoogleAuthError,
    TokenError,
    bearer_token,
    create_session_token,
    decode_session_token,
    hash_password,
    resolve_google_profile,
    verify_password,
)
from ingestion import (
    PRESCRIPTION_MIME_TYPES,
    STRIP_IMAGE_MIME_TYPES,
    IngestionError,
    UploadedFile,
    extract_text,
    extract_text_from_image,
    format_file_size,
    has_upload_extension,
    truncate_excerpt,
    validate_file_type,
)
from medwise_ai import GeminiGateway, MedicalAssistant
from medwise_config import Settings, bootstrap_local_env
from storage import (
    AccountExistsError,
    AccountStore,
    ChatMessage,
    ChatSession,
    ChatSessionStore,
    DonationCenterCatalog,
    DonationReportStore,
    InMemoryChatSessionStore,
    SQLiteChatSessionStore,
    SQLiteStoreDB,
)
from storage.time_utils import epoch_millis, parse_iso, to_iso, utc_now

bootstrap_local_env()
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("medwise")

_SESSION_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

CHAT_GREETING = (
    "Hello! I'm MedWise AI, your healthcare assistant. I can help you understand prescriptions, "
    "manage medicines responsibly, and answer general health questions. How can I assist you today?"
)
CHAT_START_QUICK_REPLIES = [
    "Help with prescription",
    "Medicine disposal guidance",
    "OTC recommendations",
    "General health question",
]
CHAT_FEATURES = [
    "Prescription analysis",
    "Medicine management",
    "OTC suggestions",
    "Health education",
]
CHAT_QUICK_REPLIES = [
    {"text": "How do I read my prescription?", "category": "prescription"},
    {"text": "Is this medicine expired?", "category": "expiry"},
    {"text": "Where can I donate unused medicines?", "category": "donation"},
    {"text": "What should I take for a headache?", "category": "otc"},
    {"text": "How do I dispose of old medicines?", "category": "disposal"},
    {"text": "Can I take these medicines together?", "category": "interactions"},
]

# Checked in order, first keyword hit wins.
SUGGESTION_RULES: list[tuple[tuple[str, ...], list[str]]] = [
    (
        ("prescription", "medicine"),
        ["Upload prescription for analysis", "Scan medicine strip", "Check medicine interactions"],
    ),
    (
        ("pain", "headache", "fever"),
        ["Get OTC recommendations", "Learn about pain relievers", "When to see a doctor"],
    ),
    (
        ("expired", "dispose", "old"),
        ["Find disposal locations", "Donation guidelines", "Safe disposal methods"],
    ),
]
DEFAULT_SUGGESTIONS = ["Ask another question", "Upload prescription", "Scan medicine strip", "Get OTC suggestions"]

OTC_CATALOG = [
    {
        "name": "Paracetamol",
        "category": "Pain reliever",
        "description": "Common pain and fever reducer",
        "dosage": "500mg every 4-6 hours",
        "warnings": ["Do not exceed 4g per day", "Avoid alcohol"],
    },
    {
        "name": "Ibuprofen",
        "category": "Anti-inflammatory",
        "description": "Pain, inflammation, and fever reducer",
        "dosage": "200-400mg every 4-6 hours",
        "warnings": ["Take with food", "Avoid if stomach ulcers"],
    },
    {
        "name": "Antacid",
        "category": "Digestive",
        "description": "Neutralizes stomach acid",
        "dosage": "As needed for heartburn",
        "warnings": ["Do not use for more than 2 weeks"],
    },
]
OTC_CATEGORIES = [
    {
        "name": "Pain Relief",
        "description": "Headaches, body aches, fever",
        "icon": "pill",
        "medicines": ["Paracetamol", "Ibuprofen", "Aspirin"],
    },
    {
        "name": "Digestive Health",
        "description": "Stomach issues, heartburn, nausea",
        "icon": "stomach",
        "medicines": ["Antacids", "Anti-diarrheal", "Probiotics"],
    },
    {
        "name": "Cold & Flu",
        "description": "Cough, congestion, runny nose",
        "icon": "thermometer",
        "medicines": ["Cough syrup", "Decongestants", "Throat lozenges"],
    },
    {
        "name": "Allergy Relief",
        "description": "Sneezing, itching, hives",
        "icon": "allergen",
        "medicines": ["Antihistamines", "Eye drops", "Nasal sprays"],
    },
    {
        "name": "Skin Care",
        "description": "Cuts, rashes, burns",
        "icon": "bandage",
        "medicines": ["Antiseptic", "Hydrocortisone", "Bandages"],
    },
    {
        "name": "Sleep & Wellness",
        "description": "Sleep aids, vitamins, supplements",
        "icon": "moon",
        "medicines": ["Melatonin", "Vitamins", "Minerals"],
    },
]

DONATION_CENTERS_DISCLAIMER = "Please contact centers directly to confirm current donation policies"
DISPOSAL_GUIDELINES_DISCLAIMER = (
    "Guidelines may vary by location. Check with local authorities for specific requirements."
)
DONATION_THANK_YOU = "Thank you for your donation! Your contribution helps others in need."


class ApiError(Exception):
    """Raised by route handlers; rendered as ``{success: false, error, message}``."""

    def __init__(self, status_code: int, error: str, message: str | None = None) -> None:
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message or error


class RegisterRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class GoogleLoginRequest(BaseModel):
    credential: str | None = None
    type: str | None = None


class OTCRequest(BaseModel):
    symptoms: Any = None
    age: Any = None
    weight: Any = None
    allergies: list[Any] | None = None
    currentMedications: list[Any] | None = None


class MedicineInfoRequest(BaseModel):
    # A bare descriptor without the medicineInfo wrapper is also accepted.
    model_config = ConfigDict(extra="allow")

    medicineInfo: dict[str, Any] | None = None

    def resolved(self) -> dict[str, Any] | None:
        if self.medicineInfo:
            return self.medicineInfo
        flat = dict(self.model_extra or {})
        return flat or None


class DonationReportRequest(BaseModel):
    donationInfo: dict[str, Any] | None = None


class ChatMessageRequest(BaseModel):
    sessionId: str | None = None
    message: str | None = None


class MedWiseApp:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.db = SQLiteStoreDB(settings.db_path)
        self.accounts = AccountStore(self.db)
        self.donation_centers = DonationCenterCatalog(settings.donation_centers_path)
        self.donation_reports = DonationReportStore(self.db)
        self.chat_sessions = self._build_chat_store()
        self.gateway = GeminiGateway(
            api_key=settings.gemini_api_key,
            model=settings.ai_model,
            base_url=settings.gemini_api_base,
            timeout_seconds=settings.ai_timeout_seconds,
        )
        self.assistant = MedicalAssistant(self.gateway)
        if not self.gateway.configured:
            logger.warning("GEMINI_API_KEY is not set; every AI feature will answer with its fallback")

    def _build_chat_store(self) -> ChatSessionStore:
        if self.settings.chat_store == "memory":
            return InMemoryChatSessionStore(self.settings.chat_ttl_seconds)
        return SQLiteChatSessionStore(self.db, self.settings.chat_ttl_seconds)

    def issue_token(self, account: dict[str, Any]) -> str:
        return create_session_token(
            user_id=account["id"],
            email=account["email"],
            secret=self.settings.jwt_secret,
            expire_days=self.settings.jwt_expire_days,
        )


async def _sweep_chat_sessions(store: ChatSessionStore, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(store.sweep)
        except Exception:
            logger.exception("chat session sweep failed")


@asynccontextmanager
async def lifespan(_: FastAPI):
    sweeper = asyncio.create_task(
        _sweep_chat_sessions(container.chat_sessions, container.settings.chat_sweep_seconds)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


settings = Settings.from_env()
container = MedWiseApp(settings)
app = FastAPI(title="MedWise Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials="*" not in settings.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(error: str, message: str) -> dict[str, Any]:
    return {"success": False, "error": error, "message": message}


@app.exception_handler(ApiError)
async def _api_error_handler(_: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.error, exc.message))


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_body(detail, detail), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Request body is invalid"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse(status_code=400, content=_error_body("Invalid request", message))


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", "Something went wrong on our end"),
    )


def _ok(data: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "data": data}


def _now_iso() -> str:
    return to_iso(utc_now())


def _public_user(account: dict[str, Any], *, include_picture: bool = True) -> dict[str, Any]:
    user = {"id": account["id"], "email": account["email"], "name": account["name"]}
    if include_picture:
        user["picture"] = account.get("picture")
    return user


def _current_account(authorization: str | None) -> dict[str, Any]:
    token = bearer_token(authorization)
    if not token:
        raise ApiError(401, "Unauthorized", "Missing Authorization")
    try:
        claims = decode_session_token(token, settings.jwt_secret)
    except TokenError as exc:
        raise ApiError(401, "Unauthorized", str(exc)) from exc
    account = container.accounts.get_by_id(str(claims["userId"]))
    if account is None:
        raise ApiError(404, "User not found", "Account no longer exists")
    return account


async def _read_upload(upload: UploadFile | None, *, missing_message: str) -> UploadedFile:
    if upload is None:
        raise ApiError(400, "No file uploaded", missing_message)
    max_bytes = settings.max_upload_bytes
    raw = await upload.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise ApiError(413, "File too large", f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")
    if not raw:
        raise ApiError(400, "Empty file", "Uploaded file is empty.")
    file_name = (upload.filename or "").strip() or "upload"
    content_type = (upload.content_type or "").lower().strip()
    uploaded = UploadedFile(name=file_name, content_type=content_type, data=raw)
    if not has_upload_extension(uploaded):
        raise ApiError(400, "Invalid file type", "Only images (JPG, PNG, GIF, WEBP) and PDF files are allowed")
    return uploaded


def _file_info(upload: UploadedFile) -> dict[str, Any]:
    return {"name": upload.name, "size": format_file_size(upload.size), "type": upload.content_type}


def _new_session_id() -> str:
    suffix = "".join(random.choices(_SESSION_SUFFIX_ALPHABET, k=9))
    return f"chat_{epoch_millis()}_{suffix}"


def _chat_suggestions(message: str) -> list[str]:
    lowered = message.lower()
    for keywords, suggestions in SUGGESTION_RULES:
        if any(keyword in lowered for keyword in keywords):
            return list(suggestions)
    return list(DEFAULT_SUGGESTIONS)


def _require_session(session_id: str, *, message: str) -> ChatSession:
    session = container.chat_sessions.get(session_id)
    if session is None or session.is_stale(container.chat_sessions.ttl):
        raise ApiError(404, "Session not found", message)
    return session


@app.get("/api/ping")
def ping():
    return {"message": settings.ping_message}


@app.post("/api/auth/register")
def register(payload: RegisterRequest):
    if not payload.email or not payload.password or not payload.name:
        raise ApiError(400, "Missing required fields", "Name, email and password are required")
    if container.accounts.get_by_email(payload.email) is not None:
        raise ApiError(400, "User already exists")
    try:
        account = container.accounts.create(
            email=payload.email,
            name=payload.name,
            password_hash=hash_password(payload.password),
        )
    except AccountExistsError as exc:
        raise ApiError(400, "User already exists") from exc
    logger.info("registered account %s", account["id"])
    return {"user": _public_user(account, include_picture=False), "token": container.issue_token(account)}


@app.post("/api/auth/login")
def login(payload: LoginRequest):
    if not payload.email or not payload.password:
        raise ApiError(400, "Missing email or password")
    account = container.accounts.get_by_email(payload.email)
    # OAuth-only accounts have no password hash and fail the same way.
    if account is None or not verify_password(payload.password, account["password_hash"]):
        raise ApiError(401, "Invalid credentials")
    return {"user": _public_user(account), "token": container.issue_token(account)}


@app.post("/api/auth/google")
def google_login(payload: GoogleLoginRequest):
    if not payload.credential:
        raise ApiError(400, "Missing Google credential")
    try:
        profile = resolve_google_profile(payload.credential, payload.type, settings.google_client_id)
    except GoogleAuthError as exc:
        logger.warning("google login rejected: %s", exc)
        raise ApiError(401, "Authentication failed", str(exc)) from exc
    account = container.accounts.upsert_google_account(
        google_id=profile.google_id,
        email=profile.email,
        name=profile.name,
        picture=profile.picture,
    )
    return {"user": _public_user(account), "token": container.issue_token(account)}


@app.get("/api/auth/me")
def auth_me(authorization: str | None = Header(default=None)):
    account = _current_account(authorization)
    return {"user": _public_user(account)}


@app.post("/api/prescription/upload")
async def prescription_upload(prescription: UploadFile | None = File(default=None)):
    upload = await _read_upload(prescription, missing_message="Please upload a prescription file (PDF or image)")
    if not validate_file_type(upload, PRESCRIPTION_MIME_TYPES):
        raise ApiError(400, "Invalid file type", "Only PDF and image files are supported")

    try:
        extracted_text = await run_in_threadpool(extract_text, upload)
    except IngestionError as exc:
        raise ApiError(400, "Text extraction failed", str(exc)) from exc
    if len(extracted_text.strip()) < 10:
        raise ApiError(
            400,
            "No readable text found",
            "Could not extract readable text from the file. Please ensure the image is clear and contains text.",
        )

    analysis = await run_in_threadpool(container.assistant.analyze_prescription, extracted_text)
    return _ok(
        {
            **analysis,
            "fileInfo": _file_info(upload),
            "extractedText": truncate_excerpt(extracted_text, 500),
        }
    )


@app.get("/api/prescription/history")
def prescription_history():
    return _ok({"history": [], "message": "Prescription history feature coming soon"})


@app.post("/api/ocr/scan")
async def ocr_scan(stripImage: UploadFile | None = File(default=None)):
    upload = await _read_upload(stripImage, missing_message="Please upload an image of the medicine strip")
    if not validate_file_type(upload, STRIP_IMAGE_MIME_TYPES):
        raise ApiError(
            400,
            "Invalid file type",
            "Only image files (JPEG, PNG, GIF, WEBP) are supported for strip scanning",
        )

    try:
        ocr_text = await run_in_threadpool(extract_text_from_image, upload.data)
    except IngestionError as exc:
        raise ApiError(400, "Text extraction failed", str(exc)) from exc
    if len(ocr_text.strip()) < 3:
        raise ApiError(
            400,
            "No readable text found",
            "Could not extract readable text from the image. Please ensure the image is clear and well-lit.",
        )

    medicine_info = await run_in_threadpool(container.assistant.analyze_ocr_text, ocr_text)
    return _ok(
        {
            **medicine_info,
            "fileInfo": _file_info(upload),
            "ocrText": truncate_excerpt(ocr_text, 300),
            "confidence": "high",
        }
    )


@app.post("/api/ocr/update")
def ocr_update(payload: MedicineInfoRequest):
    medicine_info = payload.medicineInfo
    if not medicine_info:
        raise ApiError(400, "Missing medicine information", "Please provide medicine information to update")
    recommendation = container.assistant.donate_dispose_recommendation(medicine_info)
    return _ok({**medicine_info, **recommendation, "updatedAt": _now_iso()})


@app.get("/api/ocr/history")
def ocr_history():
    return _ok({"history": [], "message": "Scan history feature coming soon"})


@app.post("/api/otc/recommendations")
def otc_recommendations(payload: OTCRequest):
    symptoms = payload.symptoms
    if not isinstance(symptoms, str) or len(symptoms.strip()) < 2:
        raise ApiError(400, "Invalid symptoms", "Please provide symptoms description (minimum 2 characters)")
    user_info = {
        "age": payload.age or None,
        "weight": payload.weight or None,
        "allergies": payload.allergies or [],
        "currentMedications": payload.currentMedications or [],
    }
    recommendations = container.assistant.otc_recommendations(symptoms, user_info)
    return _ok(
        {
            **recommendations,
            "query": {"symptoms": symptoms, "userInfo": user_info},
            "timestamp": _now_iso(),
        }
    )


@app.get("/api/otc/search")
def otc_search(query: str | None = None):
    if not query:
        raise ApiError(400, "Invalid search query", "Please provide a search term")
    needle = query.lower()
    results = [
        medicine
        for medicine in OTC_CATALOG
        if needle in medicine["name"].lower() or needle in medicine["category"].lower()
    ]
    return _ok({"results": results, "query": query, "total": len(results)})


@app.get("/api/otc/categories")
def otc_categories():
    return _ok({"categories": OTC_CATEGORIES, "total": len(OTC_CATEGORIES)})


@app.post("/api/donate-dispose/recommendation")
def donate_dispose_recommendation(payload: MedicineInfoRequest):
    medicine_info = payload.resolved()
    if not medicine_info:
        raise ApiError(
            400,
            "Missing medicine information",
            "Please provide medicine information for recommendation",
        )
    recommendation = container.assistant.donate_dispose_recommendation(medicine_info)
    data = {**recommendation, "medicineInfo": medicine_info, "timestamp": _now_iso()}
    return _ok(data)


@app.get("/api/donate-dispose/donation-centers")
def donation_centers(location: str | None = None, medicineType: str | None = None):
    logger.info("donation center lookup location=%r medicineType=%r", location, medicineType)
    centers = container.donation_centers.search(location)
    logger.info("returning %d donation centers for location=%r", len(centers), location)
    return _ok(
        {
            "centers": centers,
            "searchCriteria": {
                "location": location or "All locations",
                "medicineType": medicineType or "Any",
            },
            "total": len(centers),
            "disclaimer": DONATION_CENTERS_DISCLAIMER,
        }
    )


@app.get("/api/donate-dispose/disposal-guidelines")
def disposal_guidelines(medicineType: str | None = None, location: str | None = None):
    guidelines = container.assistant.disposal_guidelines(medicineType or "general", location or "General")
    return _ok(
        {
            **guidelines,
            "searchCriteria": {
                "medicineType": medicineType or "general",
                "location": location or "general",
            },
            "lastUpdated": _now_iso(),
            "disclaimer": DISPOSAL_GUIDELINES_DISCLAIMER,
        }
    )


@app.post("/api/donate-dispose/report-donation")
def report_donation(payload: DonationReportRequest):
    donation_info = payload.donationInfo
    if not donation_info:
        raise ApiError(400, "Missing donation information", "Please provide donation details")
    report = container.donation_reports.append(donation_info)
    logger.info("recorded donation report %s", report["reportId"])
    return _ok(
        {
            "reportId": report["reportId"],
            "status": "recorded",
            "message": DONATION_THANK_YOU,
            "donationInfo": donation_info,
            "submittedAt": report["submittedAt"],
        }
    )


@app.post("/api/chatbot/start")
def chatbot_start():
    now = _now_iso()
    greeting = ChatMessage(id=f"msg_{epoch_millis()}", message=CHAT_GREETING, sender="bot", timestamp=now)
    session = ChatSession(
        id=_new_session_id(),
        messages=[greeting],
        context="",
        created_at=now,
        last_activity=now,
    )
    container.chat_sessions.put(session)
    return _ok(
        {
            "sessionId": session.id,
            "initialMessage": greeting.as_dict(),
            "quickReplies": list(CHAT_START_QUICK_REPLIES),
            "features": list(CHAT_FEATURES),
        }
    )


@app.post("/api/chatbot/message")
def chatbot_message(payload: ChatMessageRequest):
    if not payload.sessionId or not payload.message:
        raise ApiError(400, "Missing required fields", "Session ID and message are required")
    session = _require_session(payload.sessionId, message="Chat session does not exist or has expired")

    message = payload.message
    user_message = ChatMessage(
        id=f"msg_{epoch_millis()}_user",
        message=message,
        sender="user",
        timestamp=_now_iso(),
    )
    session.messages.append(user_message)

    reply = container.assistant.chatbot_reply(message, session.context)
    bot_message = ChatMessage(
        id=f"msg_{epoch_millis()}_bot",
        message=reply,
        sender="bot",
        timestamp=_now_iso(),
    )
    session.messages.append(bot_message)
    session.touch()
    session.context += f"\nUser: {message}\nBot: {reply}"
    container.chat_sessions.put(session)

    return _ok(
        {
            "userMessage": user_message.as_dict(),
            "botMessage": bot_message.as_dict(),
            "suggestions": _chat_suggestions(message),
            "sessionInfo": {
                "id": session.id,
                "messageCount": len(session.messages),
                "lastActivity": session.last_activity,
            },
        }
    )


@app.get("/api/chatbot/history/{session_id}")
def chatbot_history(session_id: str):
    session = _require_session(session_id, message="Chat session does not exist")
    return _ok(
        {
            "sessionId": session.id,
            "messages": [message.as_dict() for message in session.messages],
            "messageCount": len(session.messages),
            "createdAt": session.created_at,
            "lastActivity": session.last_activity,
        }
    )


@app.delete("/api/chatbot/session/{session_id}")
def chatbot_end(session_id: str):
    session = _require_session(session_id, message="Chat session does not exist")
    container.chat_sessions.delete(session_id)
    created = parse_iso(session.created_at) or utc_now()
    duration_ms = max(0, epoch_millis() - epoch_millis(created))
    return _ok(
        {
            "message": "Chat session ended successfully",
            "sessionId": session_id,
            "duration": duration_ms,
            "messageCount": len(session.messages),
        }
    )


@app.get("/api/chatbot/quick-replies")
def chatbot_quick_replies():
    categories = [item["category"] for item in CHAT_QUICK_REPLIES]
    return _ok({"quickReplies": CHAT_QUICK_REPLIES, "categories": categories, "total": len(CHAT_QUICK_REPLIES)})
