from __future__ import annotations

import base64
import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, NoReturn

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from doctor_directory import DoctorFilters, filter_doctors, recommend_doctors, unique_cities, unique_specializations
from medibot_core import (
    BoundaryResult,
    ConversationTurnController,
    DialogStateError,
    DocumentAnalysisOutput,
    DocumentAnalysisRequest,
    EmptyInput,
    MediBotError,
    NoSpeechCaptured,
    NotificationHub,
    PermissionDenied,
    TriageRequest,
    TriageResult,
    TurnStateError,
    UnsupportedCapability,
)
from medibot_llm import analyze_document, triage_symptoms
from medibot_voice import (
    RecognitionEvent,
    RelayRecognitionDevice,
    RelaySynthesisDevice,
    SpeechEvent,
    SpeechOutputController,
    Voice,
    VoiceDialog,
)

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


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


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()

logging.basicConfig(
    level=(os.getenv("MEDIBOT_LOG_LEVEL") or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("medibot")

_MAX_DOCUMENT_BYTES = 5 * 1024 * 1024
_ALLOWED_DOCUMENT_MIME_TYPES = {"image/jpeg", "image/png", "application/pdf"}
_SESSION_KEY_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


def _emergency_number() -> str:
    return (os.getenv("MEDIBOT_EMERGENCY_NUMBER") or "112").strip()


def _default_language() -> str:
    return (os.getenv("MEDIBOT_DEFAULT_LANGUAGE") or "en-US").strip()


class VoicePayload(BaseModel):
    name: str
    lang: str
    default: bool = False


class Capabilities(BaseModel):
    speech_recognition: bool = False
    speech_synthesis: bool = False
    microphone_permission: Literal["granted", "prompt", "denied"] = "prompt"
    voices: list[VoicePayload] = Field(default_factory=list)


class SessionRequest(BaseModel):
    session_key: str


class ChatTurnRequest(SessionRequest):
    message: str
    language: str | None = None


class VoiceOpenRequest(SessionRequest):
    language: str | None = None
    capabilities: Capabilities | None = None


class RecognitionEventPayload(BaseModel):
    type: Literal["start", "result", "error", "end"]
    is_final: bool = False
    text: str = ""
    error: str | None = None


class VoiceEventsRequest(SessionRequest):
    events: list[RecognitionEventPayload] = Field(default_factory=list)


class SpeechEnabledRequest(SessionRequest):
    enabled: bool


class SpeechEventPayload(BaseModel):
    type: Literal["start", "end", "error"]
    utterance_id: str


class SpeechEventsRequest(SessionRequest):
    events: list[SpeechEventPayload] = Field(default_factory=list)
    voices: list[VoicePayload] | None = None


@dataclass
class AppSession:
    session_key: str
    lock: threading.Lock
    language: str
    notifications: NotificationHub
    recognition: RelayRecognitionDevice
    synthesis: RelaySynthesisDevice
    speech: SpeechOutputController
    controller: ConversationTurnController
    dialog: VoiceDialog

    def apply_capabilities(self, capabilities: Capabilities) -> None:
        self.recognition.available = capabilities.speech_recognition
        self.recognition.microphone_permission = capabilities.microphone_permission
        self.synthesis.available = capabilities.speech_synthesis
        self.synthesis.set_voices([Voice(name=v.name, lang=v.lang, default=v.default) for v in capabilities.voices])

    def drain(self) -> dict[str, Any]:
        return {
            "notifications": [notification.as_dict() for notification in self.notifications.drain()],
            "speech_commands": self.recognition.drain() + self.synthesis.drain(),
        }


class MediBotApp:
    """Session registry plus the LLM boundaries every session shares."""

    def __init__(self) -> None:
        self.triage_boundary = triage_symptoms
        self.document_boundary = analyze_document
        self._sessions: dict[str, AppSession] = {}
        self._registry_lock = threading.Lock()

    def session(self, session_key: str) -> AppSession:
        with self._registry_lock:
            existing = self._sessions.get(session_key)
            if existing is not None:
                return existing
            created = self._create_session(session_key)
            self._sessions[session_key] = created
            logger.info("session created: %s", session_key)
            return created

    def _triage(self, request: TriageRequest) -> BoundaryResult[TriageResult]:
        return self.triage_boundary(request)

    def _analyze(self, request: DocumentAnalysisRequest) -> BoundaryResult[DocumentAnalysisOutput]:
        return self.document_boundary(request)

    def _create_session(self, session_key: str) -> AppSession:
        language = _default_language()
        notifications = NotificationHub()
        recognition = RelayRecognitionDevice(available=False)
        synthesis = RelaySynthesisDevice(available=False)
        speech = SpeechOutputController(synthesis, default_language=language)
        controller = ConversationTurnController(
            triage=self._triage,
            analyze_document=self._analyze,
            notifications=notifications,
            speak_turn=speech.speak_turn,
            emergency_number=_emergency_number(),
        )
        dialog = VoiceDialog(
            controller=controller,
            speech=speech,
            notifications=notifications,
            recognition_device=recognition,
        )
        return AppSession(
            session_key=session_key,
            lock=threading.Lock(),
            language=language,
            notifications=notifications,
            recognition=recognition,
            synthesis=synthesis,
            speech=speech,
            controller=controller,
            dialog=dialog,
        )


container = MediBotApp()
app = FastAPI(title="MediBot Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _validated_session_key(session_key: str) -> str:
    candidate = (session_key or "").strip()
    if not _SESSION_KEY_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid session_key")
    return candidate


def _session(session_key: str) -> AppSession:
    return container.session(_validated_session_key(session_key))


def _error_status(exc: MediBotError) -> int:
    if isinstance(exc, (EmptyInput, NoSpeechCaptured)):
        return 400
    if isinstance(exc, (TurnStateError, DialogStateError)):
        return 409
    if isinstance(exc, (UnsupportedCapability, PermissionDenied)):
        return 422
    return 500


def _raise_for(session: AppSession, exc: MediBotError) -> NoReturn:
    detail = {"code": exc.code, "message": exc.message, **session.drain()}
    raise HTTPException(status_code=_error_status(exc), detail=detail) from exc


def _respond(session: AppSession, **payload: Any) -> dict[str, Any]:
    return {**payload, **session.drain()}


def _language_for(session: AppSession, language: str | None) -> str:
    cleaned = (language or "").strip()
    if cleaned:
        session.language = cleaned
    return session.language


def _validate_document_upload(upload: UploadFile) -> str:
    mime_type = (upload.content_type or "").lower().strip()
    if mime_type not in _ALLOWED_DOCUMENT_MIME_TYPES:
        raise HTTPException(status_code=415, detail="Unsupported document type. Use JPG, PNG or PDF.")
    return mime_type


async def _read_upload_bytes(upload: UploadFile, *, max_bytes: int, too_large_detail: str) -> bytes:
    raw = await upload.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise HTTPException(status_code=413, detail=too_large_detail)
    if not raw:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return raw


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/chat/turn")
def chat_turn(payload: ChatTurnRequest):
    session = _session(payload.session_key)
    with session.lock:
        language = _language_for(session, payload.language)
        try:
            pending = session.controller.begin_turn(payload.message, "typed", language)
        except MediBotError as exc:
            _raise_for(session, exc)
    result = session.controller.call_boundary(pending)
    with session.lock:
        outcome = session.controller.resolve_turn(pending.placeholder_id, result)
        return _respond(session, outcome=outcome.as_dict())


@app.get("/chat/log")
def chat_log(session_key: str = Query(...)):
    session = _session(session_key)
    with session.lock:
        return _respond(
            session,
            turns=[turn.as_dict() for turn in session.controller.log],
            is_busy=session.controller.is_busy,
        )


@app.post("/documents/analyze")
async def documents_analyze(
    session_key: str = Form(...),
    document_type: Literal["prescription", "lab_report"] = Form(...),
    document_text: str | None = Form(default=None),
    language: str | None = Form(default=None),
    document: UploadFile | None = File(default=None),
):
    session = _session(session_key)
    data_uri: str | None = None
    if document is not None and document.filename:
        mime_type = _validate_document_upload(document)
        document_bytes = await _read_upload_bytes(
            document,
            max_bytes=_MAX_DOCUMENT_BYTES,
            too_large_detail=f"Document file exceeds {_MAX_DOCUMENT_BYTES // (1024 * 1024)}MB limit.",
        )
        data_uri = f"data:{mime_type};base64,{base64.b64encode(document_bytes).decode('ascii')}"

    with session.lock:
        resolved_language = _language_for(session, language)
        try:
            pending = session.controller.begin_document_analysis(
                document_type=document_type,
                language=resolved_language,
                document_text=document_text,
                document_data_uri=data_uri,
            )
        except MediBotError as exc:
            _raise_for(session, exc)
        session.dialog.await_document_analysis(pending)
    result = await run_in_threadpool(session.controller.call_boundary, pending)
    with session.lock:
        outcome = session.controller.resolve_turn(pending.placeholder_id, result)
        return _respond(session, outcome=outcome.as_dict(), dialog=session.dialog.view())


@app.post("/voice/open")
def voice_open(payload: VoiceOpenRequest):
    session = _session(payload.session_key)
    with session.lock:
        if payload.capabilities is not None:
            session.apply_capabilities(payload.capabilities)
        language = _language_for(session, payload.language)
        try:
            session.dialog.open(language)
        except MediBotError as exc:
            _raise_for(session, exc)
        return _respond(session, dialog=session.dialog.view())


@app.post("/voice/events")
def voice_events(payload: VoiceEventsRequest):
    session = _session(payload.session_key)
    with session.lock:
        for event in payload.events:
            session.dialog.handle_recognition(RecognitionEvent.from_dict(event.model_dump()))
        return _respond(session, dialog=session.dialog.view())


@app.post("/voice/listen")
def voice_listen(payload: SessionRequest):
    session = _session(payload.session_key)
    with session.lock:
        try:
            session.dialog.listen()
        except MediBotError as exc:
            _raise_for(session, exc)
        return _respond(session, dialog=session.dialog.view())


@app.post("/voice/send")
def voice_send(payload: SessionRequest):
    session = _session(payload.session_key)
    with session.lock:
        try:
            pending = session.dialog.send()
        except MediBotError as exc:
            _raise_for(session, exc)
    result = session.controller.call_boundary(pending)
    with session.lock:
        outcome = session.controller.resolve_turn(pending.placeholder_id, result)
        return _respond(session, outcome=outcome.as_dict(), dialog=session.dialog.view())


@app.post("/voice/close")
def voice_close(payload: SessionRequest):
    session = _session(payload.session_key)
    with session.lock:
        session.dialog.close()
        return _respond(session, dialog=session.dialog.view())


@app.get("/voice/state")
def voice_state(session_key: str = Query(...)):
    session = _session(session_key)
    with session.lock:
        return _respond(session, dialog=session.dialog.view(), speech=session.speech.snapshot())


@app.post("/speech/enabled")
def speech_enabled(payload: SpeechEnabledRequest):
    session = _session(payload.session_key)
    with session.lock:
        session.speech.set_enabled(payload.enabled)
        return _respond(session, speech=session.speech.snapshot())


@app.post("/speech/events")
def speech_events(payload: SpeechEventsRequest):
    session = _session(payload.session_key)
    with session.lock:
        if payload.voices is not None:
            session.synthesis.set_voices([Voice(name=v.name, lang=v.lang, default=v.default) for v in payload.voices])
        for event in payload.events:
            session.speech.handle(SpeechEvent(type=event.type, utterance_id=event.utterance_id))
        return _respond(session, speech=session.speech.snapshot(), dialog=session.dialog.view())


@app.get("/doctors")
def doctors(
    specialization: str | None = Query(default=None),
    city: str | None = Query(default=None),
    min_rating: str | None = Query(default=None, alias="minRating"),
):
    filters = DoctorFilters.from_query(specialization, city, min_rating)
    matched = filter_doctors(filters)
    return {
        "filters": {
            "specialization": filters.specialization,
            "city": filters.city,
            "minRating": filters.min_rating,
        },
        "doctors": [doctor.as_dict() for doctor in matched],
        "specializations": unique_specializations(),
        "cities": unique_cities(),
    }


@app.get("/doctors/recommendations")
def doctor_recommendations(
    symptoms: str | None = Query(default=None),
    specialization: str | None = Query(default=None),
    list_all: bool = Query(default=False),
):
    try:
        matched = recommend_doctors(
            symptoms=symptoms,
            requested_specialization=specialization,
            list_all=list_all,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"doctors": [doctor.as_dict() for doctor in matched]}
