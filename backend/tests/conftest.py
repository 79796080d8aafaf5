from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from boundary_fakes import DEFAULT_VOICES, ScriptedBoundary  # noqa: E402
from medibot_core import (  # noqa: E402
    BoundaryResult,
    ConversationTurnController,
    DocumentAnalysisOutput,
    NotificationHub,
)
from medibot_voice import RelayRecognitionDevice, RelaySynthesisDevice, SpeechOutputController  # noqa: E402

_PROVIDER_ENV_KEYS = ("ANTHROPIC_API_KEY", "OPENROUTER_API_KEY", "OPENAI_API_KEY", "MEDIBOT_CHAT_PROVIDER")


@pytest.fixture
def backend_module(monkeypatch):
    for key in _PROVIDER_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MEDIBOT_EMERGENCY_NUMBER", "112")
    monkeypatch.setenv("MEDIBOT_DEFAULT_LANGUAGE", "en-US")

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
def triage_boundary(backend_module, monkeypatch) -> ScriptedBoundary:
    boundary = ScriptedBoundary()
    monkeypatch.setattr(backend_module.container, "triage_boundary", boundary)
    return boundary


@pytest.fixture
def document_boundary(backend_module, monkeypatch) -> ScriptedBoundary:
    boundary = ScriptedBoundary()
    monkeypatch.setattr(backend_module.container, "document_boundary", boundary)
    return boundary


@pytest.fixture
def notifications() -> NotificationHub:
    return NotificationHub()


@pytest.fixture
def synthesis() -> RelaySynthesisDevice:
    return RelaySynthesisDevice(voices=list(DEFAULT_VOICES))


@pytest.fixture
def recognition() -> RelayRecognitionDevice:
    return RelayRecognitionDevice()


@pytest.fixture
def speech(synthesis) -> SpeechOutputController:
    return SpeechOutputController(synthesis)


@pytest.fixture
def make_controller(notifications, speech) -> Callable[..., ConversationTurnController]:
    def _make(
        triage: ScriptedBoundary | None = None,
        analyze: ScriptedBoundary | None = None,
        **kwargs: Any,
    ) -> ConversationTurnController:
        kwargs.setdefault("speak_turn", speech.speak_turn)
        return ConversationTurnController(
            triage=triage or ScriptedBoundary(),
            analyze_document=analyze or ScriptedBoundary(),
            notifications=notifications,
            **kwargs,
        )

    return _make


@pytest.fixture
def document_output() -> Callable[[str], BoundaryResult[DocumentAnalysisOutput]]:
    def _make(summary: str = "Hemoglobin 10.2 g/dL (low).") -> BoundaryResult[DocumentAnalysisOutput]:
        return BoundaryResult.success(DocumentAnalysisOutput(summary=summary, disclaimer="Not medical advice."))

    return _make
