from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


SENDERS = {"user", "ai", "system"}
INPUT_MODALITIES = {"typed", "spoken"}
DOCUMENT_TYPES = {"prescription", "lab_report"}
BOUNDARY_OUTCOMES = {"success", "failure", "malformed", "timeout"}

NON_HEALTH_QUERY_TEXT = (
    "I am a health assistant and can only help with health-related questions. "
    "For general knowledge questions, please use a search engine."
)
DOCUMENT_DISCLAIMER = (
    "This analysis is for informational purposes only and is not a substitute for professional medical "
    "advice, diagnosis, or treatment. Always seek the advice of your physician or other qualified health "
    "provider with any questions you may have regarding a medical condition. Never disregard professional "
    "medical advice or delay in seeking it because of something you have read or interpreted from this analysis."
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HistoryMessage(_WireModel):
    role: Literal["user", "assistant"]
    content: str


class DoctorPageRecommendation(_WireModel):
    intro_text: str = Field(default="", alias="introText")
    button_text: str = Field(default="", alias="buttonText")
    link_query: str | None = Field(default=None, alias="linkQuery")


class TriageRequest(_WireModel):
    symptoms: str
    language: str | None = None
    chat_history: list[HistoryMessage] = Field(default_factory=list, alias="chatHistory")


class TriageResult(_WireModel):
    potential_causes: str = Field(alias="potentialCauses")
    home_remedies: str = Field(default="", alias="homeRemedies")
    should_see_doctor: bool = Field(alias="shouldSeeDoctor")
    is_developer_info_response: bool = Field(default=False, alias="isDeveloperInfoResponse")
    is_listing_all_doctors_response: bool = Field(default=False, alias="isListingAllDoctorsResponse")
    doctor_page_recommendation: DoctorPageRecommendation | None = Field(
        default=None, alias="doctorPageRecommendation"
    )

    @field_validator("home_remedies", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_developer_info_response", "is_listing_all_doctors_response", mode="before")
    @classmethod
    def _none_as_false(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def is_non_health_refusal(self) -> bool:
        return self.potential_causes.strip().startswith("I am a health assistant")

    @property
    def is_informational(self) -> bool:
        return self.is_developer_info_response or self.is_non_health_refusal


class DocumentAnalysisRequest(_WireModel):
    document_data_uri: str | None = Field(default=None, alias="documentDataUri")
    document_text: str | None = Field(default=None, alias="documentText")
    document_type: Literal["prescription", "lab_report"] = Field(alias="documentType")
    language: str | None = None

    @model_validator(mode="after")
    def _exactly_one_content_field(self) -> "DocumentAnalysisRequest":
        has_image = bool((self.document_data_uri or "").strip())
        has_text = bool((self.document_text or "").strip())
        if has_image == has_text:
            raise ValueError("Exactly one of documentDataUri or documentText must be provided.")
        return self


class DocumentAnalysisOutput(_WireModel):
    summary: str
    disclaimer: str = ""


@dataclass(frozen=True)
class DocumentAnalysisResult:
    analysis_type: str
    summary: str
    disclaimer: str

    def as_dict(self) -> dict[str, Any]:
        return {"analysis_type": self.analysis_type, "summary": self.summary, "disclaimer": self.disclaimer}


T = TypeVar("T")


@dataclass(frozen=True)
class BoundaryResult(Generic[T]):
    outcome: str
    value: T | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.outcome not in BOUNDARY_OUTCOMES:
            raise ValueError(f"Unknown boundary outcome: {self.outcome}")
        if self.outcome == "success" and self.value is None:
            raise ValueError("A successful boundary result needs a value.")

    @property
    def ok(self) -> bool:
        return self.outcome == "success"

    @classmethod
    def success(cls, value: T) -> "BoundaryResult[T]":
        return cls(outcome="success", value=value)

    @classmethod
    def failure(cls, error: str) -> "BoundaryResult[T]":
        return cls(outcome="failure", error=error)

    @classmethod
    def malformed(cls, error: str) -> "BoundaryResult[T]":
        return cls(outcome="malformed", error=error)

    @classmethod
    def timeout(cls, error: str = "LLM provider timed out.") -> "BoundaryResult[T]":
        return cls(outcome="timeout", error=error)


@dataclass
class ConversationTurn:
    turn_id: str
    sender: str
    text: str = ""
    input_modality: str = "typed"
    timestamp: datetime = field(default_factory=utc_now)
    is_pending: bool = False
    is_error: bool = False
    triage_result: TriageResult | None = None
    analysis_result: DocumentAnalysisResult | None = None
    history_window: list[HistoryMessage] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.turn_id,
            "sender": self.sender,
            "text": self.text,
            "input_modality": self.input_modality,
            "timestamp": self.timestamp.isoformat(),
            "is_pending": self.is_pending,
            "is_error": self.is_error,
            "triage_result": self.triage_result.model_dump() if self.triage_result else None,
            "analysis_result": self.analysis_result.as_dict() if self.analysis_result else None,
        }
