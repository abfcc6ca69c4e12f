"""
Pydantic models for the school recommender gateway.
Covers the form/transcript entities owned by the orchestrators, the provider
response contract, and the HTTP request/response bodies.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel

InstitutionType = Literal["University", "TVET College", "Private College"]
ChatRole = Literal["user", "model", "error"]
SubjectField = Literal["name", "mark"]
Percentage = Annotated[int, Field(ge=0, le=100)]


class _ProviderModel(BaseModel):
    """Immutable value object with camelCase wire names"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# === Form & request models ===

class SubjectEntry(BaseModel):
    """One subject row on the marks form. Addressed by id, never by position."""
    id: int = Field(..., description="Stable row identifier, unique within one form session")
    name: str = Field(default="", description="Subject name as typed")
    mark: str = Field(default="", description="Raw mark input, may be empty")
    error: Optional[str] = Field(default=None, description="Validation error for the mark")


class RecommendationRequest(BaseModel):
    """Derived request sent to the recommendation service for one submission"""
    model_config = ConfigDict(populate_by_name=True)

    subject_marks: Dict[str, Percentage] = Field(..., alias="subjectMarks", min_length=3)
    average_mark: Optional[Percentage] = Field(default=None, alias="averageMark")


# === Provider response contract ===

class Requirement(_ProviderModel):
    subject: str = Field(..., description="The required high school subject")
    minimum_mark: float = Field(..., alias="minimumMark", description="Minimum percentage for the subject")


class RecommendedCourse(_ProviderModel):
    course_name: str = Field(..., alias="courseName")
    aps_score: Optional[float] = Field(default=None, alias="apsScore", description="Minimum Admission Point Score")
    requirements: List[Requirement] = Field(..., min_length=1)


class SchoolRecommendation(_ProviderModel):
    """A tertiary institution suggested for the student's marks"""
    institution_name: str = Field(..., alias="institutionName")
    institution_type: InstitutionType = Field(..., alias="institutionType")
    website: str
    recommended_courses: List[RecommendedCourse] = Field(..., alias="recommendedCourses", min_length=1)


class RecommendationList(RootModel[List[SchoolRecommendation]]):
    """Ordered recommendation list exactly as returned by the provider"""


# === Chat models ===

class ChatMessage(BaseModel):
    """Single transcript entry. Frozen once appended."""
    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str


# === Orchestrator views ===

class OrchestratorState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


class ChatState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"


class SubmitOutcome(str, Enum):
    """Result of one submit() call"""
    SUCCESS = "success"
    INSUFFICIENT_DATA = "insufficient_data"
    INVALID_INPUT = "invalid_input"
    GATEWAY_FAILURE = "gateway_failure"
    BUSY = "busy"     # a submission was already in flight
    STALE = "stale"   # reset while in flight, result discarded


class RecommendationFormState(BaseModel):
    """Read-only snapshot of the recommendation orchestrator"""
    state: OrchestratorState
    subjects: List[SubjectEntry]
    average_mark: str = ""
    average_mark_error: Optional[str] = None
    recommendations: List[SchoolRecommendation] = []
    error: Optional[str] = None
    is_loading: bool = False


class ChatTranscript(BaseModel):
    state: ChatState
    messages: List[ChatMessage]
    is_loading: bool = False


class SessionSnapshot(BaseModel):
    session_id: str
    form: RecommendationFormState
    chat: ChatTranscript


# === HTTP bodies ===

class SubjectEditRequest(BaseModel):
    field: SubjectField
    value: str = Field(default="", max_length=200)


class AverageMarkRequest(BaseModel):
    value: str = Field(default="", max_length=20)


class ChatTurnRequest(BaseModel):
    message: str = Field(..., max_length=2000, description="User question for the counselor")


class SubmitResponse(BaseModel):
    success: bool
    outcome: SubmitOutcome
    form: RecommendationFormState


class ErrorDetail(BaseModel):
    """Error detail for API responses"""
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: Literal["healthy", "degraded", "unhealthy"]
    services: Dict[str, bool] = {}
    version: str = "1.0.0"
    timestamp: str
