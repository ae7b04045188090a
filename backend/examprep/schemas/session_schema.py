from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, Generic, List, Optional, TypeVar
from datetime import datetime
from uuid import UUID

T = TypeVar("T")


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(CamelModel, Generic[T]):
    success: bool = True
    data: T


class AckResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


# requests

class SessionCreateRequest(CamelModel):
    test_id: int


class AnswerIn(CamelModel):
    question_id: int
    selected_option_id: Optional[int] = None
    answer_text: Optional[str] = None
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)


class AutosavePayload(CamelModel):
    answers: List[AnswerIn]


class SessionEventPayload(CamelModel):
    type: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


# responses

class OptionOut(CamelModel):
    option_id: int
    text: str


class MediaOut(CamelModel):
    media_id: int
    url: str
    type: Optional[str] = None
    file_name: Optional[str] = None


class QuestionOut(CamelModel):
    test_question_id: int
    question_id: int
    order: int
    text: str
    type: str
    marks: float
    negative: float
    metadata: Dict[str, Any] = Field(default_factory=dict)
    options: List[OptionOut] = Field(default_factory=list)
    media: List[MediaOut] = Field(default_factory=list)


class TestSummary(CamelModel):
    test_id: int
    name: str
    duration_minutes: Optional[int] = None
    total_questions: Optional[int] = None
    total_marks: Optional[float] = None


class SessionCreateData(CamelModel):
    session_token: str
    attempt_id: int
    test: TestSummary
    questions: List[QuestionOut]


class SubmitResult(CamelModel):
    attempt_id: int
    score: float
    percentage: float
    correct: int
    incorrect: int
    unanswered: int
    total_possible: float
    is_passed: Optional[bool] = None


class SessionInfo(CamelModel):
    id: int
    session_start: datetime
    session_end: Optional[datetime] = None
    tab_switches: int = 0
    screenshot_count: int = 0
    violation_count: int = 0


class AttemptInfo(CamelModel):
    attempt_id: int
    test_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    submit_time: Optional[datetime] = None
    status: str


class SessionStatusData(CamelModel):
    session: SessionInfo
    attempt: AttemptInfo


class ProctoringCounters(CamelModel):
    tab_switches: int = 0
    screenshot_count: int = 0
    violation_count: int = 0


class ProctoringEventOut(CamelModel):
    id: int
    event_type: str
    severity: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class AttemptEventsData(CamelModel):
    attempt_id: int
    user_id: UUID
    counters: ProctoringCounters
    events: List[ProctoringEventOut]


class ExpireOverdueData(CamelModel):
    expired: List[int]
