"""Record models using Pydantic for validation."""

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config.settings import settings
from ..utils import now_ms


class SubmissionStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    GRADED = "GRADED"


class ProctorEventType(str, Enum):
    TAB_SWITCH = "TAB_SWITCH"
    LOST_FOCUS = "LOST_FOCUS"
    COPY_ATTEMPT = "COPY_ATTEMPT"
    PASTE_ATTEMPT = "PASTE_ATTEMPT"
    CONTEXT_MENU = "CONTEXT_MENU"


class RegistrationStatus(str, Enum):
    CREATED = "CREATED"
    RESUMED = "RESUMED"
    REJECTED = "REJECTED"


class PassFail(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


# ============ CANDIDATE ============
class Candidate(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    full_name: str
    email: str
    current_company: str = ""
    current_salary: str = ""
    notice_period: str = ""
    registered_at: int = Field(default_factory=now_ms)
    assigned_paper_id: Optional[str] = None


# ============ QUESTION PAPER ============
class Question(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str  # unique within a paper
    section: str = ""
    title: str
    text: str
    ideal_answer_key: str = ""  # grading guidance, not a strict key
    code_type: Literal["text", "javascript"] = "text"
    marks: float = settings.DEFAULT_QUESTION_MARKS

    @field_validator("marks", mode="before")
    @classmethod
    def _default_marks(cls, value):
        return settings.DEFAULT_QUESTION_MARKS if value is None else value


class QuestionPaper(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    title: str
    description: str = ""
    questions: List[Question] = []
    duration: int = 60  # minutes
    created_at: int = Field(default_factory=now_ms)

    @property
    def max_score(self) -> float:
        return sum(q.marks for q in self.questions)


# ============ ASSIGNMENT ============
class ExamAssignment(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    email: str
    paper_id: str
    assigned_by: str = "admin"
    assigned_at: int = Field(default_factory=now_ms)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


# ============ EVALUATION ============
class QuestionEvaluation(BaseModel):
    score: float = 0
    feedback: str = "Could not evaluate"


class EvaluationResult(BaseModel):
    total_score: float
    max_score: float
    summary: str
    pass_fail: PassFail
    question_evaluations: Dict[str, QuestionEvaluation] = {}


class ScoringOutcome(BaseModel):
    """One scoring pass: a real grade (ok) or the zero-score fallback."""
    result: EvaluationResult
    ok: bool
    error: Optional[str] = None


# ============ SUBMISSION ============
class ProctorLog(BaseModel):
    timestamp: int
    type: ProctorEventType
    details: Optional[str] = None


class ExamSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore")
    candidate_id: str
    paper_id: str
    start_time: int
    end_time: Optional[int] = None
    answers: Dict[str, str] = {}
    proctor_logs: List[ProctorLog] = []
    status: SubmissionStatus = SubmissionStatus.IN_PROGRESS
    ai_evaluation: Optional[EvaluationResult] = None
    # Questions as they were when the attempt began
    paper_snapshot: List[Question] = []


# ============ REGISTRATION ============
class RegistrationResult(BaseModel):
    status: RegistrationStatus
    candidate: Optional[Candidate] = None
    error: Optional[str] = None
