"""Services for running, proctoring and grading exams."""

from .bootstrap import bootstrap_store, default_paper
from .exam_session import ExamSession, SaveStatus, SessionManager, SessionState
from .proctoring import BrowserEvent, ProctoringMonitor, Signal, SignalBus
from .scoring import ScoringService

__all__ = [
    "bootstrap_store",
    "default_paper",
    "ExamSession",
    "SaveStatus",
    "SessionManager",
    "SessionState",
    "BrowserEvent",
    "ProctoringMonitor",
    "Signal",
    "SignalBus",
    "ScoringService",
]
