"""
Candidate routes.

Endpoints:
- POST /api/candidates/register
- POST /api/exam/{candidate_id}/start
- GET /api/exam/{candidate_id}
- PUT /api/exam/{candidate_id}/answers/{question_id}
- POST /api/exam/{candidate_id}/signals
- POST /api/exam/{candidate_id}/submit
- POST /api/exam/{candidate_id}/leave
"""

import uuid

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, EmailStr

from ..exceptions import ExamConfigurationError
from ..models import Candidate
from ..services.exam_session import ExamSession, SessionManager
from ..services.proctoring import Signal
from ..store import ExamStore
from ..utils import validate_profile


class RegistrationRequest(BaseModel):
    full_name: str
    email: EmailStr
    current_company: str
    current_salary: str
    notice_period: str


class AnswerUpdate(BaseModel):
    text: str


class SignalReport(BaseModel):
    signal: Signal


def _exam_view(session: ExamSession) -> dict:
    """Session state plus the paper, without grading guidance."""
    view = session.snapshot()
    view["paper"] = {
        "id": session.paper.id,
        "title": session.paper.title,
        "description": session.paper.description,
        "duration": session.paper.duration,
    }
    view["questions"] = [
        q.model_dump(exclude={"ideal_answer_key"}) for q in session.questions
    ]
    return view


def create_candidate_routes(store: ExamStore, sessions: SessionManager) -> APIRouter:
    """Create candidate-facing routes over the store and live sessions."""

    router = APIRouter(prefix="/api", tags=["candidates"])

    def _session_or_404(candidate_id: str) -> ExamSession:
        session = sessions.get(candidate_id)
        if session is None:
            raise HTTPException(status_code=404, detail="No exam session for this candidate")
        return session

    @router.post("/candidates/register")
    async def register_candidate(request: RegistrationRequest):
        """Register, resume or reject a candidate against their assignment."""
        fields = request.model_dump()
        is_valid, msg = validate_profile(fields)
        if not is_valid:
            raise HTTPException(status_code=400, detail=msg)

        try:
            candidate = Candidate(id=str(uuid.uuid4()), **fields)
            result = await store.register_candidate(candidate)
            return result.model_dump(mode="json")
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/exam/{candidate_id}/start")
    async def start_exam(candidate_id: str):
        """Start the exam session, or rejoin the running one."""
        try:
            session = await sessions.start(candidate_id)
            return _exam_view(session)
        except ExamConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/exam/{candidate_id}")
    async def get_exam_state(candidate_id: str):
        return _session_or_404(candidate_id).snapshot()

    @router.put("/exam/{candidate_id}/answers/{question_id}")
    async def update_answer(candidate_id: str, question_id: str, update: AnswerUpdate):
        session = _session_or_404(candidate_id)
        try:
            accepted = session.edit_answer(question_id, update.text)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))

        if not accepted:
            raise HTTPException(status_code=409, detail="Exam is no longer accepting answers")
        return {"question_id": question_id, "accepted": True}

    @router.post("/exam/{candidate_id}/signals")
    async def report_signal(candidate_id: str, report: SignalReport):
        """Browser-level proctoring signal; tells the page whether to block it."""
        session = _session_or_404(candidate_id)
        event = session.bus.emit(report.signal)
        return {
            "signal": report.signal.value,
            "prevented": event.default_prevented,
            "monitored": session.monitor.is_active,
        }

    @router.post("/exam/{candidate_id}/submit")
    async def submit_exam(candidate_id: str):
        """Submit and wait for the session to finish (grading is time-boxed)."""
        session = _session_or_404(candidate_id)
        try:
            await session.submit()
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))

        return session.snapshot()

    @router.post("/exam/{candidate_id}/leave")
    async def leave_exam(candidate_id: str):
        """The exam screen went away: stop timers and monitoring, keep the draft."""
        left = await sessions.leave(candidate_id)
        if not left:
            raise HTTPException(status_code=404, detail="No exam session for this candidate")
        return {"candidate_id": candidate_id, "status": "closed"}

    return router
