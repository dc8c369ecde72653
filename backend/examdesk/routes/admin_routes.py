"""
Admin routes.

Endpoints:
- POST /api/admin/login
- GET/POST /api/admin/papers, GET/PUT /api/admin/papers/{paper_id}
- GET/POST /api/admin/assignments
- GET /api/admin/candidates, GET/DELETE /api/admin/candidates/{candidate_id}
- POST /api/admin/candidates/{candidate_id}/evaluate
"""

import logging
import secrets
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, EmailStr

from ..config.settings import settings
from ..models import Question, QuestionPaper, SubmissionStatus
from ..services.exam_session import SessionManager
from ..services.scoring import ScoringService
from ..store import ExamStore
from ..utils import format_percentage, normalize_email

logger = logging.getLogger(__name__)


class AdminLogin(BaseModel):
    password: str


class PaperCreate(BaseModel):
    id: Optional[str] = None
    title: str
    description: str = ""
    questions: List[Question] = []
    duration: int = 60


class AssignmentCreate(BaseModel):
    email: EmailStr
    paper_id: str


def _password_matches(candidate: Optional[str]) -> bool:
    if not settings.ADMIN_PASSWORD or not candidate:
        return False
    return secrets.compare_digest(candidate, settings.ADMIN_PASSWORD)


async def require_admin(x_admin_token: Optional[str] = Header(None)):
    if not _password_matches(x_admin_token):
        raise HTTPException(status_code=401, detail="Invalid admin credentials")


def _validate_paper(paper: PaperCreate):
    if paper.duration <= 0:
        raise HTTPException(status_code=400, detail="Duration must be positive")
    ids = [q.id for q in paper.questions]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=400, detail="Question ids must be unique within a paper")


def create_admin_routes(
    store: ExamStore, scorer: ScoringService, sessions: SessionManager
) -> APIRouter:
    """Create admin console routes."""

    router = APIRouter(prefix="/api/admin", tags=["admin"])
    guarded = [Depends(require_admin)]

    @router.post("/login")
    async def login(request: AdminLogin):
        if not _password_matches(request.password):
            raise HTTPException(status_code=401, detail="Invalid password")
        return {"ok": True}

    # ============ PAPERS ============

    @router.get("/papers", dependencies=guarded)
    async def list_papers():
        papers = await store.get_all_papers()
        return [p.model_dump(mode="json") for p in papers]

    @router.get("/papers/{paper_id}", dependencies=guarded)
    async def get_paper(paper_id: str):
        paper = await store.get_paper(paper_id)
        if paper is None:
            raise HTTPException(status_code=404, detail="Paper not found")
        return paper.model_dump(mode="json")

    @router.post("/papers", dependencies=guarded)
    async def create_paper(request: PaperCreate):
        try:
            _validate_paper(request)
            paper_id = request.id or str(uuid.uuid4())
            if await store.get_paper(paper_id) is not None:
                raise HTTPException(status_code=409, detail="Paper already exists")

            paper = QuestionPaper(
                id=paper_id,
                title=request.title,
                description=request.description,
                questions=request.questions,
                duration=request.duration,
            )
            if not await store.create_question_paper(paper):
                raise HTTPException(status_code=500, detail="Failed to save paper")

            logger.info(f"✅ Paper created: {paper.id} ({len(paper.questions)} questions)")
            return paper.model_dump(mode="json")

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.put("/papers/{paper_id}", dependencies=guarded)
    async def update_paper(paper_id: str, request: PaperCreate):
        try:
            _validate_paper(request)
            existing = await store.get_paper(paper_id)
            if existing is None:
                raise HTTPException(status_code=404, detail="Paper not found")

            paper = QuestionPaper(
                id=paper_id,
                title=request.title,
                description=request.description,
                questions=request.questions,
                duration=request.duration,
                created_at=existing.created_at,
            )
            if not await store.update_question_paper(paper):
                raise HTTPException(status_code=500, detail="Failed to save paper")
            return paper.model_dump(mode="json")

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    # ============ ASSIGNMENTS ============

    @router.get("/assignments", dependencies=guarded)
    async def list_assignments():
        assignments = await store.get_all_assignments()
        return [a.model_dump(mode="json") for a in assignments]

    @router.post("/assignments", dependencies=guarded)
    async def assign_exam(request: AssignmentCreate):
        if await store.get_paper(request.paper_id) is None:
            raise HTTPException(status_code=404, detail="Paper not found")

        assignment = await store.assign_exam(
            normalize_email(request.email), request.paper_id, assigned_by="admin"
        )
        logger.info(f"📋 Assigned {assignment.paper_id} to {assignment.email}")
        return assignment.model_dump(mode="json")

    # ============ CANDIDATES ============

    @router.get("/candidates", dependencies=guarded)
    async def list_candidates():
        """Candidates joined with their submission summary."""
        candidates = await store.get_all_candidates()
        submissions = {s.candidate_id: s for s in await store.get_all_submissions()}

        rows = []
        for candidate in candidates:
            submission = submissions.get(candidate.id)
            row = {
                "candidate": candidate.model_dump(mode="json"),
                "status": None,
                "violations": 0,
                "total_score": None,
                "max_score": None,
                "percentage": None,
                "pass_fail": None,
            }
            if submission is not None:
                row["status"] = submission.status.value
                row["violations"] = len(submission.proctor_logs)
                evaluation = submission.ai_evaluation
                if evaluation is not None:
                    row["total_score"] = evaluation.total_score
                    row["max_score"] = evaluation.max_score
                    row["percentage"] = format_percentage(
                        evaluation.total_score, evaluation.max_score
                    )
                    row["pass_fail"] = evaluation.pass_fail.value
            rows.append(row)
        return rows

    @router.get("/candidates/{candidate_id}", dependencies=guarded)
    async def get_candidate(candidate_id: str):
        candidate = await store.get_candidate(candidate_id)
        if candidate is None:
            raise HTTPException(status_code=404, detail="Candidate not found")

        submission = await store.get_submission(candidate_id)
        return {
            "candidate": candidate.model_dump(mode="json"),
            "submission": submission.model_dump(mode="json") if submission else None,
        }

    @router.delete("/candidates/{candidate_id}", dependencies=guarded)
    async def delete_candidate(candidate_id: str):
        """Delete a candidate with their submission and assignment."""
        await sessions.leave(candidate_id)
        if not await store.delete_candidate(candidate_id):
            raise HTTPException(status_code=404, detail="Candidate not found")
        logger.info(f"🗑️  Candidate deleted: {candidate_id}")
        return {"deleted": candidate_id}

    @router.post("/candidates/{candidate_id}/evaluate", dependencies=guarded)
    async def evaluate_candidate(candidate_id: str):
        """Re-run scoring on the stored answers."""
        try:
            submission = await store.get_submission(candidate_id)
            if submission is None:
                raise HTTPException(status_code=404, detail="Submission not found")
            if submission.status == SubmissionStatus.IN_PROGRESS:
                raise HTTPException(status_code=409, detail="Exam is still in progress")

            questions = submission.paper_snapshot
            if not questions:
                paper = await store.get_paper(submission.paper_id)
                if paper is None:
                    raise HTTPException(status_code=404, detail="Paper not found")
                questions = paper.questions

            outcome = await scorer.evaluate_exam(questions, submission.answers)
            saved = False
            if outcome.ok:
                saved = await store.save_evaluation(candidate_id, outcome.result)

            return {
                "saved": saved,
                "error": outcome.error,
                "evaluation": outcome.result.model_dump(mode="json"),
            }

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
