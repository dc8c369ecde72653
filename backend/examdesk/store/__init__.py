"""Record store for candidates, question papers, assignments and submissions."""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional

from pydantic import TypeAdapter

from ..config.settings import settings
from ..models import (
    Candidate,
    EvaluationResult,
    ExamAssignment,
    ExamSubmission,
    ProctorLog,
    Question,
    QuestionPaper,
    RegistrationResult,
    RegistrationStatus,
    SubmissionStatus,
)
from ..utils import normalize_email, now_ms
from .backends import MemoryStorage, MongoStorage, StorageBackend

logger = logging.getLogger(__name__)

REJECT_NO_ASSIGNMENT = "no exam assigned"
REJECT_ALREADY_SUBMITTED = "already submitted"


class ExamStore:
    """
    Whole-record storage over an injected key-value backend.

    Each collection is kept as one JSON list. Reads that fail degrade to an
    empty collection and writes that fail are dropped; both are logged and
    never raised. Mutating methods report success as a bool.
    """

    CANDIDATES = "candidates"
    SUBMISSIONS = "submissions"
    PAPERS = "papers"
    ASSIGNMENTS = "assignments"

    _ADAPTERS = {
        CANDIDATES: TypeAdapter(List[Candidate]),
        SUBMISSIONS: TypeAdapter(List[ExamSubmission]),
        PAPERS: TypeAdapter(List[QuestionPaper]),
        ASSIGNMENTS: TypeAdapter(List[ExamAssignment]),
    }

    def __init__(
        self,
        storage: StorageBackend,
        prefix: str = settings.STORAGE_KEY_PREFIX,
        latency_ms: int = settings.STORE_LATENCY_MS,
        test_email: str = settings.TEST_CANDIDATE_EMAIL,
    ):
        self.storage = storage
        self.prefix = prefix
        self.latency = latency_ms / 1000
        self.test_email = normalize_email(test_email)
        # Serializes read-modify-write cycles within one event loop
        self._lock = asyncio.Lock()

    def _key(self, kind: str) -> str:
        return f"{self.prefix}_{kind}"

    async def _delay(self):
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    async def _get_list(self, kind: str) -> list:
        try:
            raw = await self.storage.get(self._key(kind))
            if not raw:
                return []
            return self._ADAPTERS[kind].validate_json(raw)
        except Exception as e:
            logger.error(f"Store read error ({kind}): {e}")
            return []

    async def _save_list(self, kind: str, items: list) -> bool:
        try:
            raw = self._ADAPTERS[kind].dump_json(items).decode("utf-8")
            await self.storage.set(self._key(kind), raw)
            return True
        except Exception as e:
            logger.error(f"Store write error ({kind}): {e}")
            return False

    # ============ CANDIDATES ============

    async def register_candidate(self, candidate: Candidate) -> RegistrationResult:
        """
        Resolve a registration against the candidate's assignment.

        An existing record for the same email is resumed while it has no
        submission or its submission is still in progress. Once every prior
        attempt is finalized the email is rejected, except for the test
        identity which gets a fresh attempt record.
        """
        await self._delay()
        email = normalize_email(candidate.email)

        async with self._lock:
            assignment = await self._find_assignment(email)
            if assignment is None:
                logger.info(f"Registration rejected for {email}: no assignment")
                return RegistrationResult(
                    status=RegistrationStatus.REJECTED, error=REJECT_NO_ASSIGNMENT
                )

            candidates: List[Candidate] = await self._get_list(self.CANDIDATES)
            submissions = {
                s.candidate_id: s for s in await self._get_list(self.SUBMISSIONS)
            }
            prior = [c for c in candidates if normalize_email(c.email) == email]

            for existing in prior:
                submission = submissions.get(existing.id)
                if submission is not None and submission.status != SubmissionStatus.IN_PROGRESS:
                    continue

                existing.full_name = candidate.full_name
                existing.current_company = candidate.current_company
                existing.current_salary = candidate.current_salary
                existing.notice_period = candidate.notice_period
                if submission is None:
                    existing.assigned_paper_id = assignment.paper_id
                await self._save_list(self.CANDIDATES, candidates)
                logger.info(f"Resumed candidate {existing.id} ({email})")
                return RegistrationResult(
                    status=RegistrationStatus.RESUMED, candidate=existing
                )

            if prior and email != self.test_email:
                logger.info(f"Registration rejected for {email}: already submitted")
                return RegistrationResult(
                    status=RegistrationStatus.REJECTED, error=REJECT_ALREADY_SUBMITTED
                )

            new_id = candidate.id
            if not new_id or any(c.id == new_id for c in candidates):
                new_id = str(uuid.uuid4())

            created = candidate.model_copy(update={
                "id": new_id,
                "email": email,
                "assigned_paper_id": assignment.paper_id,
            })
            candidates.append(created)
            await self._save_list(self.CANDIDATES, candidates)
            logger.info(f"Created candidate {created.id} ({email}) for paper {assignment.paper_id}")
            return RegistrationResult(status=RegistrationStatus.CREATED, candidate=created)

    async def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        await self._delay()
        candidates = await self._get_list(self.CANDIDATES)
        return next((c for c in candidates if c.id == candidate_id), None)

    async def get_all_candidates(self) -> List[Candidate]:
        await self._delay()
        return await self._get_list(self.CANDIDATES)

    async def delete_candidate(self, candidate_id: str) -> bool:
        """Remove the candidate, its submission and the assignment for its email."""
        await self._delay()
        async with self._lock:
            candidates: List[Candidate] = await self._get_list(self.CANDIDATES)
            target = next((c for c in candidates if c.id == candidate_id), None)
            if target is None:
                return False

            email = normalize_email(target.email)
            submissions = await self._get_list(self.SUBMISSIONS)
            assignments = await self._get_list(self.ASSIGNMENTS)

            ok = await self._save_list(
                self.CANDIDATES, [c for c in candidates if c.id != candidate_id]
            )
            ok &= await self._save_list(
                self.SUBMISSIONS, [s for s in submissions if s.candidate_id != candidate_id]
            )
            ok &= await self._save_list(
                self.ASSIGNMENTS, [a for a in assignments if a.email != email]
            )
            logger.info(f"Deleted candidate {candidate_id} and reset {email}")
            return ok

    # ============ QUESTION PAPERS ============

    async def create_question_paper(self, paper: QuestionPaper) -> bool:
        await self._delay()
        async with self._lock:
            papers = await self._get_list(self.PAPERS)
            papers.append(paper)
            return await self._save_list(self.PAPERS, papers)

    async def update_question_paper(self, paper: QuestionPaper) -> bool:
        """Replace the paper with the same id. False when it does not exist."""
        await self._delay()
        async with self._lock:
            papers: List[QuestionPaper] = await self._get_list(self.PAPERS)
            for idx, existing in enumerate(papers):
                if existing.id == paper.id:
                    papers[idx] = paper
                    return await self._save_list(self.PAPERS, papers)
            return False

    async def get_all_papers(self) -> List[QuestionPaper]:
        await self._delay()
        return await self._get_list(self.PAPERS)

    async def get_paper(self, paper_id: str) -> Optional[QuestionPaper]:
        await self._delay()
        papers = await self._get_list(self.PAPERS)
        return next((p for p in papers if p.id == paper_id), None)

    # ============ ASSIGNMENTS ============

    async def _find_assignment(self, email: str) -> Optional[ExamAssignment]:
        assignments = await self._get_list(self.ASSIGNMENTS)
        return next((a for a in assignments if a.email == email), None)

    async def assign_exam(
        self, email: str, paper_id: str, assigned_by: str = "admin"
    ) -> ExamAssignment:
        """Upsert by email: a new assignment supersedes the previous one."""
        await self._delay()
        assignment = ExamAssignment(
            id=str(uuid.uuid4()),
            email=email,
            paper_id=paper_id,
            assigned_by=assigned_by,
        )
        async with self._lock:
            assignments = await self._get_list(self.ASSIGNMENTS)
            assignments = [a for a in assignments if a.email != assignment.email]
            assignments.append(assignment)
            await self._save_list(self.ASSIGNMENTS, assignments)
        return assignment

    async def get_assignment(self, email: str) -> Optional[ExamAssignment]:
        await self._delay()
        return await self._find_assignment(normalize_email(email))

    async def get_all_assignments(self) -> List[ExamAssignment]:
        await self._delay()
        return await self._get_list(self.ASSIGNMENTS)

    # ============ SUBMISSIONS ============

    async def init_submission(
        self,
        candidate_id: str,
        paper_id: str,
        questions: Optional[List[Question]] = None,
    ) -> ExamSubmission:
        """Fetch the candidate's submission, creating it on first call."""
        async with self._lock:
            submissions: List[ExamSubmission] = await self._get_list(self.SUBMISSIONS)
            existing = next((s for s in submissions if s.candidate_id == candidate_id), None)
            if existing is not None:
                return existing

            submission = ExamSubmission(
                candidate_id=candidate_id,
                paper_id=paper_id,
                start_time=now_ms(),
                paper_snapshot=list(questions or []),
            )
            submissions.append(submission)
            await self._save_list(self.SUBMISSIONS, submissions)
            logger.info(f"Started submission for candidate {candidate_id} on paper {paper_id}")
            return submission

    async def get_submission(self, candidate_id: str) -> Optional[ExamSubmission]:
        await self._delay()
        submissions = await self._get_list(self.SUBMISSIONS)
        return next((s for s in submissions if s.candidate_id == candidate_id), None)

    async def get_all_submissions(self) -> List[ExamSubmission]:
        await self._delay()
        return await self._get_list(self.SUBMISSIONS)

    async def save_draft(
        self,
        candidate_id: str,
        answers: Dict[str, str],
        logs: List[ProctorLog],
    ) -> bool:
        """Overwrite answers and proctor logs of an in-progress submission."""
        async with self._lock:
            submissions: List[ExamSubmission] = await self._get_list(self.SUBMISSIONS)
            for submission in submissions:
                if submission.candidate_id != candidate_id:
                    continue
                if submission.status != SubmissionStatus.IN_PROGRESS:
                    logger.warning(f"Ignoring draft for finalized submission {candidate_id}")
                    return False
                submission.answers = dict(answers)
                submission.proctor_logs = list(logs)
                return await self._save_list(self.SUBMISSIONS, submissions)
            return False

    async def submit_exam(self, candidate_id: str) -> bool:
        """Move IN_PROGRESS to SUBMITTED and stamp end_time. Runs once."""
        await self._delay()
        async with self._lock:
            submissions: List[ExamSubmission] = await self._get_list(self.SUBMISSIONS)
            for submission in submissions:
                if submission.candidate_id != candidate_id:
                    continue
                if submission.status != SubmissionStatus.IN_PROGRESS:
                    return False
                submission.status = SubmissionStatus.SUBMITTED
                submission.end_time = now_ms()
                return await self._save_list(self.SUBMISSIONS, submissions)
            return False

    async def save_evaluation(self, candidate_id: str, result: EvaluationResult) -> bool:
        """Attach an evaluation and mark GRADED. Re-evaluation overwrites."""
        async with self._lock:
            submissions: List[ExamSubmission] = await self._get_list(self.SUBMISSIONS)
            for submission in submissions:
                if submission.candidate_id != candidate_id:
                    continue
                if submission.status == SubmissionStatus.IN_PROGRESS:
                    logger.warning(f"Refusing to grade in-progress submission {candidate_id}")
                    return False
                submission.ai_evaluation = result
                submission.status = SubmissionStatus.GRADED
                return await self._save_list(self.SUBMISSIONS, submissions)
            return False


def build_storage(backend: str = settings.STORAGE_BACKEND) -> StorageBackend:
    """Create the storage backend named in settings."""
    if backend == "mongo":
        from motor.motor_asyncio import AsyncIOMotorClient

        client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            maxPoolSize=50,
            serverSelectionTimeoutMS=5000
        )
        return MongoStorage(client[settings.DATABASE_NAME])
    return MemoryStorage()


__all__ = [
    "ExamStore",
    "StorageBackend",
    "MemoryStorage",
    "MongoStorage",
    "build_storage",
    "REJECT_NO_ASSIGNMENT",
    "REJECT_ALREADY_SUBMITTED",
]
