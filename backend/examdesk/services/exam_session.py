"""
Exam session service - runs one candidate's timed, proctored attempt.

FLOW:
1. LOADING: resolve candidate -> assigned paper -> submission (created or resumed)
2. ACTIVE: one actor task owns answers and violation logs. Everything else
   talks to it through its mailbox:
   a. answer edits and proctoring violations (posted by the API / monitor)
   b. autosave ticks every AUTOSAVE_INTERVAL seconds
   c. timer ticks every TIMER_INTERVAL seconds
3. SUBMITTING: proctoring off, loops cancelled, then
   final persist -> mark SUBMITTED -> bounded scoring -> save evaluation
4. FINISHED: always reached, whatever failed on the way
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..config.settings import settings
from ..exceptions import ExamConfigurationError
from ..models import (
    Candidate,
    EvaluationResult,
    ExamSubmission,
    ProctorEventType,
    ProctorLog,
    Question,
    QuestionPaper,
    SubmissionStatus,
)
from ..store import ExamStore
from ..utils import normalize_email, now_ms
from .proctoring import ProctoringMonitor, SignalBus
from .scoring import ScoringService

logger = logging.getLogger(__name__)

# Extra wait on top of the scoring timeout before giving up on the scorer itself
SCORING_GRACE_SECONDS = 1.0


class SessionState(str, Enum):
    LOADING = "LOADING"
    ACTIVE = "ACTIVE"
    SUBMITTING = "SUBMITTING"
    FINISHED = "FINISHED"


class SaveStatus(str, Enum):
    SAVED = "saved"
    SAVING = "saving"
    ERROR = "error"


# ============ MAILBOX MESSAGES ============

@dataclass
class AnswerEdited:
    question_id: str
    text: str


@dataclass
class ViolationDetected:
    log: ProctorLog


@dataclass
class AutosaveTick:
    reply: Optional[asyncio.Future] = None


@dataclass
class SaveFinished:
    ok: bool
    reply: Optional[asyncio.Future] = None


@dataclass
class TimerTick:
    pass


@dataclass
class SubmitRequested:
    reason: str


class ExamSession:
    """State machine for one exam attempt: LOADING -> ACTIVE -> SUBMITTING -> FINISHED."""

    def __init__(
        self,
        store: ExamStore,
        scorer: ScoringService,
        candidate_id: str,
        bus: Optional[SignalBus] = None,
        on_finish: Optional[Callable[["ExamSession"], None]] = None,
        autosave_interval: float = settings.AUTOSAVE_INTERVAL,
        timer_interval: float = settings.TIMER_INTERVAL,
        scoring_timeout: float = settings.SCORING_TIMEOUT,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.scorer = scorer
        self.candidate_id = candidate_id
        self.bus = bus or SignalBus()
        self.on_finish = on_finish
        self.autosave_interval = autosave_interval
        self.timer_interval = timer_interval
        self.scoring_timeout = scoring_timeout
        self.clock = clock

        self.state = SessionState.LOADING
        self.save_status = SaveStatus.SAVED
        self.time_remaining = 0  # seconds
        self.submit_reason: Optional[str] = None
        self.evaluation: Optional[EvaluationResult] = None
        self.closed = False
        self._submit_queued = False

        self.candidate: Optional[Candidate] = None
        self.paper: Optional[QuestionPaper] = None
        self.questions: List[Question] = []

        # Owned by the actor task once ACTIVE
        self._answers: Dict[str, str] = {}
        self._logs: List[ProctorLog] = []

        self.monitor = ProctoringMonitor(self.bus, self.report_violation, clock=clock)
        self._mailbox: asyncio.Queue = asyncio.Queue()
        self._finished = asyncio.Event()
        self._actor: Optional[asyncio.Task] = None
        self._loops: List[asyncio.Task] = []
        self._save_task: Optional[asyncio.Task] = None

    # ============ VIEWS ============

    @property
    def answers(self) -> Dict[str, str]:
        return dict(self._answers)

    @property
    def proctor_logs(self) -> List[ProctorLog]:
        return list(self._logs)

    @property
    def violation_count(self) -> int:
        return len(self._logs)

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def snapshot(self) -> dict:
        """Read-only view for the exam screen."""
        return {
            "candidate_id": self.candidate_id,
            "state": self.state.value,
            "save_status": self.save_status.value,
            "time_remaining": self.time_remaining,
            "answered": len([a for a in self._answers.values() if a.strip()]),
            "total_questions": len(self.questions),
            "violations": self.violation_count,
            "answers": self.answers,
            "submit_reason": self.submit_reason,
        }

    # ============ LOADING -> ACTIVE ============

    async def start(self) -> "ExamSession":
        """
        Load the candidate's paper and submission and go ACTIVE.

        Raises:
            ExamConfigurationError: Unknown candidate, no assigned paper,
                missing paper, or an attempt that is already finalized
        """
        if self.state != SessionState.LOADING:
            raise RuntimeError("Exam session already started")

        candidate = await self.store.get_candidate(self.candidate_id)
        if candidate is None:
            raise ExamConfigurationError("Candidate not found.")
        if not candidate.assigned_paper_id:
            raise ExamConfigurationError("Configuration Error: No exam paper assigned.")

        paper = await self.store.get_paper(candidate.assigned_paper_id)
        if paper is None:
            raise ExamConfigurationError("Configuration Error: Assigned exam paper not found.")

        submission = await self.store.init_submission(candidate.id, paper.id, paper.questions)
        if submission.status != SubmissionStatus.IN_PROGRESS:
            raise ExamConfigurationError("This exam has already been submitted.")

        self.candidate = candidate
        self.paper = paper
        self.questions = list(submission.paper_snapshot or paper.questions)
        self._logs = list(submission.proctor_logs)
        self._answers = self._initial_answers(candidate, submission)
        self.time_remaining = self._compute_time_remaining(paper, submission)

        self.state = SessionState.ACTIVE
        self._actor = asyncio.create_task(self._run())

        if self.time_remaining <= 0:
            logger.info(f"⏰ Time already expired for {self.candidate_id}, submitting")
            self._queue_submit("timeout")
        else:
            self.monitor.activate()
            self._loops = [
                asyncio.create_task(self._tick(self.autosave_interval, AutosaveTick)),
                asyncio.create_task(self._tick(self.timer_interval, TimerTick)),
            ]

        logger.info(
            f"✅ Exam session active for {self.candidate_id}: paper {paper.id}, "
            f"{self.time_remaining}s remaining"
        )
        return self

    def _initial_answers(self, candidate: Candidate, submission: ExamSubmission) -> Dict[str, str]:
        if submission.answers:
            return dict(submission.answers)
        # Test identity starts with the ideal answers for fast manual runs
        if normalize_email(candidate.email) == self.store.test_email:
            return {q.id: q.ideal_answer_key for q in self.questions}
        return {}

    def _compute_time_remaining(self, paper: QuestionPaper, submission: ExamSubmission) -> int:
        elapsed = (self.clock() - submission.start_time) // 1000
        return max(0, paper.duration * 60 - elapsed)

    # ============ INPUT (never blocks) ============

    def edit_answer(self, question_id: str, text: str) -> bool:
        """Queue an answer edit. False once the session stopped accepting input."""
        if question_id not in self.question_ids:
            raise ValueError(f"Unknown question '{question_id}'")
        if self.state != SessionState.ACTIVE or self.closed:
            return False
        self._post(AnswerEdited(question_id, text))
        return True

    def report_violation(self, log: ProctorLog):
        self._post(ViolationDetected(log))
        if log.type in (ProctorEventType.TAB_SWITCH, ProctorEventType.COPY_ATTEMPT):
            logger.warning(f"Proctoring: {log.type.value} detected for {self.candidate_id}")

    def request_submit(self, reason: str = "manual") -> bool:
        if self.state != SessionState.ACTIVE or self.closed:
            return False
        self._queue_submit(reason)
        return True

    async def autosave_now(self) -> bool:
        """Run an autosave tick now and wait for it. True when a save succeeded."""
        if self.state != SessionState.ACTIVE or self.closed:
            return False
        reply = asyncio.get_running_loop().create_future()
        self._post(AutosaveTick(reply))
        return await reply

    async def submit(self, timeout: Optional[float] = None) -> "ExamSession":
        """Request submission and wait until the session is FINISHED."""
        if self.state == SessionState.LOADING:
            raise RuntimeError("Exam session not started")
        if self.closed and not self.finished:
            raise RuntimeError("Exam session closed")
        self.request_submit("manual")
        await self.wait_finished(timeout)
        return self

    async def wait_finished(self, timeout: Optional[float] = None):
        """
        Wait for FINISHED.

        Raises:
            asyncio.TimeoutError: Not finished within timeout
            RuntimeError: The actor stopped without finishing (session torn down)
        """
        if self.finished:
            return
        waiter = asyncio.ensure_future(self._finished.wait())
        watched = [waiter] if self._actor is None else [waiter, self._actor]
        try:
            done, _ = await asyncio.wait(
                watched, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()

        if not self.finished:
            if not done:
                raise asyncio.TimeoutError()
            raise RuntimeError("Exam session closed before finishing")

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def _post(self, message):
        self._mailbox.put_nowait(message)

    def _queue_submit(self, reason: str):
        self._submit_queued = True
        self._post(SubmitRequested(reason))

    # ============ ACTOR ============

    async def _tick(self, interval: float, message_type):
        while True:
            await asyncio.sleep(interval)
            self._post(message_type())

    async def _run(self):
        try:
            while self.state != SessionState.FINISHED:
                message = await self._mailbox.get()
                try:
                    await self._dispatch(message)
                except Exception as e:
                    logger.error(f"Exam session {self.candidate_id} failed handling {message}: {e}")
        finally:
            self._drain()

    async def _dispatch(self, message):
        if isinstance(message, AnswerEdited):
            if self.state == SessionState.ACTIVE:
                self._answers[message.question_id] = message.text

        elif isinstance(message, ViolationDetected):
            if self.state == SessionState.ACTIVE:
                self._logs.append(message.log)

        elif isinstance(message, AutosaveTick):
            await self._autosave(message.reply)

        elif isinstance(message, SaveFinished):
            if self.state == SessionState.ACTIVE:
                self.save_status = SaveStatus.SAVED if message.ok else SaveStatus.ERROR
            _resolve(message.reply, message.ok)

        elif isinstance(message, TimerTick):
            if self.state == SessionState.ACTIVE:
                self.time_remaining = max(0, self.time_remaining - 1)
                if self.time_remaining == 0:
                    logger.info(f"⏰ Time up for {self.candidate_id}, auto-submitting")
                    await self._finalize("timeout")

        elif isinstance(message, SubmitRequested):
            if self.state == SessionState.ACTIVE:
                await self._finalize(message.reason)

    async def _autosave(self, reply: Optional[asyncio.Future]):
        if self.state != SessionState.ACTIVE or not self._answers:
            _resolve(reply, False)
            return

        # One save in flight at a time
        if self._save_task is not None and not self._save_task.done():
            await asyncio.wait([self._save_task])

        self.save_status = SaveStatus.SAVING
        self._save_task = asyncio.create_task(
            self._persist(dict(self._answers), list(self._logs), reply)
        )

    async def _persist(self, answers: Dict[str, str], logs: List[ProctorLog], reply=None) -> bool:
        try:
            ok = await self.store.save_draft(self.candidate_id, answers, logs)
        except Exception as e:
            logger.error(f"Auto-save failed for {self.candidate_id}: {e}")
            ok = False
        if self._actor is None or self._actor.done():
            _resolve(reply, ok)
        else:
            self._post(SaveFinished(ok, reply))
        return ok

    # ============ ACTIVE -> SUBMITTING -> FINISHED ============

    async def _finalize(self, reason: str):
        """Every step is guarded on its own; FINISHED is always reached."""
        self.state = SessionState.SUBMITTING
        self.submit_reason = reason
        self.monitor.deactivate()
        await self._stop_loops()
        logger.info(f"📝 Submitting exam for {self.candidate_id} ({reason})")

        if self._save_task is not None and not self._save_task.done():
            await asyncio.wait([self._save_task])

        answers = dict(self._answers)
        logs = list(self._logs)

        self.save_status = SaveStatus.SAVING
        try:
            saved = await self.store.save_draft(self.candidate_id, answers, logs)
            self.save_status = SaveStatus.SAVED if saved else SaveStatus.ERROR
        except Exception as e:
            logger.error(f"Final save failed for {self.candidate_id}: {e}")
            self.save_status = SaveStatus.ERROR

        try:
            await self.store.submit_exam(self.candidate_id)
        except Exception as e:
            logger.error(f"Marking submission failed for {self.candidate_id}: {e}")

        try:
            outcome = await asyncio.wait_for(
                self.scorer.evaluate_exam(self.questions, answers, timeout=self.scoring_timeout),
                timeout=self.scoring_timeout + SCORING_GRACE_SECONDS
            )
            if outcome.ok:
                await self.store.save_evaluation(self.candidate_id, outcome.result)
                self.evaluation = outcome.result
            else:
                logger.warning(
                    f"⚠️  Auto-grading skipped for {self.candidate_id}: {outcome.error}"
                )
        except asyncio.TimeoutError:
            logger.warning(f"⚠️  Auto-grading timed out for {self.candidate_id}")
        except Exception as e:
            logger.error(f"❌ Auto-grading failed for {self.candidate_id}: {e}")

        self.state = SessionState.FINISHED
        self._finished.set()
        logger.info(f"🏁 Exam finished for {self.candidate_id}")

        if self.on_finish is not None:
            try:
                self.on_finish(self)
            except Exception as e:
                logger.error(f"on_finish callback failed for {self.candidate_id}: {e}")

    async def _stop_loops(self):
        loops, self._loops = self._loops, []
        for task in loops:
            task.cancel()
        if loops:
            await asyncio.gather(*loops, return_exceptions=True)

    def _drain(self):
        """Answer anyone still waiting on a message the actor will not handle."""
        while not self._mailbox.empty():
            message = self._mailbox.get_nowait()
            if isinstance(message, (AutosaveTick, SaveFinished)):
                _resolve(message.reply, getattr(message, "ok", False))

    # ============ TEARDOWN ============

    async def close(self):
        """
        Tear the session down without submitting (the exam screen went away).

        A submission already queued or in progress runs to FINISHED first.
        """
        if self.closed:
            return
        self.closed = True
        self.monitor.deactivate()
        await self._stop_loops()

        if self._actor is not None and not self._actor.done():
            if self._submit_queued or self.state != SessionState.ACTIVE:
                await asyncio.gather(self._actor, return_exceptions=True)
            else:
                self._actor.cancel()
                await asyncio.gather(self._actor, return_exceptions=True)
                self._drain()
        logger.info(f"Exam session closed for {self.candidate_id} ({self.state.value})")


def _resolve(reply: Optional[asyncio.Future], value: bool):
    if reply is not None and not reply.done():
        reply.set_result(value)


class SessionManager:
    """Keeps one live ExamSession per candidate for the HTTP layer."""

    def __init__(self, store: ExamStore, scorer: ScoringService, **session_options):
        self.store = store
        self.scorer = scorer
        self.session_options = session_options
        self.sessions: Dict[str, ExamSession] = {}
        self._lock = asyncio.Lock()

    async def start(self, candidate_id: str) -> ExamSession:
        """
        Start a session, or rejoin the one already running for the candidate.

        Raises:
            ExamConfigurationError: From ExamSession.start
        """
        async with self._lock:
            existing = self.sessions.get(candidate_id)
            if existing is not None and not existing.closed and existing.state in (
                SessionState.ACTIVE, SessionState.SUBMITTING
            ):
                return existing

            session = ExamSession(
                self.store,
                self.scorer,
                candidate_id,
                **{**self.session_options, "on_finish": self._forget},
            )
            await session.start()
            if not session.finished:
                self.sessions[candidate_id] = session
            return session

    def _forget(self, session: ExamSession):
        """Finished sessions leave the registry; their record lives in the store."""
        if self.sessions.get(session.candidate_id) is session:
            del self.sessions[session.candidate_id]

    def get(self, candidate_id: str) -> Optional[ExamSession]:
        return self.sessions.get(candidate_id)

    async def leave(self, candidate_id: str) -> bool:
        session = self.sessions.pop(candidate_id, None)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self):
        for candidate_id in list(self.sessions):
            await self.leave(candidate_id)
