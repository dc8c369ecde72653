import asyncio

import pytest
from conftest import TEST_EMAIL, FakeGeminiClient, build_candidate, scoring_reply

from examdesk.exceptions import ExamConfigurationError
from examdesk.models import ProctorEventType, SubmissionStatus
from examdesk.services import (
    ExamSession,
    SaveStatus,
    ScoringService,
    SessionManager,
    SessionState,
    Signal,
)
from examdesk.store import MemoryStorage
from examdesk.utils import now_ms

# Long intervals so background ticks stay out of the way unless a test wants them
QUIET = {"autosave_interval": 60, "timer_interval": 60}


class SlowScoringService(ScoringService):
    async def score(self, questions, answers):
        await asyncio.sleep(30)


class FlakyStorage(MemoryStorage):
    """Writes fail while `failing` is set."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.failing = False

    async def set(self, key, value):
        if self.failing:
            raise ConnectionError("storage unavailable")
        await super().set(key, value)


@pytest.fixture
def scorer():
    return ScoringService(api_key="", client=FakeGeminiClient(reply=scoring_reply({"q1": 9, "q2": 4})))


def test_start_creates_submission_and_activates(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        assert session.state == SessionState.ACTIVE
        assert session.monitor.is_active
        assert session.question_ids == ["q1", "q2"]
        assert 0 < session.time_remaining <= 30 * 60

        submission = await store.get_submission(candidate.id)
        assert submission.status == SubmissionStatus.IN_PROGRESS
        assert [q.id for q in submission.paper_snapshot] == ["q1", "q2"]

        await session.close()
        assert not session.monitor.is_active

    asyncio.run(main())


def test_start_errors_are_configuration_errors(store, enroll, scorer, paper):
    async def main():
        with pytest.raises(ExamConfigurationError):
            await ExamSession(store, scorer, "missing").start()

        candidate = await enroll()
        await store.init_submission(candidate.id, paper.id, paper.questions)
        await store.submit_exam(candidate.id)
        with pytest.raises(ExamConfigurationError):
            await ExamSession(store, scorer, candidate.id).start()

    asyncio.run(main())


def test_start_without_paper_is_configuration_error(store, scorer):
    async def main():
        await store.assign_exam("lee@example.com", "deleted-paper")
        result = await store.register_candidate(build_candidate(email="lee@example.com"))

        with pytest.raises(ExamConfigurationError, match="not found"):
            await ExamSession(store, scorer, result.candidate.id).start()

    asyncio.run(main())


def test_autosave_persists_latest_answers(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        assert session.edit_answer("q1", "draft one")
        assert session.edit_answer("q1", "draft two")
        assert session.edit_answer("q2", "const [n, setN] = useState(0);")
        assert await session.autosave_now()

        assert session.save_status == SaveStatus.SAVED
        submission = await store.get_submission(candidate.id)
        assert submission.answers == {
            "q1": "draft two",
            "q2": "const [n, setN] = useState(0);",
        }
        await session.close()

    asyncio.run(main())


def test_autosave_skips_when_nothing_answered(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        assert not await session.autosave_now()
        assert (await store.get_submission(candidate.id)).answers == {}
        await session.close()

    asyncio.run(main())


def test_periodic_autosave(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(
            store, scorer, candidate.id, autosave_interval=0.02, timer_interval=60
        ).start()
        session.edit_answer("q1", "typed between ticks")

        for _ in range(100):
            await asyncio.sleep(0.02)
            if (await store.get_submission(candidate.id)).answers:
                break

        assert (await store.get_submission(candidate.id)).answers == {"q1": "typed between ticks"}
        await session.close()

    asyncio.run(main())


def test_edit_unknown_question_is_rejected(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        with pytest.raises(ValueError):
            session.edit_answer("q99", "text")
        await session.close()

    asyncio.run(main())


def test_violations_are_logged_in_order(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        session.bus.emit(Signal.VISIBILITY_HIDDEN)
        copy_event = session.bus.emit(Signal.COPY)
        session.edit_answer("q1", "answer")
        assert await session.autosave_now()

        assert copy_event.default_prevented
        assert session.violation_count == 2
        logs = (await store.get_submission(candidate.id)).proctor_logs
        assert [log.type for log in logs] == [
            ProctorEventType.TAB_SWITCH,
            ProctorEventType.COPY_ATTEMPT,
        ]
        assert logs[0].timestamp <= logs[1].timestamp
        await session.close()

    asyncio.run(main())


def test_submit_scores_and_finishes(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()
        session.edit_answer("q1", "Runs after render")
        session.bus.emit(Signal.WINDOW_BLUR)

        await session.submit(timeout=5)

        assert session.state == SessionState.FINISHED
        assert session.submit_reason == "manual"
        assert session.evaluation.total_score == 13

        submission = await store.get_submission(candidate.id)
        assert submission.status == SubmissionStatus.GRADED
        assert submission.end_time is not None
        assert submission.answers == {"q1": "Runs after render"}
        assert [log.type for log in submission.proctor_logs] == [ProctorEventType.LOST_FOCUS]
        assert submission.ai_evaluation.max_score == 15

    asyncio.run(main())


def test_no_input_accepted_after_submit(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()
        session.edit_answer("q1", "final")
        await session.submit(timeout=5)

        assert not session.monitor.is_active
        assert session.bus.subscriber_count() == 0
        assert not session.bus.emit(Signal.COPY).default_prevented
        assert not session.edit_answer("q1", "too late")
        assert not session.request_submit()
        assert not await session.autosave_now()

        submission = await store.get_submission(candidate.id)
        assert submission.answers == {"q1": "final"}
        assert submission.proctor_logs == []

    asyncio.run(main())


def test_timer_expiry_submits_automatically(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        await store.update_question_paper(
            (await store.get_paper(candidate.assigned_paper_id)).model_copy(update={"duration": 1})
        )
        # Submission starts now; pretend 58s of the 60s budget are gone
        session = ExamSession(
            store, scorer, candidate.id,
            autosave_interval=60,
            timer_interval=0.01,
            clock=lambda: now_ms() + 58_000,
        )
        await session.start()
        assert session.time_remaining <= 2

        await session.wait_finished(timeout=5)

        assert session.state == SessionState.FINISHED
        assert session.submit_reason == "timeout"
        assert session.time_remaining == 0
        assert (await store.get_submission(candidate.id)).status == SubmissionStatus.GRADED

    asyncio.run(main())


def test_expired_attempt_submits_on_start(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = ExamSession(
            store, scorer, candidate.id, clock=lambda: now_ms() + 31 * 60 * 1000, **QUIET
        )
        await session.start()

        assert session.time_remaining == 0
        assert not session.monitor.is_active
        await session.wait_finished(timeout=5)
        assert session.submit_reason == "timeout"

    asyncio.run(main())


def test_scoring_timeout_still_finishes(store, enroll):
    async def main():
        candidate = await enroll()
        scorer = SlowScoringService(api_key="", client=FakeGeminiClient())
        session = await ExamSession(
            store, scorer, candidate.id, scoring_timeout=0.05, **QUIET
        ).start()
        session.edit_answer("q2", "code")

        await session.submit(timeout=5)

        assert session.state == SessionState.FINISHED
        assert session.evaluation is None
        submission = await store.get_submission(candidate.id)
        assert submission.status == SubmissionStatus.SUBMITTED
        assert submission.ai_evaluation is None
        assert submission.answers == {"q2": "code"}

    asyncio.run(main())


def test_missing_api_key_leaves_submission_ungraded(store, enroll):
    async def main():
        candidate = await enroll()
        session = await ExamSession(
            store, ScoringService(api_key=""), candidate.id, **QUIET
        ).start()

        await session.submit(timeout=5)

        submission = await store.get_submission(candidate.id)
        assert session.state == SessionState.FINISHED
        assert submission.status == SubmissionStatus.SUBMITTED
        assert submission.ai_evaluation is None

    asyncio.run(main())


def test_resumed_session_keeps_answers_and_clock(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        first = await ExamSession(store, scorer, candidate.id, **QUIET).start()
        first.edit_answer("q1", "half written")
        first.bus.emit(Signal.PASTE)
        assert await first.autosave_now()
        started = (await store.get_submission(candidate.id)).start_time
        await first.close()

        second = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        assert second.answers == {"q1": "half written"}
        assert second.violation_count == 1
        assert (await store.get_submission(candidate.id)).start_time == started
        await second.close()

    asyncio.run(main())


def test_paper_edits_do_not_reach_started_attempts(store, enroll, scorer, paper):
    async def main():
        candidate = await enroll()
        first = await ExamSession(store, scorer, candidate.id, **QUIET).start()
        await first.close()

        edited = paper.model_copy(update={"questions": paper.questions[:1]})
        await store.update_question_paper(edited)

        second = await ExamSession(store, scorer, candidate.id, **QUIET).start()
        assert second.question_ids == ["q1", "q2"]
        await second.close()

    asyncio.run(main())


def test_test_identity_starts_with_ideal_answers(store, enroll, scorer, paper):
    async def main():
        candidate = await enroll(email=TEST_EMAIL)
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        assert session.answers == {q.id: q.ideal_answer_key for q in paper.questions}
        await session.close()

    asyncio.run(main())


def test_close_keeps_submission_in_progress(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()
        await session.close()

        assert session.closed
        assert not session.edit_answer("q1", "after close")
        with pytest.raises(RuntimeError):
            await session.submit()
        assert (await store.get_submission(candidate.id)).status == SubmissionStatus.IN_PROGRESS

    asyncio.run(main())


def test_on_finish_callback_errors_are_contained(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        finished = []

        def on_finish(session):
            finished.append(session.candidate_id)
            raise RuntimeError("navigation failed")

        session = await ExamSession(
            store, scorer, candidate.id, on_finish=on_finish, **QUIET
        ).start()
        await session.submit(timeout=5)

        assert finished == [candidate.id]
        assert session.state == SessionState.FINISHED

    asyncio.run(main())


def test_session_manager_rejoins_running_session(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        manager = SessionManager(store, scorer, **QUIET)

        first = await manager.start(candidate.id)
        again = await manager.start(candidate.id)
        assert again is first
        assert manager.get(candidate.id) is first

        assert await manager.leave(candidate.id)
        assert manager.get(candidate.id) is None
        assert not await manager.leave(candidate.id)

        resumed = await manager.start(candidate.id)
        assert resumed is not first
        await manager.close_all()
        assert manager.sessions == {}

    asyncio.run(main())


def test_session_manager_forgets_finished_sessions(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        manager = SessionManager(store, scorer, **QUIET)

        session = await manager.start(candidate.id)
        await session.submit(timeout=5)

        assert manager.get(candidate.id) is None
        assert manager.sessions == {}
        assert not await manager.leave(candidate.id)

    asyncio.run(main())


def test_close_waits_for_queued_submit(store, enroll, scorer, monkeypatch):
    async def main():
        candidate = await enroll()
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()
        save_draft = store.save_draft

        async def slow_save_draft(*args):
            await asyncio.sleep(0.1)
            return await save_draft(*args)

        monkeypatch.setattr(store, "save_draft", slow_save_draft)

        session.edit_answer("q1", "written before leaving")
        saves = [asyncio.ensure_future(session.autosave_now()) for _ in range(2)]
        submit_task = asyncio.ensure_future(session.submit())
        await asyncio.sleep(0)

        # Submit sits behind two slow saves when the screen goes away
        await session.close()
        await asyncio.wait_for(submit_task, 5)

        assert session.state == SessionState.FINISHED
        assert session.submit_reason == "manual"
        submission = await store.get_submission(candidate.id)
        assert submission.status == SubmissionStatus.GRADED
        assert submission.answers == {"q1": "written before leaving"}
        await asyncio.wait_for(asyncio.gather(*saves), 5)

    asyncio.run(main())


def test_autosave_error_status_then_recovers(store, enroll, scorer):
    async def main():
        candidate = await enroll()
        flaky = FlakyStorage(store.storage.data)
        store.storage = flaky
        session = await ExamSession(store, scorer, candidate.id, **QUIET).start()

        flaky.failing = True
        assert session.edit_answer("q1", "lost on the first try")
        assert not await session.autosave_now()
        assert session.save_status == SaveStatus.ERROR
        assert session.state == SessionState.ACTIVE

        # Edits keep being accepted while saves fail
        flaky.failing = False
        assert session.edit_answer("q1", "saved on retry")
        assert await session.autosave_now()
        assert session.save_status == SaveStatus.SAVED
        assert (await store.get_submission(candidate.id)).answers == {"q1": "saved on retry"}
        await session.close()

    asyncio.run(main())
