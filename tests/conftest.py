import json
import sys
from pathlib import Path

import pytest

# Ensure backend is on sys.path so we can import the examdesk package
ROOT = Path(__file__).resolve().parents[1]
BACKEND = ROOT / "backend"
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

from examdesk.models import Candidate, Question, QuestionPaper
from examdesk.store import ExamStore, MemoryStorage

TEST_EMAIL = "alex.tester@example.com"


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeGeminiClient:
    """Stands in for genai.GenerativeModel; records every prompt it gets."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate_content(self, prompt, generation_config=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.reply)


def scoring_reply(scores, summary="Solid fundamentals.", pass_fail="PASS", fenced=False):
    text = json.dumps({
        "summary": summary,
        "passFail": pass_fail,
        "questionEvaluations": {
            qid: {"score": score, "feedback": f"Feedback for {qid}"}
            for qid, score in scores.items()
        },
    })
    if fenced:
        return f"```json\n{text}\n```"
    return text


def build_paper(paper_id="paper-1", duration=30):
    return QuestionPaper(
        id=paper_id,
        title="React Basics",
        description="Short paper",
        duration=duration,
        questions=[
            Question(
                id="q1",
                section="Section A",
                title="Effects",
                text="Explain useEffect.",
                ideal_answer_key="Runs side effects after render; cleanup on unmount.",
                marks=10,
            ),
            Question(
                id="q2",
                section="Section B",
                title="Counter",
                text="Write a counter component.",
                ideal_answer_key="useState with a setter callback.",
                code_type="javascript",
                marks=5,
            ),
        ],
    )


def build_candidate(email="jane.doe@example.com", name="Jane Doe"):
    return Candidate(
        id="",
        full_name=name,
        email=email,
        current_company="Acme",
        current_salary="100k",
        notice_period="30 days",
    )


@pytest.fixture
def store():
    return ExamStore(MemoryStorage(), prefix="test", latency_ms=0, test_email=TEST_EMAIL)


@pytest.fixture
def paper():
    return build_paper()


@pytest.fixture
def enroll(store, paper):
    """Async helper: seed the paper, assign it and register a candidate."""

    async def _enroll(email="jane.doe@example.com", name="Jane Doe"):
        if await store.get_paper(paper.id) is None:
            await store.create_question_paper(paper)
        await store.assign_exam(email, paper.id)
        result = await store.register_candidate(build_candidate(email, name))
        return result.candidate

    return _enroll
