"""
Bootstrap service - seeds an empty store with the default paper.
"""

import logging

from ..constants import (
    DEFAULT_PAPER_DURATION,
    DEFAULT_PAPER_ID,
    DEFAULT_PAPER_TITLE,
    DEFAULT_QUESTIONS,
)
from ..models import Question, QuestionPaper
from ..store import ExamStore

logger = logging.getLogger(__name__)


def default_paper() -> QuestionPaper:
    return QuestionPaper(
        id=DEFAULT_PAPER_ID,
        title=DEFAULT_PAPER_TITLE,
        description="Core React, state management, architecture, UX and delivery.",
        questions=[Question(**q) for q in DEFAULT_QUESTIONS],
        duration=DEFAULT_PAPER_DURATION,
    )


async def bootstrap_store(store: ExamStore) -> bool:
    """
    Seed the default paper and the test identity's assignment.

    Runs only against a store with no papers. Returns True when seeding
    happened.
    """
    if await store.get_all_papers():
        return False

    paper = default_paper()
    if not await store.create_question_paper(paper):
        logger.warning("⚠️  Could not seed default question paper")
        return False

    if store.test_email:
        await store.assign_exam(store.test_email, paper.id, assigned_by="system")

    logger.info(f"✅ Seeded default paper '{paper.id}' ({len(paper.questions)} questions)")
    return True
