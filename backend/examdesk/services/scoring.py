"""
Scoring service - grades a finished exam with one Gemini request.
"""

import asyncio
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config.settings import settings
from ..constants import EXAM_CONTEXT
from ..exceptions import ScoringError
from ..models import (
    EvaluationResult,
    PassFail,
    Question,
    QuestionEvaluation,
    ScoringOutcome,
)

logger = logging.getLogger(__name__)

NO_ANSWER = "NO ANSWER PROVIDED"
UNEVALUATED_FEEDBACK = "Could not evaluate"

LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
TRAILING_FENCE = re.compile(r"\s*```$")


class ScoringReply(BaseModel):
    """Reply shape requested from the model. Malformed fields are coerced."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    summary: str = "Evaluation completed."
    pass_fail: Optional[str] = Field(default=None, alias="passFail")
    question_evaluations: Dict[str, Any] = Field(default_factory=dict, alias="questionEvaluations")

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, value):
        if isinstance(value, str) and value.strip():
            return value
        return "Evaluation completed."

    @field_validator("pass_fail", mode="before")
    @classmethod
    def _pass_fail(cls, value):
        return value if value in ("PASS", "FAIL") else None

    @field_validator("question_evaluations", mode="before")
    @classmethod
    def _evaluations(cls, value):
        return value if isinstance(value, dict) else {}


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapped around a JSON reply. Inner fences are kept."""
    text = (text or "").strip()
    text = LEADING_FENCE.sub("", text, count=1)
    text = TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def _coerce_score(value: Any, marks: float) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return min(max(float(value), 0.0), float(marks))


class ScoringService:
    """Grades candidate answers against each question's guidance using Gemini."""

    SYSTEM_PROMPT = """You are a Senior Technical Interviewer evaluating a React Developer candidate.
The context of the application is: {context}
Evaluate the answers based on technical accuracy, conceptual understanding, and problem-solving approach.

IMPORTANT INSTRUCTIONS FOR GRADING:
1. The 'Context/Ideal Key' provided is a GUIDELINE for expected concepts, NOT a strict answer key. Do not require exact text matches.
2. If the candidate provides a valid alternative solution or uses different wording that demonstrates correct understanding, award appropriate marks.
3. For coding questions (Javascript/React), focus on the logic, state management, and correct usage of hooks. Minor syntax errors should be penalized slightly, but not result in a zero score if the logic is sound.
4. For architectural/design questions, evaluate the feasibility and reasoning of their approach.
5. An answer of "{no_answer}" scores 0."""

    OUTPUT_FORMAT = """
## EXACT OUTPUT FORMAT (MUST BE VALID JSON)

Return ONLY this JSON object, no other text:

{{
  "summary": "Two or three sentences on the candidate overall.",
  "passFail": "PASS",
  "questionEvaluations": {{
    "<question id>": {{"score": 7, "feedback": "Brief feedback, max 2 sentences."}}
  }}
}}

**JSON Field Rules:**
- One entry in questionEvaluations for EVERY question id listed above
- score: number from 0 to the question's max marks
- passFail: "PASS" if total score > {threshold}% of max, otherwise "FAIL"
"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        client: Any = None,
        context: str = EXAM_CONTEXT,
    ):
        self.api_key = settings.LLM_API_KEY if api_key is None else api_key
        self.model_name = model_name or settings.LLM_MODEL
        self.context = context
        self.semaphore = asyncio.Semaphore(settings.MAX_WORKERS)
        self.client = client
        if self.client is None and self.api_key:
            genai.configure(api_key=self.api_key)
            self.client = genai.GenerativeModel(self.model_name)

    def build_prompt(self, questions: List[Question], answers: Dict[str, str]) -> str:
        """One request covering every question of the paper."""
        parts = [
            self.SYSTEM_PROMPT.format(context=self.context, no_answer=NO_ANSWER),
            "",
            "Here are the Question/Answer pairs:",
        ]

        for index, question in enumerate(questions, start=1):
            answer = (answers.get(question.id) or "").strip() or NO_ANSWER
            parts.extend([
                f"Q{index} ID: {question.id}",
                f"Question: {question.text}",
                f"Context/Ideal Key: {question.ideal_answer_key}",
                f"Max Marks: {question.marks:g}",
                f"Candidate Answer: {answer}",
                "---",
            ])

        parts.append(self.OUTPUT_FORMAT.format(threshold=round(settings.PASS_THRESHOLD * 100)))
        return "\n".join(parts)

    def parse_reply(self, text: str, questions: List[Question]) -> EvaluationResult:
        """
        Normalize a model reply into an EvaluationResult.

        The total is always the local sum of per-question scores and the
        verdict is recomputed from it; whatever totals the reply claims are
        ignored.

        Raises:
            ScoringError: If the reply is not a JSON object
        """
        try:
            data = json.loads(strip_code_fences(text))
        except json.JSONDecodeError as e:
            raise ScoringError(f"Failed to parse scoring response: {e}") from e

        if not isinstance(data, dict):
            raise ScoringError("Scoring response is not a JSON object")

        reply = ScoringReply.model_validate(data)

        evaluations: Dict[str, QuestionEvaluation] = {}
        for question in questions:
            entry = reply.question_evaluations.get(question.id)
            score = None
            feedback = None
            if isinstance(entry, dict):
                score = _coerce_score(entry.get("score"), question.marks)
                feedback = entry.get("feedback")

            if score is None:
                evaluations[question.id] = QuestionEvaluation(
                    score=0, feedback=UNEVALUATED_FEEDBACK
                )
                continue

            if not isinstance(feedback, str) or not feedback.strip():
                feedback = UNEVALUATED_FEEDBACK
            evaluations[question.id] = QuestionEvaluation(score=score, feedback=feedback)

        total_score = sum(e.score for e in evaluations.values())
        max_score = sum(q.marks for q in questions)

        if reply.pass_fail is None:
            logger.warning("⚠️  Scoring reply had no valid passFail, recomputing")

        return EvaluationResult(
            total_score=total_score,
            max_score=max_score,
            summary=reply.summary,
            pass_fail=self.verdict(total_score, max_score),
            question_evaluations=evaluations,
        )

    @staticmethod
    def verdict(total_score: float, max_score: float) -> PassFail:
        if max_score > 0 and total_score > max_score * settings.PASS_THRESHOLD:
            return PassFail.PASS
        return PassFail.FAIL

    @staticmethod
    def fallback_result(questions: List[Question], reason: str) -> EvaluationResult:
        """Zero-score FAIL result used whenever scoring cannot complete."""
        return EvaluationResult(
            total_score=0,
            max_score=sum(q.marks for q in questions),
            summary=reason,
            pass_fail=PassFail.FAIL,
            question_evaluations={
                q.id: QuestionEvaluation(score=0, feedback="Evaluation failed")
                for q in questions
            },
        )

    async def score(self, questions: List[Question], answers: Dict[str, str]) -> EvaluationResult:
        """
        Run one scoring pass.

        Raises:
            ScoringError: On request failure or an unusable reply
        """
        if self.client is None:
            raise ScoringError("No API key configured for scoring")

        prompt = self.build_prompt(questions, answers)

        async with self.semaphore:
            logger.info(f"⏳ Scoring {len(questions)} questions...")
            try:
                response = await asyncio.to_thread(
                    lambda: self.client.generate_content(
                        prompt,
                        generation_config=genai.types.GenerationConfig(
                            temperature=settings.LLM_TEMPERATURE,
                            response_mime_type="application/json"
                        )
                    )
                )
                response_text = response.text
            except Exception as e:
                raise ScoringError(f"Scoring request failed: {e}") from e

        result = self.parse_reply(response_text, questions)
        logger.info(f"✅ Scored {result.total_score:g}/{result.max_score:g} ({result.pass_fail.value})")
        return result

    async def evaluate_exam(
        self,
        questions: List[Question],
        answers: Dict[str, str],
        timeout: Optional[float] = None,
    ) -> ScoringOutcome:
        """
        Score an exam without ever raising.

        The request runs as its own task. When the wait times out the task
        is left to finish or fail on its own; only the wait is abandoned.
        """
        timeout = settings.SCORING_TIMEOUT if timeout is None else timeout

        if self.client is None:
            logger.error("❌ No API key found, skipping AI evaluation")
            return ScoringOutcome(
                result=self.fallback_result(questions, "AI Evaluation Failed: No API Key provided."),
                ok=False,
                error="no_api_key",
            )

        task = asyncio.ensure_future(self.score(questions, answers))
        task.add_done_callback(_log_abandoned_failure)

        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            return ScoringOutcome(result=result, ok=True)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️  Scoring timed out after {timeout:g}s")
            return ScoringOutcome(
                result=self.fallback_result(questions, f"AI evaluation timed out after {timeout:g}s."),
                ok=False,
                error="timeout",
            )
        except Exception as e:
            logger.error(f"❌ AI evaluation error: {e}")
            return ScoringOutcome(
                result=self.fallback_result(questions, "Error during AI evaluation process."),
                ok=False,
                error=str(e),
            )


def _log_abandoned_failure(task: asyncio.Task):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Scoring task ended with error: {error}")
