"""
Grading adapter and prompt assembly.

The model's reply is kept as free text. The overall score is read back out of it
with a small documented grammar, and the answer sheet is split per question for
display; neither step rewrites the stored feedback.
"""

import re
from typing import Callable, List, Optional

from google.api_core import exceptions as google_exceptions

from app.config import Settings, logger
from app.errors import GradingFailed, upstream_code
from app.models.session import AnswerItem
from app.services.llm import LlmChat, UserMessage
from app.utils.concurrency import TRANSIENT_ERRORS

ELLIPSIS = "..."

GRADING_SYSTEM_MESSAGE = (
    "You are an experienced examiner. You grade handwritten answer sheets strictly "
    "against the rubric you are given and write concise, constructive feedback."
)

GRADING_PROMPT_TEMPLATE = """Grade the student's answer sheet using the question paper and grading rubric below.

QUESTION PAPER:
{question_paper}

GRADING RUBRIC:
{grading_rubric}

STUDENT'S ANSWER SHEET:
{answer_sheet}
{additional_section}
Respond in exactly this format:
1. Brief feedback: a short assessment of the answers against the rubric.
2. Key areas for improvement: the most important things the student should work on.
3. Overall score: a single number out of 100, written as "X out of 100".
"""

ADDITIONAL_SECTION_TEMPLATE = """
ADDITIONAL REFERENCE MATERIAL:
{additional_file}
"""

# "85 out of 100", "85/100", "72.5 OUT OF 100"
SCORE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:/|out\s+of)\s*100(?![\d.])", re.IGNORECASE)

# "Q1", "Q.2:", "Question 3 -", "4.", "5)"
QUESTION_MARKER = re.compile(
    r"^\s*(?:Q(?:uestion)?\s*\.?\s*(\d+)\s*[:.)\-]?|(\d+)\s*[.)](?!\d))\s*(.*)$",
    re.IGNORECASE,
)


def truncate_text(text: str, limit: int) -> str:
    """Cut text to `limit` characters plus an ellipsis; shorter text is returned unchanged."""
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def build_grading_prompt(
    question_paper: str,
    grading_rubric: str,
    answer_sheet: str,
    additional_file: Optional[str] = None,
    limit: int = 2000,
) -> str:
    additional_section = ""
    if additional_file:
        additional_section = ADDITIONAL_SECTION_TEMPLATE.format(
            additional_file=truncate_text(additional_file, limit)
        )
    return GRADING_PROMPT_TEMPLATE.format(
        question_paper=truncate_text(question_paper, limit),
        grading_rubric=truncate_text(grading_rubric, limit),
        answer_sheet=truncate_text(answer_sheet, limit),
        additional_section=additional_section,
    )


def extract_overall_score(feedback: str) -> Optional[float]:
    """
    Read the overall score from free-text feedback.

    Grammar: <number> "out of" 100 | <number>/100, case-insensitive, decimals allowed.
    The last match wins (the score section comes last). Values above 100 or no
    match at all give None.
    """
    if not feedback:
        return None
    matches = SCORE_PATTERN.findall(feedback)
    for value in reversed(matches):
        score = float(value)
        if 0 <= score <= 100:
            return score
    return None


def split_answers(answer_text: str, confidence: Optional[float] = None) -> List[AnswerItem]:
    """Break answer-sheet text into per-question items on question-number markers."""
    if not answer_text or not answer_text.strip():
        return []

    items = []
    current_number = None
    current_lines: List[str] = []

    def flush():
        text = "\n".join(current_lines).strip()
        if current_number is not None and text:
            items.append(AnswerItem(questionNumber=current_number, text=text, confidence=confidence))

    for line in answer_text.splitlines():
        match = QUESTION_MARKER.match(line)
        if match:
            flush()
            current_number = int(match.group(1) or match.group(2))
            current_lines = [match.group(3)]
        elif current_number is not None:
            current_lines.append(line)

    flush()

    if not items:
        return [AnswerItem(questionNumber=1, text=answer_text.strip(), confidence=confidence)]
    return items


class GeminiGrader:
    """Sends one assembled prompt to Gemini and returns its text reply."""

    def __init__(self, settings: Settings, chat_factory: Optional[Callable[[], LlmChat]] = None):
        self._settings = settings
        self._chat_factory = chat_factory or self._default_chat

    def _default_chat(self) -> LlmChat:
        return LlmChat(
            api_key=self._settings.gemini_api_key,
            system_message=GRADING_SYSTEM_MESSAGE,
        ).with_model("gemini", self._settings.gemini_model).with_params(temperature=0)

    async def grade(self, prompt_text: str) -> str:
        chat = self._chat_factory()
        try:
            response = await chat.send_message(UserMessage(text=prompt_text))
        except TRANSIENT_ERRORS:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise GradingFailed(f"Generation service error (code {upstream_code(e)}): {e.message}")

        try:
            text = response.text
        except (ValueError, AttributeError) as e:
            # Blocked or empty candidates have no text part
            raise GradingFailed(f"Generation service returned no usable content: {e}")

        if not text or not text.strip():
            raise GradingFailed("Generation service returned empty feedback")

        logger.info(f"Grading feedback received ({len(text)} chars)")
        return text
