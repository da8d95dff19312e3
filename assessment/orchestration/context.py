"""Prompt context builders shared by the orchestration steps."""

from __future__ import annotations

from typing import Any, Optional

from assessment.interview.models import Block, Session
from assessment.interview.questions import QuestionBank

PROFILE_PREFIXES = ("company.", "goals.")


def company_profile(session: Session) -> dict[str, Any]:
    """Initial context plus the context-block fields, for prompt headers."""
    profile: dict[str, Any] = {
        f"context.{k}": v for k, v in session.initial_context.items()
        if isinstance(v, (str, int, float, bool))
    }
    for key, value in session.extracted_data.items():
        if key.startswith(PROFILE_PREFIXES):
            profile[key] = value
    return profile


def transcript(
    session: Session,
    bank: QuestionBank,
    block: Optional[Block] = None,
) -> list[dict[str, str]]:
    """Question/answer pairs in answer order, follow-ups included."""
    items = []
    for answer in session.answers:
        if block is not None and answer.block != block:
            continue
        if answer.is_follow_up:
            question = "(follow-up) " + bank.get_question_by_id(answer.parent_question_id).text
        else:
            question = bank.get_question_by_id(answer.question_id).text
        items.append({"question": question, "answer": answer.text})
    return items


def answers_text(session: Session, block: Block) -> str:
    """All answers of a block, lower-cased and joined, for keyword matching."""
    return " ".join(a.text.lower() for a in session.answers if a.block == block)
