"""
services/review_projector.py

Post-submission classification and filtering of questions.
Pure functions: no engine state, no I/O.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field

from practice_cbt.models.quiz_model import Option, Question


class ReviewStatus(str, Enum):
    CORRECT = "correct"
    WRONG = "wrong"
    UNANSWERED = "unanswered"


class ReviewFilter(str, Enum):
    ALL = "all"
    WRONG = "wrong"
    FLAGGED = "flagged"
    UNANSWERED = "unanswered"


class ReviewItem(BaseModel):
    question: Question
    index: int
    status: ReviewStatus
    flagged: bool = False
    selected_option: Optional[Option] = None
    correct_option: Optional[Option] = None
    selected_option_id: Optional[str] = None


class ReviewSummary(BaseModel):
    total: int = 0
    answered: int = 0
    correct: int = 0
    wrong: int = 0
    unanswered: int = 0
    flagged: int = 0
    wrong_ids: List[str] = Field(default_factory=list)
    unanswered_ids: List[str] = Field(default_factory=list)
    flagged_ids: List[str] = Field(default_factory=list)


def classify(options: List[Option], selected_option_id: Optional[str]) -> ReviewStatus:
    """
    Classify one question.

    A recorded answer whose option is not correct is WRONG, including an
    option id that is no longer among the question's options.
    """
    if not selected_option_id:
        return ReviewStatus.UNANSWERED
    chosen = next((o for o in options if o.id == selected_option_id), None)
    if chosen is not None and chosen.is_correct:
        return ReviewStatus.CORRECT
    return ReviewStatus.WRONG


def count_correct(
    questions: List[Question],
    options_by_question: Dict[str, List[Option]],
    answers: Dict[str, str],
) -> int:
    return sum(
        1
        for q in questions
        if classify(options_by_question.get(q.id, []), answers.get(q.id)) == ReviewStatus.CORRECT
    )


def project(
    questions: List[Question],
    options_by_question: Dict[str, List[Option]],
    answers: Dict[str, str],
    flagged: Iterable[str],
) -> List[ReviewItem]:
    """One ReviewItem per question, in question order."""
    flagged_ids: Set[str] = set(flagged)
    items: List[ReviewItem] = []
    for index, q in enumerate(questions):
        opts = options_by_question.get(q.id, [])
        chosen_id = answers.get(q.id)
        items.append(ReviewItem(
            question=q,
            index=index,
            status=classify(opts, chosen_id),
            flagged=q.id in flagged_ids,
            selected_option=next((o for o in opts if o.id == chosen_id), None),
            correct_option=next((o for o in opts if o.is_correct), None),
            selected_option_id=chosen_id,
        ))
    return items


_PREDICATES = {
    ReviewFilter.ALL: lambda item: True,
    ReviewFilter.WRONG: lambda item: item.status == ReviewStatus.WRONG,
    ReviewFilter.FLAGGED: lambda item: item.flagged,
    ReviewFilter.UNANSWERED: lambda item: item.status == ReviewStatus.UNANSWERED,
}


def filter_items(items: List[ReviewItem], review_filter: ReviewFilter = ReviewFilter.ALL) -> List[ReviewItem]:
    predicate = _PREDICATES[ReviewFilter(review_filter)]
    return [item for item in items if predicate(item)]


def summarize(items: List[ReviewItem]) -> ReviewSummary:
    summary = ReviewSummary(total=len(items))
    for item in items:
        qid = item.question.id
        if item.status == ReviewStatus.UNANSWERED:
            summary.unanswered += 1
            summary.unanswered_ids.append(qid)
        else:
            summary.answered += 1
            if item.status == ReviewStatus.CORRECT:
                summary.correct += 1
            else:
                summary.wrong += 1
                summary.wrong_ids.append(qid)
        if item.flagged:
            summary.flagged += 1
            summary.flagged_ids.append(qid)
    return summary


def first_focus_question(items: List[ReviewItem]) -> Optional[str]:
    """First wrong question, else first unanswered, else the first question."""
    for status in (ReviewStatus.WRONG, ReviewStatus.UNANSWERED):
        for item in items:
            if item.status == status:
                return item.question.id
    return items[0].question.id if items else None
