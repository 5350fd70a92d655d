from sqlalchemy.orm import Session, selectinload
from typing import Dict, List, Optional
from pydantic import BaseModel
from rankbackend.models import RankAttempt, RankMcqAnswer, RankMcqQuestion
from rankbackend.services.attempt_manager import get_attempt
from rankbackend.services.errors import AnswerKeyIntegrityError


class ObjectiveScore(BaseModel):
    correct: int
    total_questions: int

    @property
    def percentage(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return round(self.correct / self.total_questions * 100, 2)


def answer_key_for_paper(db: Session, paper_id: int) -> Dict[int, int]:
    """
    Map question id -> the option_no flagged correct.
    Raises AnswerKeyIntegrityError if any question has zero or several correct
    options; the key is never guessed.
    """
    questions = db.query(RankMcqQuestion).options(
        selectinload(RankMcqQuestion.options)
    ).filter(
        RankMcqQuestion.rank_paper_id == paper_id
    ).order_by(RankMcqQuestion.q_no).all()

    key = {}
    broken: List[int] = []
    for question in questions:
        correct = [o.option_no for o in question.options if o.is_correct]
        if len(correct) != 1:
            broken.append(question.id)
            continue
        key[question.id] = correct[0]

    if broken:
        raise AnswerKeyIntegrityError(paper_id, broken)
    return key


def score_attempt(db: Session, attempt_id: int) -> ObjectiveScore:
    """
    Score the objective section of an attempt from its stored answers.
    Unanswered questions count as incorrect. Reads only; safe to call as often
    as needed (live preview, review screens, drafting marks).
    """
    attempt = get_attempt(db, attempt_id)
    key = answer_key_for_paper(db, attempt.rank_paper_id)

    answers = db.query(RankMcqAnswer).filter(RankMcqAnswer.attempt_id == attempt_id).all()
    selected = {a.question_id: a.selected_option_no for a in answers}

    correct_count = 0
    for question_id, correct_option in key.items():
        if selected.get(question_id) == correct_option:
            correct_count += 1

    return ObjectiveScore(correct=correct_count, total_questions=len(key))


class AnswerReview(BaseModel):
    question_id: int
    q_no: int
    selected_option_no: Optional[int] = None
    correct_option_no: Optional[int] = None
    is_correct: Optional[bool] = None


def review_answers(db: Session, attempt: RankAttempt, key: Dict[int, int]) -> List[AnswerReview]:
    """
    One entry per question of the paper, in question order, comparing the
    saved selection with ``key``. Questions missing from the key get
    ``is_correct=None``.
    """
    answers = db.query(RankMcqAnswer).filter(RankMcqAnswer.attempt_id == attempt.id).all()
    selected = {a.question_id: a.selected_option_no for a in answers}

    reviews = []
    for question in attempt.paper.questions:
        correct = key.get(question.id)
        chosen = selected.get(question.id)
        reviews.append(AnswerReview(
            question_id=question.id,
            q_no=question.q_no,
            selected_option_no=chosen,
            correct_option_no=correct,
            is_correct=(chosen == correct) if correct is not None else None
        ))
    return reviews
