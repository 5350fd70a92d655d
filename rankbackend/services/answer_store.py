"""
Per-question answer persistence for one attempt.

Writes are explicit conditional operations rather than a blind
upsert-by-primary-key: the attempt must still be open, and an answer row is
updated if present or inserted if absent. Last write wins per question.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rankbackend.models import (
    RankAttempt, RankMcqAnswer, RankMcqOption, RankMcqQuestion, RankUploadAnswer, UploadType
)
from rankbackend.services.attempt_manager import get_attempt, settle_expiry
from rankbackend.services.clock import resolve_now
from rankbackend.services.errors import AttemptClosedError, InvalidInputError

logger = logging.getLogger(__name__)


def _open_attempt(db: Session, attempt_id: int, now: datetime) -> RankAttempt:
    settle_expiry(db, get_attempt(db, attempt_id), now)
    # Row lock held until the answer write commits, so a close cannot land in between
    attempt = db.query(RankAttempt).filter(
        RankAttempt.id == attempt_id
    ).with_for_update().populate_existing().one()
    if attempt.is_terminal:
        db.rollback()
        logger.warning("Rejected write to closed attempt %s", attempt_id)
        raise AttemptClosedError(attempt_id)
    return attempt


def upsert_answer(
    db: Session,
    attempt_id: int,
    question_id: int,
    option_no: Optional[int],
    now: Optional[datetime] = None
) -> RankMcqAnswer:
    """Save the selected option for one objective question.

    ``option_no=None`` clears the selection (the question counts as unanswered).
    """
    now = resolve_now(now)
    attempt = _open_attempt(db, attempt_id, now)

    question = db.query(RankMcqQuestion).filter(
        RankMcqQuestion.id == question_id,
        RankMcqQuestion.rank_paper_id == attempt.rank_paper_id
    ).first()
    if not question:
        raise InvalidInputError(f"Question {question_id} is not part of this paper")

    if option_no is not None:
        option_exists = db.query(RankMcqOption.id).filter(
            RankMcqOption.question_id == question_id,
            RankMcqOption.option_no == option_no
        ).first()
        if not option_exists:
            raise InvalidInputError(f"Option {option_no} does not exist for question {question_id}")

    return _update_or_insert_answer(db, attempt_id, question_id, option_no, now)


def _update_or_insert_answer(db, attempt_id, question_id, option_no, now) -> RankMcqAnswer:
    updated = db.query(RankMcqAnswer).filter(
        RankMcqAnswer.attempt_id == attempt_id,
        RankMcqAnswer.question_id == question_id
    ).update({RankMcqAnswer.selected_option_no: option_no, RankMcqAnswer.updated_at: now},
             synchronize_session=False)

    if not updated:
        db.add(RankMcqAnswer(
            attempt_id=attempt_id,
            question_id=question_id,
            selected_option_no=option_no,
            updated_at=now
        ))
        try:
            db.commit()
        except IntegrityError:
            # A concurrent write inserted the row first; overwrite it
            db.rollback()
            db.query(RankMcqAnswer).filter(
                RankMcqAnswer.attempt_id == attempt_id,
                RankMcqAnswer.question_id == question_id
            ).update({RankMcqAnswer.selected_option_no: option_no, RankMcqAnswer.updated_at: now},
                     synchronize_session=False)
            db.commit()
    else:
        db.commit()

    return db.query(RankMcqAnswer).filter(
        RankMcqAnswer.attempt_id == attempt_id,
        RankMcqAnswer.question_id == question_id
    ).one()


def upsert_upload(
    db: Session,
    attempt_id: int,
    upload_type: UploadType,
    storage_key: str,
    now: Optional[datetime] = None
) -> RankUploadAnswer:
    """Save the storage reference for a free-text section (short essay or essay)."""
    now = resolve_now(now)
    attempt = _open_attempt(db, attempt_id, now)

    paper = attempt.paper
    enabled = {
        UploadType.SHORT_ESSAY: paper.has_short_essay,
        UploadType.ESSAY: paper.has_essay,
    }[upload_type]
    if not enabled:
        raise InvalidInputError(f"Paper {paper.id} has no {upload_type.value} section")
    if not storage_key or not storage_key.strip():
        raise InvalidInputError("storage_key must not be empty")

    values = {RankUploadAnswer.storage_key: storage_key, RankUploadAnswer.updated_at: now}
    criteria = (
        RankUploadAnswer.attempt_id == attempt_id,
        RankUploadAnswer.upload_type == upload_type
    )
    updated = db.query(RankUploadAnswer).filter(*criteria).update(values, synchronize_session=False)
    if not updated:
        db.add(RankUploadAnswer(
            attempt_id=attempt_id,
            upload_type=upload_type,
            storage_key=storage_key,
            updated_at=now
        ))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            db.query(RankUploadAnswer).filter(*criteria).update(values, synchronize_session=False)
            db.commit()
    else:
        db.commit()

    return db.query(RankUploadAnswer).filter(*criteria).one()


def list_for_attempt(db: Session, attempt_id: int) -> List[RankMcqAnswer]:
    return db.query(RankMcqAnswer).filter(
        RankMcqAnswer.attempt_id == attempt_id
    ).order_by(RankMcqAnswer.question_id).all()


def list_uploads(db: Session, attempt_id: int) -> List[RankUploadAnswer]:
    return db.query(RankUploadAnswer).filter(
        RankUploadAnswer.attempt_id == attempt_id
    ).order_by(RankUploadAnswer.upload_type).all()
