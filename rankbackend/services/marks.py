"""
Composite marks for closed attempts, and the publish gate.

A mark row moves DRAFT -> PUBLISHED exactly once. Until ``published_at`` is
set the student sees no scores and the attempt is not on the leaderboard.
Publishing requires a score for every section the paper enables; a publish
that fails its preconditions changes nothing.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rankbackend.models import MANUAL_SECTIONS, MarkSection, RankAttempt, RankMark, RankPaper
from rankbackend.services.attempt_manager import get_attempt, settle_expiry
from rankbackend.services.clock import resolve_now
from rankbackend.services.errors import (
    InvalidInputError, MarksPublishedError, PreconditionError, RankPaperError
)
from rankbackend.services.notifications import Notifier, ResultsPublished
from rankbackend.services.scoring import score_attempt

logger = logging.getLogger(__name__)


@dataclass
class PublishAllResult:
    published: List[int] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)


def enabled_sections(paper: RankPaper) -> List[MarkSection]:
    sections = []
    if paper.has_mcq:
        sections.append(MarkSection.MCQ)
    if paper.has_short_essay:
        sections.append(MarkSection.SHORT_ESSAY)
    if paper.has_essay:
        sections.append(MarkSection.ESSAY)
    return sections


def get_mark(db: Session, attempt_id: int) -> Optional[RankMark]:
    return db.query(RankMark).filter(RankMark.attempt_id == attempt_id).first()


def _get_or_create_mark(db: Session, attempt_id: int) -> RankMark:
    mark = get_mark(db, attempt_id)
    if mark:
        return mark
    db.add(RankMark(attempt_id=attempt_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
    return get_mark(db, attempt_id)


def _closed_attempt(db: Session, attempt_id: int, now: datetime) -> RankAttempt:
    attempt = settle_expiry(db, get_attempt(db, attempt_id), now)
    if not attempt.is_terminal:
        raise PreconditionError(f"Attempt {attempt_id} is still in progress")
    return attempt


def compute_draft(
    db: Session,
    attempt_id: int,
    reviewer_id: Optional[int] = None,
    now: Optional[datetime] = None
) -> RankMark:
    """Fill the objective section from the Scorer; manual sections stay as they are."""
    now = resolve_now(now)
    attempt = _closed_attempt(db, attempt_id, now)

    mark = _get_or_create_mark(db, attempt_id)
    if mark.is_published:
        raise MarksPublishedError(attempt_id)

    if attempt.paper.has_mcq:
        score = score_attempt(db, attempt_id)
        mark.mcq_score = score.correct
        mark.mcq_total = score.total_questions
    if reviewer_id is not None:
        mark.reviewed_by = reviewer_id
    db.commit()
    db.refresh(mark)

    logger.info("Draft marks for attempt %s: mcq=%s/%s", attempt_id, mark.mcq_score, mark.mcq_total)
    return mark


def record_manual_score(
    db: Session,
    attempt_id: int,
    section: MarkSection,
    score: float,
    reviewer_id: Optional[int] = None
) -> RankMark:
    """Record a reviewer-supplied score for a free-text section."""
    if section not in MANUAL_SECTIONS:
        raise InvalidInputError(f"{section.value} is not a manually scored section")
    if score is None or not math.isfinite(score) or score < 0:
        raise InvalidInputError("Score must be a finite, non-negative number")

    attempt = get_attempt(db, attempt_id)
    if section not in enabled_sections(attempt.paper):
        raise InvalidInputError(f"Paper {attempt.rank_paper_id} has no {section.value} section")

    mark = _get_or_create_mark(db, attempt_id)
    if mark.is_published:
        raise MarksPublishedError(attempt_id)

    if section == MarkSection.SHORT_ESSAY:
        mark.short_essay_score = score
    else:
        mark.essay_score = score
    if reviewer_id is not None:
        mark.reviewed_by = reviewer_id
    db.commit()
    db.refresh(mark)
    return mark


def missing_sections(paper: RankPaper, mark: Optional[RankMark]) -> List[MarkSection]:
    if mark is None:
        return enabled_sections(paper)
    return [s for s in enabled_sections(paper) if mark.section_score(s) is None]


def publish(
    db: Session,
    attempt_id: int,
    notifier: Notifier,
    now: Optional[datetime] = None
) -> RankMark:
    """Publish the composite result of one attempt.

    All-or-nothing: either total_score and published_at are both written in
    one commit, or PreconditionError is raised and nothing changes.
    """
    now = resolve_now(now)
    attempt = _closed_attempt(db, attempt_id, now)

    mark = get_mark(db, attempt_id)
    if mark is not None and mark.is_published:
        return mark

    missing = missing_sections(attempt.paper, mark)
    if missing:
        names = [s.value for s in missing]
        raise PreconditionError(
            f"Cannot publish attempt {attempt_id}: missing scores for {', '.join(names)}",
            missing=names
        )
    if mark is None:
        # Paper with no scored sections at all
        mark = _get_or_create_mark(db, attempt_id)

    total = float(sum(mark.section_score(s) for s in enabled_sections(attempt.paper)))

    # Conditional on published_at still being unset, so two publishers notify once
    updated = db.query(RankMark).filter(
        RankMark.id == mark.id,
        RankMark.published_at.is_(None)
    ).update({RankMark.total_score: total, RankMark.published_at: now}, synchronize_session=False)
    db.commit()
    db.refresh(mark)

    if not updated:
        return mark

    logger.info("Published attempt %s: total=%s", attempt_id, total)
    payload = ResultsPublished(
        paper_id=attempt.rank_paper_id,
        attempt_id=attempt.id,
        user_id=attempt.user_id,
        total_score=total
    )
    try:
        notifier.results_published(payload)
    except Exception as e:
        logger.warning("Results notification failed for attempt %s: %s", attempt_id, e)
    return mark


def publish_all(
    db: Session,
    paper_id: int,
    notifier: Notifier,
    now: Optional[datetime] = None
) -> PublishAllResult:
    """Publish every unpublished mark of a paper that is ready; report the rest."""
    now = resolve_now(now)
    result = PublishAllResult()

    pending = db.query(RankMark.attempt_id).join(
        RankAttempt, RankAttempt.id == RankMark.attempt_id
    ).filter(
        RankAttempt.rank_paper_id == paper_id,
        RankMark.published_at.is_(None)
    ).order_by(RankMark.attempt_id).all()

    for row in pending:
        try:
            publish(db, row.attempt_id, notifier, now)
        except RankPaperError as e:
            db.rollback()
            result.skipped.append((row.attempt_id, str(e)))
            continue
        result.published.append(row.attempt_id)

    logger.info("Publish-all for paper %s: %d published, %d skipped",
                paper_id, len(result.published), len(result.skipped))
    return result
