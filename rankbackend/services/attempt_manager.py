"""
Attempt lifecycle for timed rank papers.

An attempt is created once per (user, paper), carries a deadline computed at
creation, and moves into a terminal state exactly once: either the student
submits (``submitted_at``) or the deadline passes (``auto_closed``). The
terminal transition is a compare-and-set UPDATE, so a double submit, a retried
request and the expiry sweep all converge on whichever write lands first.

Expiry is pull-based: nothing holds a timer. Any read computes whether the
deadline has passed from the stored ``ends_at``.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rankbackend.models import AttemptStatus, CloseReason, PaperProgress, RankAttempt, RankPaper
from rankbackend.services.clock import as_utc, resolve_now
from rankbackend.services.eligibility import Eligibility
from rankbackend.services.errors import EligibilityDenied, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptState:
    attempt_id: int
    status: AttemptStatus
    is_terminal: bool
    is_expired: bool
    seconds_remaining: int


@dataclass(frozen=True)
class PaperStanding:
    paper_id: int
    title: str
    progress: PaperProgress
    attempt_id: Optional[int] = None


def find_attempt(db: Session, user_id: int, paper_id: int) -> Optional[RankAttempt]:
    return db.query(RankAttempt).filter(
        RankAttempt.user_id == user_id,
        RankAttempt.rank_paper_id == paper_id
    ).first()


def get_attempt(db: Session, attempt_id: int) -> RankAttempt:
    attempt = db.query(RankAttempt).filter(RankAttempt.id == attempt_id).first()
    if not attempt:
        raise NotFoundError(f"Attempt {attempt_id} not found")
    return attempt


def get_paper(db: Session, paper_id: int) -> RankPaper:
    paper = db.query(RankPaper).filter(RankPaper.id == paper_id).first()
    if not paper:
        raise NotFoundError(f"Rank paper {paper_id} not found")
    return paper


def start_attempt(
    db: Session,
    user_id: int,
    paper_id: int,
    eligibility: Eligibility,
    now: Optional[datetime] = None
) -> RankAttempt:
    """Start a new attempt or return the existing one (a resume, not an error)."""
    existing = find_attempt(db, user_id, paper_id)
    if existing:
        return existing

    now = resolve_now(now)
    paper = get_paper(db, paper_id)

    if not eligibility.can_start(db, user_id, paper, now):
        raise EligibilityDenied(
            f"User {user_id} is not eligible to start rank paper {paper_id}"
        )

    attempt = RankAttempt(
        user_id=user_id,
        rank_paper_id=paper_id,
        started_at=now,
        ends_at=now + timedelta(minutes=paper.time_limit_minutes),
        auto_closed=False,
        tab_switch_count=0,
        window_close_count=0
    )
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race to a concurrent start; the winner's row is the attempt
        db.rollback()
        winner = find_attempt(db, user_id, paper_id)
        if winner is None:
            raise
        logger.info("Concurrent start for user %s paper %s resolved to attempt %s",
                    user_id, paper_id, winner.id)
        return winner

    db.refresh(attempt)
    logger.info("Attempt %s started: user=%s paper=%s ends_at=%s",
                attempt.id, user_id, paper_id, attempt.ends_at)
    return attempt


def attempt_state(attempt: RankAttempt, now: Optional[datetime] = None) -> AttemptState:
    now = resolve_now(now)
    ends_at = as_utc(attempt.ends_at)

    if attempt.submitted_at is not None:
        status = AttemptStatus.SUBMITTED
    elif attempt.auto_closed:
        status = AttemptStatus.AUTO_CLOSED
    elif now > ends_at:
        status = AttemptStatus.EXPIRED
    else:
        status = AttemptStatus.IN_PROGRESS

    terminal = attempt.is_terminal
    remaining = 0
    if not terminal and now < ends_at:
        remaining = int((ends_at - now).total_seconds())

    return AttemptState(
        attempt_id=attempt.id,
        status=status,
        is_terminal=terminal,
        is_expired=status == AttemptStatus.EXPIRED,
        seconds_remaining=remaining
    )


def close_attempt(
    db: Session,
    attempt_id: int,
    reason: CloseReason,
    now: Optional[datetime] = None
) -> RankAttempt:
    """Move an attempt into its terminal state, once.

    The UPDATE only matches while both ``submitted_at`` and ``auto_closed`` are
    unset. If it matches nothing the attempt was already closed and the
    current row is returned unchanged.
    """
    now = resolve_now(now)
    changed = _compare_and_close(db, attempt_id, reason, now)

    attempt = get_attempt(db, attempt_id)
    db.refresh(attempt)

    if changed:
        logger.info("Attempt %s closed (%s)", attempt_id, reason.value)
    else:
        logger.info("Attempt %s already closed; %s close is a no-op", attempt_id, reason.value)
    return attempt


def _compare_and_close(db: Session, attempt_id: int, reason: CloseReason, now: datetime) -> bool:
    values = {RankAttempt.closed_at: now}
    if reason == CloseReason.EXPLICIT:
        values[RankAttempt.submitted_at] = now
    else:
        values[RankAttempt.auto_closed] = True

    updated = db.query(RankAttempt).filter(
        RankAttempt.id == attempt_id,
        RankAttempt.submitted_at.is_(None),
        RankAttempt.auto_closed == False  # noqa: E712
    ).update(values, synchronize_session=False)
    db.commit()
    return updated == 1


def settle_expiry(db: Session, attempt: RankAttempt, now: Optional[datetime] = None) -> RankAttempt:
    """Close an attempt whose deadline has passed but which nobody closed yet."""
    if attempt_state(attempt, now).is_expired:
        return close_attempt(db, attempt.id, CloseReason.EXPIRY, now)
    return attempt


def submit_attempt(db: Session, attempt_id: int, now: Optional[datetime] = None) -> RankAttempt:
    """Student-initiated submit.

    A submit that arrives after the deadline records an expiry closure: the
    stored deadline decides, not the client's countdown.
    """
    attempt = settle_expiry(db, get_attempt(db, attempt_id), now)
    if attempt.is_terminal:
        return attempt
    return close_attempt(db, attempt_id, CloseReason.EXPLICIT, now)


def sweep_expired(db: Session, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[int]:
    """Auto-close a bounded batch of open attempts that are past their deadline.

    Safe to run alongside student submits: every close goes through the same
    compare-and-set, and attempts another writer closed first are not counted.
    """
    now = resolve_now(now)
    query = db.query(RankAttempt.id).filter(
        RankAttempt.submitted_at.is_(None),
        RankAttempt.auto_closed == False,  # noqa: E712
        RankAttempt.ends_at < now
    ).order_by(RankAttempt.ends_at)
    if limit:
        query = query.limit(limit)
    candidate_ids = [row.id for row in query.all()]

    closed = [
        attempt_id for attempt_id in candidate_ids
        if _compare_and_close(db, attempt_id, CloseReason.EXPIRY, now)
    ]

    if candidate_ids:
        logger.info("Expiry sweep closed %d of %d overdue attempts", len(closed), len(candidate_ids))
    return closed


def standings_for_user(db: Session, user_id: int, now: Optional[datetime] = None) -> List[PaperStanding]:
    """Progress on every published paper for one user, computed from stored state only."""
    now = resolve_now(now)
    papers = db.query(RankPaper).filter(
        RankPaper.publish_status == "PUBLISHED"
    ).order_by(RankPaper.id).all()
    attempts: Dict[int, RankAttempt] = {
        a.rank_paper_id: a
        for a in db.query(RankAttempt).filter(RankAttempt.user_id == user_id).all()
    }

    standings = []
    for paper in papers:
        attempt = attempts.get(paper.id)
        if attempt is None:
            progress = PaperProgress.NOT_STARTED
        elif attempt.mark is not None and attempt.mark.is_published:
            progress = PaperProgress.MARKED
        else:
            progress = PaperProgress(attempt_state(attempt, now).status.value)
        standings.append(PaperStanding(
            paper_id=paper.id,
            title=paper.title,
            progress=progress,
            attempt_id=attempt.id if attempt else None
        ))
    return standings
