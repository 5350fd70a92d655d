from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
import logging
from rankbackend.config import settings
from rankbackend.database import get_db
from rankbackend.models import User, RankAttempt, RankMark, MarkSection, UploadType
from rankbackend.auth.dependencies import require_reviewer
from rankbackend.routes.errors import http_error
from rankbackend.routes.rank_papers import AttemptResponse, attempt_response
from rankbackend.services import answer_store, attempt_manager, marks
from rankbackend.services.errors import RankPaperError, AnswerKeyIntegrityError
from rankbackend.services.notifications import Notifier, get_notifier
from rankbackend.services.scoring import AnswerReview, answer_key_for_paper, review_answers
from rankbackend.services.uploads import UploadResolver, get_upload_resolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/rank-papers", tags=["admin-rank-papers"])


class MarkResponse(BaseModel):
    attempt_id: int
    status: str
    mcq_score: Optional[int] = None
    mcq_total: Optional[int] = None
    short_essay_score: Optional[float] = None
    essay_score: Optional[float] = None
    total_score: Optional[float] = None
    reviewed_by: Optional[int] = None
    published_at: Optional[datetime] = None


class StudentInfo(BaseModel):
    id: int
    full_name: str
    email: str

    class Config:
        from_attributes = True


class AttemptSummary(BaseModel):
    attempt: AttemptResponse
    student: StudentInfo
    mark_status: str
    total_score: Optional[float] = None


class ReviewedUpload(BaseModel):
    upload_type: UploadType
    storage_key: str
    url: str


class AttemptReviewResponse(BaseModel):
    attempt: AttemptResponse
    student: StudentInfo
    answers: List[AnswerReview]
    uploads: List[ReviewedUpload]
    marks: Optional[MarkResponse] = None
    answer_key_error: Optional[str] = None


class ManualScoreRequest(BaseModel):
    section: MarkSection
    score: float = Field(ge=0, allow_inf_nan=False)


class SkippedAttempt(BaseModel):
    attempt_id: int
    reason: str


class PublishAllResponse(BaseModel):
    published: List[int]
    skipped: List[SkippedAttempt]


class SweepResponse(BaseModel):
    closed: List[int]


def mark_status(mark: Optional[RankMark]) -> str:
    if mark is None:
        return "NONE"
    return "PUBLISHED" if mark.is_published else "DRAFT"


def mark_response(mark: RankMark) -> dict:
    return {
        "attempt_id": mark.attempt_id,
        "status": mark_status(mark),
        "mcq_score": mark.mcq_score,
        "mcq_total": mark.mcq_total,
        "short_essay_score": mark.short_essay_score,
        "essay_score": mark.essay_score,
        "total_score": mark.total_score,
        "reviewed_by": mark.reviewed_by,
        "published_at": mark.published_at,
    }


@router.get("/{paper_id}/attempts", response_model=List[AttemptSummary])
async def list_attempts(
    paper_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer)
):
    """All attempts for a paper with their live state and mark status"""
    try:
        attempt_manager.get_paper(db, paper_id)
    except RankPaperError as e:
        raise http_error(e)

    attempts = db.query(RankAttempt).filter(
        RankAttempt.rank_paper_id == paper_id
    ).order_by(RankAttempt.started_at).all()

    return [
        {
            "attempt": attempt_response(attempt),
            "student": attempt.user,
            "mark_status": mark_status(attempt.mark),
            "total_score": attempt.mark.total_score if attempt.mark else None
        }
        for attempt in attempts
    ]


@router.get("/attempts/{attempt_id}", response_model=AttemptReviewResponse)
async def review_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
    resolver: UploadResolver = Depends(get_upload_resolver)
):
    """
    Everything a reviewer needs for one attempt: MCQ answers against the key,
    links to the uploaded essays, and the current marks.
    """
    try:
        attempt = attempt_manager.get_attempt(db, attempt_id)
    except RankPaperError as e:
        raise http_error(e)

    key = {}
    key_error = None
    try:
        key = answer_key_for_paper(db, attempt.rank_paper_id)
    except AnswerKeyIntegrityError as e:
        logger.warning("Reviewing attempt %s with a broken answer key: %s", attempt_id, e)
        key_error = str(e)

    answers = review_answers(db, attempt, key)

    uploads = [
        {"upload_type": u.upload_type, "storage_key": u.storage_key, "url": resolver.resolve(u.storage_key)}
        for u in answer_store.list_uploads(db, attempt_id)
    ]

    mark = marks.get_mark(db, attempt_id)
    return {
        "attempt": attempt_response(attempt),
        "student": attempt.user,
        "answers": answers,
        "uploads": uploads,
        "marks": mark_response(mark) if mark else None,
        "answer_key_error": key_error
    }


@router.post("/attempts/{attempt_id}/draft", response_model=MarkResponse)
async def draft_marks(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer)
):
    """Compute (or recompute) the objective score into the draft mark"""
    try:
        mark = marks.compute_draft(db, attempt_id, reviewer_id=current_user.id)
    except RankPaperError as e:
        raise http_error(e)
    return mark_response(mark)


@router.put("/attempts/{attempt_id}/manual-score", response_model=MarkResponse)
async def manual_score(
    attempt_id: int,
    body: ManualScoreRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer)
):
    try:
        mark = marks.record_manual_score(
            db, attempt_id, body.section, body.score, reviewer_id=current_user.id
        )
    except RankPaperError as e:
        raise http_error(e)
    return mark_response(mark)


@router.post("/attempts/{attempt_id}/publish", response_model=MarkResponse)
async def publish_marks(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
    notifier: Notifier = Depends(get_notifier)
):
    """Publish one attempt's result. Cannot be undone."""
    try:
        mark = marks.publish(db, attempt_id, notifier)
    except RankPaperError as e:
        raise http_error(e)
    return mark_response(mark)


@router.post("/{paper_id}/publish-all", response_model=PublishAllResponse)
async def publish_all_marks(
    paper_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
    notifier: Notifier = Depends(get_notifier)
):
    """Publish every drafted result of a paper that has all its section scores"""
    try:
        attempt_manager.get_paper(db, paper_id)
    except RankPaperError as e:
        raise http_error(e)

    result = marks.publish_all(db, paper_id, notifier)
    return {
        "published": result.published,
        "skipped": [{"attempt_id": a, "reason": r} for a, r in result.skipped]
    }


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer)
):
    """Close overdue attempts now instead of waiting for the background sweep"""
    closed = attempt_manager.sweep_expired(db, limit=settings.EXPIRY_SWEEP_BATCH_SIZE)
    return {"closed": closed}
