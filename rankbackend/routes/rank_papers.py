from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
import logging
from rankbackend.database import get_db
from rankbackend.models import User, RankAttempt, UploadType, ViolationKind, PaperProgress
from rankbackend.auth.dependencies import get_current_user, require_student
from rankbackend.routes.errors import http_error
from rankbackend.services import answer_store, attempt_manager, integrity, leaderboard
from rankbackend.services.eligibility import Eligibility, get_eligibility
from rankbackend.services.errors import RankPaperError, AnswerKeyIntegrityError
from rankbackend.services.marks import get_mark
from rankbackend.services.scoring import AnswerReview, answer_key_for_paper, review_answers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rank-papers", tags=["rank-papers"])


class AttemptResponse(BaseModel):
    attempt_id: int
    rank_paper_id: int
    status: str
    started_at: datetime
    ends_at: datetime
    submitted_at: Optional[datetime] = None
    auto_closed: bool
    closed_at: Optional[datetime] = None
    seconds_remaining: int
    tab_switch_count: int
    window_close_count: int


class SavedAnswer(BaseModel):
    question_id: int
    selected_option_no: Optional[int] = None

    class Config:
        from_attributes = True


class SavedUpload(BaseModel):
    upload_type: UploadType
    storage_key: str

    class Config:
        from_attributes = True


class AttemptDetailResponse(AttemptResponse):
    answers: List[SavedAnswer]
    uploads: List[SavedUpload]


class AnswerRequest(BaseModel):
    question_id: int
    option_no: Optional[int] = None


class UploadRequest(BaseModel):
    upload_type: UploadType
    storage_key: str


class ViolationRequest(BaseModel):
    kind: ViolationKind


class ViolationResponse(BaseModel):
    recorded: bool


class MarksView(BaseModel):
    mcq_score: Optional[int] = None
    mcq_total: Optional[int] = None
    short_essay_score: Optional[float] = None
    essay_score: Optional[float] = None
    total_score: Optional[float] = None
    published_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ResultsResponse(BaseModel):
    attempt: AttemptResponse
    published: bool
    marks: Optional[MarksView] = None
    rank: Optional[int] = None
    participants: Optional[int] = None
    answers: Optional[List[AnswerReview]] = None


class StandingResponse(BaseModel):
    paper_id: int
    title: str
    progress: PaperProgress
    attempt_id: Optional[int] = None

    class Config:
        from_attributes = True


def attempt_response(attempt: RankAttempt) -> dict:
    state = attempt_manager.attempt_state(attempt)
    return {
        "attempt_id": attempt.id,
        "rank_paper_id": attempt.rank_paper_id,
        "status": state.status.value,
        "started_at": attempt.started_at,
        "ends_at": attempt.ends_at,
        "submitted_at": attempt.submitted_at,
        "auto_closed": bool(attempt.auto_closed),
        "closed_at": attempt.closed_at,
        "seconds_remaining": state.seconds_remaining,
        "tab_switch_count": attempt.tab_switch_count or 0,
        "window_close_count": attempt.window_close_count or 0,
    }


def get_own_attempt(db: Session, attempt_id: int, user: User) -> RankAttempt:
    attempt = db.query(RankAttempt).filter(
        RankAttempt.id == attempt_id,
        RankAttempt.user_id == user.id
    ).first()
    if not attempt:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Attempt not found"
        )
    return attempt


@router.get("/attempts/mine", response_model=List[StandingResponse])
async def my_standings(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student)
):
    """Every published paper with the student's progress on it"""
    return attempt_manager.standings_for_user(db, current_user.id)


@router.post("/{paper_id}/attempt", response_model=AttemptResponse)
async def start_attempt(
    paper_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student),
    eligibility: Eligibility = Depends(get_eligibility)
):
    """Start a rank paper attempt, or return the existing one (resume)"""
    try:
        attempt = attempt_manager.start_attempt(db, current_user.id, paper_id, eligibility)
    except RankPaperError as e:
        raise http_error(e)
    return attempt_response(attempt)


@router.get("/{paper_id}/attempt", response_model=AttemptDetailResponse)
async def get_attempt(
    paper_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student)
):
    """Current state of the student's attempt with everything saved so far"""
    attempt = attempt_manager.find_attempt(db, current_user.id, paper_id)
    if not attempt:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No attempt for this rank paper"
        )

    response = attempt_response(attempt)
    response["answers"] = answer_store.list_for_attempt(db, attempt.id)
    response["uploads"] = answer_store.list_uploads(db, attempt.id)
    return response


@router.put("/attempts/{attempt_id}/answers", response_model=SavedAnswer)
async def save_answer(
    attempt_id: int,
    answer: AnswerRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student)
):
    """Save (or change) the selected option for one MCQ question"""
    get_own_attempt(db, attempt_id, current_user)
    try:
        return answer_store.upsert_answer(db, attempt_id, answer.question_id, answer.option_no)
    except RankPaperError as e:
        raise http_error(e)


@router.put("/attempts/{attempt_id}/uploads", response_model=SavedUpload)
async def save_upload(
    attempt_id: int,
    upload: UploadRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student)
):
    """Attach the stored file for a short essay or essay section"""
    get_own_attempt(db, attempt_id, current_user)
    try:
        return answer_store.upsert_upload(db, attempt_id, upload.upload_type, upload.storage_key)
    except RankPaperError as e:
        raise http_error(e)


@router.post(
    "/attempts/{attempt_id}/violations",
    response_model=ViolationResponse,
    status_code=status.HTTP_202_ACCEPTED
)
async def report_violation(
    attempt_id: int,
    violation: ViolationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student)
):
    get_own_attempt(db, attempt_id, current_user)
    recorded = integrity.record_violation(db, attempt_id, violation.kind)
    return {"recorded": recorded}


@router.post("/attempts/{attempt_id}/submit", response_model=AttemptResponse)
async def submit_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student)
):
    """Submit the attempt. Submitting twice returns the closed attempt unchanged."""
    get_own_attempt(db, attempt_id, current_user)
    try:
        attempt = attempt_manager.submit_attempt(db, attempt_id)
    except RankPaperError as e:
        raise http_error(e)
    return attempt_response(attempt)


@router.get("/{paper_id}/results", response_model=ResultsResponse)
async def get_results(
    paper_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_student)
):
    """
    Student's own result for a paper.
    Scores and the per-question review stay hidden until the result is published.
    """
    attempt = attempt_manager.find_attempt(db, current_user.id, paper_id)
    if not attempt:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No attempt for this rank paper"
        )

    mark = get_mark(db, attempt.id)
    if mark is None or not mark.is_published:
        return {"attempt": attempt_response(attempt), "published": False}

    entries = leaderboard.rank(db, paper_id)
    position = next((e.rank for e in entries if e.attempt_id == attempt.id), None)

    key = {}
    try:
        key = answer_key_for_paper(db, paper_id)
    except AnswerKeyIntegrityError as e:
        logger.warning("Results for attempt %s shown without correct options: %s", attempt.id, e)

    return {
        "attempt": attempt_response(attempt),
        "published": True,
        "marks": mark,
        "rank": position,
        "participants": len(entries),
        "answers": review_answers(db, attempt, key)
    }


@router.get("/{paper_id}/leaderboard", response_model=List[leaderboard.LeaderboardEntry])
async def get_leaderboard(
    paper_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    try:
        attempt_manager.get_paper(db, paper_id)
    except RankPaperError as e:
        raise http_error(e)
    return leaderboard.rank(db, paper_id)
