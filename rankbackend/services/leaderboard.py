from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from rankbackend.models import RankAttempt, RankMark, User
from rankbackend.services.clock import as_utc

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


class LeaderboardEntry(BaseModel):
    rank: int
    attempt_id: int
    user_id: int
    name: str
    total_score: float
    mcq_score: Optional[int] = None
    short_essay_score: Optional[float] = None
    essay_score: Optional[float] = None
    closed_at: Optional[datetime] = None


def rank(db: Session, paper_id: int) -> List[LeaderboardEntry]:
    """
    Rank every published result of a paper, computed fresh on each call.

    Order: total score descending; equal totals go to whoever closed the
    attempt first, then the lower attempt id. Ranks are 1..n with no shared
    positions.
    """
    rows = db.query(RankMark, RankAttempt, User).join(
        RankAttempt, RankAttempt.id == RankMark.attempt_id
    ).join(
        User, User.id == RankAttempt.user_id
    ).filter(
        RankAttempt.rank_paper_id == paper_id,
        RankMark.published_at.isnot(None)
    ).all()

    def sort_key(row):
        mark, attempt, _ = row
        closed_at = as_utc(attempt.closed_at) or _LATEST
        return (-(mark.total_score or 0.0), closed_at, attempt.id)

    entries = []
    for position, (mark, attempt, user) in enumerate(sorted(rows, key=sort_key), start=1):
        entries.append(LeaderboardEntry(
            rank=position,
            attempt_id=attempt.id,
            user_id=user.id,
            name=user.full_name or "Anonymous",
            total_score=mark.total_score or 0.0,
            mcq_score=mark.mcq_score,
            short_essay_score=mark.short_essay_score,
            essay_score=mark.essay_score,
            closed_at=as_utc(attempt.closed_at)
        ))
    return entries
