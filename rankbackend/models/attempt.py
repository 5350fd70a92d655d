from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from rankbackend.database import Base


class CloseReason(str, enum.Enum):
    EXPLICIT = "EXPLICIT"
    EXPIRY = "EXPIRY"


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    EXPIRED = "EXPIRED"  # past ends_at, not yet closed by a sweep or a write
    SUBMITTED = "SUBMITTED"
    AUTO_CLOSED = "AUTO_CLOSED"


class ViolationKind(str, enum.Enum):
    TAB_SWITCH = "TAB_SWITCH"
    WINDOW_CLOSE = "WINDOW_CLOSE"


class PaperProgress(str, enum.Enum):
    """A student's standing on one paper, as shown on the paper list."""
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    EXPIRED = "EXPIRED"
    SUBMITTED = "SUBMITTED"
    AUTO_CLOSED = "AUTO_CLOSED"
    MARKED = "MARKED"  # result published


class RankAttempt(Base):
    __tablename__ = "rank_attempts"
    # One attempt per (user, paper); concurrent starts rely on this constraint
    __table_args__ = (UniqueConstraint("user_id", "rank_paper_id", name="uq_rank_attempt_user_paper"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rank_paper_id = Column(Integer, ForeignKey("rank_papers.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    auto_closed = Column(Boolean, nullable=False, default=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    tab_switch_count = Column(Integer, nullable=False, default=0)
    window_close_count = Column(Integer, nullable=False, default=0)

    user = relationship("User", backref="rank_attempts")
    paper = relationship("RankPaper", back_populates="attempts")
    mcq_answers = relationship("RankMcqAnswer", back_populates="attempt", cascade="all, delete-orphan")
    uploads = relationship("RankUploadAnswer", back_populates="attempt", cascade="all, delete-orphan")
    mark = relationship("RankMark", back_populates="attempt", uselist=False, cascade="all, delete-orphan")

    @property
    def is_terminal(self) -> bool:
        return self.submitted_at is not None or bool(self.auto_closed)
