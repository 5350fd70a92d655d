from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, String, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from rankbackend.database import Base


class UploadType(str, enum.Enum):
    SHORT_ESSAY = "SHORT_ESSAY"
    ESSAY = "ESSAY"


class RankMcqAnswer(Base):
    __tablename__ = "rank_answers_mcq"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_rank_answer_question"),)

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("rank_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("rank_mcq_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    selected_option_no = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    attempt = relationship("RankAttempt", back_populates="mcq_answers")
    question = relationship("RankMcqQuestion")


class RankUploadAnswer(Base):
    """Free-text section answer. Only a reference to the stored file is kept."""

    __tablename__ = "rank_answers_uploads"
    __table_args__ = (UniqueConstraint("attempt_id", "upload_type", name="uq_rank_upload_type"),)

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("rank_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    upload_type = Column(Enum(UploadType), nullable=False)
    storage_key = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    attempt = relationship("RankAttempt", back_populates="uploads")
