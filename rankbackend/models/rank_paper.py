from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Float, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from rankbackend.database import Base


class RankPaper(Base):
    """Assessment definition. Authored elsewhere; the attempt engine only reads it."""

    __tablename__ = "rank_papers"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    grade = Column(Integer, nullable=False, default=0)
    class_id = Column(Integer, nullable=True, index=True)
    time_limit_minutes = Column(Integer, nullable=False, default=60)
    has_mcq = Column(Boolean, nullable=False, default=True)
    has_short_essay = Column(Boolean, nullable=False, default=False)
    has_essay = Column(Boolean, nullable=False, default=False)
    fee_amount = Column(Float, nullable=True)  # null or 0 means free
    unlock_at = Column(DateTime(timezone=True), nullable=True)
    lock_at = Column(DateTime(timezone=True), nullable=True)
    publish_status = Column(String(20), nullable=False, default="PUBLISHED")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    questions = relationship(
        "RankMcqQuestion",
        back_populates="paper",
        order_by="RankMcqQuestion.q_no",
        cascade="all, delete-orphan",
    )
    attempts = relationship("RankAttempt", back_populates="paper")

    @property
    def is_free(self) -> bool:
        return not self.fee_amount


class RankMcqQuestion(Base):
    __tablename__ = "rank_mcq_questions"
    __table_args__ = (UniqueConstraint("rank_paper_id", "q_no", name="uq_rank_question_no"),)

    id = Column(Integer, primary_key=True, index=True)
    rank_paper_id = Column(Integer, ForeignKey("rank_papers.id", ondelete="CASCADE"), nullable=False, index=True)
    q_no = Column(Integer, nullable=False)
    question_text = Column(Text, nullable=True)
    question_image_url = Column(String(500), nullable=True)

    paper = relationship("RankPaper", back_populates="questions")
    options = relationship(
        "RankMcqOption",
        back_populates="question",
        order_by="RankMcqOption.option_no",
        cascade="all, delete-orphan",
    )


class RankMcqOption(Base):
    __tablename__ = "rank_mcq_options"
    __table_args__ = (UniqueConstraint("question_id", "option_no", name="uq_rank_option_no"),)

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("rank_mcq_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    option_no = Column(Integer, nullable=False)
    option_text = Column(Text, nullable=True)
    is_correct = Column(Boolean, nullable=False, default=False)

    question = relationship("RankMcqQuestion", back_populates="options")
