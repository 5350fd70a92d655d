from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from rankbackend.database import Base


class MarkSection(str, enum.Enum):
    MCQ = "MCQ"
    SHORT_ESSAY = "SHORT_ESSAY"
    ESSAY = "ESSAY"


MANUAL_SECTIONS = (MarkSection.SHORT_ESSAY, MarkSection.ESSAY)


class RankMark(Base):
    __tablename__ = "rank_marks"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("rank_attempts.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    mcq_score = Column(Integer, nullable=True)
    mcq_total = Column(Integer, nullable=True)
    short_essay_score = Column(Float, nullable=True)
    essay_score = Column(Float, nullable=True)
    total_score = Column(Float, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    attempt = relationship("RankAttempt", back_populates="mark")

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    def section_score(self, section: MarkSection):
        return {
            MarkSection.MCQ: self.mcq_score,
            MarkSection.SHORT_ESSAY: self.short_essay_score,
            MarkSection.ESSAY: self.essay_score,
        }[section]
