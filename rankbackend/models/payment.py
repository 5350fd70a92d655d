from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, String, Float
from sqlalchemy.sql import func
import enum
from rankbackend.database import Base


class PaymentType(str, enum.Enum):
    RANK_PAPER = "RANK_PAPER"
    CLASS_MONTH = "CLASS_MONTH"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Payment(Base):
    """Payment slips. Verified by the payments workflow; read here for eligibility only."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_type = Column(Enum(PaymentType), nullable=False)
    # RANK_PAPER: the paper id; CLASS_MONTH: "<class_id>-YYYY-MM"
    ref_id = Column(String(64), nullable=False, index=True)
    amount = Column(Float, nullable=True)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
