"""
Eligibility collaborator: may this user start this rank paper right now?

The attempt engine only trusts the boolean. The default implementation below
mirrors how the portal grants access: the paper's visibility window must be
open, and the paper is either free or paid for, directly or through the class
monthly fee.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy.orm import Session

from rankbackend.models import Payment, PaymentStatus, PaymentType, RankPaper
from rankbackend.services.clock import as_utc

logger = logging.getLogger(__name__)


class Eligibility(ABC):
    @abstractmethod
    def can_start(self, db: Session, user_id: int, paper: RankPaper, now: datetime) -> bool:
        raise NotImplementedError


def window_is_open(paper: RankPaper, now: datetime) -> bool:
    unlock_at = as_utc(paper.unlock_at)
    lock_at = as_utc(paper.lock_at)
    if unlock_at is not None and now < unlock_at:
        return False
    if lock_at is not None and now >= lock_at:
        return False
    return True


def class_month_ref(class_id: int, now: datetime) -> str:
    return f"{class_id}-{now.strftime('%Y-%m')}"


class PaymentEligibility(Eligibility):
    def can_start(self, db: Session, user_id: int, paper: RankPaper, now: datetime) -> bool:
        if paper.publish_status != "PUBLISHED":
            logger.info("Paper %s is not published (%s)", paper.id, paper.publish_status)
            return False

        if not window_is_open(paper, now):
            logger.info("Paper %s is outside its visibility window", paper.id)
            return False

        if paper.is_free:
            return True

        paid_for_paper = db.query(Payment.id).filter(
            Payment.user_id == user_id,
            Payment.payment_type == PaymentType.RANK_PAPER,
            Payment.ref_id == str(paper.id),
            Payment.status == PaymentStatus.APPROVED
        ).first()
        if paid_for_paper:
            return True

        # Monthly class fee covers every rank paper of that class
        if paper.class_id is not None:
            paid_class_month = db.query(Payment.id).filter(
                Payment.user_id == user_id,
                Payment.payment_type == PaymentType.CLASS_MONTH,
                Payment.ref_id == class_month_ref(paper.class_id, now),
                Payment.status == PaymentStatus.APPROVED
            ).first()
            if paid_class_month:
                return True

        return False


class AllowAllEligibility(Eligibility):
    """Grants every request. Used for staff previews and tests."""

    def can_start(self, db: Session, user_id: int, paper: RankPaper, now: datetime) -> bool:
        return True


def get_eligibility() -> Eligibility:
    """Dependency returning the eligibility policy used for student starts"""
    return PaymentEligibility()
