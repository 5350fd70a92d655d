from rankbackend.models.user import User, UserRole
from rankbackend.models.rank_paper import RankPaper, RankMcqQuestion, RankMcqOption
from rankbackend.models.attempt import RankAttempt, AttemptStatus, CloseReason, ViolationKind, PaperProgress
from rankbackend.models.answer import RankMcqAnswer, RankUploadAnswer, UploadType
from rankbackend.models.marks import RankMark, MarkSection, MANUAL_SECTIONS
from rankbackend.models.payment import Payment, PaymentType, PaymentStatus

__all__ = [
    "User",
    "UserRole",
    "RankPaper",
    "RankMcqQuestion",
    "RankMcqOption",
    "RankAttempt",
    "AttemptStatus",
    "CloseReason",
    "ViolationKind",
    "PaperProgress",
    "RankMcqAnswer",
    "RankUploadAnswer",
    "UploadType",
    "RankMark",
    "MarkSection",
    "MANUAL_SECTIONS",
    "Payment",
    "PaymentType",
    "PaymentStatus",
]
