"""
Integrity violation counters (tab switches, window closes).

Counters are advisory signals for reviewers. Recording is at-least-once and
fail-open: retried reports may overcount, late reports after the attempt
closed are still counted, and a failure to record never reaches the caller.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rankbackend.models import RankAttempt, ViolationKind

logger = logging.getLogger(__name__)

_COUNTERS = {
    ViolationKind.TAB_SWITCH: RankAttempt.tab_switch_count,
    ViolationKind.WINDOW_CLOSE: RankAttempt.window_close_count,
}


def record_violation(db: Session, attempt_id: int, kind: ViolationKind) -> bool:
    """Increment the counter for ``kind``. Returns False if nothing was recorded."""
    column = _COUNTERS[kind]
    try:
        updated = db.query(RankAttempt).filter(
            RankAttempt.id == attempt_id
        ).update({column: column + 1}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not record %s for attempt %s: %s", kind.value, attempt_id, e)
        return False

    if not updated:
        logger.warning("Dropped %s for unknown attempt %s", kind.value, attempt_id)
        return False
    return True
