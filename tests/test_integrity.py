from datetime import timedelta

from sqlalchemy.exc import OperationalError

from rankbackend.models import RankAttempt, ViolationKind
from rankbackend.services import attempt_manager, integrity


def test_counters_increment_per_kind(db, student, paper, allow_all, now):
    attempt = attempt_manager.start_attempt(db, student.id, paper.id, allow_all, now=now)

    assert integrity.record_violation(db, attempt.id, ViolationKind.TAB_SWITCH)
    assert integrity.record_violation(db, attempt.id, ViolationKind.TAB_SWITCH)
    assert integrity.record_violation(db, attempt.id, ViolationKind.WINDOW_CLOSE)

    db.expire_all()
    stored = db.get(RankAttempt, attempt.id)
    assert stored.tab_switch_count == 2
    assert stored.window_close_count == 1


def test_late_report_after_close_still_counts(db, student, paper, allow_all, now):
    attempt = attempt_manager.start_attempt(db, student.id, paper.id, allow_all, now=now)
    attempt_manager.submit_attempt(db, attempt.id, now=now + timedelta(minutes=1))

    assert integrity.record_violation(db, attempt.id, ViolationKind.WINDOW_CLOSE)

    db.expire_all()
    assert db.get(RankAttempt, attempt.id).window_close_count == 1


def test_unknown_attempt_is_dropped(db):
    assert integrity.record_violation(db, 12345, ViolationKind.TAB_SWITCH) is False


def test_storage_failure_does_not_raise(db, student, paper, allow_all, now, monkeypatch):
    attempt = attempt_manager.start_attempt(db, student.id, paper.id, allow_all, now=now)

    def broken_commit():
        raise OperationalError("UPDATE rank_attempts", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", broken_commit)

    assert integrity.record_violation(db, attempt.id, ViolationKind.TAB_SWITCH) is False
