from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rankbackend.auth.jwt import create_access_token
from rankbackend.database import Base, get_db
from rankbackend.main import app
from rankbackend.models import (
    RankMcqOption, RankMcqQuestion, RankPaper, User, UserRole
)
from rankbackend.services.eligibility import AllowAllEligibility, get_eligibility
from rankbackend.services.notifications import Notifier, get_notifier

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class RecordingNotifier(Notifier):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def results_published(self, payload):
        if self.fail:
            raise RuntimeError("notification service down")
        self.sent.append(payload)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def allow_all():
    return AllowAllEligibility()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.STUDENT, full_name=None):
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            password_hash="x",
            full_name=full_name or f"Student {counter['n']}",
            role=role
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def student(make_user):
    return make_user()


@pytest.fixture
def make_paper(db):
    def _make(questions=5, options=4, time_limit_minutes=60, correct=None, **fields):
        """
        Paper with ``questions`` MCQs of ``options`` options each.
        ``correct`` maps q_no -> list of correct option numbers; default is option 1.
        """
        fields.setdefault("title", "Grade 5 Rank Paper")
        fields.setdefault("grade", 5)
        paper = RankPaper(time_limit_minutes=time_limit_minutes, **fields)
        db.add(paper)
        db.flush()
        correct = correct or {}
        for q_no in range(1, questions + 1):
            question = RankMcqQuestion(rank_paper_id=paper.id, q_no=q_no, question_text=f"Q{q_no}")
            db.add(question)
            db.flush()
            right = correct.get(q_no, [1])
            for option_no in range(1, options + 1):
                db.add(RankMcqOption(
                    question_id=question.id,
                    option_no=option_no,
                    option_text=f"Option {option_no}",
                    is_correct=option_no in right
                ))
        db.commit()
        db.refresh(paper)
        return paper

    return _make


@pytest.fixture
def paper(make_paper):
    return make_paper()


@pytest.fixture
def client(session_factory, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_eligibility] = lambda: AllowAllEligibility()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token({"sub": str(user.id), "role": user.role.value}, timedelta(minutes=30))
        return {"Authorization": f"Bearer {token}"}

    return _headers
