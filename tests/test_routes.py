from datetime import timedelta

import pytest
from fastapi import HTTPException

from rankbackend.auth.dependencies import user_id_from_token
from rankbackend.auth.jwt import create_access_token
from rankbackend.auth.passwords import get_password_hash
from rankbackend.models import RankAttempt, User, UserRole
from rankbackend.services.clock import utcnow


@pytest.fixture
def admin(make_user):
    return make_user(role=UserRole.ADMIN, full_name="Admin")


@pytest.fixture
def essay_paper(make_paper):
    return make_paper(questions=3, has_essay=True)


def start(client, auth_headers, user, paper):
    response = client.post(f"/rank-papers/{paper.id}/attempt", headers=auth_headers(user))
    assert response.status_code == 200
    return response.json()


def test_login_and_me(client, db):
    db.add(User(
        email="nimali@example.com",
        password_hash=get_password_hash("secret-pass"),
        full_name="Nimali",
        role=UserRole.STUDENT
    ))
    db.commit()

    response = client.post("/auth/login", data={"username": "nimali@example.com", "password": "secret-pass"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["full_name"] == "Nimali"

    bad = client.post("/auth/login", data={"username": "nimali@example.com", "password": "wrong"})
    assert bad.status_code == 401


def test_requires_authentication(client, paper):
    assert client.post(f"/rank-papers/{paper.id}/attempt").status_code == 401


def test_start_is_idempotent(client, auth_headers, student, paper):
    first = start(client, auth_headers, student, paper)
    second = start(client, auth_headers, student, paper)

    assert first["attempt_id"] == second["attempt_id"]
    assert first["status"] == "IN_PROGRESS"
    assert 0 < first["seconds_remaining"] <= 3600


def test_answer_and_resume(client, auth_headers, student, paper):
    attempt = start(client, auth_headers, student, paper)
    question_id = paper.questions[0].id

    response = client.put(
        f"/rank-papers/attempts/{attempt['attempt_id']}/answers",
        json={"question_id": question_id, "option_no": 2},
        headers=auth_headers(student)
    )
    assert response.status_code == 200
    assert response.json()["selected_option_no"] == 2

    resumed = client.get(f"/rank-papers/{paper.id}/attempt", headers=auth_headers(student))
    assert resumed.status_code == 200
    assert resumed.json()["answers"] == [{"question_id": question_id, "selected_option_no": 2}]


def test_invalid_option_is_422(client, auth_headers, student, paper):
    attempt = start(client, auth_headers, student, paper)
    response = client.put(
        f"/rank-papers/attempts/{attempt['attempt_id']}/answers",
        json={"question_id": paper.questions[0].id, "option_no": 7},
        headers=auth_headers(student)
    )
    assert response.status_code == 422


def test_cannot_touch_someone_elses_attempt(client, auth_headers, make_user, paper):
    owner, other = make_user(), make_user()
    attempt = start(client, auth_headers, owner, paper)

    response = client.post(
        f"/rank-papers/attempts/{attempt['attempt_id']}/submit",
        headers=auth_headers(other)
    )
    assert response.status_code == 404


def test_answer_after_submit_is_409(client, auth_headers, student, paper):
    attempt = start(client, auth_headers, student, paper)
    attempt_id = attempt["attempt_id"]

    submitted = client.post(f"/rank-papers/attempts/{attempt_id}/submit", headers=auth_headers(student))
    assert submitted.json()["status"] == "SUBMITTED"
    again = client.post(f"/rank-papers/attempts/{attempt_id}/submit", headers=auth_headers(student))
    assert again.json()["submitted_at"] == submitted.json()["submitted_at"]

    response = client.put(
        f"/rank-papers/attempts/{attempt_id}/answers",
        json={"question_id": paper.questions[0].id, "option_no": 1},
        headers=auth_headers(student)
    )
    assert response.status_code == 409


def test_violation_reports_are_accepted(client, auth_headers, student, paper):
    attempt = start(client, auth_headers, student, paper)
    url = f"/rank-papers/attempts/{attempt['attempt_id']}/violations"

    for kind in ("TAB_SWITCH", "TAB_SWITCH", "WINDOW_CLOSE"):
        response = client.post(url, json={"kind": kind}, headers=auth_headers(student))
        assert response.status_code == 202
        assert response.json() == {"recorded": True}

    state = client.get(f"/rank-papers/{paper.id}/attempt", headers=auth_headers(student)).json()
    assert state["tab_switch_count"] == 2
    assert state["window_close_count"] == 1


def test_students_cannot_use_admin_routes(client, auth_headers, student, paper):
    response = client.get(f"/admin/rank-papers/{paper.id}/attempts", headers=auth_headers(student))
    assert response.status_code == 403


def test_review_draft_publish_flow(client, auth_headers, student, admin, essay_paper, notifier):
    attempt = start(client, auth_headers, student, essay_paper)
    attempt_id = attempt["attempt_id"]
    headers = auth_headers(student)
    for question in essay_paper.questions[:2]:
        client.put(
            f"/rank-papers/attempts/{attempt_id}/answers",
            json={"question_id": question.id, "option_no": 1},
            headers=headers
        )
    client.put(
        f"/rank-papers/attempts/{attempt_id}/uploads",
        json={"upload_type": "ESSAY", "storage_key": "essays/1.pdf"},
        headers=headers
    )

    # Drafting an open attempt is refused
    early = client.post(f"/admin/rank-papers/attempts/{attempt_id}/draft", headers=auth_headers(admin))
    assert early.status_code == 409

    client.post(f"/rank-papers/attempts/{attempt_id}/submit", headers=headers)
    draft = client.post(f"/admin/rank-papers/attempts/{attempt_id}/draft", headers=auth_headers(admin))
    assert draft.status_code == 200
    assert draft.json()["mcq_score"] == 2
    assert draft.json()["status"] == "DRAFT"

    review = client.get(f"/admin/rank-papers/attempts/{attempt_id}", headers=auth_headers(admin)).json()
    assert [a["is_correct"] for a in review["answers"]] == [True, True, False]
    assert review["uploads"][0]["storage_key"] == "essays/1.pdf"

    # Results stay hidden while the mark is a draft
    hidden = client.get(f"/rank-papers/{essay_paper.id}/results", headers=headers).json()
    assert hidden["published"] is False
    assert hidden["marks"] is None
    assert hidden["answers"] is None

    blocked = client.post(f"/admin/rank-papers/attempts/{attempt_id}/publish", headers=auth_headers(admin))
    assert blocked.status_code == 409
    assert blocked.json()["detail"]["missing"] == ["ESSAY"]

    scored = client.put(
        f"/admin/rank-papers/attempts/{attempt_id}/manual-score",
        json={"section": "ESSAY", "score": 40},
        headers=auth_headers(admin)
    )
    assert scored.status_code == 200

    published = client.post(f"/admin/rank-papers/attempts/{attempt_id}/publish", headers=auth_headers(admin))
    assert published.status_code == 200
    assert published.json()["total_score"] == 42.0
    assert len(notifier.sent) == 1

    results = client.get(f"/rank-papers/{essay_paper.id}/results", headers=headers).json()
    assert results["published"] is True
    assert results["marks"]["total_score"] == 42.0
    assert results["rank"] == 1
    assert [a["selected_option_no"] for a in results["answers"]] == [1, 1, None]
    assert [a["correct_option_no"] for a in results["answers"]] == [1, 1, 1]
    assert [a["is_correct"] for a in results["answers"]] == [True, True, False]

    board = client.get(f"/rank-papers/{essay_paper.id}/leaderboard", headers=headers).json()
    assert [entry["attempt_id"] for entry in board] == [attempt_id]


def test_publish_all_route(client, auth_headers, make_user, admin, paper):
    attempt_ids = []
    for _ in range(2):
        user = make_user()
        attempt_id = start(client, auth_headers, user, paper)["attempt_id"]
        client.post(f"/rank-papers/attempts/{attempt_id}/submit", headers=auth_headers(user))
        client.post(f"/admin/rank-papers/attempts/{attempt_id}/draft", headers=auth_headers(admin))
        attempt_ids.append(attempt_id)

    response = client.post(f"/admin/rank-papers/{paper.id}/publish-all", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json() == {"published": attempt_ids, "skipped": []}


def test_broken_answer_key_is_500_with_question_ids(client, auth_headers, student, admin, make_paper):
    paper = make_paper(questions=2, correct={2: [1, 2]})
    attempt_id = start(client, auth_headers, student, paper)["attempt_id"]
    client.post(f"/rank-papers/attempts/{attempt_id}/submit", headers=auth_headers(student))

    response = client.post(f"/admin/rank-papers/attempts/{attempt_id}/draft", headers=auth_headers(admin))

    assert response.status_code == 500
    assert response.json()["detail"]["question_ids"] == [paper.questions[1].id]


def test_sweep_route_closes_overdue_attempts(client, auth_headers, db, student, admin, paper):
    overdue = RankAttempt(
        user_id=student.id,
        rank_paper_id=paper.id,
        started_at=utcnow() - timedelta(hours=2),
        ends_at=utcnow() - timedelta(hours=1),
        auto_closed=False,
        tab_switch_count=0,
        window_close_count=0
    )
    db.add(overdue)
    db.commit()

    response = client.post("/admin/rank-papers/sweep", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json() == {"closed": [overdue.id]}
    state = client.get(f"/rank-papers/{paper.id}/attempt", headers=auth_headers(student)).json()
    assert state["status"] == "AUTO_CLOSED"


def test_non_finite_manual_score_is_422(client, auth_headers, student, admin, essay_paper):
    attempt_id = start(client, auth_headers, student, essay_paper)["attempt_id"]
    client.post(f"/rank-papers/attempts/{attempt_id}/submit", headers=auth_headers(student))
    headers = {**auth_headers(admin), "Content-Type": "application/json"}

    for literal in ("Infinity", "-Infinity", "NaN"):
        response = client.put(
            f"/admin/rank-papers/attempts/{attempt_id}/manual-score",
            content=f'{{"section": "ESSAY", "score": {literal}}}',
            headers=headers
        )
        assert response.status_code == 422

    review = client.get(f"/admin/rank-papers/attempts/{attempt_id}", headers=auth_headers(admin)).json()
    assert review["marks"] is None


def test_my_standings(client, auth_headers, student, paper, make_paper):
    second = make_paper(title="Second Paper")
    attempt = start(client, auth_headers, student, paper)

    response = client.get("/rank-papers/attempts/mine", headers=auth_headers(student))

    assert response.status_code == 200
    assert response.json() == [
        {"paper_id": paper.id, "title": paper.title, "progress": "IN_PROGRESS",
         "attempt_id": attempt["attempt_id"]},
        {"paper_id": second.id, "title": "Second Paper", "progress": "NOT_STARTED", "attempt_id": None},
    ]


def test_moderator_reviews_but_cannot_create_users(client, auth_headers, make_user, paper):
    moderator = make_user(role=UserRole.MODERATOR, full_name="Moderator")

    listing = client.get(f"/admin/rank-papers/{paper.id}/attempts", headers=auth_headers(moderator))
    assert listing.status_code == 200

    response = client.post(
        "/auth/create-user",
        json={"email": "new@rankschool.org", "password": "pw-123456", "full_name": "New", "role": "STUDENT"},
        headers=auth_headers(moderator)
    )
    assert response.status_code == 403


def test_admin_creates_users(client, auth_headers, admin):
    response = client.post(
        "/auth/create-user",
        json={"email": "mod@rankschool.org", "password": "pw-123456", "full_name": "Mod", "role": "MODERATOR"},
        headers=auth_headers(admin)
    )
    assert response.status_code == 201
    assert response.json()["role"] == "MODERATOR"


@pytest.mark.parametrize("claims", [{"sub": "not-a-number"}, {"role": "STUDENT"}, {"sub": "9999"}])
def test_unusable_tokens_are_401(client, paper, claims):
    token = create_access_token(claims, timedelta(minutes=5))

    response = client.post(f"/rank-papers/{paper.id}/attempt", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "1"}, timedelta(minutes=-1))

    with pytest.raises(HTTPException) as exc:
        user_id_from_token(token)
    assert exc.value.status_code == 401
