import pytest

from rankbackend.services import answer_store, attempt_manager
from rankbackend.services.errors import AnswerKeyIntegrityError
from rankbackend.services.scoring import answer_key_for_paper, score_attempt


def test_counts_correct_answers_and_treats_missing_as_wrong(db, student, make_paper, allow_all, now):
    # Correct options: 1, 2, 3, 4, 1
    paper = make_paper(correct={1: [1], 2: [2], 3: [3], 4: [4], 5: [1]})
    attempt = attempt_manager.start_attempt(db, student.id, paper.id, allow_all, now=now)
    q = paper.questions

    answer_store.upsert_answer(db, attempt.id, q[0].id, 1, now=now)  # right
    answer_store.upsert_answer(db, attempt.id, q[1].id, 2, now=now)  # right
    answer_store.upsert_answer(db, attempt.id, q[2].id, 1, now=now)  # wrong
    answer_store.upsert_answer(db, attempt.id, q[3].id, 4, now=now)  # right
    # q5 left unanswered

    score = score_attempt(db, attempt.id)

    assert score.correct == 3
    assert score.total_questions == 5
    assert score.percentage == 60.0


def test_scoring_twice_gives_same_result(db, student, paper, allow_all, now):
    attempt = attempt_manager.start_attempt(db, student.id, paper.id, allow_all, now=now)
    answer_store.upsert_answer(db, attempt.id, paper.questions[0].id, 1, now=now)

    assert score_attempt(db, attempt.id) == score_attempt(db, attempt.id)


def test_cleared_answer_scores_as_wrong(db, student, paper, allow_all, now):
    attempt = attempt_manager.start_attempt(db, student.id, paper.id, allow_all, now=now)
    question = paper.questions[0]
    answer_store.upsert_answer(db, attempt.id, question.id, 1, now=now)
    answer_store.upsert_answer(db, attempt.id, question.id, None, now=now)

    assert score_attempt(db, attempt.id).correct == 0


def test_answer_key_rejects_question_with_two_correct_options(db, make_paper):
    paper = make_paper(questions=3, correct={2: [1, 3]})

    with pytest.raises(AnswerKeyIntegrityError) as exc_info:
        answer_key_for_paper(db, paper.id)

    assert exc_info.value.question_ids == [paper.questions[1].id]


def test_answer_key_rejects_question_without_correct_option(db, make_paper):
    paper = make_paper(questions=3, correct={1: [], 3: []})

    with pytest.raises(AnswerKeyIntegrityError) as exc_info:
        answer_key_for_paper(db, paper.id)

    assert exc_info.value.question_ids == [paper.questions[0].id, paper.questions[2].id]


def test_paper_without_questions_scores_zero(db, student, make_paper, allow_all, now):
    paper = make_paper(questions=0)
    attempt = attempt_manager.start_attempt(db, student.id, paper.id, allow_all, now=now)

    score = score_attempt(db, attempt.id)

    assert score.correct == 0
    assert score.total_questions == 0
    assert score.percentage == 0.0
