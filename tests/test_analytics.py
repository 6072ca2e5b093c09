"""Tests for exam analytics (service and admin route)."""

import uuid
from datetime import timedelta

from conftest import T0, answers_by_prompt, auth_headers
from exam_engine.services.analytics import ExamAnalytics
from exam_engine.services.attempt_engine import AttemptEngine

ALL_CORRECT = {"Capital of Italy?": "A", "Largest planet?": "B"}
HALF_WRONG = {"Capital of Italy?": "A", "Largest planet?": "A"}
ONLY_FIRST = {"Capital of Italy?": "A"}


def _take(engine, exam, by_prompt, now, user_id=None):
    user_id = user_id or uuid.uuid4()
    started = engine.start_attempt(user_id, exam.id, now)
    return engine.submit_attempt(
        started.attempt_id, answers_by_prompt(exam, by_prompt), now=now + timedelta(seconds=120)
    )


def test_empty_exam_analytics(db, make_exam):
    exam = make_exam()
    report = ExamAnalytics(db).build(exam.id, T0)

    assert report.overall.total_attempts == 0
    assert report.overall.pass_rate == 0.0
    assert [b.count for b in report.score_distribution] == [0] * 10
    assert report.question_count == 2
    assert report.attempts_by_day == []


def test_overall_and_distribution(db, make_exam):
    exam = make_exam()
    engine = AttemptEngine(db)
    _take(engine, exam, ALL_CORRECT, T0)
    _take(engine, exam, HALF_WRONG, T0)
    _take(engine, exam, ONLY_FIRST, T0 + timedelta(days=1))

    report = ExamAnalytics(db).build(exam.id, T0)
    overall = report.overall
    assert overall.total_attempts == 3
    assert overall.unique_students == 3
    assert (overall.passed_count, overall.failed_count) == (1, 2)
    assert overall.pass_rate == 33.33
    assert overall.highest_score == 100.0
    assert overall.lowest_score == 40.0
    assert overall.average_score == 60.0
    assert overall.average_time_minutes == 2.0

    buckets = {b.range: b.count for b in report.score_distribution}
    assert buckets["40-50%"] == 2
    assert buckets["90-100%"] == 1

    assert [(d.date, d.count) for d in report.attempts_by_day] == [
        ("2026-03-01", 2),
        ("2026-03-02", 1),
    ]


def test_question_level_stats(db, make_exam):
    exam = make_exam()
    engine = AttemptEngine(db)
    _take(engine, exam, ALL_CORRECT, T0)
    _take(engine, exam, HALF_WRONG, T0)
    _take(engine, exam, ONLY_FIRST, T0)

    report = ExamAnalytics(db).build(exam.id, T0)
    first, second = report.questions

    assert (first.total_answered, first.correct_count, first.correct_rate) == (3, 3, 100.0)
    assert first.option_distribution == {"A": 3, "B": 0, "C": 0}
    # The unanswered third submission does not count for question two
    assert (second.total_answered, second.correct_count, second.incorrect_count) == (2, 1, 1)
    assert second.option_distribution == {"A": 1, "B": 1, "C": 0}
    assert first.flag is None  # too few answers to judge


def test_flags_need_more_than_five_answers(db, make_exam):
    exam = make_exam()
    engine = AttemptEngine(db)
    for i in range(6):
        _take(engine, exam, HALF_WRONG, T0 + timedelta(minutes=i * 20))

    first, second = ExamAnalytics(db).build(exam.id, T0).questions
    assert first.flag == "TOO_EASY"
    assert second.flag == "TOO_HARD"


def test_analytics_route_is_admin_only(client, make_exam, student_id):
    exam = make_exam(title="Graded quiz")

    resp = client.get(f"/api/exams/{exam.id}/analytics", headers=auth_headers(student_id))
    assert resp.status_code == 403

    resp = client.get(
        f"/api/exams/{exam.id}/analytics", headers=auth_headers(uuid.uuid4(), role="admin")
    )
    assert resp.status_code == 200
    assert resp.json()["exam_title"] == "Graded quiz"


def test_analytics_unknown_exam(client):
    resp = client.get(
        f"/api/exams/{uuid.uuid4()}/analytics", headers=auth_headers(uuid.uuid4(), role="admin")
    )
    assert resp.status_code == 404
    assert resp.json()["error_code"] == "exam_not_found"
