"""HTTP-level tests for the exam and attempt routes."""

import uuid
from datetime import timedelta

from conftest import answers_by_prompt, auth_headers
from exam_engine.celery_app import celery_app
from exam_engine.db.models import ExamAttempt
from exam_engine.services.errors import CertificateIssuanceError

ALL_CORRECT = {"Capital of Italy?": "A", "Largest planet?": "B"}
HALF_WRONG = {"Capital of Italy?": "A", "Largest planet?": "A"}


class DownIssuer:
    def __init__(self):
        self.calls = 0

    def issue(self, *args):
        self.calls += 1
        raise CertificateIssuanceError("down")


def _start(client, exam_id, user_id):
    return client.post(f"/api/exams/{exam_id}/attempts", headers=auth_headers(user_id))


def _submit(client, attempt_id, user_id, answers, **extra):
    return client.post(
        f"/api/attempts/{attempt_id}/submit",
        json={"answers": answers, **extra},
        headers=auth_headers(user_id),
    )


class TestStartRoute:
    def test_start_then_resume(self, client, make_exam, student_id, clock):
        exam = make_exam()

        resp = _start(client, exam.id, student_id)
        assert resp.status_code == 201
        started = resp.json()
        assert started["attempt_number"] == 1
        assert started["remaining_time_seconds"] == 600
        assert "correct_answer" not in started["questions"][0]

        clock.advance(100)
        resp = _start(client, exam.id, student_id)
        assert resp.status_code == 200
        assert resp.json()["attempt_id"] == started["attempt_id"]
        assert resp.json()["resuming"] is True
        assert resp.json()["remaining_time_seconds"] == 500

    def test_requires_token(self, client, make_exam):
        exam = make_exam()
        assert client.post(f"/api/exams/{exam.id}/attempts").status_code == 401

    def test_rejects_bad_token(self, client, make_exam):
        exam = make_exam()
        resp = client.post(
            f"/api/exams/{exam.id}/attempts", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert resp.status_code == 401

    def test_unknown_exam_uses_error_envelope(self, client, student_id):
        resp = _start(client, uuid.uuid4(), student_id)
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error_code"] == "exam_not_found"

    def test_unpublished_exam(self, client, make_exam, student_id):
        exam = make_exam(is_published=False)
        resp = _start(client, exam.id, student_id)
        assert resp.status_code == 403
        assert resp.json()["details"]["reason"] == "not_published"

    def test_expired_on_resume(self, client, make_exam, student_id, clock):
        exam = make_exam(time_limit_seconds=60)
        _start(client, exam.id, student_id)
        clock.advance(61)

        resp = _start(client, exam.id, student_id)
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "attempt_expired"

        resp = _start(client, exam.id, student_id)
        assert resp.status_code == 201
        assert resp.json()["attempt_number"] == 2

    def test_attempt_limit(self, client, make_exam, student_id):
        exam = make_exam(max_attempts=1)
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        _submit(client, attempt_id, student_id, answers_by_prompt(exam, HALF_WRONG))

        resp = _start(client, exam.id, student_id)
        assert resp.status_code == 409
        body = resp.json()
        assert body["error_code"] == "attempt_limit_exceeded"
        assert body["details"] == {"attempts_used": 1, "max_attempts": 1}

    def test_already_passed(self, client, make_exam, student_id):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        result = _submit(client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT)).json()

        resp = _start(client, exam.id, student_id)
        assert resp.status_code == 409
        body = resp.json()
        assert body["error_code"] == "already_passed"
        assert body["details"]["best_score"] == 100.0
        assert body["details"]["certificate_id"] == result["certificate_id"]


class TestSubmitRoute:
    def test_submit_pass(self, client, make_exam, student_id, clock):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        clock.advance(42)

        resp = _submit(
            client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT),
            client_time_spent_seconds=40,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "submitted"
        assert data["score"] == 100.0
        assert data["passed"] is True
        assert data["passing_score"] == 60.0
        assert data["time_spent_seconds"] == 42
        assert data["certificate_id"] is not None
        assert len(data["breakdown"]) == 2

    def test_double_submit_returns_identical_body(self, client, make_exam, student_id, clock):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        first = _submit(client, attempt_id, student_id, answers_by_prompt(exam, HALF_WRONG))
        clock.advance(30)
        second = _submit(client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT))

        assert first.status_code == second.status_code == 200
        assert first.content == second.content

    def test_submit_someone_elses_attempt(self, client, make_exam, student_id):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        resp = _submit(client, attempt_id, uuid.uuid4(), {})
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "attempt_not_found"

    def test_negative_client_time_rejected(self, client, make_exam, student_id):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        resp = _submit(client, attempt_id, student_id, {}, client_time_spent_seconds=-5)
        assert resp.status_code == 422

    def test_late_submit_is_expired(self, client, make_exam, student_id, clock):
        exam = make_exam(time_limit_seconds=60)
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        clock.advance(60 + 31)
        resp = _submit(client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT), auto_submit=True)
        assert resp.status_code == 200
        assert resp.json()["status"] == "expired"
        assert resp.json()["score"] == 100.0

    def test_issuer_failure_enqueues_retry(
        self, client, make_exam, student_id, monkeypatch, deferred_certificates
    ):
        monkeypatch.setattr(celery_app.conf, "task_always_eager", False)
        monkeypatch.setattr("exam_engine.api.deps.get_certificate_issuer", lambda db: DownIssuer())

        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        resp = _submit(client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT))

        assert resp.status_code == 200
        assert resp.json()["passed"] is True
        assert resp.json()["certificate_id"] is None
        deferred_certificates.delay.assert_called_once_with(attempt_id)

    def test_issuer_failure_in_eager_mode_is_left_to_the_sweep(
        self, client, make_exam, student_id, monkeypatch, deferred_certificates
    ):
        issuer = DownIssuer()
        monkeypatch.setattr(celery_app.conf, "task_always_eager", True)
        monkeypatch.setattr("exam_engine.api.deps.get_certificate_issuer", lambda db: issuer)

        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        resp = _submit(client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT))

        assert resp.status_code == 200
        assert resp.json()["certificate_id"] is None
        assert issuer.calls == 1
        deferred_certificates.delay.assert_not_called()


class TestReadRoutes:
    def test_stats(self, client, make_exam, student_id):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        _submit(client, attempt_id, student_id, answers_by_prompt(exam, HALF_WRONG))

        resp = client.get(f"/api/exams/{exam.id}/stats", headers=auth_headers(student_id))
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["attempts"] == 1
        assert stats["best_score"] == 40.0
        assert stats["can_retake"] is True
        assert stats["has_active_attempt"] is False
        assert stats["last_attempt"]["id"] == attempt_id

    def test_exam_detail_does_not_start_an_attempt(self, client, db, make_exam, student_id):
        exam = make_exam(description="Two quick questions", time_limit_seconds=900)

        resp = client.get(f"/api/exams/{exam.id}", headers=auth_headers(student_id))

        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Sample exam"
        assert data["description"] == "Two quick questions"
        assert data["time_limit_seconds"] == 900
        assert data["passing_score"] == 60.0
        assert data["max_attempts"] == 3
        assert data["question_count"] == 2
        assert data["total_points"] == 5
        assert "questions" not in data
        assert data["user_stats"]["attempts"] == 0
        assert data["user_stats"]["can_retake"] is True
        assert db.query(ExamAttempt).count() == 0

    def test_exam_detail_reflects_attempts(self, client, make_exam, student_id):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        _submit(client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT))

        stats = client.get(f"/api/exams/{exam.id}", headers=auth_headers(student_id)).json()["user_stats"]
        assert stats["has_passed"] is True
        assert stats["best_score"] == 100.0
        assert stats["last_attempt"]["id"] == attempt_id

    def test_exam_detail_checks_availability(self, client, make_exam, student_id, clock):
        hidden = make_exam(is_published=False)
        ended = make_exam(available_until=clock.now - timedelta(days=1))

        resp = client.get(f"/api/exams/{hidden.id}", headers=auth_headers(student_id))
        assert resp.status_code == 403
        assert resp.json()["details"]["reason"] == "not_published"

        resp = client.get(f"/api/exams/{ended.id}", headers=auth_headers(student_id))
        assert resp.status_code == 403
        assert resp.json()["details"]["reason"] == "availability_ended"

        resp = client.get(f"/api/exams/{uuid.uuid4()}", headers=auth_headers(student_id))
        assert resp.status_code == 404

    def test_list_and_detail(self, client, make_exam, student_id):
        exam = make_exam()
        attempt_id = _start(client, exam.id, student_id).json()["attempt_id"]
        _submit(client, attempt_id, student_id, answers_by_prompt(exam, ALL_CORRECT))

        listing = client.get("/api/attempts/", params={"exam_id": str(exam.id)}, headers=auth_headers(student_id))
        assert [a["id"] for a in listing.json()] == [attempt_id]

        detail = client.get(f"/api/attempts/{attempt_id}", headers=auth_headers(student_id))
        assert detail.status_code == 200
        assert detail.json()["result"]["score"] == 100.0

        hidden = client.get(f"/api/attempts/{attempt_id}", headers=auth_headers(uuid.uuid4()))
        assert hidden.status_code == 404


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
