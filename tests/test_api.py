"""Tests for the HTTP API.

Covers:
  - Submit answer → submit attempt → attempt view
  - Manual grade endpoint and error mapping (404 / 409 / 422)
  - Direct notation evaluation, with semitones or instruments
"""

import pytest
from fastapi.testclient import TestClient

from notegrade.api.server import create_app
from notegrade.exams.base import Attempt, ListenAndWriteQuestion, OrchestrationQuestion, TrueFalseQuestion
from notegrade.storage.base import ConcurrentUpdateError

from conftest import build_score


@pytest.fixture
def client(store, orchestrator, three_notes):
    store.add_attempt(Attempt(id="att-1", exam_id="exam-1", student_id="stu-1"))
    store.add_question(TrueFalseQuestion(id="q-tf", points=10, correct_answer=True))
    store.add_question(ListenAndWriteQuestion(id="q-lw", points=20, reference_score_xml=three_notes))
    store.add_question(OrchestrationQuestion(id="q-orch", points=5))
    return TestClient(create_app(orchestrator))


class TestAttemptFlow:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_submit_and_grade(self, client, three_notes):
        r = client.post("/answers", json={"attempt_id": "att-1", "question_id": "q-tf",
                                          "payload": {"value": True}})
        assert r.status_code == 200
        assert r.json()["is_graded"] is False
        client.post("/answers", json={"attempt_id": "att-1", "question_id": "q-lw",
                                      "payload": {"musicXML": three_notes}})

        r = client.post("/attempts/att-1/submit", json={"time_spent_seconds": 600})
        assert r.status_code == 200
        body = r.json()
        assert body["attempt"]["status"] == "GRADED"
        assert body["attempt"]["score"] == 30
        assert {o["status"] for o in body["outcomes"]} == {"graded"}
        lw = next(o for o in body["outcomes"] if o["method"] == "notation_diff")
        assert lw["evaluation"]["percentage"] == 100

        view = client.get("/attempts/att-1").json()
        assert view["time_spent_seconds"] == 600
        assert len(view["answers"]) == 2
        assert all(a["is_graded"] for a in view["answers"])

    def test_manual_grade_completes_attempt(self, client):
        r = client.post("/answers", json={"attempt_id": "att-1", "question_id": "q-orch"})
        answer_id = r.json()["id"]
        body = client.post("/attempts/att-1/submit", json={}).json()
        assert body["attempt"]["status"] == "SUBMITTED"
        assert body["outcomes"][0]["reason"] == "manual grading required"

        r = client.post(f"/answers/{answer_id}/grade",
                        json={"points_earned": 4, "feedback": "Good", "grader_id": "t-1"})
        assert r.status_code == 200
        assert r.json()["graded_by"] == "t-1"
        assert client.get("/attempts/att-1").json()["status"] == "GRADED"


class TestErrors:

    def test_unknown_attempt(self, client):
        assert client.get("/attempts/nope").status_code == 404
        assert client.post("/attempts/nope/submit", json={}).status_code == 404

    def test_unknown_question(self, client):
        r = client.post("/answers", json={"attempt_id": "att-1", "question_id": "nope"})
        assert r.status_code == 404
        assert "nope" in r.json()["detail"]

    def test_invalid_grade(self, client):
        answer_id = client.post("/answers", json={"attempt_id": "att-1", "question_id": "q-orch"}).json()["id"]
        r = client.post(f"/answers/{answer_id}/grade", json={"points_earned": 6})
        assert r.status_code == 422

    def test_conflict(self, client, orchestrator, monkeypatch):
        answer_id = client.post("/answers", json={"attempt_id": "att-1", "question_id": "q-orch"}).json()["id"]

        def stale(*args, **kwargs):
            raise ConcurrentUpdateError("Answer changed")

        monkeypatch.setattr(orchestrator, "grade_answer_manually", stale)
        r = client.post(f"/answers/{answer_id}/grade", json={"points_earned": 1})
        assert r.status_code == 409

    def test_bad_body(self, client):
        r = client.post("/attempts/att-1/submit", json={"time_spent_seconds": -5})
        assert r.status_code == 422


class TestEvaluateEndpoint:

    def test_semitones(self, client):
        reference = build_score(["C4", "D4", "E4"])
        student = build_score(["D4", "E4", "F#4"])
        body = client.post("/notation/evaluate", json={
            "reference": reference, "student": student, "semitones": 2,
        }).json()
        assert body["percentage"] == 100

    def test_instruments(self, client):
        reference = build_score(["C4", "D4"])
        student = build_score(["A#3", "C4"])
        body = client.post("/notation/evaluate", json={
            "reference": reference, "student": student,
            "from_instrument": "Piano", "to_instrument": "Clarinet in Bb",
        }).json()
        assert body["percentage"] == 100

    def test_unknown_instrument(self, client, three_notes):
        r = client.post("/notation/evaluate", json={
            "reference": three_notes, "student": three_notes,
            "from_instrument": "Piano", "to_instrument": "Theremin",
        })
        assert r.status_code == 422

    def test_half_instrument_pair(self, client, three_notes):
        r = client.post("/notation/evaluate", json={
            "reference": three_notes, "student": three_notes, "from_instrument": "Piano",
        })
        assert r.status_code == 422
