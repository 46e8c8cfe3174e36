from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_config, skeleton_payload
from osteo_exam.guidance.speech import SilentSpeech
from osteo_exam.session import ExamSession
from osteo_exam.webapp import create_app


@pytest.fixture
def exam(tmp_path, scheduler, clock):
    session = ExamSession(config=make_config(tmp_path), scheduler=scheduler, speech=SilentSpeech(), clock=clock)
    yield session
    session.close()


@pytest.fixture
def client(exam):
    app = create_app(exam)
    app.config["TESTING"] = True
    return app.test_client()


def test_health(client) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_start_and_status(client) -> None:
    resp = client.post("/api/exam/start", json={"examType": "simetria", "patientName": "Ana López"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["state"] == "running"
    assert body["examType"] == "simetria"
    assert body["patientName"] == "Ana López"
    assert body["step"]["title"] == "Postura Simétrica"
    assert body["step"]["audioText"]

    status = client.get("/api/exam/status").get_json()
    assert status["stepIndex"] == 0
    assert status["totalSteps"] == 2


def test_start_defaults_to_postura(client) -> None:
    resp = client.post("/api/exam/start")
    assert resp.status_code == 200
    assert resp.get_json()["examType"] == "postura"


def test_frame_updates_metrics_and_validation(client) -> None:
    client.post("/api/exam/start", json={"examType": "postura"})
    resp = client.post("/api/exam/frame", json={"landmarks": skeleton_payload()})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["metrics"]["symmetry"]["overallBalance"] == pytest.approx(100.0)
    assert body["display"]["overallBalance"] == "100%"
    assert body["lastValidation"] is True
    assert body["state"] == "running"

    empty = client.post("/api/exam/frame", json={"landmarks": None})
    assert empty.status_code == 200
    assert empty.get_json()["metrics"]["symmetry"]["overallBalance"] == pytest.approx(100.0)


def test_frame_rejects_bad_payloads(client) -> None:
    assert client.post("/api/exam/frame", json={}).status_code == 400
    assert client.post("/api/exam/frame", json=[1, 2]).status_code == 400
    resp = client.post("/api/exam/frame", json={"landmarks": "nope"})
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_skip_conflicts_when_idle(client) -> None:
    assert client.post("/api/exam/skip").status_code == 409
    client.post("/api/exam/start", json={"examType": "rangos"})
    resp = client.post("/api/exam/skip")
    assert resp.status_code == 200
    assert resp.get_json()["stepIndex"] == 1


def test_stop_and_audio_toggle(client) -> None:
    client.post("/api/exam/start", json={"examType": "postura"})
    audio = client.post("/api/exam/audio")
    assert audio.get_json() == {"audioEnabled": False}

    stopped = client.post("/api/exam/stop").get_json()
    assert stopped["stopped"] is True
    assert stopped["state"] == "idle"
    assert client.post("/api/exam/stop").get_json()["stopped"] is False


def test_auto_capture_visible_in_status(client, scheduler) -> None:
    client.post("/api/exam/start", json={"examType": "completo"})
    client.post("/api/exam/frame", json={"landmarks": skeleton_payload()})
    scheduler.advance(7.5)
    status = client.get("/api/exam/status").get_json()
    assert status["state"] == "completed"
    assert status["progress"] == 1.0
    assert status["snapshots"] == 1


def test_capture_report_and_export(client, tmp_path) -> None:
    client.post("/api/exam/start", json={"examType": "simetria", "patientName": "Ana"})
    client.post("/api/exam/frame", json={"landmarks": skeleton_payload()})

    captured = client.post("/api/exam/capture")
    assert captured.status_code == 201
    assert captured.get_json()["count"] == 1
    assert captured.get_json()["snapshot"]["examType"] == "simetria"

    report = client.get("/api/exam/report").get_json()
    assert report["patientInfo"]["name"] == "Ana"
    assert len(report["snapshots"]) == 1
    assert report["recommendations"]

    exported = client.post("/api/exam/export")
    assert exported.status_code == 201
    path = Path(exported.get_json()["path"])
    assert path.exists()
    assert path.parent == tmp_path / "reports"
    assert exported.get_json()["filename"].startswith("reporte_osteomuscular_Ana_")


def test_invalid_patient_name_is_rejected(client) -> None:
    resp = client.post("/api/exam/start", json={"patientName": "x" * 500})
    assert resp.status_code == 400
