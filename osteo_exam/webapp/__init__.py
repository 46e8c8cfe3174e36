"""HTTP API for browser-driven exams.

The browser acts as the landmark source: it posts each frame's landmarks to
`/api/exam/frame` and polls `/api/exam/status` for the current instruction,
progress, and metrics. Spoken prompts are left to the client (`step.audioText`),
so the server session runs with silent speech.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping

from flask import Flask, current_app, jsonify, request

from ..env import get_env
from ..guidance.speech import SilentSpeech
from ..models import ValidationError
from ..reports import json_safe
from ..session import ExamSession

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "osteo_exam.session"


def create_app(session: ExamSession | None = None) -> Flask:
    logging.basicConfig(level=get_env("LOG_LEVEL") or os.environ.get("LOG_LEVEL", "INFO"))
    app = Flask(__name__)
    app.extensions[_EXTENSION_KEY] = session or ExamSession(speech=SilentSpeech())

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({"error": str(exc)}), 400

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    register_exam_api(app)
    return app


def _session() -> ExamSession:
    return current_app.extensions[_EXTENSION_KEY]


def _json_body() -> Mapping[str, Any]:
    if not request.data:
        return {}
    payload = request.get_json(silent=True)
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def register_exam_api(app: Flask) -> None:
    @app.post("/api/exam/start")
    def api_exam_start():
        payload = _json_body()
        exam = _session()
        if "patientName" in payload:
            exam.patient_name = payload.get("patientName")
        resolved = exam.start(payload.get("examType") or exam.exam_type)
        logger.info("Exam '%s' started via API", resolved)
        return jsonify(exam.status()), 200

    @app.post("/api/exam/stop")
    def api_exam_stop():
        exam = _session()
        stopped = exam.stop()
        return jsonify({"stopped": stopped, **exam.status()}), 200

    @app.post("/api/exam/skip")
    def api_exam_skip():
        exam = _session()
        if not exam.skip():
            return jsonify({"error": "No instruction sequence is running."}), 409
        return jsonify(exam.status()), 200

    @app.post("/api/exam/audio")
    def api_exam_audio():
        enabled = _session().toggle_audio()
        return jsonify({"audioEnabled": enabled}), 200

    @app.post("/api/exam/frame")
    def api_exam_frame():
        payload = _json_body()
        if "landmarks" not in payload:
            raise ValidationError("Frame payload must include 'landmarks' (a list, or null when nobody is detected).")
        exam = _session()
        record = exam.process_frame(payload)
        status = exam.status()
        return (
            jsonify(
                {
                    "metrics": json_safe(record.to_dict()),
                    "display": status["display"],
                    "lastValidation": status["lastValidation"],
                    "state": status["state"],
                    "progress": status["progress"],
                }
            ),
            200,
        )

    @app.post("/api/exam/capture")
    def api_exam_capture():
        exam = _session()
        payload = _json_body()
        if "patientName" in payload:
            exam.patient_name = payload.get("patientName")
        snapshot = exam.capture()
        return jsonify({"snapshot": json_safe(snapshot.to_dict()), "count": len(exam.snapshots)}), 201

    @app.get("/api/exam/status")
    def api_exam_status():
        return jsonify(_session().status()), 200

    @app.get("/api/exam/report")
    def api_exam_report():
        return jsonify(_session().build_report()), 200

    @app.post("/api/exam/export")
    def api_exam_export():
        exam = _session()
        path = exam.export_report()
        return jsonify({"path": str(path), "filename": path.name}), 201


__all__ = ["create_app", "register_exam_api"]
