from __future__ import annotations

import dataclasses
import json
import logging
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.progress import BarColumn, Progress, TextColumn

from .config import as_dict as config_as_dict, get_config
from .guidance.scheduler import ThreadingScheduler
from .guidance.sequencer import StepEvent
from .guidance.sequences import EXAM_SEQUENCES
from .models import MetricsRecord, Snapshot, ValidationError
from .posture.config import config_summary
from .posture.feedback import load_rules_config, summarize
from .posture.metrics import compute_metrics
from .reports import json_safe, load_report, snapshots_to_dataframe, summarize_snapshots
from .services import (
    load_landmarks_file,
    render_exam_types,
    render_metrics_table,
    render_patient_info,
    render_recommendations,
    render_sequence,
    render_snapshot_summary,
)
from .session import ExamSession

app = typer.Typer(help="Guided osteomuscular posture exams from body landmarks.")

log = logging.getLogger("osteo_exam.cli")


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


@app.callback()
def _configure(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)."),
) -> None:
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{log_level}'.", param_hint="--log-level")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def sequences(
    exam_type: Optional[str] = typer.Argument(None, help="Exam type to list (postura, rangos, simetria, completo)."),
) -> None:
    """
    List exam types, or the guided steps of one exam type.

    Example:
        osteo-exam sequences simetria
    """
    if exam_type is None:
        typer.echo(render_exam_types())
        return
    if exam_type.strip().lower() not in EXAM_SEQUENCES:
        _fail(f"Unknown exam type '{exam_type}'. Choose from: {', '.join(EXAM_SEQUENCES)}.")
    typer.echo(render_sequence(exam_type))


@app.command()
def metrics(
    landmarks: Path = typer.Argument(..., help="JSON file with one skeleton (list of points or {'landmarks': [...]})."),
    as_json: bool = typer.Option(False, "--json", help="Print metrics and recommendations as JSON."),
    rules: Optional[Path] = typer.Option(None, "--rules", help="Recommendation rules JSON file."),
) -> None:
    """
    Compute posture metrics and recommendations for a stored skeleton.
    """
    try:
        skeleton = load_landmarks_file(landmarks)
        rules_config = load_rules_config(rules or get_config().rules_path)
    except ValidationError as exc:
        _fail(str(exc))

    record = compute_metrics(skeleton)
    recommendations = summarize(record, rules_config)
    if as_json:
        payload = {"metrics": json_safe(record.to_dict()), "recommendations": recommendations}
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    typer.echo(render_metrics_table(record))
    typer.echo("")
    typer.echo("Recomendaciones:")
    typer.echo(render_recommendations(recommendations))


@app.command()
def run(
    exam_type: str = typer.Option("postura", "--exam-type", "-e", help="Exam type: postura, rangos, simetria, completo."),
    patient: Optional[str] = typer.Option(None, "--patient", "-p", help="Patient name stored in the report."),
    camera: int = typer.Option(0, "--camera", help="Camera index for OpenCV."),
    no_audio: bool = typer.Option(False, "--no-audio", help="Disable spoken instructions."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for the exported report."),
    max_frames: Optional[int] = typer.Option(None, "--max-frames", min=1, help="Stop after this many frames."),
) -> None:
    """
    Run a guided exam on a live camera and export the JSON report.

    Requires the optional vision extra: pip install 'osteo-exam[vision]'.
    """
    try:
        from .posture.pose_estimation import FrameLoop
        from .posture.pose_estimation.pose_detector import PoseDetector, open_camera
    except ImportError as exc:
        _fail(f"Camera exams need mediapipe and opencv-python (pip install 'osteo-exam[vision]'): {exc}")

    config = get_config()
    if no_audio:
        config = dataclasses.replace(config, speech=dataclasses.replace(config.speech, enabled=False))
    if exam_type.strip().lower() not in EXAM_SEQUENCES:
        typer.secho(f"Unknown exam type '{exam_type}'; using 'postura'.", fg=typer.colors.YELLOW, err=True)

    try:
        session = ExamSession(config=config, patient_name=patient or "", exam_type=exam_type)
    except ValidationError as exc:
        _fail(str(exc))

    try:
        capture = open_camera(camera)
    except RuntimeError as exc:
        session.close()
        _fail(str(exc))

    done = threading.Event()
    try:
        detector = PoseDetector()
    except RuntimeError as exc:
        capture.release()
        session.close()
        _fail(str(exc))

    progress = Progress(TextColumn("{task.description}"), BarColumn(), TextColumn("{task.percentage:>3.0f}%"))
    task = progress.add_task("Preparando cámara...", total=100)

    def _on_step(event: StepEvent) -> None:
        progress.update(task, description=f"{event.step.icon} {event.step.title}", completed=0)
        progress.console.print(f"[{event.index + 1}/{event.total}] {event.step.text}")

    def _on_capture(snapshot: Snapshot) -> None:
        progress.console.print("📸 Datos capturados")
        done.set()

    session.on_step = _on_step
    session.on_progress = lambda value: progress.update(task, completed=value * 100)
    session.on_complete = lambda _: progress.update(task, description="🟢 Instrucciones completadas", completed=100)
    session.on_capture = _on_capture

    loop = FrameLoop(capture, detector, session, stop_event=done)
    log.info("CLI run exam_type=%s camera=%s audio=%s", session.exam_type, camera, config.speech.enabled)
    starter = ThreadingScheduler().call_later(config.sequencer.start_delay_ms / 1000.0, session.start)
    try:
        with progress:
            loop.run(max_frames=max_frames)
    except KeyboardInterrupt:
        typer.echo("Exam interrupted.")
    finally:
        starter.cancel()
        session.stop()
        capture.release()
        detector.close()

    try:
        if not session.snapshots:
            session.capture()
        path = session.export_report(output_dir)
    finally:
        session.close()
    typer.echo(render_metrics_table(session.metrics))
    typer.echo("")
    typer.echo("Recomendaciones:")
    typer.echo(render_recommendations(session.recommendations()))
    typer.echo(f"Report saved to {path}")


@app.command()
def report(
    report_path: Path = typer.Argument(..., help="Exported reporte_osteomuscular_*.json file."),
) -> None:
    """
    Render an exported exam report.
    """
    try:
        payload = load_report(report_path)
    except ValidationError as exc:
        _fail(str(exc))

    typer.echo(render_patient_info(payload))
    typer.echo("")
    typer.echo(render_metrics_table(MetricsRecord.from_dict(payload.get("summary"))))
    snapshots = payload.get("snapshots") or []
    typer.echo("")
    typer.echo(f"Snapshots: {len(snapshots)}")
    typer.echo(render_snapshot_summary(summarize_snapshots(snapshots_to_dataframe(snapshots))))
    typer.echo("")
    typer.echo("Recomendaciones:")
    typer.echo(render_recommendations([str(item) for item in payload.get("recommendations") or []]))


@app.command("config")
def show_config() -> None:
    """
    Print the effective configuration (TOML file, environment overrides, posture constants).
    """
    typer.echo(json.dumps(config_as_dict(), indent=2, ensure_ascii=False))
    for line in config_summary():
        typer.echo(line)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
