"""JSON API routes for transcript-driven editing."""

import json
import logging
import math
import queue
import subprocess
import threading
import uuid
from pathlib import Path

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    request,
    send_file,
)

from textcut import ffutil
from textcut.editors.captions import to_srt, to_vtt
from textcut.errors import UnsupportedFileTypeError
from textcut.manifest import ExportSettings
from textcut.models import Word
from textcut.playback import SkipController
from textcut.progress import PartialTranscript
from textcut.session import EditSession
from textcut.transcript import is_word_deleted

logger = logging.getLogger(__name__)

bp = Blueprint("web", __name__)

# In-memory job store: job_id -> job dict
_jobs: dict[str, dict] = {}

BUSY = ("transcribing", "exporting")


def _get_job(job_id: str) -> dict | None:
    return _jobs.get(job_id)


def _not_found():
    return jsonify({"error": "Job not found"}), 404


PROBE_ERRORS = (subprocess.CalledProcessError, OSError, ValueError, KeyError)


def _probe_duration(path: Path) -> float:
    """Read the container duration, or 0.0 when ffprobe cannot."""
    try:
        return ffutil.probe(path).duration
    except PROBE_ERRORS as e:
        logger.warning("Could not probe %s: %s", path.name, e)
        return 0.0


def _deletions_payload(session: EditSession) -> dict:
    return {
        "deleted": [r.to_dict() for r in session.deleted],
        "kept": [r.to_dict() for r in session.kept_segments()],
        "deleted_duration": session.deleted_duration,
        "remaining_duration": session.remaining_duration,
        "can_undo": bool(session.deleted.history),
    }


def _start_task(job: dict, status: str, task, on_done) -> None:
    """Relay a worker Job's events to the SSE queue and record its outcome."""
    progress_queue: queue.Queue = queue.Queue()
    job["progress_queue"] = progress_queue
    job["status"] = status
    job["error"] = None
    job["error_kind"] = None
    job["task"] = task

    def relay():
        try:
            for event in task.events():
                if isinstance(event, PartialTranscript):
                    job["session"].set_transcript(event.words)
                progress_queue.put(event.to_dict())
            on_done(task.result())
            job["status"] = "done"
        except Exception as e:
            logger.warning("Task %s failed: %s", task.id, e)
            job["status"] = "error"
            job["error"] = str(e)
            job["error_kind"] = type(e).__name__
        finally:
            progress_queue.put(None)  # sentinel

    threading.Thread(target=relay, daemon=True).start()


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    try:
        ffutil.check_video_file(f.filename, f.mimetype)
    except UnsupportedFileTypeError as e:
        return jsonify({"error": str(e), "error_kind": type(e).__name__}), 415

    job_id = uuid.uuid4().hex[:12]
    job_dir = Path(current_app.config["WORK_DIR"]) / job_id
    job_dir.mkdir(parents=True, exist_ok=True)

    ext = Path(f.filename).suffix or ".mp4"
    input_path = job_dir / f"input{ext}"
    f.save(input_path)

    try:
        duration = float(request.form.get("duration", 0) or 0)
    except ValueError:
        return jsonify({"error": "duration must be a number of seconds"}), 400
    if not (math.isfinite(duration) and duration > 0):
        duration = _probe_duration(input_path)
    _jobs[job_id] = {
        "dir": job_dir,
        "input_path": input_path,
        "filename": f.filename,
        "status": "uploaded",
        "session": EditSession(video_path=input_path, duration=duration),
    }

    return jsonify({"job_id": job_id, "filename": f.filename})


@bp.route("/api/jobs/<job_id>/transcribe", methods=["POST"])
def start_transcription(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    if job["status"] in BUSY:
        return jsonify({"error": f"Job is already {job['status']}"}), 409

    config = request.get_json(silent=True) or {}
    engine = current_app.config["ENGINE"]
    task = engine.submit_transcription(job["input_path"], config.get("language"))

    def on_done(words):
        job["session"].set_transcript(words)

    _start_task(job, "transcribing", task, on_done)
    return jsonify({"status": "started", "task_id": task.id})


@bp.route("/api/jobs/<job_id>/export", methods=["POST"])
def start_export(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    if job["status"] in BUSY:
        return jsonify({"error": f"Job is already {job['status']}"}), 409

    try:
        settings = ExportSettings.from_dict(request.get_json(silent=True))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    session: EditSession = job["session"]
    if session.duration <= 0:
        try:
            session.duration = ffutil.probe(job["input_path"]).duration
        except PROBE_ERRORS as e:
            return jsonify({"error": f"Could not read video duration: {e}"}), 422
    if session.duration <= 0:
        return jsonify({"error": "Video duration must be positive"}), 422

    engine = current_app.config["ENGINE"]
    task = engine.submit_export(
        job["input_path"], session.deleted.ranges, session.duration, settings
    )

    def on_done(result):
        output_path = job["dir"] / f"output.{settings.format}"
        output_path.write_bytes(result.data)
        job["result"] = {
            "output_path": str(output_path),
            "mime_type": result.mime_type,
            "duration_original": result.duration_original,
            "duration_final": result.duration_final,
            "segments_kept": len(result.kept_segments),
        }

    _start_task(job, "exporting", task, on_done)
    return jsonify({"status": "started", "task_id": task.id})


@bp.route("/api/jobs/<job_id>/cancel", methods=["POST"])
def cancel_task(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    task = job.get("task")
    if task is None or job["status"] not in BUSY:
        return jsonify({"error": "Nothing to cancel"}), 409
    task.cancel()
    return jsonify({"status": "cancelling"})


@bp.route("/api/jobs/<job_id>/progress")
def progress_stream(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    q = job.get("progress_queue")

    if q is None:
        return jsonify({"error": "No processing in progress"}), 409

    def generate():
        while True:
            try:
                msg = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                if job["status"] == "error":
                    data = json.dumps({"error": job["error"], "error_kind": job["error_kind"]})
                else:
                    data = json.dumps({
                        "type": "complete",
                        "progress": 100,
                        "result": job.get("result"),
                    })
                yield f"data: {data}\n\n"
                break
            yield f"data: {json.dumps(msg)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/jobs/<job_id>/transcript")
def get_transcript(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    session: EditSession = job["session"]
    deleted = session.deleted.ranges
    query = request.args.get("q", "")
    matches = session.search(query) if query else [(w, i) for i, w in enumerate(session.words)]
    return jsonify({
        "text": session.transcript_text,
        "words": [
            {**w.to_dict(), "index": i, "deleted": is_word_deleted(w, deleted)}
            for w, i in matches
        ],
    })


@bp.route("/api/jobs/<job_id>/transcript", methods=["PUT"])
def put_transcript(job_id: str):
    """Replace the transcript, e.g. with words saved by `textcut transcribe`."""
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    if job["status"] == "transcribing":
        return jsonify({"error": "Job is already transcribing"}), 409

    body = request.get_json(silent=True) or {}
    try:
        words = [Word.from_dict(w) for w in body["words"]]
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({"error": f"Invalid words: {e}"}), 400

    job["session"].set_transcript(words)
    return jsonify({"text": job["session"].transcript_text, "count": len(words)})


@bp.route("/api/jobs/<job_id>/deletions", methods=["GET"])
def get_deletions(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    return jsonify(_deletions_payload(job["session"]))


@bp.route("/api/jobs/<job_id>/deletions", methods=["POST"])
def add_deletion(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    session: EditSession = job["session"]
    body = request.get_json(silent=True) or {}
    try:
        if "word_indices" in body:
            applied = session.delete_words([int(i) for i in body["word_indices"]]) > 0
        elif "word_index" in body:
            applied = session.delete_word(int(body["word_index"]))
        elif "start_index" in body and "end_index" in body:
            applied = session.delete_text_range(int(body["start_index"]), int(body["end_index"]))
        elif "start" in body and "end" in body:
            applied = session.delete_time_range(float(body["start"]), float(body["end"]))
        else:
            return jsonify({"error": "Provide word_index, word_indices, start_index/end_index or start/end"}), 400
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    if not applied:
        return jsonify({"error": "Nothing to delete"}), 400
    return jsonify(_deletions_payload(session))


@bp.route("/api/jobs/<job_id>/deletions", methods=["DELETE"])
def clear_deletions(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    job["session"].clear()
    return jsonify(_deletions_payload(job["session"]))


@bp.route("/api/jobs/<job_id>/deletions/undo", methods=["POST"])
def undo_deletion(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    job["session"].undo()
    return jsonify(_deletions_payload(job["session"]))


@bp.route("/api/jobs/<job_id>/playback")
def playback_position(job_id: str):
    """Where a preview player should be, given its current position."""
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    try:
        position = float(request.args["position"])
    except (KeyError, ValueError):
        return jsonify({"error": "position query parameter required"}), 400

    session: EditSession = job["session"]
    controller = SkipController(lambda: session.deleted.ranges)
    target = controller.tick(position)
    return jsonify({"position": target, "skipped": target != position})


@bp.route("/api/jobs/<job_id>/subtitles.<fmt>")
def download_subtitles(job_id: str, fmt: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    if fmt not in ("srt", "vtt"):
        return jsonify({"error": f"Unknown subtitle format: {fmt}"}), 400

    words = job["session"].words
    if not words:
        return jsonify({"error": "No transcript yet"}), 409

    if fmt == "vtt":
        body, mimetype = to_vtt(words), "text/vtt"
    else:
        body, mimetype = to_srt(words), "application/x-subrip"
    return Response(
        body,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename=transcript.{fmt}"},
    )


@bp.route("/api/jobs/<job_id>/result")
def download_result(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    if job["status"] != "done" or "result" not in job:
        return jsonify({"error": "Job not complete"}), 409

    output_path = Path(job["result"]["output_path"])
    return send_file(output_path, mimetype=job["result"]["mime_type"], as_attachment=True)


@bp.route("/api/jobs/<job_id>/status")
def job_status(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    resp = {"status": job["status"], "filename": job.get("filename")}
    task = job.get("task")
    if task is not None:
        resp["stage"] = task.state
    if job["status"] == "done" and "result" in job:
        resp["result"] = job.get("result")
    if job["status"] == "error":
        resp["error"] = job.get("error")
        resp["error_kind"] = job.get("error_kind")
    return jsonify(resp)
