"""Thin CLI entry point — drives the engine session from the command line."""

import argparse
import json
import logging
import sys
from pathlib import Path

from textcut.editors.captions import write_subtitles
from textcut.errors import TextcutError
from textcut.manifest import (
    LANGUAGES,
    QUALITY_PRESETS,
    RESOLUTIONS,
    ExportSettings,
    Manifest,
    TranscriptionConfig,
    load_manifest,
)
from textcut.models import TimeRange
from textcut.progress import PartialTranscript, ProgressEvent
from textcut.worker import EngineSession, Job


def _parse_range(value: str) -> TimeRange:
    try:
        start, end = value.split(":")
        return TimeRange(start=float(start), end=float(end))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected START:END in seconds, got {value!r} ({e})")


def _follow(job: Job) -> None:
    for event in job.events():
        if isinstance(event, ProgressEvent):
            print(f"  [{event.progress:5.1f}%] {event.message}")
        elif isinstance(event, PartialTranscript):
            print(f"          {len(event.words)} words so far")


def _transcribe(args) -> int:
    config = TranscriptionConfig(model=args.model, language=args.language)
    with EngineSession(config=config) as engine:
        job = engine.submit_transcription(args.video)
        _follow(job)
        words = job.result()

    output = args.output or args.video.with_suffix(".words.json")
    output.write_text(json.dumps([w.to_dict() for w in words], indent=2), encoding="utf-8")
    print(f"Done! {len(words)} words -> {output}")
    for fmt in ("srt", "vtt"):
        if getattr(args, fmt):
            path = write_subtitles(words, args.video.with_suffix(f".{fmt}"), fmt)
            print(f"  Subtitles: {path}")
    return 0


def _export(args) -> int:
    from textcut import ffutil

    if args.manifest:
        m = load_manifest(args.manifest)
    else:
        output = args.output or args.video.with_stem(args.video.stem + "_edited")
        settings = ExportSettings(format=args.format, quality=args.quality, resolution=args.resolution)
        output = output.with_suffix(f".{settings.format}")
        m = Manifest(input=args.video, output=output, deleted=args.delete or [], export=settings)

    duration = ffutil.probe(m.input).duration
    with EngineSession(config=m.transcription) as engine:
        job = engine.submit_export(m.input, m.deleted, duration, m.export)
        _follow(job)
        result = job.result()

    m.output.write_bytes(result.data)
    print()
    print(f"Done! Output: {m.output}")
    print(f"  Duration: {result.duration_original:.1f}s -> {result.duration_final:.1f}s")
    print(f"  Segments kept: {len(result.kept_segments)}")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="textcut",
        description="textcut — edit video by deleting words from its transcript.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    tr = sub.add_parser("transcribe", help="Transcribe a video to timed words")
    tr.add_argument("video", type=Path, help="Input video file")
    tr.add_argument("--output", "-o", type=Path, help="Where to write the words JSON")
    tr.add_argument("--language", "-l", default="en", help=f"Spoken language ({', '.join(LANGUAGES)})")
    tr.add_argument("--model", default="base", help="Whisper model size")
    tr.add_argument("--srt", action="store_true", help="Also write an SRT file")
    tr.add_argument("--vtt", action="store_true", help="Also write a WebVTT file")

    ex = sub.add_parser("export", help="Export a video with time ranges removed")
    ex.add_argument("video", nargs="?", type=Path, help="Input video file")
    ex.add_argument("--manifest", "-m", type=Path, help="Path to a JSON manifest file")
    ex.add_argument("--output", "-o", type=Path, help="Output file path")
    ex.add_argument("--delete", "-d", type=_parse_range, action="append", metavar="START:END",
                    help="Time range to remove (repeatable)")
    ex.add_argument("--format", choices=["mp4", "webm"], default="mp4")
    ex.add_argument("--quality", choices=list(QUALITY_PRESETS), default="high")
    ex.add_argument("--resolution", choices=list(RESOLUTIONS), default="original")

    serve = sub.add_parser("serve", help="Launch the editing API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        from textcut.web import create_app
        app = create_app()
        print(f"textcut API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    if args.command == "export" and not (args.manifest or args.video):
        print("Error: provide either a VIDEO argument or --manifest.", file=sys.stderr)
        sys.exit(1)

    try:
        code = _transcribe(args) if args.command == "transcribe" else _export(args)
    except TextcutError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
