"""Standalone CLI for the material ingestion queue.

Usage::

    python -m coursemind.cli process-jobs

    python -m coursemind.cli enqueue CLASS_ID /path/to/lecture.pdf \\
        --title "Week 1 slides" --mime application/pdf

Uses the same wiring as the HTTP server (see :func:`coursemind.main._build_all`).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
import uuid
from pathlib import Path
from typing import Any

from coursemind.config.settings import Settings


async def _close(components: dict[str, Any]) -> None:
    await components["http_client"].aclose()


async def _handle_process_jobs(app_settings: Settings) -> int:
    from coursemind.main import _build_all, initialize_components

    components = _build_all(app_settings)
    try:
        await initialize_components(components)
        summary = await components["scheduler"].run_batch()
    finally:
        await _close(components)

    print(json.dumps(summary.model_dump(), indent=2))
    return 0 if not summary.failures else 2


async def _handle_enqueue(args: argparse.Namespace, app_settings: Settings) -> int:
    from coursemind.main import _build_all, initialize_components

    source = Path(args.path)
    if not source.is_file():
        print(f"Error: file not found: {source}", file=sys.stderr)
        return 1

    mime_type = args.mime or mimetypes.guess_type(source.name)[0] or ""
    storage_path = f"{args.class_id}/{uuid.uuid4().hex}{source.suffix.lower()}"

    components = _build_all(app_settings)
    try:
        await initialize_components(components)
        await components["object_storage"].upload(storage_path, source.read_bytes())
        material = await components["material_store"].create_material(
            class_id=args.class_id,
            storage_path=storage_path,
            title=args.title or source.stem,
            mime_type=mime_type,
        )
        job = await components["material_store"].enqueue_job(material)
    finally:
        await _close(components)

    print(f"Material: {material.id}")
    print(f"  Title:        {material.title}")
    print(f"  Storage path: {storage_path}")
    print(f"  MIME type:    {mime_type or '(unknown)'}")
    print(f"Job:      {job.id} ({job.status.value})")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m coursemind.cli",
        description="Manage the CourseMind material ingestion queue.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Queue commands")

    subparsers.add_parser("process-jobs", help="Run one ingestion batch and print a summary")

    enqueue_parser = subparsers.add_parser("enqueue", help="Upload a file and queue it")
    enqueue_parser.add_argument("class_id", help="Owning class id")
    enqueue_parser.add_argument("path", help="Path to a PDF, DOCX, PPTX or image file")
    enqueue_parser.add_argument("--title", default="", help="Material title (default: file name)")
    enqueue_parser.add_argument("--mime", default="", help="MIME type (default: guessed)")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()

    if args.command == "process-jobs":
        exit_code = asyncio.run(_handle_process_jobs(app_settings))
    else:
        exit_code = asyncio.run(_handle_enqueue(args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
