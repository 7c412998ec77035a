#!/usr/bin/env python3
"""
Avatar relay CLI

Commands:

1) serve
   - Run the relay server with uvicorn:
       runtime.api.server:app

2) cleanup-audio
   - Delete stored audio uploads older than --max-age-hours from
       AUDIO_STORAGE_DIR (default: runtime/data/audio)

3) show-config
   - Print the effective configuration (secrets masked) as JSON.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import timedelta
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from configs.logging_config import configure_logging
from configs.settings import settings
from core.audio.audio_processing import AudioProcessingService


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


def cmd_serve(host: str, port: int, reload: bool) -> None:
    """Start the HTTP server. uvicorn is imported lazily."""
    import uvicorn

    print(f"[Relay] Starting server on http://{host}:{port}")
    uvicorn.run(
        "runtime.api.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# cleanup-audio
# ---------------------------------------------------------------------------


def cmd_cleanup_audio(max_age_hours: float, storage_dir: str) -> int:
    if max_age_hours < 0:
        raise ValueError("--max-age-hours cannot be negative")

    print(f"[Relay] Removing audio older than {max_age_hours}h from {storage_dir}")
    service = AudioProcessingService(Path(storage_dir))
    deleted = service.cleanup_old_files(timedelta(hours=max_age_hours))
    print(f"[Relay] ✓ {deleted} file(s) deleted")
    return deleted


# ---------------------------------------------------------------------------
# show-config
# ---------------------------------------------------------------------------


def cmd_show_config() -> None:
    print(json.dumps(settings.describe(), indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Avatar relay CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_serve = subparsers.add_parser("serve", help="Run the relay HTTP server")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument(
        "--reload", action="store_true", help="Reload on code changes (development)"
    )

    p_cleanup = subparsers.add_parser(
        "cleanup-audio", help="Delete stored audio uploads older than a cutoff"
    )
    p_cleanup.add_argument(
        "--max-age-hours",
        type=float,
        default=24.0,
        help="Files last modified longer ago than this are deleted (default: 24)",
    )
    p_cleanup.add_argument(
        "--storage-dir",
        default=str(settings.audio_storage_dir),
        help="Audio storage root (default: AUDIO_STORAGE_DIR or 'runtime/data/audio')",
    )

    subparsers.add_parser(
        "show-config", help="Print the effective configuration with secrets masked"
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(settings.log_level)

    command: str = args.command

    if command == "serve":
        cmd_serve(host=args.host, port=args.port, reload=args.reload)
    elif command == "cleanup-audio":
        try:
            cmd_cleanup_audio(args.max_age_hours, args.storage_dir)
        except ValueError as e:
            parser.error(str(e))
    elif command == "show-config":
        cmd_show_config()
    else:
        parser.error(f"Unknown command: {command}")


if __name__ == "__main__":
    main()
