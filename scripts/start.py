#!/usr/bin/env python3
"""
Container entry point: run the release step, then hand the process to gunicorn.

  PORT             listen port (default 8080)
  WEB_CONCURRENCY  gunicorn workers (default 2)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080
DEFAULT_WORKERS = 2


def _port() -> int:
    raw = (os.environ.get("PORT") or "").strip()
    if not raw:
        return DEFAULT_PORT
    if not raw.isdigit() or not 1 <= int(raw) <= 65535:
        print(f"[start] PORT must be an integer between 1 and 65535, got {raw!r}", flush=True)
        sys.exit(1)
    return int(raw)


def gunicorn_argv(port: int, workers: str) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", workers,
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _port()

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"[start] release failed, not starting the web server: {e}", flush=True)
        sys.exit(1)

    workers = (os.environ.get("WEB_CONCURRENCY") or "").strip() or str(DEFAULT_WORKERS)
    print(f"[start] gunicorn on 0.0.0.0:{port}, {workers} workers", flush=True)
    # exec keeps gunicorn as the process that receives the platform's signals
    os.execvp("gunicorn", gunicorn_argv(port, workers))


if __name__ == "__main__":
    main()
