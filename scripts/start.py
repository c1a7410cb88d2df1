#!/usr/bin/env python3
"""
Container entry point: release phase, then gunicorn serving app.wsgi:app.

Environment:
  PORT              listen port (default 8080)
  WEB_CONCURRENCY   gunicorn workers (default 2)
  GUNICORN_TIMEOUT  worker timeout in seconds (default 60; proof uploads go up to 10MB)
  SKIP_RELEASE=1    start without running migrations/seed

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = -1
    if not low <= value <= high:
        print(f"ERROR: {name}={raw!r} must be an integer between {low} and {high}.", flush=True)
        sys.exit(1)
    return value


def gunicorn_argv(port: int, workers: int, timeout: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _int_env("PORT", 8080, low=1, high=65535)
    workers = _int_env("WEB_CONCURRENCY", 2, low=1, high=32)
    timeout = _int_env("GUNICORN_TIMEOUT", 60, low=10, high=600)

    if (os.environ.get("SKIP_RELEASE") or "").strip() != "1":
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed, not starting: {e}", flush=True)
            sys.exit(1)

    print(f"Starting gunicorn on 0.0.0.0:{port} workers={workers}", flush=True)
    # exec: gunicorn takes over this PID and receives signals directly
    argv = gunicorn_argv(port, workers, timeout)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
