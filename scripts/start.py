#!/usr/bin/env python3
"""
Production entrypoint: release phase, then exec gunicorn so it receives container signals as PID 1.

Environment: PORT (default 8080), WEB_CONCURRENCY (workers, default 2),
GUNICORN_TIMEOUT (seconds, default 60).
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def parse_port(raw: str | None) -> int:
    raw = (raw or "").strip()
    if not raw:
        return 8080
    port = int(raw)
    if not 1 <= port <= 65535:
        raise ValueError(f"PORT out of range: {port}")
    return port


def gunicorn_argv(port: int, *, workers: int = 2, timeout: int = 60) -> list[str]:
    # --preload imports the app once; the engine is disposed in each forked worker.
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
    try:
        port = parse_port(os.environ.get("PORT"))
        workers = int((os.environ.get("WEB_CONCURRENCY") or "2").strip())
        timeout = int((os.environ.get("GUNICORN_TIMEOUT") or "60").strip())
    except ValueError as e:
        print(f"ERROR: invalid server setting: {e}", flush=True)
        sys.exit(1)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    argv = gunicorn_argv(port, workers=workers, timeout=timeout)
    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({workers} workers) ===", flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
