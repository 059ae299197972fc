"""JSONL file helpers for the event outbox.

Writers append one JSON document per line under an exclusive ``fcntl``
lock and ``fsync`` before releasing it, so concurrent writers never
interleave and a returned append survives a crash.  Readers take a
shared lock and see whole lines only.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def safe_append_line(path: Path, line: str) -> None:
    """Append *line* plus a newline, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        try:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


def append_json_line(path: Path, record: dict[str, Any]) -> None:
    safe_append_line(path, json.dumps(record, separators=(",", ":")))


def iter_json_lines(path: Path) -> Iterator[dict[str, Any]]:
    """Yield each decodable JSON object in *path*.

    A missing file yields nothing.  Blank lines are ignored; lines that
    are not a JSON object are logged and skipped.
    """
    if not path.exists():
        return
    with open(path) as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_SH)
        try:
            lines = f.readlines()
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    for number, raw in enumerate(lines, start=1):
        raw = raw.strip()
        if not raw:
            continue
        try:
            record = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Skipping corrupt line %d in %s", number, path)
            continue
        if isinstance(record, dict):
            yield record
        else:
            logger.warning("Skipping non-object line %d in %s", number, path)
