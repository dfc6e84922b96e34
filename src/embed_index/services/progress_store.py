"""Durable record of completed work-item ids, persisted as an atomic JSON snapshot."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from embed_index.core.constants import K_DONE_IDS
from embed_index.core.logging import get_logger

logger = get_logger(__name__)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write ``data`` as JSON to a temp file beside ``path`` and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json_or_none(path: Path) -> Any | None:
    """Return parsed JSON, or None when the file is absent or malformed."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning(f"Ignoring unreadable file {path}: {exc}")
        return None


class ProgressStore:
    """In-memory set of done ids with snapshot persistence.

    The set only grows during a run; ``flush`` copies it under a lock and writes
    the copy, so every snapshot is a superset of the previous one.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._done: set[str] = set()
        self._lock = asyncio.Lock()
        self._loaded = False

    def load(self) -> None:
        """Load the snapshot from disk. Absent or corrupt files yield empty progress."""
        data = read_json_or_none(self.path)
        done: set[str] = set()
        if isinstance(data, dict) and isinstance(data.get(K_DONE_IDS), dict):
            done = {str(key) for key, value in data[K_DONE_IDS].items() if value}
        elif data is not None:
            logger.warning(f"Progress file {self.path} has an unexpected shape; starting fresh")
        self._done = done
        self._loaded = True
        logger.info(f"Loaded progress from {self.path}: {len(self._done)} done")

    @property
    def loaded(self) -> bool:
        return self._loaded

    def is_done(self, item_id: str) -> bool:
        return item_id in self._done

    def mark_done(self, item_id: str) -> None:
        self._done.add(item_id)

    @property
    def done_ids(self) -> frozenset[str]:
        return frozenset(self._done)

    def __len__(self) -> int:
        return len(self._done)

    def snapshot(self) -> dict[str, dict[str, bool]]:
        return {K_DONE_IDS: {item_id: True for item_id in sorted(self._done)}}

    async def flush(self) -> None:
        """Persist the current set. Concurrent callers are serialized."""
        async with self._lock:
            snapshot = self.snapshot()
            await asyncio.to_thread(write_json_atomic, self.path, snapshot)
            logger.debug(f"Saved progress to {self.path} ({len(snapshot[K_DONE_IDS])} done)")

    async def clear(self) -> None:
        """Forget all progress, on disk and in memory. Items become eligible for re-embedding."""
        async with self._lock:
            self._done.clear()
            self._loaded = True
            self.path.unlink(missing_ok=True)
            logger.info(f"Cleared progress at {self.path}")
