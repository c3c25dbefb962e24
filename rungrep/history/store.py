"""Size-capped, persisted history of search runs."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Self

from pydantic import TypeAdapter, ValidationError

from ..common.app import app_dirs
from ..common.errors import StorageError
from ..common.pydantic import Run
from .records import parse_runs

logger = logging.getLogger(__name__)

DEFAULT_MAX_RUNS = 50

_RAW_RECORDS = TypeAdapter(list[Any])
_RUNS = TypeAdapter(list[Run])


class RunHistoryStore:
    """Newest-first list of runs, written to a JSON file after every change.

    Writes run one at a time on a single worker thread, in the order the
    changes were made. Storage failures are logged and otherwise ignored, so
    the history keeps working in memory.
    """

    def __init__(self, path: Path | None = None, max_runs: int = DEFAULT_MAX_RUNS):
        """Initialize the store; call :meth:`load` to read persisted runs."""
        if path is None:
            path = app_dirs.app_history_path
        self.path = Path(path)
        self.max_runs = max_runs
        self._runs: tuple[Run, ...] = ()
        self._lock = threading.Lock()
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="history-writer")

    def __enter__(self) -> Self:
        """Load persisted runs."""
        self.load()
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        """Wait for pending writes and stop the writer."""
        self.close()

    def close(self) -> None:
        """Wait for pending writes and stop the writer."""
        self._writer.shutdown(wait=True)

    def list(self) -> list[Run]:
        """All runs, newest first."""
        return list(self._runs)

    def get(self, run_id: str) -> Run | None:
        """The run with ``run_id``, if any."""
        return next((run for run in self._runs if run.run_id == run_id), None)

    def load(self) -> None:
        """Replace the in-memory runs with the persisted ones.

        Records that fail to parse are dropped one by one; an unreadable file
        leaves the history empty.
        """
        try:
            raw = self._read()
        except StorageError as e:
            logger.warning("Ignoring run history: %s", e)
            return
        runs, rejected = parse_runs(raw)
        for rejection in rejected:
            logger.debug("Dropped run history record: %s", rejection.reason)
        with self._lock:
            self._runs = tuple(runs[: self.max_runs])

    def add(self, run: Run) -> Future[None]:
        """Insert ``run`` first, replacing any run with the same id, and drop the oldest beyond the cap."""
        with self._lock:
            others = (r for r in self._runs if r.run_id != run.run_id)
            self._runs = (run, *others)[: self.max_runs]
            return self._schedule_save(self._runs)

    def delete(self, run_id: str) -> Future[None]:
        """Remove the run with ``run_id``."""
        with self._lock:
            self._runs = tuple(r for r in self._runs if r.run_id != run_id)
            return self._schedule_save(self._runs)

    def clear(self) -> Future[None]:
        """Remove every run."""
        with self._lock:
            self._runs = ()
            return self._schedule_save(self._runs)

    def flush(self) -> None:
        """Block until every write scheduled so far has finished."""
        self._writer.submit(lambda: None).result()

    def _schedule_save(self, runs: tuple[Run, ...]) -> Future[None]:
        return self._writer.submit(self._save, runs)

    def _save(self, runs: tuple[Run, ...]) -> None:
        try:
            self._write(runs)
        except StorageError as e:
            logger.warning("Run history not saved: %s", e)

    def _read(self) -> list[Any]:
        if not self.path.exists():
            return []
        try:
            return _RAW_RECORDS.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e

    def _write(self, runs: tuple[Run, ...]) -> None:
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(_RUNS.dump_json(list(runs)))
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"cannot write {self.path}: {e}") from e
