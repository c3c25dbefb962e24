"""Pattern search executor driving one ripgrep process per root."""

import logging
import shlex
import signal
import subprocess
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import IO

from ..common.cancellation import NONE, CancellationToken, CancellationTokenSource
from ..common.clock import Clock, SystemClock
from ..common.errors import ExecutorError, MalformedRecordError
from ..common.pydantic import Match, Query, ResultSet, RootScope, SearchProgress
from .codec import sanitize_preview, truncate_preview
from .ripgrep import (
    RgMatchData,
    build_rg_args,
    byte_offset_to_column,
    decode_record,
    find_rg,
    normalize_relative_path,
    strip_line_terminator,
)

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL_MS = 200

# ripgrep: 0 = matches, 1 = no matches, anything else = error
_SUCCESS_CODES = {0, 1}
_KILL_SIGNALS = {signal.SIGTERM, getattr(signal, "SIGKILL", signal.SIGTERM)}

ProgressCallback = Callable[[SearchProgress], None]


@dataclass
class _RootCollection:
    """Mutable matches of one root while its process is running."""

    root_name: str
    matches: list[Match] = field(default_factory=list)
    files: set[str] = field(default_factory=set)
    truncated: bool = False

    def freeze(self, truncated: bool) -> ResultSet:
        return ResultSet(
            root_name=self.root_name,
            total_files=len(self.files),
            total_matches=len(self.matches),
            truncated=self.truncated or truncated,
            matches=tuple(self.matches),
        )


@dataclass
class _ExecutionState:
    """Counters shared by all roots of one execution."""

    max_results: int
    started_ms: int
    match_count: int = 0
    files_seen: set[tuple[str, str]] = field(default_factory=set)
    truncated: bool = False
    last_progress_ms: int | None = None

    @property
    def limit_reached(self) -> bool:
        return self.match_count >= self.max_results


def _drain(stream: IO[bytes], chunks: list[bytes]) -> None:
    for chunk in iter(lambda: stream.read(8192), b""):
        chunks.append(chunk)


class PatternSearchExecutor:
    """Runs a query over a list of roots, one ripgrep process at a time.

    Progress is delivered to ``on_progress`` at most once per
    ``progress_interval_ms`` while matches arrive, plus once when the
    execution ends.
    """

    def __init__(
        self,
        rg_command: str | Sequence[str] | None = None,
        preview_max_chars: int = 240,
        clock: Clock | None = None,
        progress_interval_ms: int = PROGRESS_INTERVAL_MS,
    ):
        """Initialize the executor.

        ``rg_command`` is the executable, or an argument prefix, used to start
        ripgrep. It defaults to ``rg`` found on ``PATH``.
        """
        if rg_command is None or isinstance(rg_command, str):
            self.rg_command = [find_rg(rg_command)]
        else:
            self.rg_command = list(rg_command)
        self.preview_max_chars = preview_max_chars
        self.clock = clock or SystemClock()
        self.progress_interval_ms = progress_interval_ms

    def execute(
        self,
        query: Query,
        roots: Sequence[RootScope],
        max_results: int,
        token: CancellationToken = NONE,
        on_progress: ProgressCallback | None = None,
    ) -> list[ResultSet]:
        """Search every root in order and return one result set per searched root.

        Raises:
            ExecutorError: ripgrep could not be started or exited with an error.
        """
        state = _ExecutionState(max_results=max_results, started_ms=self.clock.monotonic_ms())
        collections: list[_RootCollection] = []

        with CancellationTokenSource(parent=token) as cts:
            for scope in roots:
                if cts.is_cancelled:
                    break
                if state.limit_reached:
                    state.truncated = True
                    break
                collection = _RootCollection(root_name=scope.name)
                self._search_root(query, scope, collection, state, cts, on_progress)
                collections.append(collection)

        if on_progress is not None:
            self._report(state, on_progress, force=True)
        return [collection.freeze(state.truncated) for collection in collections]

    def _search_root(
        self,
        query: Query,
        scope: RootScope,
        collection: _RootCollection,
        state: _ExecutionState,
        cts: CancellationTokenSource,
        on_progress: ProgressCallback | None,
    ) -> None:
        cmd = [*self.rg_command, *build_rg_args(query, scope)]
        logger.debug("Running %s in %s", shlex.join(cmd), scope.path)
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=scope.path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ExecutorError(f"Failed to start ripgrep in {scope.path}: {e}") from e

        assert proc.stdout is not None and proc.stderr is not None
        stderr_chunks: list[bytes] = []
        stderr_reader = threading.Thread(target=_drain, args=(proc.stderr, stderr_chunks), daemon=True)
        stderr_reader.start()

        killed = False

        def kill() -> None:
            nonlocal killed
            killed = True
            try:
                proc.terminate()
            except OSError:
                pass

        unregister = cts.token.register(kill)
        try:
            for raw in proc.stdout:
                if cts.is_cancelled:
                    break
                try:
                    data = decode_record(raw)
                except MalformedRecordError as e:
                    logger.debug("Skipping malformed ripgrep record: %s", e)
                    continue
                if data is None:
                    continue
                if not self._collect(scope, data, collection, state, on_progress):
                    kill()
                    break
        except BaseException:
            kill()
            raise
        finally:
            unregister()
            proc.stdout.close()
            returncode = proc.wait()
            stderr_reader.join()
            proc.stderr.close()

        if killed or cts.is_cancelled or returncode in _SUCCESS_CODES or -returncode in _KILL_SIGNALS:
            return
        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace").strip()
        raise ExecutorError(stderr or f"ripgrep failed with code {returncode}", exit_code=returncode, stderr=stderr)

    def _collect(
        self,
        scope: RootScope,
        data: RgMatchData,
        collection: _RootCollection,
        state: _ExecutionState,
        on_progress: ProgressCallback | None,
    ) -> bool:
        """Append one match per submatch; return ``False`` once the global limit is reached."""
        relative_path = normalize_relative_path(data.path.text)
        line_text = strip_line_terminator(data.lines.text)
        preview = truncate_preview(sanitize_preview(line_text), self.preview_max_chars)

        for submatch in data.submatches:
            collection.matches.append(
                Match(
                    relative_path=relative_path,
                    line=data.line_number,
                    col=byte_offset_to_column(line_text, submatch.start),
                    preview=preview,
                )
            )
            collection.files.add(relative_path)
            state.files_seen.add((scope.name, relative_path))
            state.match_count += 1
            if on_progress is not None:
                self._report(state, on_progress)
            if state.limit_reached:
                collection.truncated = True
                state.truncated = True
                return False
        return True

    def _report(self, state: _ExecutionState, on_progress: ProgressCallback, force: bool = False) -> None:
        now = self.clock.monotonic_ms()
        if not force and state.last_progress_ms is not None:
            if now - state.last_progress_ms < self.progress_interval_ms:
                return
        state.last_progress_ms = now
        on_progress(
            SearchProgress(
                matches_found=state.match_count,
                files_seen=len(state.files_seen),
                elapsed_ms=now - state.started_ms,
            )
        )
