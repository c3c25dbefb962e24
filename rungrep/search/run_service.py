"""Search run aggregation."""

import logging
import random
import string
from pathlib import Path

from pydantic import BaseModel, Field

from ..common.cancellation import NONE, CancellationToken
from ..common.clock import Clock, SystemClock
from ..common.pydantic import RootScope, Run, SearchRequest
from .executor import PatternSearchExecutor, ProgressCallback

logger = logging.getLogger(__name__)

_RUN_ID_ALPHABET = string.digits + string.ascii_lowercase


class SearchSettings(BaseModel):
    """Configured roots and limits used for every run."""

    roots: dict[str, Path] = Field(default_factory=dict, description="Search roots by name.")
    max_results: int = Field(default=20000, ge=1, description="Default global match limit of a run.")
    max_matches_per_file: int = Field(default=2000, description="Match limit per file, 0 for none.")
    max_file_size_kb: int = Field(default=2048, description="Files larger than this are skipped, 0 for none.")
    preview_max_chars: int = Field(default=240, description="Preview length limit, 0 for none.")
    respect_excludes: bool = Field(default=True, description="Default for honoring ignore files and globs.")
    exclude_globs: dict[str, bool] = Field(
        default_factory=dict, description="Ignore globs, merged into searches that respect excludes."
    )

    @property
    def ignore_globs(self) -> tuple[str, ...]:
        """Enabled ignore globs."""
        return tuple(glob for glob, enabled in self.exclude_globs.items() if enabled)


def generate_run_id(now_ms: int) -> str:
    """A timestamp plus a short random suffix."""
    suffix = "".join(random.choices(_RUN_ID_ALPHABET, k=6))
    return f"{now_ms}-{suffix}"


class SearchRunService:
    """Wraps the executor and turns its result sets into a run record."""

    def __init__(
        self,
        executor: PatternSearchExecutor,
        settings: SearchSettings,
        clock: Clock | None = None,
    ):
        """Initialize the run service."""
        self.executor = executor
        self.settings = settings
        self.clock = clock or SystemClock()

    def select_roots(self, root_name: str | None) -> list[tuple[str, Path]]:
        """The named root, or every configured root if it is missing or unknown."""
        roots = list(self.settings.roots.items())
        if root_name:
            found = [(name, path) for name, path in roots if name == root_name]
            if found:
                return found
        return roots

    def build_scopes(self, request: SearchRequest) -> list[RootScope]:
        """Root scopes for ``request`` with limits taken from the settings."""
        settings = self.settings
        ignore_globs = settings.ignore_globs
        return [
            RootScope(
                name=name,
                path=Path(path),
                includes=request.includes,
                excludes=request.excludes,
                respect_excludes=request.respect_excludes,
                ignore_globs=ignore_globs,
                max_file_size_bytes=settings.max_file_size_kb * 1024,
                max_matches_per_file=settings.max_matches_per_file,
            )
            for name, path in self.select_roots(request.root_name)
        ]

    def run(
        self,
        request: SearchRequest,
        token: CancellationToken = NONE,
        on_progress: ProgressCallback | None = None,
    ) -> Run:
        """Run ``request`` over the configured roots.

        Cancellation is not an error: the partial result is returned with
        ``cancelled`` set. :class:`~rungrep.common.errors.ExecutorError`
        propagates.
        """
        started_at_ms = self.clock.time_ms()
        started_monotonic = self.clock.monotonic_ms()
        query = request.query
        max_results = request.max_results if request.max_results is not None else self.settings.max_results
        logger.info(
            "Search started: pattern=%r mode=%s root=%s",
            request.pattern,
            "regex" if request.is_regexp else "literal",
            request.root_name or "",
        )

        sets = self.executor.execute(query, self.build_scopes(request), max_results, token, on_progress)
        run = Run(
            run_id=generate_run_id(started_at_ms),
            started_at_ms=started_at_ms,
            query=query,
            root_name=request.root_name or "",
            includes=request.includes,
            excludes=request.excludes,
            respect_excludes=request.respect_excludes,
            max_results=max_results,
            total_matches=sum(s.total_matches for s in sets),
            total_files=sum(s.total_files for s in sets),
            elapsed_ms=self.clock.monotonic_ms() - started_monotonic,
            truncated=any(s.truncated for s in sets),
            cancelled=token.is_cancellation_requested,
            sets=tuple(sets),
        )
        logger.info(
            "Search finished: run=%s matches=%d files=%d elapsed=%dms truncated=%s cancelled=%s",
            run.run_id,
            run.total_matches,
            run.total_files,
            run.elapsed_ms,
            run.truncated,
            run.cancelled,
        )
        return run
