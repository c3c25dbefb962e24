"""Search session: the surface the UI layer calls into."""

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Self

from ..common.cancellation import CancellationTokenSource
from ..common.errors import ExecutorError, NoMatchesError
from ..common.pydantic import Run, SearchProgress, SearchRequest
from ..events import EventBus
from ..events.search import HistoryChanged, SearchFailed, SearchFinished, SearchProgressed, SearchStarted
from ..history.store import RunHistoryStore
from ..navigation.navigator import MatchNavigator, ResolvedMatch
from ..search import codec
from ..search.executor import ProgressCallback
from ..search.run_service import SearchRunService

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Per-session state owned by the caller."""

    last_request: SearchRequest | None = None
    current_run_id: str | None = None
    current_match: ResolvedMatch | None = None


class SearchSession:
    """Runs searches one at a time and gives access to their history.

    Starting a search cancels the one still running in the same session.
    """

    def __init__(
        self,
        run_service: SearchRunService,
        history: RunHistoryStore,
        navigator: MatchNavigator | None = None,
        events: EventBus | None = None,
    ):
        """Initialize the session."""
        self.run_service = run_service
        self.history = history
        self.navigator = navigator or MatchNavigator(run_service.settings.roots)
        self.events = events or EventBus()
        self.context = SessionContext()
        self._lock = threading.Lock()
        self._active: CancellationTokenSource | None = None
        self._search_ids = itertools.count(1)
        self._latest_search_id = 0

    def __enter__(self) -> Self:
        """Load the run history."""
        self.history.load()
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        """Cancel any running search and flush the history."""
        self.cancel_current_search()
        self.history.close()

    def run_search(self, request: SearchRequest, on_progress: ProgressCallback | None = None) -> Run:
        """Run ``request``, store the resulting run and return it.

        A cancelled search still returns, and stores, its partial run.

        Raises:
            ExecutorError: the search process failed; nothing is stored.
        """
        source = CancellationTokenSource()
        with self._lock:
            if self._active is not None:
                self._active.cancel()
            self._active = source
            search_id = next(self._search_ids)
            self._latest_search_id = search_id
        self.context.last_request = request
        self.events.publish(SearchStarted(search_id=search_id, request=request))

        def report(progress: SearchProgress) -> None:
            self.events.publish(SearchProgressed(search_id=search_id, progress=progress))
            if on_progress is not None:
                on_progress(progress)

        try:
            run = self.run_service.run(request, source.token, report)
        except ExecutorError as e:
            logger.error("Search %d failed: %s", search_id, e)
            self.events.publish(SearchFailed(search_id=search_id, message=str(e)))
            raise
        finally:
            with self._lock:
                if self._active is source:
                    self._active = None

        self.history.add(run)
        with self._lock:
            if self._latest_search_id == search_id:
                self.context.current_run_id = run.run_id
                self.context.current_match = None
        self.events.publish(
            SearchFinished(
                search_id=search_id,
                run_id=run.run_id,
                total_matches=run.total_matches,
                truncated=run.truncated,
                cancelled=run.cancelled,
            )
        )
        self._history_changed()
        return run

    def cancel_current_search(self) -> None:
        """Cancel the running search, if any."""
        with self._lock:
            if self._active is not None:
                self._active.cancel()

    def list_runs(self) -> list[Run]:
        """Stored runs, newest first."""
        return self.history.list()

    def get_run(self, run_id: str) -> Run | None:
        """A stored run."""
        return self.history.get(run_id)

    def delete_run(self, run_id: str) -> None:
        """Delete a stored run."""
        self.history.delete(run_id)
        if self.context.current_run_id == run_id:
            self.context.current_run_id = None
            self.context.current_match = None
        self._history_changed()

    def clear_runs(self) -> None:
        """Delete every stored run."""
        self.history.clear()
        self.context.current_run_id = None
        self.context.current_match = None
        self._history_changed()

    def next_match(self, run: Run | None = None, current: ResolvedMatch | None = None) -> ResolvedMatch:
        """Move to the match after ``current`` (default: the session's current match)."""
        run, current = self._navigation_args(run, current)
        return self._set_current(self.navigator.next(run, current))

    def previous_match(self, run: Run | None = None, current: ResolvedMatch | None = None) -> ResolvedMatch:
        """Move to the match before ``current`` (default: the session's current match)."""
        run, current = self._navigation_args(run, current)
        return self._set_current(self.navigator.previous(run, current))

    def serialize_run(self, run: Run) -> str:
        """Render ``run`` as a plain-text match listing."""
        return codec.serialize_run(run)

    def parse_match_line(self, text: str) -> codec.ParsedMatchLine | None:
        """Parse one line of a rendered listing."""
        return codec.parse_match_line(text)

    def _navigation_args(self, run: Run | None, current: ResolvedMatch | None) -> tuple[Run, ResolvedMatch | None]:
        if run is None:
            run_id = self.context.current_run_id
            run = self.history.get(run_id) if run_id else None
            if run is None:
                raise NoMatchesError("no active run to navigate")
        if current is None and self.context.current_match is not None:
            if self.context.current_match.run_id == run.run_id:
                current = self.context.current_match
        return run, current

    def _set_current(self, match: ResolvedMatch) -> ResolvedMatch:
        self.context.current_run_id = match.run_id
        self.context.current_match = match
        return match

    def _history_changed(self) -> None:
        self.events.publish(HistoryChanged(run_count=len(self.history.list())))
