"""Search session events."""

from ..common.pydantic import SearchProgress, SearchRequest
from . import Event


class SearchEvent(Event):
    """Search event."""

    search_id: int


class SearchStarted(SearchEvent):
    """Search started event."""

    request: SearchRequest


class SearchProgressed(SearchEvent):
    """Search progress event, published at most once per 200 ms plus once at the end."""

    progress: SearchProgress


class SearchFinished(SearchEvent):
    """Search finished event, including cancelled searches."""

    run_id: str
    total_matches: int
    truncated: bool
    cancelled: bool


class SearchFailed(SearchEvent):
    """Search failed event."""

    message: str


class HistoryChanged(Event):
    """The run history was modified."""

    run_count: int
