"""App components."""

from pathlib import Path

from pydantic import Field

from ..common.clock import Clock
from ..history.store import DEFAULT_MAX_RUNS, RunHistoryStore
from ..navigation.navigator import MatchNavigator
from ..search.executor import PatternSearchExecutor
from ..search.ripgrep import find_rg
from ..search.run_service import SearchRunService, SearchSettings
from .session import SearchSession


class AppConfig(SearchSettings):
    """App configuration."""

    history_size: int = Field(default=DEFAULT_MAX_RUNS, description="Number of runs kept in the history.")
    rg_path: str | None = Field(default=None, description="ripgrep executable, found on PATH if unset.")


def build_session(
    config: AppConfig,
    history_path: Path | None = None,
    clock: Clock | None = None,
) -> SearchSession:
    """Build the search session."""
    executor = PatternSearchExecutor(
        rg_command=find_rg(config.rg_path),
        preview_max_chars=config.preview_max_chars,
        clock=clock,
    )
    return SearchSession(
        run_service=SearchRunService(executor, config, clock=clock),
        history=RunHistoryStore(history_path, max_runs=config.history_size),
        navigator=MatchNavigator(config.roots),
    )
