"""Pydantic base model and search records."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_INCLUDES = "**/*"


class FrozenBaseModel(BaseModel):
    """Pydantic frozen base model."""

    model_config = ConfigDict(frozen=True, strict=True)


class Query(FrozenBaseModel):
    """Search query, fixed once a run starts."""

    pattern: str
    is_regexp: bool = False
    is_case_sensitive: bool = False
    is_word_match: bool = False


class RootScope(FrozenBaseModel):
    """A named root directory and the limits used to search it."""

    name: str
    path: Path
    includes: str = DEFAULT_INCLUDES
    excludes: str = ""
    respect_excludes: bool = True
    ignore_globs: tuple[str, ...] = ()
    max_file_size_bytes: int = 0
    max_matches_per_file: int = 0


class Match(FrozenBaseModel):
    """A single submatch inside a root."""

    relative_path: str
    line: int = Field(ge=1)
    col: int | None = Field(default=None, ge=1)
    preview: str = ""


class ResultSet(FrozenBaseModel):
    """Matches found within one root for one run."""

    root_name: str
    total_files: int = 0
    total_matches: int = 0
    truncated: bool = False
    matches: tuple[Match, ...] = ()


class Run(FrozenBaseModel):
    """One complete search execution and its results."""

    run_id: str
    started_at_ms: int
    query: Query
    root_name: str = ""
    includes: str = DEFAULT_INCLUDES
    excludes: str = ""
    respect_excludes: bool = True
    max_results: int = 20000
    total_matches: int = 0
    total_files: int = 0
    elapsed_ms: int = 0
    truncated: bool = False
    cancelled: bool = False
    sets: tuple[ResultSet, ...] = ()


class SearchRequest(FrozenBaseModel):
    """Parameters collected by the caller for one search."""

    pattern: str = Field(min_length=1)
    is_regexp: bool = False
    is_case_sensitive: bool = False
    is_word_match: bool = False
    root_name: str | None = None
    includes: str = DEFAULT_INCLUDES
    excludes: str = ""
    respect_excludes: bool = True
    max_results: int | None = Field(default=None, ge=1)

    @property
    def query(self) -> Query:
        """Query part of the request."""
        return Query(
            pattern=self.pattern,
            is_regexp=self.is_regexp,
            is_case_sensitive=self.is_case_sensitive,
            is_word_match=self.is_word_match,
        )


class SearchProgress(FrozenBaseModel):
    """Cumulative progress of a running search."""

    matches_found: int
    files_seen: int
    elapsed_ms: int


class Rejected(FrozenBaseModel):
    """A persisted record that could not be parsed."""

    reason: str
