"""Next/previous navigation over the matches of a run."""

from collections.abc import Mapping, Sequence
from pathlib import Path

from more_itertools import flatten
from pydantic import Field

from ..common.errors import NoMatchesError
from ..common.pydantic import FrozenBaseModel, Run
from ..search.codec import parse_match_line


class ResolvedMatch(FrozenBaseModel):
    """A match of a run located on disk."""

    run_id: str
    root_name: str
    relative_path: str
    line: int = Field(ge=1)
    col: int | None = None
    location: Path


class MatchNavigator:
    """Computes match order and wraparound navigation for stored runs."""

    def __init__(self, roots: Mapping[str, Path]):
        """Initialize with the known roots by name."""
        self.roots = roots

    def resolve(self, root_name: str, relative_path: str) -> Path | None:
        """Absolute location of ``relative_path`` under the named root, if the root is known."""
        root = self.roots.get(root_name)
        if root is None:
            return None
        return Path(root).joinpath(*relative_path.replace("\\", "/").split("/"))

    def ordered_matches(self, run: Run) -> list[ResolvedMatch]:
        """Matches in set order, then match order, skipping unknown roots."""
        ordered: list[ResolvedMatch] = []
        for root_name, match in flatten(((s.root_name, m) for m in s.matches) for s in run.sets):
            location = self.resolve(root_name, match.relative_path)
            if location is None:
                continue
            ordered.append(
                ResolvedMatch(
                    run_id=run.run_id,
                    root_name=root_name,
                    relative_path=match.relative_path,
                    line=match.line,
                    col=match.col,
                    location=location,
                )
            )
        return ordered

    def _index_of(self, ordered: list[ResolvedMatch], current: ResolvedMatch) -> int | None:
        key = (current.root_name, current.relative_path, current.line, current.col)
        for i, match in enumerate(ordered):
            if (match.root_name, match.relative_path, match.line, match.col) == key:
                return i
        for i, match in enumerate(ordered):
            if match.location == current.location and match.line == current.line:
                return i
        return None

    def next(self, run: Run, current: ResolvedMatch | None = None) -> ResolvedMatch:
        """The match after ``current``, wrapping to the first one.

        Without a known ``current`` this is the first match.
        """
        ordered = self.ordered_matches(run)
        if not ordered:
            raise NoMatchesError(f"run {run.run_id} has no matches")
        index = self._index_of(ordered, current) if current is not None else None
        if index is None:
            index = -1
        return ordered[(index + 1) % len(ordered)]

    def previous(self, run: Run, current: ResolvedMatch | None = None) -> ResolvedMatch:
        """The match before ``current``, wrapping to the last one.

        Without a known ``current`` this is the last match.
        """
        ordered = self.ordered_matches(run)
        if not ordered:
            raise NoMatchesError(f"run {run.run_id} has no matches")
        index = self._index_of(ordered, current) if current is not None else None
        if index is None:
            index = 0
        return ordered[(index - 1) % len(ordered)]


def find_next_match_line(lines: Sequence[str], start: int) -> int | None:
    """Index of the first parseable match line at or after ``start`` in a rendered listing."""
    for i in range(max(0, start), len(lines)):
        if parse_match_line(lines[i]) is not None:
            return i
    return None


def find_previous_match_line(lines: Sequence[str], start: int) -> int | None:
    """Index of the last parseable match line at or before ``start`` in a rendered listing."""
    for i in range(min(start, len(lines) - 1), -1, -1):
        if parse_match_line(lines[i]) is not None:
            return i
    return None
