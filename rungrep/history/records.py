"""Lenient parsing of persisted run records.

Each record is parsed on its own: a record missing its id, timestamp or query
is rejected, while malformed optional fields fall back to defaults and
malformed sets or matches are dropped individually.
"""

import math
from collections.abc import Callable, Iterable
from typing import Any

from ..common.pydantic import DEFAULT_INCLUDES, Match, Query, Rejected, ResultSet, Run


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or (isinstance(value, float) and math.isfinite(value))


def _int(value: Any, default: int = 0) -> int:
    return int(value) if _is_number(value) else default


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _bool(value: Any, default: bool = False) -> bool:
    return value if isinstance(value, bool) else default


def parse_query(raw: Any) -> Query | None:
    """Parse a query object."""
    if not isinstance(raw, dict):
        return None
    return Query(
        pattern=_str(raw.get("pattern")),
        is_regexp=_bool(raw.get("is_regexp")),
        is_case_sensitive=_bool(raw.get("is_case_sensitive")),
        is_word_match=_bool(raw.get("is_word_match")),
    )


def parse_match(raw: Any) -> Match | None:
    """Parse a match, dropping it if its line is not positive."""
    if not isinstance(raw, dict):
        return None
    line = _int(raw.get("line"))
    if line <= 0:
        return None
    col = _int(raw.get("col"))
    return Match(
        relative_path=_str(raw.get("relative_path")),
        line=line,
        col=col if col > 0 else None,
        preview=_str(raw.get("preview")),
    )


def _parse_list(raw: Any, parse: Callable[[Any], Any]) -> list[Any]:
    if not isinstance(raw, list):
        return []
    parsed = (parse(item) for item in raw)
    return [item for item in parsed if item is not None]


def parse_result_set(raw: Any) -> ResultSet | None:
    """Parse a result set and whatever matches in it are valid."""
    if not isinstance(raw, dict):
        return None
    matches = _parse_list(raw.get("matches"), parse_match)
    return ResultSet(
        root_name=_str(raw.get("root_name")),
        total_files=_int(raw.get("total_files")),
        total_matches=_int(raw.get("total_matches"), len(matches)),
        truncated=_bool(raw.get("truncated")),
        matches=tuple(matches),
    )


def parse_run(raw: Any) -> Run | Rejected:
    """Parse one persisted run record."""
    if not isinstance(raw, dict):
        return Rejected(reason=f"expected an object, got {type(raw).__name__}")
    query = parse_query(raw.get("query"))
    if query is None:
        return Rejected(reason="missing query")
    run_id = _str(raw.get("run_id"))
    if not run_id:
        return Rejected(reason="missing run_id")
    started_at_ms = _int(raw.get("started_at_ms"))
    if not started_at_ms:
        return Rejected(reason=f"run {run_id} has no started_at_ms")

    return Run(
        run_id=run_id,
        started_at_ms=started_at_ms,
        query=query,
        root_name=_str(raw.get("root_name")),
        includes=_str(raw.get("includes"), DEFAULT_INCLUDES),
        excludes=_str(raw.get("excludes")),
        respect_excludes=_bool(raw.get("respect_excludes"), True),
        max_results=_int(raw.get("max_results"), 20000),
        total_matches=_int(raw.get("total_matches")),
        total_files=_int(raw.get("total_files")),
        elapsed_ms=_int(raw.get("elapsed_ms")),
        truncated=_bool(raw.get("truncated")),
        cancelled=_bool(raw.get("cancelled")),
        sets=tuple(_parse_list(raw.get("sets"), parse_result_set)),
    )


def parse_runs(raw: Iterable[Any]) -> tuple[list[Run], list[Rejected]]:
    """Parse every record, separating runs from rejections."""
    runs: list[Run] = []
    rejected: list[Rejected] = []
    for item in raw:
        parsed = parse_run(item)
        if isinstance(parsed, Rejected):
            rejected.append(parsed)
        else:
            runs.append(parsed)
    return runs, rejected
