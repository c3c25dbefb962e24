"""Plain-text rendering of runs and parsing of rendered match lines.

A rendered result set looks like::

    ## [2024-05-01 10:00:00] pattern="hello" mode=literal case=insensitive word=false
    ## root="docs" includes="**/*.txt" excludes=""
    ## totalFiles=1 totalMatches=1 truncated=false
    --
    hello.txt:1:1: hello world
    --

Every match line can be parsed back into ``(path, line, col)`` with
:func:`parse_match_line`, including paths that contain colons themselves.
"""

import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from ..common.pydantic import ResultSet, Run

ELLIPSIS = "\u2026"
SEPARATOR = "--"
HEADING_PREFIX = "#"

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")
_WITH_COL = re.compile(r":([0-9]+):([0-9]+):\s")
_WITHOUT_COL = re.compile(r":([0-9]+)::\s")
_ROOT_HEADING = re.compile(r'^##\s+root="((?:[^"\\]|\\.)+)"')
_DRIVE_PATH = re.compile(r"^[A-Za-z]:[\\/]")

# longer digit runs are corrupt, not line numbers
_MAX_DIGITS = 18


@dataclass(frozen=True)
class ParsedMatchLine:
    """Location parsed from a rendered match line."""

    path: str
    line: int
    col: int | None
    link_end: int
    """Offset just past the ``path:line:col:`` part of the line."""


def sanitize_preview(text: str) -> str:
    """Collapse line breaks to spaces, drop NUL characters and trailing whitespace."""
    return _LINE_BREAKS.sub(" ", text).replace("\x00", "").rstrip()


def truncate_preview(text: str, max_chars: int) -> str:
    """Shorten ``text`` to ``max_chars`` characters, ending with an ellipsis."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - 1)] + ELLIPSIS


def _format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _escape_heading_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _unescape_heading_value(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def serialize_result_set(run: Run, result_set: ResultSet) -> str:
    """Render one result set of ``run`` as a header followed by its match lines."""
    query = run.query
    mode = "regex" if query.is_regexp else "literal"
    case = "sensitive" if query.is_case_sensitive else "insensitive"
    word = "true" if query.is_word_match else "false"
    truncated = "true" if result_set.truncated else "false"

    lines = [
        f'## [{_format_timestamp(run.started_at_ms)}] pattern="{_escape_heading_value(query.pattern)}" '
        f"mode={mode} case={case} word={word}",
        f'## root="{_escape_heading_value(result_set.root_name)}" '
        f'includes="{_escape_heading_value(run.includes)}" excludes="{_escape_heading_value(run.excludes)}"',
        f"## totalFiles={result_set.total_files} totalMatches={result_set.total_matches} truncated={truncated}",
        SEPARATOR,
    ]
    for match in result_set.matches:
        col = match.col if match.col is not None else ""
        lines.append(f"{match.relative_path}:{match.line}:{col}: {match.preview}")
    lines.extend([SEPARATOR, ""])
    return "\n".join(lines)


def serialize_run(run: Run) -> str:
    """Render every result set of ``run``, in set order."""
    return "".join(serialize_result_set(run, result_set) for result_set in run.sets)


def _positive(digits: str) -> int | None:
    if len(digits) > _MAX_DIGITS:
        return None
    value = int(digits)
    return value if value > 0 else None


def parse_match_line(text: str) -> ParsedMatchLine | None:
    """Parse a ``path:line:col: preview`` or ``path:line:: preview`` line.

    The rightmost delimiter wins so that paths containing colons, such as
    ``C:\\src\\main.c``, are kept whole. Line and column must be positive and
    at most ``_MAX_DIGITS`` digits long.
    """
    if not text or text.startswith(HEADING_PREFIX) or text.startswith(SEPARATOR):
        return None

    last = None
    for last in _WITH_COL.finditer(text):
        pass
    if last is not None:
        line, col = _positive(last.group(1)), _positive(last.group(2))
        if line is not None and col is not None:
            path = text[: last.start()].strip()
            if not path:
                return None
            return ParsedMatchLine(path=path, line=line, col=col, link_end=last.end() - 1)

    last = None
    for last in _WITHOUT_COL.finditer(text):
        pass
    if last is not None:
        line = _positive(last.group(1))
        if line is not None:
            path = text[: last.start()].strip()
            if not path:
                return None
            return ParsedMatchLine(path=path, line=line, col=None, link_end=last.end() - 1)

    return None


def parse_root_heading(text: str) -> str | None:
    """Return the root name of a ``## root="..."`` heading line."""
    match = _ROOT_HEADING.match(text)
    if match is None:
        return None
    return _unescape_heading_value(match.group(1))


def is_absolute_path(text: str) -> bool:
    """Whether ``text`` looks like an absolute POSIX, drive-letter or UNC path."""
    return os.path.isabs(text) or bool(_DRIVE_PATH.match(text)) or text.startswith("\\\\")


def iter_match_links(text: str) -> Iterator[tuple[str | None, ParsedMatchLine]]:
    """Yield every match line of a rendered listing with the root heading it belongs to."""
    root_name: str | None = None
    for line in text.splitlines():
        root = parse_root_heading(line)
        if root is not None:
            root_name = root
            continue
        parsed = parse_match_line(line)
        if parsed is not None:
            yield root_name, parsed
