"""ripgrep invocation and ``--json`` record decoding."""

import shutil

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..common.errors import MalformedRecordError
from ..common.pydantic import DEFAULT_INCLUDES, Query, RootScope


def find_rg(configured: str | None = None) -> str:
    """Resolve the ripgrep executable, preferring an explicitly configured one."""
    if configured:
        return configured
    return shutil.which("rg") or "rg"


class _RgModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class RgText(_RgModel):
    """A ripgrep "arbitrary data" field, only valid UTF-8 text is accepted."""

    text: str


class RgSubmatch(_RgModel):
    """Byte span of one match within a line."""

    start: int
    end: int | None = None


class RgMatchData(_RgModel):
    """Payload of a ``match`` record."""

    path: RgText
    line_number: int = Field(ge=1)
    lines: RgText
    submatches: list[RgSubmatch] = Field(min_length=1)


class RgRecord(_RgModel):
    """Envelope of any ripgrep JSON line."""

    type: str
    data: dict | None = None


def decode_record(line: bytes | str) -> RgMatchData | None:
    """Decode one line of ``rg --json`` output.

    Returns ``None`` for records other than matches (``begin``, ``end``,
    ``summary`` and so on) and raises :class:`MalformedRecordError` for lines
    that are not valid JSON or lack a required field.
    """
    try:
        record = RgRecord.model_validate_json(line)
        if record.type != "match":
            return None
        data = RgMatchData.model_validate(record.data)
    except ValidationError as e:
        raise MalformedRecordError(str(e)) from e
    if not data.path.text or not data.lines.text:
        raise MalformedRecordError("match record without path or line text")
    return data


def normalize_relative_path(path: str) -> str:
    """Forward slashes, without a leading ``./``."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def strip_line_terminator(text: str) -> str:
    """Drop a single trailing ``\\n`` or ``\\r\\n``."""
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def byte_offset_to_column(text: str, byte_offset: int) -> int:
    """Convert a byte offset into the UTF-8 encoding of ``text`` to a 1-based UTF-16 column."""
    if byte_offset <= 0:
        return 1
    prefix = text.encode("utf-8")[:byte_offset]
    decoded = prefix.decode("utf-8", errors="replace")
    return len(decoded.encode("utf-16-le")) // 2 + 1


def _negated(glob: str) -> str:
    return glob if glob.startswith("!") else f"!{glob}"


def build_rg_args(query: Query, scope: RootScope) -> list[str]:
    """Build the ripgrep arguments searching ``scope`` for ``query`` from the root directory."""
    args = ["--json", "--no-config", "--no-heading", "--color", "never"]
    if not query.is_regexp:
        args.append("--fixed-strings")
    if not query.is_case_sensitive:
        args.append("-i")
    if query.is_word_match:
        args.append("-w")
    if scope.max_matches_per_file > 0:
        args.extend(["--max-count", str(scope.max_matches_per_file)])
    if scope.max_file_size_bytes > 0:
        args.extend(["--max-filesize", str(scope.max_file_size_bytes)])
    if not scope.respect_excludes:
        args.append("--no-ignore")

    includes = scope.includes.strip()
    if includes and includes != DEFAULT_INCLUDES:
        args.extend(["--glob", includes])

    excludes = [scope.excludes]
    if scope.respect_excludes:
        excludes.extend(scope.ignore_globs)
    for glob in excludes:
        glob = glob.strip()
        if glob:
            args.extend(["--glob", _negated(glob)])

    args.extend(["--", query.pattern, "."])
    return args
