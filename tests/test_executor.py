"""Test suite for the pattern search executor."""

import os
import threading
import time
from pathlib import Path

import pytest

from rungrep.common.cancellation import CancellationTokenSource
from rungrep.common.errors import ExecutorError
from rungrep.common.pydantic import Query, RootScope, SearchProgress
from rungrep.search.executor import PatternSearchExecutor
from tests.test_utils import FakeClock, FakeRipgrep, rg_begin, rg_match


def scopes(roots: dict[str, Path], **kwargs) -> list[RootScope]:
    """Root scopes for every root."""
    return [RootScope(name=name, path=path, **kwargs) for name, path in roots.items()]


class TestExecuteResults:
    """Test decoding and ordering of results."""

    def test_matches_in_emission_order(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """One match per submatch, in the order ripgrep printed them."""
        fake_rg.set_output(
            roots["alpha"],
            [
                rg_begin("b.txt"),
                rg_match("./b.txt", 3, "hello hello", [0, 6]),
                {"type": "end", "data": {}},
                rg_match("a.txt", 1, "say hello", [4]),
            ],
        )
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        sets = executor.execute(Query(pattern="hello"), scopes({"alpha": roots["alpha"]}), 100)

        assert len(sets) == 1
        result = sets[0]
        assert result.root_name == "alpha"
        assert [(m.relative_path, m.line, m.col) for m in result.matches] == [
            ("b.txt", 3, 1),
            ("b.txt", 3, 7),
            ("a.txt", 1, 5),
        ]
        assert result.total_matches == 3
        assert result.total_files == 2
        assert not result.truncated

    def test_malformed_lines_skipped(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Undecodable or incomplete records do not abort the search."""
        fake_rg.set_output(
            roots["alpha"],
            ["{broken", rg_match("a.txt", 1, "x", []), '{"type": "match", "data": null}', rg_match("a.txt", 2, "x", [0])],
        )
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        sets = executor.execute(Query(pattern="x"), scopes({"alpha": roots["alpha"]}), 100)

        assert [m.line for m in sets[0].matches] == [2]

    def test_preview_sanitized_and_truncated(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Previews are single-line and limited in length."""
        fake_rg.set_output(roots["alpha"], [rg_match("a.txt", 1, "abcdefghij\x00   ", [0])])
        executor = PatternSearchExecutor(rg_command=fake_rg.command, preview_max_chars=5)
        sets = executor.execute(Query(pattern="a"), scopes({"alpha": roots["alpha"]}), 100)

        assert sets[0].matches[0].preview == "abcd…"

    def test_invocation(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """ripgrep runs once per root, from the root directory, with the query flags."""
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        executor.execute(Query(pattern="needle", is_word_match=True), scopes(roots, max_matches_per_file=3), 100)

        calls = fake_rg.calls()
        assert [call["cwd"] for call in calls] == [os.path.realpath(p) for p in roots.values()]
        assert "-w" in calls[0]["argv"]
        assert calls[0]["argv"][-3:] == ["--", "needle", "."]

    def test_sets_follow_root_order(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Sets preserve root order, including roots without matches."""
        fake_rg.set_output(roots["beta"], [rg_match("b.txt", 1, "x", [0])])
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        sets = executor.execute(Query(pattern="x"), scopes(roots), 100)

        assert [s.root_name for s in sets] == ["alpha", "beta"]
        assert [s.total_matches for s in sets] == [0, 1]


class TestGlobalLimit:
    """Test the match limit shared by all roots."""

    def test_limit_stops_and_truncates_every_set(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Reaching the limit kills the process, skips later roots and flags all sets."""
        fake_rg.set_output(roots["alpha"], [rg_match("a.txt", 1, "x x", [0, 2])])
        fake_rg.set_output(
            roots["beta"], [rg_match(f"b{i}.txt", 1, "x", [0]) for i in range(10)], hang=True
        )
        third = roots["beta"].parent / "gamma"
        third.mkdir()
        fake_rg.set_output(third, [rg_match("c.txt", 1, "x", [0])])

        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        started = time.monotonic()
        sets = executor.execute(Query(pattern="x"), scopes({**roots, "gamma": third}), 5)

        assert time.monotonic() - started < 20
        assert [s.root_name for s in sets] == ["alpha", "beta"]
        assert sum(len(s.matches) for s in sets) == 5
        assert all(s.truncated for s in sets)
        assert len(fake_rg.calls()) == 2

    def test_limit_inside_one_record(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Submatches beyond the limit are dropped."""
        fake_rg.set_output(roots["alpha"], [rg_match("a.txt", 1, "xxxxx", [0, 1, 2, 3, 4])])
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        sets = executor.execute(Query(pattern="x"), scopes({"alpha": roots["alpha"]}), 3)

        assert [m.col for m in sets[0].matches] == [1, 2, 3]
        assert sets[0].truncated

    def test_under_limit_not_truncated(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Results below the limit are complete."""
        fake_rg.set_output(roots["alpha"], [rg_match("a.txt", 1, "x", [0])])
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        sets = executor.execute(Query(pattern="x"), scopes(roots), 3)

        assert not any(s.truncated for s in sets)


class TestCancellation:
    """Test cooperative cancellation."""

    def test_cancel_before_start(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """A cancelled token starts no process."""
        source = CancellationTokenSource()
        source.cancel()
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        sets = executor.execute(Query(pattern="x"), scopes(roots), 100, source.token)

        assert sets == []
        assert fake_rg.calls() == []

    def test_cancel_from_progress_keeps_partial_results(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Cancelling mid-stream kills the process and keeps what was decoded."""
        fake_rg.set_output(roots["alpha"], [rg_match("a.txt", 1, "x", [0])], hang=True)
        source = CancellationTokenSource()
        executor = PatternSearchExecutor(rg_command=fake_rg.command)

        started = time.monotonic()
        sets = executor.execute(Query(pattern="x"), scopes(roots), 100, source.token, lambda _: source.cancel())

        assert time.monotonic() - started < 20
        assert len(sets) == 1
        assert sets[0].total_matches == 1
        assert len(fake_rg.calls()) == 1

    def test_cancel_from_another_thread(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """A silent, long-running process is killed on cancellation."""
        fake_rg.set_output(roots["alpha"], [], hang=True)
        source = CancellationTokenSource()
        timer = threading.Timer(0.5, source.cancel)
        timer.start()
        executor = PatternSearchExecutor(rg_command=fake_rg.command)

        started = time.monotonic()
        try:
            sets = executor.execute(Query(pattern="x"), scopes(roots), 100, source.token)
        finally:
            timer.cancel()

        assert time.monotonic() - started < 20
        assert [s.total_matches for s in sets] == [0]

    def test_cancel_is_idempotent(self):
        """Cancelling twice, or after the fact, is harmless."""
        source = CancellationTokenSource()
        source.cancel()
        source.cancel()
        assert source.token.is_cancellation_requested


class TestExitCodes:
    """Test the process exit policy."""

    def test_no_matches_exit_code(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Exit code 1 means no matches."""
        fake_rg.set_output(roots["alpha"], [], exit_code=1)
        executor = PatternSearchExecutor(rg_command=fake_rg.command)
        sets = executor.execute(Query(pattern="x"), scopes({"alpha": roots["alpha"]}), 100)
        assert sets[0].total_matches == 0

    def test_error_exit_surfaces_stderr(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Other exit codes raise with the error output."""
        fake_rg.set_output(roots["alpha"], [], exit_code=2, stderr="regex parse error\n")
        executor = PatternSearchExecutor(rg_command=fake_rg.command)

        with pytest.raises(ExecutorError, match="regex parse error") as excinfo:
            executor.execute(Query(pattern="(", is_regexp=True), scopes(roots), 100)
        assert excinfo.value.exit_code == 2

    def test_error_without_stderr(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """The exit code is reported when there is no error output."""
        fake_rg.set_output(roots["alpha"], [], exit_code=3)
        executor = PatternSearchExecutor(rg_command=fake_rg.command)

        with pytest.raises(ExecutorError, match="code 3"):
            executor.execute(Query(pattern="x"), scopes(roots), 100)

    def test_missing_executable(self, roots: dict[str, Path], temp_workspace: Path):
        """A missing executable is an executor error."""
        executor = PatternSearchExecutor(rg_command=str(temp_workspace / "no-such-rg"))
        with pytest.raises(ExecutorError):
            executor.execute(Query(pattern="x"), scopes(roots), 100)


class TestProgress:
    """Test progress throttling."""

    def test_throttled_with_final_report(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """Without time passing only the first and the final report are delivered."""
        fake_rg.set_output(roots["alpha"], [rg_match(f"{i}.txt", 1, "x", [0]) for i in range(5)])
        reports: list[SearchProgress] = []
        executor = PatternSearchExecutor(rg_command=fake_rg.command, clock=FakeClock())
        executor.execute(Query(pattern="x"), scopes(roots), 100, on_progress=reports.append)

        assert len(reports) == 2
        assert reports[0].matches_found == 1
        assert reports[-1] == SearchProgress(matches_found=5, files_seen=5, elapsed_ms=0)

    def test_reports_when_interval_elapsed(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """A report is delivered whenever the interval has passed."""
        fake_rg.set_output(roots["alpha"], [rg_match("a.txt", i, "x", [0]) for i in range(1, 5)])
        reports: list[SearchProgress] = []
        executor = PatternSearchExecutor(rg_command=fake_rg.command, clock=FakeClock(step_ms=250))
        executor.execute(Query(pattern="x"), scopes(roots), 100, on_progress=reports.append)

        assert [r.matches_found for r in reports] == [1, 2, 3, 4, 4]
        assert reports[-1].files_seen == 1

    def test_files_seen_counts_root_and_path(self, fake_rg: FakeRipgrep, roots: dict[str, Path]):
        """The same relative path in two roots counts twice."""
        fake_rg.set_output(roots["alpha"], [rg_match("same.txt", 1, "x", [0])])
        fake_rg.set_output(roots["beta"], [rg_match("same.txt", 1, "x", [0])])
        reports: list[SearchProgress] = []
        executor = PatternSearchExecutor(rg_command=fake_rg.command, clock=FakeClock())
        executor.execute(Query(pattern="x"), scopes(roots), 100, on_progress=reports.append)

        assert reports[-1].files_seen == 2
