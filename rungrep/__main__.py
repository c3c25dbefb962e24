"""Application entry point."""

import argparse
import logging
import shutil
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pydantic import ValidationError

from .app.app_config import AppConfig, build_session
from .app.session import SearchSession
from .common.app import app_dirs
from .common.errors import ExecutorError
from .common.pydantic import DEFAULT_INCLUDES, SearchProgress, SearchRequest


def reset_all() -> None:
    """Delete config and history."""
    if app_dirs.app_data_dir.exists():
        shutil.rmtree(app_dirs.app_data_dir)
        print(f"App data directory deleted: {app_dirs.app_data_dir}")
    else:
        print(f"App data directory does not exist: {app_dirs.app_data_dir}")


def parse_root(value: str) -> tuple[str, Path]:
    """Parse ``NAME=PATH``, or a bare path named after its directory."""
    name, sep, path = value.partition("=")
    if not sep:
        root = Path(value).resolve()
        return root.name or str(root), root
    if not name or not path:
        raise argparse.ArgumentTypeError(f"invalid root {value!r}, expected NAME=PATH")
    return name, Path(path).resolve()


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(prog="rungrep", description="rungrep - search file trees and keep the results")
    parser.add_argument("--temp", action="store_true", help="Run in temporary mode")
    parser.add_argument("--reset", action="store_true", help="Delete all app data")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    commands = parser.add_subparsers(dest="command")

    search = commands.add_parser("search", help="Run a search and store it in the history")
    search.add_argument("pattern")
    search.add_argument("--regex", action="store_true", help="Treat the pattern as a regular expression")
    search.add_argument("--case-sensitive", action="store_true")
    search.add_argument("--word", action="store_true", help="Match whole words only")
    search.add_argument("--root", action="append", type=parse_root, default=[], help="NAME=PATH, repeatable")
    search.add_argument("--include", default=DEFAULT_INCLUDES, help="Only search files matching this glob")
    search.add_argument("--exclude", default="", help="Skip files matching this glob")
    search.add_argument("--no-respect-excludes", action="store_true", help="Ignore ignore-files and exclude globs")
    search.add_argument("--max-results", type=int, default=None)

    history = commands.add_parser("history", help="Inspect stored runs")
    history_commands = history.add_subparsers(dest="history_command", required=True)
    history_commands.add_parser("list", help="List stored runs")
    show = history_commands.add_parser("show", help="Print a stored run")
    show.add_argument("run_id")
    delete = history_commands.add_parser("delete", help="Delete a stored run")
    delete.add_argument("run_id")
    history_commands.add_parser("clear", help="Delete every stored run")
    return parser


def load_config() -> AppConfig:
    """Load the config file, falling back to defaults."""
    if not app_dirs.app_config_path.exists():
        return AppConfig()
    try:
        return AppConfig.model_validate_json(app_dirs.app_config_path.read_text())
    except ValidationError as e:
        logging.getLogger(__name__).warning("Ignoring invalid config %s: %s", app_dirs.app_config_path, e)
        return AppConfig()


def run_search(session: SearchSession, request: SearchRequest) -> int:
    """Run a search in the background so Ctrl-C can cancel it."""

    def on_progress(progress: SearchProgress) -> None:
        print(
            f"\rfiles={progress.files_seen} matches={progress.matches_found} elapsed={progress.elapsed_ms}ms",
            end="",
            file=sys.stderr,
        )

    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(session.run_search, request, on_progress)
        try:
            run = future.result()
        except KeyboardInterrupt:
            session.cancel_current_search()
            run = future.result()
        except ExecutorError as e:
            print(f"\nSearch failed: {e}", file=sys.stderr)
            return 2
    print(file=sys.stderr)
    print(session.serialize_run(run), end="")
    status = "cancelled" if run.cancelled else "truncated" if run.truncated else "done"
    print(f"run {run.run_id}: {run.total_matches} matches in {run.total_files} files ({status})", file=sys.stderr)
    return 0


def run_history(session: SearchSession, args: argparse.Namespace) -> int:
    """Run a history subcommand."""
    if args.history_command == "list":
        for run in session.list_runs():
            flags = "".join(flag for flag, on in (("T", run.truncated), ("C", run.cancelled)) if on)
            print(f"{run.run_id}\t{run.query.pattern!r}\tmatches={run.total_matches}\tfiles={run.total_files}\t{flags}")
        return 0
    if args.history_command in ("show", "delete"):
        found = session.get_run(args.run_id)
        if found is None:
            print(f"No run {args.run_id}", file=sys.stderr)
            return 1
        if args.history_command == "show":
            print(session.serialize_run(found), end="")
        else:
            session.delete_run(args.run_id)
        return 0
    session.clear_runs()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.reset:
        reset_all()
        return 0

    if args.temp:
        app_dirs.use_temp_app_data_dir()

    if args.command is None:
        parser.print_help()
        return 1

    config = load_config()
    session_config = config
    if args.command == "search":
        roots = dict(args.root) or dict(config.roots) or dict([parse_root(".")])
        session_config = config.model_copy(update={"roots": roots})

    with build_session(session_config) as session:
        try:
            if args.command == "search":
                try:
                    request = SearchRequest(
                        pattern=args.pattern,
                        is_regexp=args.regex,
                        is_case_sensitive=args.case_sensitive,
                        is_word_match=args.word,
                        includes=args.include,
                        excludes=args.exclude,
                        respect_excludes=config.respect_excludes and not args.no_respect_excludes,
                        max_results=args.max_results,
                    )
                except ValidationError as e:
                    for error in e.errors():
                        print(f"invalid {'.'.join(map(str, error['loc']))}: {error['msg']}", file=sys.stderr)
                    return 1
                return run_search(session, request)
            return run_history(session, args)
        finally:
            app_dirs.app_config_path.parent.mkdir(parents=True, exist_ok=True)
            app_dirs.app_config_path.write_text(config.model_dump_json(indent=2))


if __name__ == "__main__":
    raise SystemExit(main())
