"""CLI entrypoints for docsync commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .errors import DocSyncError
from .logging import configure_logging
from .models import OUTCOME_FAILED, RunReport
from .orchestrator import Orchestrator

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PENDING_CHANGES = 2


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsync",
        description="Generate and synchronise code documentation without losing human edits.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Explicit configuration file (defaults to .docsync.yml in the project root).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print warnings and errors to the console.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write detailed logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Write a default .docsync.yml and create the docs directory.",
    )
    _add_verbose_option(init_parser, suppress_default=True)
    _add_path_argument(init_parser)
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing configuration file.",
    )

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate documentation for every unit in the project.",
    )
    _add_verbose_option(generate_parser, suppress_default=True)
    _add_path_argument(generate_parser)
    generate_parser.add_argument(
        "--force",
        action="store_true",
        help="Regenerate documents even when the source structure is unchanged.",
    )

    sync_parser = subparsers.add_parser(
        "sync",
        help="Regenerate only the documents whose source structure changed.",
    )
    _add_verbose_option(sync_parser, suppress_default=True)
    _add_path_argument(sync_parser)
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report which documents would change without writing them.",
    )
    sync_parser.add_argument(
        "--fail-on-changes",
        action="store_true",
        help="Exit with status 2 when any document is out of date (useful in CI).",
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Check generated documents for malformed markers and stale content.",
    )
    _add_verbose_option(validate_parser, suppress_default=True)
    _add_path_argument(validate_parser)
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings (stale or unmanaged documents) as errors.",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service (requires the service extra).",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint for docsync commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=bool(args.quiet), log_file=args.log_file)

    orchestrator = Orchestrator()

    if args.command == "init":
        try:
            config_path = orchestrator.run_init(args.path, force=bool(args.force))
        except (FileExistsError, FileNotFoundError) as exc:
            parser.exit(EXIT_FAILURE, f"{exc}\n")
        except DocSyncError as exc:
            parser.exit(EXIT_FAILURE, f"docsync init failed: {exc}\n")
        print(f"Configuration written to {_relativize(config_path)}")
        return EXIT_OK

    if args.command == "serve":
        from .service import run_service

        try:
            run_service(host=args.host, port=args.port)
        except RuntimeError as exc:
            parser.exit(EXIT_FAILURE, f"{exc}\n")
        return EXIT_OK

    if args.command == "validate":
        try:
            validation = orchestrator.run_validate(
                args.path, strict=bool(args.strict), config_file=args.config
            )
        except (FileNotFoundError, NotADirectoryError) as exc:
            parser.exit(EXIT_FAILURE, f"{exc}\n")
        except DocSyncError as exc:
            parser.exit(EXIT_FAILURE, f"docsync validate failed: {exc}\n")
        for issue in validation.errors:
            print(f"error: {issue}")
        for issue in validation.warnings:
            print(f"warning: {issue}")
        print(
            f"{validation.checked} document(s) checked, "
            f"{len(validation.errors)} error(s), {len(validation.warnings)} warning(s)"
        )
        return EXIT_OK if validation.ok else EXIT_FAILURE

    try:
        if args.command == "generate":
            report = orchestrator.run_generate(
                args.path, force=bool(args.force), config_file=args.config
            )
        elif args.command == "sync":
            report = orchestrator.run_sync(
                args.path, dry_run=bool(args.dry_run), config_file=args.config
            )
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(EXIT_FAILURE, "Unknown command\n")
    except (FileNotFoundError, NotADirectoryError) as exc:
        parser.exit(EXIT_FAILURE, f"{exc}\n")
    except DocSyncError as exc:
        parser.exit(
            EXIT_FAILURE,
            f"docsync {args.command} failed: {exc}\nRun with --verbose for more details.\n",
        )

    _print_report(report)
    if report.has_failures:
        return EXIT_FAILURE
    if args.command == "sync" and args.fail_on_changes and report.has_changes:
        return EXIT_PENDING_CHANGES
    return EXIT_OK


def _print_report(report: RunReport) -> None:
    for outcome in report.outcomes:
        if outcome.status == OUTCOME_FAILED:
            print(f"{outcome.identity}: failed: {outcome.error}")
            continue
        line = f"{outcome.identity}: {outcome.status}"
        if outcome.orphaned:
            line += f" ({len(outcome.orphaned)} orphaned: {', '.join(outcome.orphaned)})"
        print(line)
    print(report.summary())


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


def run() -> None:
    """Console-script wrapper that turns the return code into the exit status."""
    sys.exit(main())


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
