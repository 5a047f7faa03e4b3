"""Command line entrypoint.

  rdkbuild run <task...> [--project-dir DIR] [--max-workers N] [--dry-run] [--show-test-output] [-x TASK]
  rdkbuild tasks [--project-dir DIR]
  rdkbuild conventions
  rdkbuild format [--check] [--project-dir DIR]

Exit codes: 0 success, 1 task failure, 2 configuration error.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from rdkbuild.errors import ConfigurationError

EXIT_OK = 0
EXIT_TASK_FAILED = 1
EXIT_CONFIGURATION = 2


def _print_err(message: str) -> None:
    sys.stderr.write(message.rstrip() + "\n")


def _add_project_dir(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project-dir",
        type=str,
        default=None,
        help="Build root (otherwise the nearest directory holding settings.yaml, or RDKBUILD_SETTINGS).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rdkbuild", add_help=True)
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run tasks and everything they depend on")
    run.add_argument("tasks", nargs="+", help="Task selectors: `name` (every module) or `:module:name`")
    _add_project_dir(run)
    run.add_argument("--max-workers", type=int, default=None, help="Override build.max_workers")
    run.add_argument("--dry-run", action="store_true", help="Print the planned task order without running it")
    run.add_argument("--show-test-output", action="store_true", help="Log captured test standard output")
    run.add_argument(
        "-x",
        "--exclude",
        action="append",
        default=[],
        metavar="TASK",
        help="Leave a task (and edges to it) out of the graph; may be repeated",
    )

    tasks = sub.add_parser("tasks", help="List every registered task")
    _add_project_dir(tasks)

    sub.add_parser("conventions", help="List the built-in convention bundles")

    fmt = sub.add_parser("format", help="Apply formatting (or only check it)")
    fmt.add_argument("--check", action="store_true", help="Report violations without rewriting files")
    _add_project_dir(fmt)

    return parser


def _run(tasks: Sequence[str], args: argparse.Namespace) -> int:
    from rdkbuild.app.build import configure_stdio_utf8, run_build

    configure_stdio_utf8()
    result = run_build(
        tasks,
        project_dir=args.project_dir,
        exclude=tuple(getattr(args, "exclude", ()) or ()),
        max_workers=getattr(args, "max_workers", None),
        dry_run=bool(getattr(args, "dry_run", False)),
        show_test_output=bool(getattr(args, "show_test_output", False)),
    )
    if result.report is None:
        for path in result.graph.order():
            print(path)
    return EXIT_OK if result.ok else EXIT_TASK_FAILED


def _list_tasks(args: argparse.Namespace) -> int:
    from rdkbuild.app.build import BuildContext, load_settings

    build = BuildContext.configure(load_settings(args.project_dir))
    for spec in build.specs:
        line = spec.path
        if spec.group:
            line += f"\t[{spec.group}]"
        if spec.description:
            line += f"\t{spec.description}"
        print(line)
    return EXIT_OK


def _list_conventions() -> int:
    from rdkbuild.conventions import get_convention_registry

    for row in get_convention_registry().describe():
        requires = ", ".join(row["requires"]) or "-"
        print(f"{row['name']}\trequires: {requires}\t{row['doc']}".rstrip())
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    try:
        args = build_parser().parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        return int(exc.code) if isinstance(exc.code, int) else EXIT_CONFIGURATION

    try:
        if args.command == "run":
            return _run(args.tasks, args)
        if args.command == "tasks":
            return _list_tasks(args)
        if args.command == "conventions":
            return _list_conventions()
        if args.command == "format":
            return _run(["formatCheck" if args.check else "formatApply"], args)
    except ConfigurationError as exc:
        _print_err(f"Configuration error: {exc}")
        return EXIT_CONFIGURATION

    _print_err(f"Unhandled command: {args.command}")
    return EXIT_CONFIGURATION


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
