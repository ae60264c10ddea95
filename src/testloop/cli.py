"""CLI entry point for testloop."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from testloop.defaults import LOOP_DEFAULTS


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the testloop CLI."""
    parser = argparse.ArgumentParser(
        prog="testloop",
        description="Service test scaffolding with a compile/run/repair loop",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Generate .testloop/testloop.toml from source defaults",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Project root directory (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    analyze_parser = subparsers.add_parser(
        "analyze", help="Extract methods and dependencies of a service"
    )
    _add_service_args(analyze_parser)

    for name, help_text in (
        ("generate-unit", "Generate and validate a unit test for a service"),
        ("generate-integration", "Generate and validate an integration test"),
    ):
        gen_parser = subparsers.add_parser(name, help=help_text)
        _add_service_args(gen_parser)
        gen_parser.add_argument(
            "--test-path",
            default=None,
            help="Output path relative to the project root (default: mirrored test path)",
        )
        gen_parser.add_argument(
            "--no-validate",
            action="store_true",
            help="Only write the test file, skip compile and run",
        )
        _add_retries_arg(gen_parser)

    validate_parser = subparsers.add_parser(
        "validate", help="Compile, run and auto-fix an existing test file"
    )
    validate_parser.add_argument("test_path", help="Test file relative to the project root")
    _add_retries_arg(validate_parser)
    validate_parser.add_argument(
        "--coverage",
        action="store_true",
        help="Generate a coverage report after a successful run",
    )

    _args = parser.parse_args(argv)
    _configure_logging(_args.verbose)
    project_root = _args.project_root or Path.cwd()

    if _args.init:
        from testloop.config import init_config

        path = init_config(project_root)
        print(f"Wrote {path}")
        return 0

    if _args.command is None:
        parser.print_help()
        return 0

    from testloop.models import OperationEnvelope
    from testloop.operations import GenerationService, dispatch_operation

    try:
        operation, arguments = _operation_call(_args, project_root)
    except (OSError, ValueError) as exc:
        envelope = OperationEnvelope(
            success=False, error=f"Cannot read symbol data {_args.analysis}: {exc}"
        )
    else:
        envelope = dispatch_operation(GenerationService(), operation, arguments)
    Console().print_json(envelope.to_json())
    return 0 if envelope.success else 1


def _add_service_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "service_path", help="Service source file relative to the project root"
    )
    parser.add_argument(
        "--analysis",
        type=Path,
        default=None,
        help="JSON file with symbol data from a static analyzer",
    )


def _add_retries_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help=(
            "Attempts per compile/run phase "
            f"(default: [loop] max_retries, {LOOP_DEFAULTS['max_retries']} unless configured)"
        ),
    )


def _operation_call(
    args: argparse.Namespace, project_root: Path
) -> tuple[str, dict[str, object]]:
    arguments: dict[str, object] = {"project_root": str(project_root)}
    if args.command == "validate":
        arguments.update(
            test_path=args.test_path,
            max_retries=args.max_retries,
            check_coverage=args.coverage,
        )
        return "validate_test", arguments

    arguments["service_path"] = args.service_path
    if args.analysis is not None:
        arguments["serena_analysis"] = json.loads(args.analysis.read_text())
    if args.command == "analyze":
        return "analyze_service", arguments

    arguments.update(
        test_path=args.test_path,
        validate=not args.no_validate,
        max_retries=args.max_retries,
    )
    if args.command == "generate-integration":
        return "generate_integration_test", arguments
    return "generate_unit_test", arguments


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _get_version() -> str:
    from testloop import __version__

    return __version__


if __name__ == "__main__":
    sys.exit(main())
