#!/usr/bin/env python3
"""
E2E Test Runner CLI

Usage:
    e2e run [patterns...] [options]    Run tests
    e2e validate [patterns...]         Validate test files without running them
    e2e list [patterns...]             List discovered tests
    e2e health [--adapter TYPE]        Check adapter connectivity
    e2e init                           Create a config file and sample tests
    e2e test NAME --template TYPE      Create a test file from a template

Environment:
    E2E_CONFIG, E2E_ENV, E2E_TEST_DIR, E2E_VERBOSE, NO_COLOR
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__ as VERSION
from .adapters import AdapterRegistry, get_required_adapters, parse_adapter_type
from .config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_ENVIRONMENT,
    init_config,
    load_config,
    merge_config_with_options,
    validate_adapter_connection_strings,
)
from .discovery import (
    DiscoveredTest,
    discover_tests,
    filter_test_files,
    load_test,
    load_tests,
    matches_glob,
)
from .errors import ConfigurationError, E2ERunnerError, wrap_error
from .exit_codes import ExitCode, error_code_to_exit_code, exit_code_for_result
from .models import SourceType, UnifiedTestDefinition
from .orchestrator import Orchestrator
from .reporters import create_reporter_manager, get_available_reporter_types
from .templates import TEMPLATE_DESCRIPTIONS, TEST_TEMPLATES, render_test_template
from .utils import measure_duration

logger = logging.getLogger("e2e_runner")


# ANSI colors
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"

SAMPLE_YAML_TEST = """# Example E2E test
name: Health endpoint responds
description: The service answers its health check
priority: P0
tags: [smoke, example]

execute:
  - adapter: http
    action: request
    description: Call the health endpoint
    method: GET
    url: /health
    capture:
      healthStatus: $.status
    assert:
      status: 200
      json:
        - path: $.status
          equals: ok
"""

SAMPLE_PYTHON_TEST = '''"""Example procedural E2E test."""

from e2e_runner import e2e, expect


async def execute(ctx):
    response = await ctx.adapter("http").request("GET", "/health")
    expect(response["status"]).to_be(200)
    ctx.capture("healthBody", response["body"])


test = e2e("Health endpoint (procedural)", execute=execute, priority="P1", tags=["smoke", "example"])
'''


def _use_colors(args) -> bool:
    return not getattr(args, "no_color", False) and sys.stdout.isatty()


def _color(args, text: str, *codes: str) -> str:
    if not _use_colors(args):
        return text
    return f"{''.join(codes)}{text}{RESET}"


def print_error(message: str, hint: Optional[str] = None):
    print(f"Error: {message}", file=sys.stderr)
    if hint:
        print(f"Hint: {hint}", file=sys.stderr)


def setup_logging(verbose: bool = False, quiet: bool = False):
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


# =========================================================================
# Test selection
# =========================================================================


def select_tests(args) -> List[DiscoveredTest]:
    """Discover tests under --test-dir and apply patterns, grep, tags and priority."""
    tests = discover_tests(args.test_dir)
    logger.debug(f"Discovered {len(tests)} test file(s)")

    if args.patterns:
        base = Path(args.test_dir).resolve()
        selected = []
        for test in tests:
            relative = Path(test.file_path).relative_to(base).as_posix()
            if any(matches_glob(relative, p) or p in test.name for p in args.patterns):
                selected.append(test)
        tests = selected

    return filter_test_files(
        tests,
        grep=getattr(args, "grep", None),
        tags=getattr(args, "tag", None),
        priorities=getattr(args, "priority", None),
    )


def print_dry_run(definitions: List[UnifiedTestDefinition]):
    print("Dry run - tests that would be executed:\n")
    for index, test in enumerate(definitions, 1):
        priority = f" [{test.priority.value}]" if test.priority else ""
        skip = " (SKIPPED)" if test.skip else ""
        print(f"  {index}. {test.name}{priority}{skip}")
        if test.tags:
            print(f"     tags: {', '.join(test.tags)}")
        print(f"     Source: {test.source_file}")

        phases = []
        if test.setup:
            phases.append(f"setup({len(test.setup)})")
        phases.append(f"execute({len(test.execute)})")
        if test.verify:
            phases.append(f"verify({len(test.verify)})")
        if test.teardown:
            phases.append(f"teardown({len(test.teardown)})")
        print(f"     Phases: {' -> '.join(phases)}\n")
    print(f"Total: {len(definitions)} test(s) would be executed")


# =========================================================================
# Commands
# =========================================================================


async def run_command(args) -> int:
    config = merge_config_with_options(
        load_config(args.config, args.env),
        timeout=args.timeout,
        retries=args.retries,
        parallel=args.parallel,
        reporters=args.reporter,
    )
    if args.output:
        config.reporters = [
            r if r.get("type") == "console" else {**r, "output": args.output} for r in config.reporters
        ]
    logger.debug(f"Using environment: {config.environment_name}")

    tests = select_tests(args)
    if not tests:
        logger.warning("No tests found matching the specified criteria")
        print("No tests found matching the specified criteria")
        return ExitCode.SUCCESS

    definitions, errors = load_tests(tests)
    if errors:
        logger.warning(f"Failed to load {len(errors)} test(s):")
        for error in errors:
            logger.warning(f"  - {error}")
    if not definitions:
        print_error("No valid test definitions loaded")
        return ExitCode.VALIDATION_ERROR

    if args.dry_run:
        print_dry_run(definitions)
        return ExitCode.SUCCESS

    required = get_required_adapters(definitions)
    if any(t.source_type == SourceType.PYTHON for t in definitions):
        # Procedural tests can reach any adapter through ctx.adapter()
        required = None
    else:
        logger.debug(f"Required adapters: {', '.join(sorted(a.value for a in required)) or 'none'}")

    problems = validate_adapter_connection_strings(
        config.environment, [a.value for a in required] if required is not None else None
    )
    if problems:
        raise ConfigurationError(
            "Adapter configuration problems:\n" + "\n".join(f"  - {p}" for p in problems),
            hint="Set the missing environment variables or fix e2e.config.yaml",
        )

    adapters = AdapterRegistry(config.environment, required)
    manager = create_reporter_manager(
        config.reporters,
        verbose=args.verbose,
        no_color=args.no_color,
        environment_name=config.environment_name,
    )
    orchestrator = Orchestrator.from_config(
        config,
        adapters,
        bail=args.bail,
        skip_setup=args.skip_setup,
        skip_teardown=args.skip_teardown,
    )
    orchestrator.add_listener(manager.handle_event)

    try:
        await adapters.connect_all()
        result = await orchestrator.run_suite(definitions)
    finally:
        await adapters.disconnect_all()

    manager.generate_reports(result)
    return exit_code_for_result(result)


def validate_command(args) -> int:
    invalid = 0

    config_path = Path(args.config)
    if config_path.exists():
        try:
            load_config(args.config, args.env)
            print(f"{_color(args, '✓', GREEN)} {args.config} (environment: {args.env})")
        except ConfigurationError as e:
            invalid += 1
            print(f"{_color(args, '✗', RED)} {args.config}")
            print(f"    {e}")
            if e.hint:
                print(f"    Hint: {e.hint}")

    tests = select_tests(args)
    if not tests:
        print("No test files found")
        return ExitCode.VALIDATION_ERROR if invalid else ExitCode.SUCCESS

    for test in tests:
        try:
            definition = load_test(test)
        except E2ERunnerError as e:
            invalid += 1
            print(f"{_color(args, '✗', RED)} {test.file_path}")
            for line in str(e).splitlines():
                print(f"    {line}")
            continue
        steps = len(definition.all_steps)
        print(f"{_color(args, '✓', GREEN)} {test.file_path} {_color(args, f'({definition.name}, {steps} steps)', DIM)}")

    print(f"\n{len(tests)} file(s) checked, {invalid} problem(s)")
    return ExitCode.VALIDATION_ERROR if invalid else ExitCode.SUCCESS


def list_command(args) -> int:
    tests = select_tests(args)
    if not tests:
        print("No tests found")
        return ExitCode.SUCCESS

    definitions, errors = load_tests(tests)

    print(f"\n{_color(args, '=== E2E TESTS ===', BOLD)}")
    print(f"{'NAME':<40} {'PRIORITY':<9} {'TYPE':<7} TAGS")
    print("-" * 80)
    for test in definitions:
        priority = test.priority.value if test.priority else "-"
        name = test.name + (" (skip)" if test.skip else "")
        print(f"{name:<40} {priority:<9} {test.source_type.value:<7} {', '.join(test.tags)}")
        if args.verbose:
            print(_color(args, f"    {test.source_file}", DIM))
    print(f"\nTotal: {len(definitions)} test(s)")

    for error in errors:
        print(_color(args, f"Failed to load: {error}", YELLOW))
    return ExitCode.VALIDATION_ERROR if errors else ExitCode.SUCCESS


async def health_command(args) -> int:
    config = load_config(args.config, args.env)
    required = {parse_adapter_type(args.adapter)} if args.adapter else None
    adapters = AdapterRegistry(config.environment, required)

    print(f"\n{_color(args, f'=== ADAPTER HEALTH ({config.environment_name}) ===', BOLD)}")
    healthy = True
    try:
        for adapter_type in adapters.get_available_adapters():
            adapter = adapters.get(adapter_type)

            async def check():
                await adapter.connect()
                return await adapter.health_check()

            try:
                ok, elapsed = await measure_duration(check)
                detail = ""
            except Exception as e:
                ok, elapsed = False, None
                detail = str(e)
            healthy = healthy and ok
            symbol = _color(args, "✓", GREEN) if ok else _color(args, "✗", RED)
            timing = _color(args, f" ({elapsed}ms)", DIM) if elapsed is not None else ""
            print(f"{symbol} {adapter_type.value:<12} {'healthy' if ok else 'unhealthy'}{timing}")
            if detail:
                print(_color(args, f"    {detail}", DIM))
    finally:
        await adapters.disconnect_all()
    return ExitCode.SUCCESS if healthy else ExitCode.CONNECTION_ERROR


def init_command(args) -> int:
    created = [init_config(args.config)]

    examples_dir = Path(args.test_dir) / "examples"
    examples_dir.mkdir(parents=True, exist_ok=True)
    samples = {
        examples_dir / "health.test.yaml": SAMPLE_YAML_TEST,
        examples_dir / "health_check.test.py": SAMPLE_PYTHON_TEST,
    }
    for path, content in samples.items():
        if path.exists():
            print(_color(args, f"  skip {path} (exists)", DIM))
            continue
        path.write_text(content, encoding="utf-8")
        created.append(str(path.resolve()))

    print(_color(args, "E2E Test Runner - Project Initialization", BOLD))
    for path in created:
        print(f"  {_color(args, '+', GREEN)} {path}")
    print("\nNext steps:")
    print("  1. Edit the environments in the config file")
    print("  2. Export the connection strings it references")
    print("  3. Run: e2e run")
    return ExitCode.SUCCESS


def test_command(args) -> int:
    if args.list_templates:
        print("Available templates:\n")
        for template, description in TEMPLATE_DESCRIPTIONS.items():
            print(f"  {template:<16}{description}")
        return ExitCode.SUCCESS
    if not args.name:
        print_error("A test name is required", "Usage: e2e test NAME --template TYPE")
        return ExitCode.VALIDATION_ERROR

    output_dir = Path(args.test_dir)
    file_path = output_dir / f"{args.name}.test.yaml"
    if file_path.exists():
        print_error(
            f"Test file already exists: {file_path}",
            "Choose a different name or delete the existing file",
        )
        return ExitCode.VALIDATION_ERROR

    tags = [t.strip() for t in args.tags.split(",") if t.strip()] if args.tags else None
    content = render_test_template(args.template, args.name, args.description, args.priority, tags)
    output_dir.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding="utf-8")
    logger.info(f"Created test file: {file_path.resolve()}")

    print(f"{_color(args, '✓', GREEN)} Created {args.template} test: {file_path}")
    return ExitCode.SUCCESS


# =========================================================================
# Entry point
# =========================================================================


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-c", "--config", default=os.environ.get("E2E_CONFIG", DEFAULT_CONFIG_FILE), help="Config file path"
    )
    common.add_argument("-e", "--env", default=os.environ.get("E2E_ENV", DEFAULT_ENVIRONMENT), help="Environment name")
    common.add_argument("-d", "--test-dir", default=os.environ.get("E2E_TEST_DIR", "."), help="Test directory")
    common.add_argument(
        "-v", "--verbose", action="store_true", default=os.environ.get("E2E_VERBOSE") in ("1", "true"),
        help="Verbose output",
    )
    common.add_argument("-q", "--quiet", action="store_true", help="Errors only")
    common.add_argument(
        "--no-color", action="store_true", default=os.environ.get("NO_COLOR") in ("1", "true"),
        help="Disable colors",
    )

    filters = argparse.ArgumentParser(add_help=False)
    filters.add_argument("patterns", nargs="*", help="Glob patterns or name fragments")
    filters.add_argument("-g", "--grep", help="Filter by name (regex)")
    filters.add_argument("--tag", action="append", help="Filter by tag (repeatable)")
    filters.add_argument(
        "--priority", action="append", choices=["P0", "P1", "P2", "P3"], help="Filter by priority (repeatable)"
    )

    parser = argparse.ArgumentParser(
        prog="e2e",
        description="E2E Test Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s run                         Run all tests
  %(prog)s run --tag smoke -p 4        Run smoke tests, 4 at a time
  %(prog)s run -e staging --bail       Stop at the first failure
  %(prog)s validate                    Check test files
  %(prog)s list --priority P0          List P0 tests
  %(prog)s health                      Check adapter connectivity
  %(prog)s init                        Create config and sample tests
  %(prog)s test users-api -t crud        Create a CRUD test from a template
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Run command
    run_parser = subparsers.add_parser("run", parents=[common, filters], help="Run tests")
    run_parser.add_argument("-p", "--parallel", type=int, help="Tests to run concurrently")
    run_parser.add_argument("-t", "--timeout", type=int, help="Per-test timeout (ms)")
    run_parser.add_argument("-r", "--retries", type=int, help="Default step retries")
    run_parser.add_argument("--bail", action="store_true", help="Stop after the first failure")
    run_parser.add_argument("--dry-run", action="store_true", help="Show what would run")
    run_parser.add_argument("--skip-setup", action="store_true", help="Skip setup phases")
    run_parser.add_argument("--skip-teardown", action="store_true", help="Skip teardown phases")
    run_parser.add_argument(
        "--reporter", action="append", choices=get_available_reporter_types(), help="Reporter (repeatable)"
    )
    run_parser.add_argument("-o", "--output", help="Report output path for file reporters")

    # Validate command
    subparsers.add_parser("validate", parents=[common, filters], help="Validate test files")

    # List command
    subparsers.add_parser("list", parents=[common, filters], help="List discovered tests")

    # Health command
    health_parser = subparsers.add_parser("health", parents=[common], help="Check adapter connectivity")
    health_parser.add_argument("--adapter", help="Check one adapter type")

    # Init command
    init_parser = subparsers.add_parser("init", parents=[common], help="Create config and sample tests")
    init_parser.set_defaults(test_dir=os.environ.get("E2E_TEST_DIR", "tests/e2e"))

    # Test command
    test_parser = subparsers.add_parser("test", parents=[common], help="Create a test from a template")
    test_parser.add_argument("name", nargs="?", help="Test name, also used for the file name")
    test_parser.add_argument("-t", "--template", choices=list(TEST_TEMPLATES), default="api", help="Template type")
    test_parser.add_argument("--description", help="Test description")
    test_parser.add_argument("--priority", choices=["P0", "P1", "P2", "P3"], default="P0", help="Test priority")
    test_parser.add_argument("--tags", help="Comma-separated tags (default: e2e)")
    test_parser.add_argument("--list-templates", action="store_true", help="List available templates")

    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run a command. Returns the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return ExitCode.VALIDATION_ERROR

    setup_logging(args.verbose, args.quiet)

    try:
        if args.command == "run":
            return asyncio.run(run_command(args))
        elif args.command == "validate":
            return validate_command(args)
        elif args.command == "list":
            return list_command(args)
        elif args.command == "health":
            return asyncio.run(health_command(args))
        elif args.command == "init":
            return init_command(args)
        elif args.command == "test":
            return test_command(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted")
        return ExitCode.TEST_FAILURE
    except E2ERunnerError as e:
        print_error(str(e), e.hint)
        return error_code_to_exit_code(e.code)
    except Exception as e:
        error = wrap_error(e, f"Unexpected error during {args.command}")
        logger.debug("Unexpected error", exc_info=True)
        print_error(str(error))
        return ExitCode.FATAL
    return ExitCode.SUCCESS


def main():
    """Main entry point."""
    sys.exit(int(run()))


if __name__ == "__main__":
    main()
