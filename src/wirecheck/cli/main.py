"""CLI entry point for wirecheck."""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from pathlib import Path
from typing import IO, Dict, Iterator, Optional, Sequence, Tuple
from urllib.parse import urlsplit

import click
import httpx

from wirecheck import __version__, bootstrap
from wirecheck.core.context import RunContext, clone_context, context_from_env
from wirecheck.core.loader import count_document_tests, load_spec, read_spec_file, validate_spec_document
from wirecheck.core.models import PROTOCOLS, TestCase
from wirecheck.discovery import DiscoveryOptions, DiscoveryResult, discover
from wirecheck.protocols.base import DEFAULT_TIMEOUT_MS
from wirecheck.reporting import Reporter, available_reporters, create_reporter
from wirecheck.runner import DEFAULT_CONCURRENCY, RunnerOptions, TestRunner

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
PROTOCOL_CHOICES = [*PROTOCOLS, "mcp"]

logger = logging.getLogger(__name__)


class CliState:
    """Holds global CLI state.

    ``transport`` overrides the network for every HTTP exchange; callers that
    embed the CLI pass it through ``obj``.
    """

    def __init__(self, verbose: bool = False, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.verbose = verbose
        self.transport = transport


def _print_version(_: click.Context, __: click.Parameter, value: bool) -> None:
    if not value or click.get_current_context().resilient_parsing:
        return
    click.echo(f"wirecheck {__version__}")
    raise click.exceptions.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show the wirecheck version and exit.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Discover and run conformance tests embedded in an API service."""

    bootstrap()
    _configure_logging(verbose)
    state = ctx.ensure_object(CliState)
    state.verbose = state.verbose or verbose


@cli.command()
@click.argument("url")
@click.option("--file", "spec_file", type=str, help="Run tests from a local YAML/JSON spec file instead of discovering.")
@click.option("--tags", "tag_filters", type=str, help="Comma-separated tags; a test runs if it has any of them.")
@click.option("--ids", "id_filters", type=str, help="Comma-separated test ids (supports globs).")
@click.option("--type", "protocol", type=click.Choice(PROTOCOL_CHOICES), help="Only run tests of this protocol.")
@click.option(
    "--format",
    "--reporter",
    "report_format",
    type=str,
    default="console",
    show_default=True,
    help="Report format: console, json, tap or junit.",
)
@click.option("--stream", is_flag=True, help="With --format json, emit one JSON event per line.")
@click.option("--parallel", is_flag=True, help="Run tests concurrently.")
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=DEFAULT_CONCURRENCY,
    show_default=True,
    help="Maximum in-flight tests with --parallel.",
)
@click.option(
    "--timeout",
    "timeout_ms",
    type=click.IntRange(min=1),
    default=DEFAULT_TIMEOUT_MS,
    show_default=True,
    help="Per-test timeout in milliseconds.",
)
@click.option("--retries", type=click.IntRange(min=0), default=0, show_default=True, help="Re-runs for failed tests.")
@click.option("--base-url", type=str, help="Execute against this URL instead of the discovery URL.")
@click.option("--header", "headers", multiple=True, help="Extra request header KEY=VALUE (repeatable).")
@click.option("--token", type=str, help="Bearer token (overrides WIRECHECK_ACCESS_TOKEN).")
@click.option("--output", "-o", "output_path", type=str, help="Write the report to this file.")
@click.option("--verbose", "local_verbose", is_flag=True, help="Show expected/actual values for failures.")
@click.pass_obj
def run(
    state: CliState,
    url: str,
    spec_file: Optional[str],
    tag_filters: Optional[str],
    id_filters: Optional[str],
    protocol: Optional[str],
    report_format: str,
    stream: bool,
    parallel: bool,
    concurrency: int,
    timeout_ms: int,
    retries: int,
    base_url: Optional[str],
    headers: Tuple[str, ...],
    token: Optional[str],
    output_path: Optional[str],
    local_verbose: bool,
) -> None:
    """Discover tests at URL and execute them."""

    verbose = state.verbose or local_verbose
    _validate_url(url)
    if base_url:
        _validate_url(base_url)
    if report_format not in available_reporters():
        raise click.ClickException(
            f"Unknown format '{report_format}'. Choose from: {', '.join(available_reporters())}"
        )
    context = _build_context(base_url or url, headers, token)
    transport = state.transport
    cases = _collect_cases(url, spec_file, context, timeout_ms, transport)
    if not cases:
        click.echo("No tests found.", err=True)
    options = RunnerOptions(
        base_url=context.base_url,
        timeout_ms=timeout_ms,
        retries=retries,
        parallel=parallel,
        concurrency=concurrency,
        tags=_split_csv(tag_filters),
        ids=_split_csv(id_filters),
        protocols=(protocol,) if protocol else tuple(),
        transport=transport,
    )
    with _report_target(output_path, report_format) as target:
        reporter = _build_reporter(report_format, verbose=verbose, stream=stream, target=target, output_path=output_path)
        test_run = TestRunner(options, context=context, reporter=reporter).run_sync(cases)
        if output_path and report_format != "console":
            _write_output(output_path, reporter.get_output() or "")
    raise click.exceptions.Exit(0 if test_run.success else 1)


@cli.command(name="discover")
@click.argument("url")
@click.option(
    "--format",
    "report_format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Output format.",
)
@click.option("--type", "protocol", type=click.Choice(PROTOCOL_CHOICES), help="Only list tests of this protocol.")
@click.option(
    "--timeout",
    "timeout_ms",
    type=click.IntRange(min=1),
    default=DEFAULT_TIMEOUT_MS,
    show_default=True,
    help="Per-request timeout in milliseconds.",
)
@click.option("--header", "headers", multiple=True, help="Extra request header KEY=VALUE (repeatable).")
@click.option("--token", type=str, help="Bearer token (overrides WIRECHECK_ACCESS_TOKEN).")
@click.option("--verbose", "local_verbose", is_flag=True, help="List every discovered test.")
@click.pass_obj
def discover_command(
    state: CliState,
    url: str,
    report_format: str,
    protocol: Optional[str],
    timeout_ms: int,
    headers: Tuple[str, ...],
    token: Optional[str],
    local_verbose: bool,
) -> None:
    """List the tests a service exposes."""

    verbose = state.verbose or local_verbose
    _validate_url(url)
    context = _build_context(url, headers, token)
    result = asyncio.run(discover(url, _discovery_options(context, timeout_ms, state.transport)))
    tests = result.all_tests
    if protocol:
        wanted = "tool" if protocol == "mcp" else protocol
        tests = [case for case in tests if case.protocol == wanted]
    if report_format == "json":
        click.echo(json.dumps(_discovery_payload(result, tests), indent=2))
    else:
        _print_discovery(result, tests, verbose)
    raise click.exceptions.Exit(0)


@cli.command()
@click.argument("spec_file", metavar="FILE")
@click.pass_obj
def validate(state: CliState, spec_file: str) -> None:
    """Validate a YAML or JSON spec file."""

    try:
        raw = read_spec_file(spec_file)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    problems = validate_spec_document(raw)
    if problems:
        click.echo("Validation: FAILED")
        for problem in problems:
            click.echo(f"  {problem}")
        raise click.exceptions.Exit(1)
    click.echo("Validation: PASSED")
    click.echo(f"Tests found: {count_document_tests(raw)}")
    if state.verbose:
        for case in load_spec(spec_file).cases:
            click.echo(f"  - {case.id}: {case.name}")
    raise click.exceptions.Exit(0)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Program entry point for console_scripts shim."""

    argv = list(argv) if argv is not None else sys.argv[1:]
    try:
        result = cli.main(args=argv, prog_name="wirecheck", standalone_mode=False)
    except click.ClickException as err:
        err.show()
        return 1
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except SystemExit as exc:
        return int(exc.code or 0)
    return result if isinstance(result, int) else 0


def _validate_url(url: str) -> None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise click.ClickException(f"Invalid URL: {url}")


def _build_context(base_url: str, headers: Tuple[str, ...], token: Optional[str]) -> RunContext:
    try:
        context = context_from_env(base_url)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    overrides: Dict[str, object] = {"headers": _parse_headers(headers)}
    if token:
        overrides["access_token"] = token
    return clone_context(context, **overrides)


def _discovery_options(
    context: RunContext, timeout_ms: int, transport: Optional[httpx.AsyncBaseTransport]
) -> DiscoveryOptions:
    return DiscoveryOptions(
        timeout_ms=timeout_ms,
        headers=dict(context.headers),
        access_token=context.access_token,
        transport=transport,
    )


def _collect_cases(
    url: str,
    spec_file: Optional[str],
    context: RunContext,
    timeout_ms: int,
    transport: Optional[httpx.AsyncBaseTransport],
) -> Sequence[TestCase]:
    if spec_file:
        try:
            return load_spec(spec_file).cases
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
    result = asyncio.run(discover(url, _discovery_options(context, timeout_ms, transport)))
    for problem in result.errors:
        logger.info("discovery: %s", problem)
    return result.all_tests


@contextlib.contextmanager
def _report_target(output_path: Optional[str], report_format: str) -> Iterator[Optional[IO[str]]]:
    if not output_path or report_format != "console":
        yield None
        return
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yield handle


def _build_reporter(
    report_format: str,
    *,
    verbose: bool,
    stream: bool,
    target: Optional[IO[str]],
    output_path: Optional[str],
) -> Reporter:
    if report_format == "console":
        if target is not None:
            return create_reporter("console", verbose=verbose, use_color=False, stream=target)
        return create_reporter("console", verbose=verbose)
    echo = output_path is None
    if report_format == "json":
        return create_reporter("json", stream=stream, echo=echo)
    if report_format in ("tap", "junit"):
        return create_reporter(report_format, echo=echo)
    return create_reporter(report_format)


def _write_output(output_path: str, text: str) -> None:
    path = Path(output_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text + "\n", encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Failed to write report to {path}: {exc}") from exc
    click.echo(f"Report written to {path}", err=True)


def _discovery_payload(result: DiscoveryResult, tests: Sequence[TestCase]) -> Dict[str, object]:
    return {
        "summary": result.summary,
        "tools": [tool.get("name") for tool in result.tools],
        "tests": [
            {"id": case.id, "name": case.name, "protocol": case.protocol, "tags": list(case.tags)}
            for case in tests
        ],
        "errors": list(result.errors),
    }


def _print_discovery(result: DiscoveryResult, tests: Sequence[TestCase], verbose: bool) -> None:
    click.echo(f"Discovered {len(tests)} test(s)")
    by_type: Dict[str, int] = {}
    for case in tests:
        by_type[case.protocol] = by_type.get(case.protocol, 0) + 1
    for protocol, count in sorted(by_type.items()):
        click.echo(f"  {protocol}: {count}")
    if result.tools:
        click.echo(f"Tools: {', '.join(str(tool.get('name')) for tool in result.tools)}")
    if verbose:
        for case in tests:
            tags = f" [{', '.join(case.tags)}]" if case.tags else ""
            click.echo(f"  - {case.id}: {case.name}{tags}")
    for problem in result.errors:
        click.echo(click.style(f"  warning: {problem}", fg="yellow"), err=True)


def _parse_headers(values: Tuple[str, ...]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for item in values:
        if "=" not in item:
            raise click.BadParameter(f"Invalid header format (expected KEY=VALUE): {item}", param_hint="--header")
        key, value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise click.BadParameter(f"Header name cannot be empty: {item}", param_hint="--header")
        headers[key] = value.strip()
    return headers


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return tuple()
    parts = [part.strip() for part in value.split(",") if part.strip()]
    return tuple(parts)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
