"""Command-line interface for coderun.

Usage:
    coderun run 'print("hello")'            # Run inline code
    coderun run script.py                   # Run file
    echo "print(1)" | coderun run -         # Run from stdin
    coderun run -l ruby -i Ada greet.rb     # Feed a stdin line
    coderun template python > main.py       # Starter program
    coderun share main.py                   # Make a share link
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import sys
import threading
from pathlib import Path
from typing import NoReturn

import click

from coderun import (
    ClientConfig,
    CoderunError,
    CommunicationError,
    ExecutionResult,
    InputValidationError,
    Language,
    OutputBuffer,
    RemoteJobError,
    __version__,
    run_code,
)
from coderun._logging import configure_logging
from coderun.share import SharedCode, build_share_url, parse_share_url
from coderun.templates import get_template

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_JOB_ERROR = 1
EXIT_CLI_ERROR = 2
EXIT_TIMEOUT = 124  # Matches `timeout` command
EXIT_CONNECTION_ERROR = 125

# File extension to language mapping
EXTENSION_MAP: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".c": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".java": "java",
    ".go": "go",
    ".rb": "ruby",
}

LANGUAGE_CHOICES = [language.value for language in Language]


def detect_language(source: str | None) -> str | None:
    """Auto-detect language from file extension.

    Args:
        source: File path or stdin marker ("-") or inline code

    Returns:
        Detected language name or None if cannot detect
    """
    if not source or source == "-":
        return None

    path = Path(source)
    if path.suffix:
        return EXTENSION_MAP.get(path.suffix.lower())

    return None


def read_source(source: str | None, inline_code: str | None) -> str:
    """Resolve code from -c, stdin ("-"), a file path, or inline text."""
    if inline_code:
        return inline_code
    if source == "-":
        if sys.stdin.isatty():
            raise click.UsageError("No input provided. Pipe code to stdin or use -c flag.")
        return sys.stdin.read()
    if source:
        path = Path(source)
        return path.read_text() if path.exists() and path.is_file() else source
    raise click.UsageError("No code provided. Provide SOURCE argument or use -c flag.")


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern."""
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def format_result_json(result: ExecutionResult) -> str:
    """Format execution result as JSON."""
    return json.dumps(result.model_dump(), indent=2)


def exit_code_for(result: ExecutionResult) -> int:
    """Map a finished job to the CLI exit code."""
    if result.killed_by_timeout:
        return EXIT_TIMEOUT
    if result.exit_code is None:
        return EXIT_JOB_ERROR
    return result.exit_code


async def read_stdin_line() -> str:
    """Read one line from stdin without tying up the event loop.

    The blocking read runs on a daemon thread rather than the default
    executor, so a job that ends while the user has not typed anything
    does not hold up interpreter shutdown. Returns "" at EOF.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def resolve(line: str) -> None:
        if not future.done():
            future.set_result(line)

    def reader() -> None:
        try:
            line = sys.stdin.readline()
        except (OSError, ValueError):
            line = ""
        with contextlib.suppress(RuntimeError):  # loop already closed
            loop.call_soon_threadsafe(resolve, line)

    threading.Thread(target=reader, name="coderun-stdin", daemon=True).start()
    return await future


async def run_job(
    config: ClientConfig,
    code: str,
    language: Language,
    timeout_ms: int | None,
    inputs: list[str],
    interactive: bool,
    json_output: bool,
    quiet: bool,
) -> int:
    """Execute code remotely and return the CLI exit code.

    Args:
        config: Client configuration
        code: Code to execute
        language: Programming language
        timeout_ms: Remote timeout override
        inputs: Lines answered to needs_input, in order
        interactive: Read further input lines from this process's stdin
        json_output: Output as JSON
        quiet: Suppress banners and progress output
    """
    pending = list(inputs)
    buffer = OutputBuffer(lambda piece: click.echo(piece, nl=False), banners=not quiet)

    async def next_input() -> str | None:
        if pending:
            line = pending.pop(0)
            # --input answers appear in the output where typed input would.
            if not json_output:
                buffer.echo_input(line if line.endswith("\n") else line + "\n")
            return line
        if not interactive:
            return None
        line = await read_stdin_line()
        return line or None

    try:
        result = await run_code(
            config,
            language,
            code,
            timeout_ms=timeout_ms,
            stdin=next_input,
            on_event=None if json_output else buffer.handle,
        )
    except RemoteJobError as e:
        if json_output:
            click.echo(json.dumps({"error": e.message}, indent=2))
        return EXIT_JOB_ERROR
    except CommunicationError as e:
        error_msg = format_error(
            "Unable to run",
            str(e.message),
            [
                "Check the server URL (--url or CODERUN_WS_URL)",
                "Check the access token (--token or CODERUN_WS_TOKEN)",
            ],
        )
        click.echo(error_msg, err=True)
        return EXIT_CONNECTION_ERROR
    except InputValidationError as e:
        click.echo(format_error("Invalid input", str(e.message)), err=True)
        return EXIT_CLI_ERROR
    except CoderunError as e:
        click.echo(format_error("Client error", str(e.message)), err=True)
        return EXIT_CONNECTION_ERROR

    if json_output:
        click.echo(format_result_json(result))

    return exit_code_for(result)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", prog_name="coderun")
@click.option("-v", "--verbose", count=True, help="Log more (-v info, -vv debug)")
def main(verbose: int) -> None:
    """Run code on a remote job server and stream its output."""
    if verbose:
        configure_logging(level="DEBUG" if verbose > 1 else "INFO")
    else:
        configure_logging()


@main.command("run")
@click.argument("source", required=False)
@click.option(
    "-l",
    "--language",
    type=click.Choice(LANGUAGE_CHOICES, case_sensitive=False),
    help="Programming language (auto-detected from file extension)",
)
@click.option("-c", "--code", "inline_code", help="Code to execute (alternative to SOURCE)")
@click.option("-t", "--timeout", "timeout_ms", type=click.IntRange(1, 300_000), help="Remote timeout in ms")
@click.option("-i", "--input", "inputs", multiple=True, help="Line sent when the program asks for input (repeatable)")
@click.option("--url", envvar="CODERUN_WS_URL", help="Job server WebSocket URL")
@click.option("--token", envvar="CODERUN_WS_TOKEN", help="Access token")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("-q", "--quiet", is_flag=True, help="Suppress banners")
def run_command(
    source: str | None,
    language: str | None,
    inline_code: str | None,
    timeout_ms: int | None,
    inputs: tuple[str, ...],
    url: str | None,
    token: str | None,
    json_output: bool,
    quiet: bool,
) -> NoReturn:
    """Execute code on the job server.

    SOURCE can be:

    \b
      - Inline code:  coderun run 'print("hello")'
      - File path:    coderun run script.py
      - Stdin:        echo 'print(1)' | coderun run -

    When the program asks for input, --input lines are sent first; after
    that lines are read from this terminal (unless code came from stdin).
    """
    code = read_source(source, inline_code)
    if not code.strip():
        raise click.UsageError("Empty code provided.")

    resolved_language = language.lower() if language else (detect_language(source) or "python")

    try:
        config = ClientConfig.from_settings(url=url, token=token)
    except ValueError as exc:
        raise click.UsageError(f"Invalid configuration: {exc}") from exc

    if quiet:
        configure_logging(quiet=True)

    exit_code = asyncio.run(
        run_job(
            config=config,
            code=code,
            language=Language(resolved_language),
            timeout_ms=timeout_ms,
            inputs=list(inputs),
            interactive=source != "-",
            json_output=json_output,
            quiet=quiet,
        )
    )

    sys.exit(exit_code)


@main.command("template")
@click.argument("language", type=click.Choice(LANGUAGE_CHOICES, case_sensitive=False))
def template_command(language: str) -> None:
    """Print the starter program for LANGUAGE."""
    click.echo(get_template(language.lower()))


@main.command("share")
@click.argument("source", required=False)
@click.option("-l", "--language", type=click.Choice(LANGUAGE_CHOICES, case_sensitive=False))
@click.option("-c", "--code", "inline_code", help="Code to share (alternative to SOURCE)")
@click.option("--origin", default="http://localhost:5173", show_default=True, help="Editor origin URL")
def share_command(source: str | None, language: str | None, inline_code: str | None, origin: str) -> None:
    """Print a share link for SOURCE."""
    code = read_source(source, inline_code)
    resolved_language = language.lower() if language else (detect_language(source) or "python")
    try:
        shared = SharedCode(language=Language(resolved_language), code=code)
    except ValueError as exc:
        raise click.UsageError(f"Cannot share: {exc}") from exc
    click.echo(build_share_url(origin, shared))


@main.command("unshare")
@click.argument("url")
@click.option("--json", "json_output", is_flag=True, help="Output language and code as JSON")
def unshare_command(url: str, json_output: bool) -> None:
    """Print the code contained in a share link."""
    try:
        shared = parse_share_url(url)
    except InputValidationError as exc:
        raise click.UsageError(exc.message) from exc
    if json_output:
        click.echo(shared.model_dump_json(indent=2))
    else:
        click.echo(shared.code)


if __name__ == "__main__":
    main()
