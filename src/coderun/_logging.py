"""Centralized logging for coderun.

Library logging rules:
- Attach NullHandler to the library root logger
- Never add other handlers on import -- that's the application's job
- Honor CODERUN_LOG_LEVEL for level control
- Provide configure_logging() for the CLI entry point

CLI output format:
    WARNING [2026-02-25 10:02:54] coderun.codec - message

Log emission is decoupled from stderr I/O through QueueHandler +
QueueListener: records go into a bounded FIFO and a daemon thread drains
them to click.echo(err=True). The event loop running the session never
waits on a slow terminal; a full queue drops records.
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "coderun"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

_env_level = os.environ.get("CODERUN_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # excludes NOTSET (0) and missing keys (None)
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_QUEUE_CAPACITY = 1024

# `extra` keys the session layers attach; rendered as key=value after the message.
CONTEXT_KEYS: tuple[str, ...] = ("session_id", "epoch", "job_id", "status", "reason", "code", "count", "error_type")


class ContextFormatter(logging.Formatter):
    """Appends known `extra` fields, e.g. `Connection lost [epoch=2 reason=bye code=1000]`."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        pairs = [f"{key}={getattr(record, key)}" for key in CONTEXT_KEYS if getattr(record, key, None) is not None]
        return f"{text} [{' '.join(pairs)}]" if pairs else text


class _ClickHandler(logging.Handler):
    """Writes formatted records to stderr via click.echo, dimmed.

    Runs on the QueueListener thread. click strips ANSI codes when stderr
    is not a TTY.
    """

    def __init__(self) -> None:
        super().__init__()
        self.formatter = ContextFormatter(fmt=_FMT, datefmt=_DATEFMT)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            click.echo(click.style(msg, dim=True), err=True)
        except BlockingIOError:
            pass  # stderr buffer full
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _NonBlockingHandler(logging.handlers.QueueHandler):
    """Queue-backed handler that never blocks the caller."""

    def __init__(self) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(q)
        self._listener = logging.handlers.QueueListener(q, _ClickHandler(), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        """Same-process queue, no pickling needed."""
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    All coderun modules use this instead of logging.getLogger() so the
    hierarchy stays under the library root.
    """
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Configure library logging for the CLI.

    Adds a _NonBlockingHandler if none exists (idempotent), then sets the
    level. Applications that install their own handlers are unaffected.

    Args:
        level: Log level (e.g. logging.DEBUG, "WARNING"). Overrides env var.
        quiet: If True, set level to ERROR. Takes precedence over level.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _NonBlockingHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_NonBlockingHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
