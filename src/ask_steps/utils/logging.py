"""
Logging setup for the command line.

Three verbosity levels:
- Normal: warnings and errors, rich formatted
- Verbose (--verbose): INFO messages, tracebacks with locals
- Debug (--debug): DEBUG messages in a plain timestamped format, including request payloads
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

_console: Console | None = None

NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "urllib3",
    "urllib3.connectionpool",
    "openai",
    "anthropic",
    "asyncio",
]


def get_console() -> Console:
    """Shared stderr console for diagnostics."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    if debug:
        # Debug mode: simple format, no rich
        logging.basicConfig(
            level=level,
            format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
            datefmt="%H:%M:%S",
            force=True,
        )
    else:
        logging.basicConfig(
            level=level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(
                console=get_console(),
                show_path=False,
                rich_tracebacks=True,
                tracebacks_show_locals=verbose,
            )],
            force=True,
        )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING if not debug else logging.INFO)
