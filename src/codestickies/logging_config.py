"""Logging configuration for CodeStickies."""

import sys

from loguru import logger

# Interactive use: terse. The LaunchAgent sends stderr to a log file
# (AGENT_STDERR_PATH), where each line needs a timestamp.
TERMINAL_FORMAT = "{level.icon} {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message}"


def configure_logging(*, verbose: bool = False) -> None:
    """Send CodeStickies logs to stderr.

    Args:
        verbose: Log at DEBUG instead of INFO.
    """
    logger.remove()
    stream = sys.stderr
    is_terminal = hasattr(stream, "isatty") and stream.isatty()
    logger.add(
        stream,
        level="DEBUG" if verbose else "INFO",
        format=TERMINAL_FORMAT if is_terminal else FILE_FORMAT,
        colorize=is_terminal,
    )
