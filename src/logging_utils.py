"""
Logger setup shared by every PromptPilot module.

All loggers live under the ``promptpilot`` name so one handler and one level
switch cover the whole package. Workflow runners log through a
``LoggerAdapter`` bound to the run they drive, which tags each line with the
run id:

    2026-01-01 12:00:00 [INFO] promptpilot.workflow: [run 3f2a9c1d04be] Stage: THINK
"""

import logging
import sys
from typing import Optional, Union

ROOT_LOGGER_NAME = "promptpilot"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_root_configured = False


def resolve_level(level: Union[int, str]) -> int:
    """
    Turn "debug", "WARNING" or a numeric level into a logging level.

    Raises:
        ValueError: Unknown level name.
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(
    level: Union[int, str] = logging.INFO,
    format_str: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    stream: Optional[object] = None,
) -> None:
    """
    Attach the stderr handler to the promptpilot logger.

    Only the first call installs a handler; later calls just move the level.
    """
    global _root_configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(resolve_level(level))
    if _root_configured:
        return

    # Level filtering happens on the logger so set_verbose() reaches the handler.
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(logging.NOTSET)
    handler.setFormatter(logging.Formatter(format_str, date_format))

    root.addHandler(handler)
    _root_configured = True


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; ``__name__`` and dotted package paths both work."""
    if not _root_configured:
        configure_logging()

    prefix = f"{ROOT_LOGGER_NAME}."
    if name.startswith(prefix):
        name = name[len(prefix):]

    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_verbose(verbose: bool) -> None:
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.DEBUG if verbose else logging.INFO)


class LoggerAdapter:
    """
    Callable progress log for the workflow runners.

    ``log("Stage: CODE 2/4")`` and ``log.debug(...)`` are progress chatter and
    vanish when ``verbose`` is off. ``info``, ``warning``, ``error`` and
    ``exception`` always reach the logger. Every line carries ``prefix``.

    Usage:
        log = LoggerAdapter(get_logger(__name__), verbose=True).for_run(run.id)
        log("Plan: 3 step(s), token limit 4000")
    """

    def __init__(self, logger: logging.Logger, verbose: bool = True, prefix: str = ""):
        self.logger = logger
        self.verbose = verbose
        self.prefix = prefix

    def for_run(self, run_id: str) -> "LoggerAdapter":
        """Copy of this adapter that tags lines with the run id."""
        return LoggerAdapter(self.logger, verbose=self.verbose, prefix=f"[run {run_id}] ")

    def __call__(self, message: str) -> None:
        if self.verbose:
            self.logger.info(self.prefix + message)

    def debug(self, message: str) -> None:
        if self.verbose:
            self.logger.debug(self.prefix + message)

    def info(self, message: str) -> None:
        self.logger.info(self.prefix + message)

    def warning(self, message: str) -> None:
        self.logger.warning(self.prefix + message)

    def error(self, message: str) -> None:
        self.logger.error(self.prefix + message)

    def exception(self, message: str) -> None:
        """ERROR with the traceback currently being handled."""
        self.logger.exception(self.prefix + message)
