# logger.py
# Coloured stdout logging with the bot's extra levels, every module grabs its logger through get_logger()
import inspect
import logging
import os
import sys

from extraconfig import ALPHA

SUCCESS_LEVEL = 25       # finished work worth seeing at a glance
EVENT_LEVEL = 15         # connects, cog loads, shutdown
SUCCESSTRACE_LEVEL = 14  # the candidate that resolved an image, job timings
WARNINGTRACE_LEVEL = 13  # candidates that were skipped
TRACE_LEVEL = 12         # everything else worth following, still above DEBUG

LEVEL_NAMES = {
    SUCCESS_LEVEL: "SUCCESS",
    EVENT_LEVEL: "EVENT",
    SUCCESSTRACE_LEVEL: "S-TRACE",
    WARNINGTRACE_LEVEL: "W-TRACE",
    TRACE_LEVEL: "TRACE",
}
for _level, _name in LEVEL_NAMES.items():
    logging.addLevelName(_level, _name)

# records from these libraries keep their own logger name instead of a file path
LIBRARY_LOGGERS = ("discord", "aiohttp", "PIL")


def _resolve_level() -> int:
    """LOG_LEVEL from the environment wins, accepts a level name or a number."""
    raw = os.getenv("LOG_LEVEL")
    if raw:
        if raw.isdigit():
            return int(raw)
        level = logging.getLevelName(raw.upper())
        if isinstance(level, int):
            return level
    return TRACE_LEVEL if ALPHA else EVENT_LEVEL


class ColoredFormatter(logging.Formatter):
    GRAY, GREEN, YELLOW, CYAN = "\033[90m", "\033[32m", "\033[33m", "\033[36m"
    COLORS = {
        logging.DEBUG: GRAY,
        TRACE_LEVEL: GRAY,
        WARNINGTRACE_LEVEL: YELLOW,
        SUCCESSTRACE_LEVEL: GREEN,
        EVENT_LEVEL: "\033[96m",
        logging.INFO: CYAN,
        SUCCESS_LEVEL: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41;97m",
    }
    RESET = "\033[0m"

    @staticmethod
    def origin(record: logging.LogRecord) -> str:
        """src/utils/resolver.py -> utils.resolver"""
        if record.name.startswith(LIBRARY_LOGGERS):
            return record.name
        path = os.path.splitext(os.path.relpath(record.pathname))[0]
        parts = [part for part in path.split(os.sep) if part not in ("", ".", "..", "src", "__init__")]
        return ".".join(parts) or record.name

    def format(self, record: logging.LogRecord) -> str:
        line = f"[{record.msecs:03.0f}ms] [{record.levelname:^8}] [{self.origin(record)}] {record.getMessage()}"
        if record.exc_info:
            record.exc_text = record.exc_text or self.formatException(record.exc_info)
        if record.exc_text:
            line += "\n" + record.exc_text
        return f"{self.COLORS.get(record.levelno, '')}{line}{self.RESET}"


_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(ColoredFormatter())
logging.basicConfig(level=_resolve_level(), handlers=[_handler], force=True)

# PIL logs every chunk it parses at DEBUG
logging.getLogger("PIL").setLevel(logging.INFO)


def get_logger(name=None) -> logging.Logger:
    """
    Logger named after the calling module when no name is given.
    Ergo: get_logger() from src/utils/resolver.py yields "utils.resolver"
    """
    if not name:
        caller = inspect.stack()[1]
        module = inspect.getmodule(caller.frame)
        if module is not None and module.__name__ != "__main__":
            name = module.__name__
        else:
            name = os.path.splitext(os.path.basename(caller.filename))[0]
    return logging.getLogger(name)


def _level_method(level: int, doc: str):
    def method(self, message, *args, **kwargs):
        if self.isEnabledFor(level):
            kwargs.setdefault("stacklevel", 2)
            self._log(level, message, args, **kwargs)

    method.__doc__ = doc
    return method


logging.Logger.success = _level_method(SUCCESS_LEVEL, "Log finished work.")
logging.Logger.event = _level_method(EVENT_LEVEL, "Log a lifecycle event.")
logging.Logger.successtrace = _level_method(SUCCESSTRACE_LEVEL, "Log a successful step at trace verbosity.")
logging.Logger.warningtrace = _level_method(WARNINGTRACE_LEVEL, "Log a recoverable problem at trace verbosity.")
logging.Logger.trace = _level_method(TRACE_LEVEL, "Log a trace message, more verbose than EVENT.")
