import logging
import sys
import os
import json
import time
from contextvars import ContextVar
from typing import Optional, Any, Dict

from colorama import init as _c_init, Fore, Style

# ContextVars for request / stream correlation
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
stream_id_var: ContextVar[Optional[str]] = ContextVar("stream_id", default=None)

_c_init()


class ContextFilter(logging.Filter):
    """
    A logging filter to add request_id and stream_id from contextvars to log records.
    """
    def filter(self, record: logging.LogRecord) -> bool:
        setattr(record, "request_id", request_id_var.get())
        setattr(record, "stream_id", stream_id_var.get())
        return True


class RateLimitingFilter(logging.Filter):
    """
    Rate limiting filter to prevent log storms by limiting identical messages.
    Allows up to LOG_DUP_MAX identical messages per minute (default: 50).

    Dropped protocol frames are logged one by one, so a misbehaving generator could
    otherwise flood the log. Messages usually embed ids, so expired windows are
    pruned once the cache holds more than MAX_KEYS entries.
    """
    WINDOW_SECONDS = 60
    MAX_KEYS = 1000
    _cache: Dict[tuple[str, str], tuple[int, float]] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        key = (record.name, record.getMessage())
        cnt, first_ts = self._cache.get(key, (0, record.created))
        if record.created - first_ts > self.WINDOW_SECONDS:
            cnt, first_ts = 0, record.created
        cnt += 1
        self._cache[key] = (cnt, first_ts)
        if len(self._cache) > self.MAX_KEYS:
            self._prune(record.created)
        return cnt <= int(os.getenv("LOG_DUP_MAX", "50"))

    def _prune(self, now: float) -> None:
        cache = self._cache
        for stale in [k for k, (_, ts) in cache.items() if now - ts > self.WINDOW_SECONDS]:
            del cache[stale]
        # every window still live: drop the oldest-inserted keys
        while len(cache) > self.MAX_KEYS:
            del cache[next(iter(cache))]


_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "taskName",
    "timestamp", "level", "message", "request_id", "stream_id",
}


class CustomJsonFormatter(logging.Formatter):
    """
    A custom JSON formatter to structure log records.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }

        req_id = getattr(record, "request_id", None)
        if req_id:
            log_record["request_id"] = req_id
        stream_id = getattr(record, "stream_id", None)
        if stream_id:
            log_record["stream_id"] = stream_id

        # Preserve any extra fields
        for key, val in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_record[key] = val

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


class ColoredTextFormatter(logging.Formatter):
    _LEVEL_COLOURS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW + Style.BRIGHT,
        logging.ERROR: Fore.RED + Style.BRIGHT,
        logging.CRITICAL: Fore.MAGENTA + Style.BRIGHT,
    }
    RESET = Style.RESET_ALL

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.created))
        colour = self._LEVEL_COLOURS.get(record.levelno, "")
        parts = [ts, f"{colour}{record.levelname}{self.RESET}", f"{record.name}:", record.getMessage()]
        rid = getattr(record, "request_id", "") or ""
        sid = getattr(record, "stream_id", "") or ""
        if rid:
            parts.append(f"req={rid}")
        if sid:
            parts.append(f"stream={sid}")
        text = " ".join(parts)
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def init_structured_logging() -> None:
    """
    Initialize coloured console logging (plus optional JSON file output) with
    context injection and duplicate-message rate limiting.
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if root.hasHandlers():
        root.handlers.clear()

    ctx_filter = ContextFilter()
    rate_filter = RateLimitingFilter()

    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(ColoredTextFormatter())
    ch.addFilter(ctx_filter)
    ch.addFilter(rate_filter)
    root.addHandler(ch)

    log_file = os.getenv("LOG_FILE")
    if log_file:
        from logging.handlers import RotatingFileHandler
        fh = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=3)
        fh.setFormatter(CustomJsonFormatter())
        fh.addFilter(ctx_filter)
        fh.addFilter(rate_filter)
        root.addHandler(fh)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.info("Structured logging initialized.")
