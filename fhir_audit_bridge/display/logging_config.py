"""Logging configuration setup."""

import copy
import logging
import logging.config
import re
import sys
import threading
from collections import deque
from typing import Deque, Optional, Set

from fhir_audit_bridge.constants import DEFAULT_LOG_LEVEL, TRANSIENT_SECRET_LIMIT

# ── Secret redaction filter ──────────────────────────────────────────────

_REDACTED = "***REDACTED***"


class SecretRedactionFilter(logging.Filter):
    """Logging filter that replaces credential values with a placeholder.

    Passwords and static tokens are kept for the life of the process.
    Minted dynamic tokens are registered as *transient*: only the most
    recent ``transient_limit`` of them are redacted, so a long-running
    process does not grow the pattern without bound.
    """

    def __init__(self, transient_limit: int = TRANSIENT_SECRET_LIMIT) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._secrets: Set[str] = set()
        self._transient: Deque[str] = deque(maxlen=transient_limit)
        self._pattern: Optional[re.Pattern] = None

    def register(self, value: str, *, transient: bool = False) -> None:
        """Register a secret value for redaction."""
        if not value or len(value) < 4:  # skip trivially short values
            return
        with self._lock:
            if value in self._secrets or value in self._transient:
                return
            if transient:
                self._transient.append(value)
            else:
                self._secrets.add(value)
            # Rebuild regex pattern with longest-first ordering
            values = self._secrets.union(self._transient)
            escaped = sorted((re.escape(s) for s in values), key=len, reverse=True)
            self._pattern = re.compile("|".join(escaped))

    def clear(self) -> None:
        with self._lock:
            self._secrets.clear()
            self._transient.clear()
            self._pattern = None

    def filter(self, record: logging.LogRecord) -> bool:
        pattern = self._pattern
        if pattern is not None:
            if isinstance(record.msg, str):
                record.msg = pattern.sub(_REDACTED, record.msg)
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {
                        k: pattern.sub(_REDACTED, v) if isinstance(v, str) else v
                        for k, v in record.args.items()
                    }
                elif isinstance(record.args, tuple):
                    record.args = tuple(
                        pattern.sub(_REDACTED, a) if isinstance(a, str) else a
                        for a in record.args
                    )
        return True


# Module-level singleton so auth providers can register values as they see them.
secret_redaction_filter = SecretRedactionFilter()

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": ("%(asctime)s - %(name)30s:%(lineno)-4d - " "%(levelname)-7s - %(message)s"),
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console_handler": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "simple",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "fhir_audit_bridge": {
            "handlers": ["console_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "httpx": {
            "handlers": ["console_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "httpcore": {
            "handlers": ["console_handler"],
            "propagate": False,
            "level": "WARNING",
        },
    },
    "root": {
        "handlers": ["console_handler"],
        "level": "WARNING",
    },
}


def setup_logging(
    log_lvl_str: str = DEFAULT_LOG_LEVEL,
    *,
    log_file: Optional[str] = None,
    quiet: bool = False,
) -> str:
    """
    Set up the logging system.

    Args:
        log_lvl_str: The desired log level string (e.g., 'debug', 'info').
        log_file: Optional path of an additional log file.
        quiet: If *True*, suppress all ``print()`` output.

    Returns:
        The validated log level.
    """
    log_lvl_valid = log_lvl_str.upper()
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if log_lvl_valid not in valid_levels:
        if not quiet:
            print(f"Warning: invalid log level '{log_lvl_str}'. Using 'INFO'.", file=sys.stderr)
        log_lvl_valid = "INFO"

    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)
    log_cfg["loggers"]["fhir_audit_bridge"]["level"] = log_lvl_valid
    if log_lvl_valid == "DEBUG":
        log_cfg["loggers"]["httpx"]["level"] = "INFO"
        log_cfg["root"]["level"] = "DEBUG"

    if log_file:
        log_cfg["handlers"]["file_handler"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple",
            "filename": log_file,
            "encoding": "utf-8",
        }
        for logger_cfg in (*log_cfg["loggers"].values(), log_cfg["root"]):
            logger_cfg["handlers"].append("file_handler")

    try:
        logging.config.dictConfig(log_cfg)
        # Attach secret redaction filter to every configured handler
        handlers = set(logging.root.handlers)
        for name in log_cfg["loggers"]:
            handlers.update(logging.getLogger(name).handlers)
        for handler in handlers:
            handler.addFilter(secret_redaction_filter)
    except Exception as e_log_cfg:
        if not quiet:
            print(
                f"Error applying logging configuration: {e_log_cfg}",
                file=sys.stderr,
            )

    return log_lvl_valid
