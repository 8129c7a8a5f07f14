"""
Logging setup for the cart engine.

The root handler is installed once on import; modules ask for their own
logger with get_logger(__name__). User ids, session ids and promo codes come
from the client, so they pass through a sanitizer before they are logged.
"""

import logging
import os
import sys
from functools import cache

# Vercel already stamps every line with a timestamp
_LOCAL_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_VERCEL_FORMAT = "%(levelname)s - %(name)s - %(message)s"

# Longest user-supplied code worth keeping in a log line
_MAX_CODE_LENGTH = 32


def _configure_root_logger() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    on_vercel = os.environ.get("VERCEL") == "1"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_VERCEL_FORMAT if on_vercel else _LOCAL_FORMAT))
    root.setLevel(level)
    root.addHandler(handler)

    # Supabase and Upstash both talk over httpx; keep request lines out of the cart logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _strip_control_chars(value: str) -> str:
    """Keep client-supplied text on one log line (CWE-117)."""
    return value.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t").replace("\x00", "")


def sanitize_id_for_logging(id_value: str | int | None) -> str:
    """First 8 characters of a user or session id, or "N/A"."""
    if id_value is None or id_value == "":
        return "N/A"
    return _strip_control_chars(str(id_value))[:8]


def sanitize_code_for_logging(code: str | None) -> str:
    """A promo code as typed by the user, truncated and escaped."""
    if not code:
        return "N/A"
    safe = _strip_control_chars(code)
    return safe if len(safe) <= _MAX_CODE_LENGTH else safe[:_MAX_CODE_LENGTH] + "..."


__all__ = [
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_code_for_logging",
]
