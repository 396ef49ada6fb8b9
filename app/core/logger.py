from __future__ import annotations

import logging
import re
import sys

ROOT_LOGGER = "app"
REDACTED_KEYS = ("password", "authorization", "salt")
_REDACT_RE = re.compile(r"(?i)\b(" + "|".join(REDACTED_KEYS) + r")=((?:bearer|basic)\s+)?(\S+)")

_PRETTY_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_PLAIN_FORMAT = "ts=%(asctime)s level=%(levelname)s app=%(app)s env=%(env)s logger=%(name)s %(message)s"


class RedactingFilter(logging.Filter):
    """Masks secret `key=value` pairs in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _REDACT_RE.sub(r"\1=[redacted]", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class _ContextFilter(logging.Filter):
    def __init__(self, app_name: str, env: str):
        super().__init__()
        self.app_name = app_name
        self.env = env

    def filter(self, record: logging.LogRecord) -> bool:
        record.app = self.app_name
        record.env = self.env
        return True


def configure_logging(level: str | int = "INFO", *, pretty: bool = False, app_name: str = "app", env: str = "") -> logging.Logger:
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(_ContextFilter(app_name, env))
    handler.addFilter(RedactingFilter())
    if pretty:
        handler.setFormatter(logging.Formatter(_PRETTY_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    # Reconfiguring (tests, reloads) must not stack handlers.
    root.handlers.clear()
    root.addHandler(handler)
    root.propagate = False
    return root


def module_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
