"""
Structured JSON Logging for the Counter deployment
==================================================
One JSON line per log record, so `cdk synth` output from CI can be filtered
with jq instead of grep:

    cdk synth 2>&1 | jq 'select(.event == "preflight.resolved")'

Usage:
  from counter.logger import get_logger
  logger = get_logger(__name__)
  logger.info("VPC resolved", extra={"vpc_name": "jenkins-vpc", "vpc_id": "vpc-123"})

Output:
  {"timestamp":"2024-01-01T00:00:00+00:00","level":"INFO","logger":"counter.preflight",
   "message":"VPC resolved","vpc_name":"jenkins-vpc","vpc_id":"vpc-123"}

Redaction:
  Extra fields whose key looks secret (password, secret, token, credential)
  are written as "***", however deeply nested. Unresolved CDK tokens are
  written as "<unresolved>": at synth time a token may stand for a value that
  only exists after deployment, such as the generated database password.

Logs go to stderr: stdout is reserved for the synthesized template when
`cdk synth` is run with a single stack.
"""
from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any

import aws_cdk as cdk

REDACTED = "***"
UNRESOLVED = "<unresolved>"

_SECRET_KEY = re.compile(r"password|secret|token|credential", re.IGNORECASE)

# Attributes every LogRecord carries; anything else arrived through `extra=`
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_configured = False


def scrub(key: str | None, value: Any) -> Any:
    """Return `value` with secret-keyed entries and unresolved tokens masked."""
    if key is not None and _SECRET_KEY.search(key):
        return REDACTED
    if isinstance(value, dict):
        return {k: scrub(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub(None, item) for item in value]
    if isinstance(value, (str, float)) and cdk.Token.is_unresolved(value):
        return UNRESOLVED
    return value


class JsonFormatter(logging.Formatter):
    """Fixed header fields first, then the scrubbed extras in call order."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }
        entry.update(
            (key, scrub(key, value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str | None = None) -> None:
    """
    Install one stderr handler with JsonFormatter on the root logger.
    The level comes from `level`, then `LOG_LEVEL`, then INFO. Only the first
    call has an effect.
    """
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.addHandler(handler)

    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    root.setLevel(getattr(logging, name, logging.INFO))
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
