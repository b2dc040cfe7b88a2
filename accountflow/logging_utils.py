"""
Log safety for Account Flow.

Link codes travel in query strings (?ulc=...) and the Google callback carries
an authorization code, so both end up in access logs unless masked. Form
payloads logged while debugging can carry passwords.
"""

from __future__ import annotations

import logging
import re

_FILTER_NAME = "accountflow_redact_secrets"

_SECRET_KEYS = r"ulc|code|state|token|secret|password|currentPass|client_secret"

# (pattern, replacement) applied in order
_RULES: list[tuple[re.Pattern[str], str]] = [
    # ?ulc=abc&state=xyz
    (re.compile(rf"(?i)\b({_SECRET_KEYS})=([^&\s\"']+)"), r"\1=REDACTED"),
    # {"password": "hunter22"}
    (re.compile(rf"(?i)(\"(?:{_SECRET_KEYS})\"\s*:\s*)\"[^\"]*\""), r'\1"REDACTED"'),
    (re.compile(r"(?i)\bBearer\s+[A-Za-z0-9._\-]+"), "Bearer REDACTED"),
]

# Libraries that log full request URLs at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def redact(text: str) -> str:
    """Mask link codes, OAuth parameters, passwords and bearer tokens."""
    for pattern, replacement in _RULES:
        text = pattern.sub(replacement, text)
    return text


class RedactSecretsFilter(logging.Filter):
    """Rewrites a record's message with secrets masked. Never drops records."""

    def __init__(self) -> None:
        super().__init__(_FILTER_NAME)

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True

        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = ()
        return True


def _attach(target: logging.Filterer, redact_filter: RedactSecretsFilter) -> None:
    if not any(getattr(f, "name", None) == _FILTER_NAME for f in target.filters):
        target.addFilter(redact_filter)


def install_log_safety() -> None:
    """Quiet URL-logging libraries and redact secrets on every existing handler."""
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    redact_filter = RedactSecretsFilter()
    root = logging.getLogger()
    _attach(root, redact_filter)

    handlers = list(root.handlers)
    # uvicorn.access has its own handlers
    for logger in logging.Logger.manager.loggerDict.values():
        if isinstance(logger, logging.Logger):
            handlers.extend(logger.handlers)
    for handler in handlers:
        _attach(handler, redact_filter)
