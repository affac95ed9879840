"""Logging filters that scrub sensitive content."""

from __future__ import annotations

import logging
import re

_SENSITIVE_PATTERN = re.compile(
    r"(Authorization: Bearer\s+[\w\.-]+|Bearer\s+eyJ[\w\.-]+|access_token\"\s*:\s*\"[^\"]+\")",
    re.IGNORECASE,
)


class SensitiveFilter(logging.Filter):
    """Replace bearer tokens in log messages with a redaction marker."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _SENSITIVE_PATTERN.sub("**REDACTED**", record.msg)
        return True


def install(logger_names: tuple[str, ...] = ("uvicorn", "uvicorn.access", "uvicorn.error", "")) -> None:
    for name in logger_names:
        target = logging.getLogger(name)
        if not any(isinstance(flt, SensitiveFilter) for flt in target.filters):
            target.addFilter(SensitiveFilter())


__all__ = ["SensitiveFilter", "install"]
