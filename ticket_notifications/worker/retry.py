from __future__ import annotations

import re

_MAX_ERROR_LENGTH = 500
_DEAD_LETTER_SUFFIX = "-dlq"
_SENSITIVE_PATTERNS = (
    re.compile(r"bearer\s+[a-z0-9\-_\.]+", re.IGNORECASE),
    re.compile(r"(api[_-]?key|token|secret|password)\s*[:=]\s*[^\s,;]+", re.IGNORECASE),
)


def sanitize_error(exc: BaseException, *, default_message: str) -> str:
    message = str(exc).strip() or default_message
    cause = exc.__cause__
    if cause is not None and str(cause).strip() and str(cause).strip() not in message:
        message = f"{message}: {str(cause).strip()}"

    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub("[redacted]", sanitized)
    return sanitized[:_MAX_ERROR_LENGTH]


def redelivery_exhausted(receive_count: int, max_receive_count: int) -> bool:
    """True once a message has been handed out ``max_receive_count`` times.

    A limit of zero or less means redeliver forever.
    """
    if max_receive_count <= 0:
        return False
    return receive_count >= max_receive_count


def dead_letter_queue_name(queue_name: str) -> str:
    if queue_name.endswith(_DEAD_LETTER_SUFFIX):
        return queue_name
    return f"{queue_name}{_DEAD_LETTER_SUFFIX}"
