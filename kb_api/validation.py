"""Input sanitizers shared by the assistant endpoint."""

import re

from kb_api.errors import BadRequestError

_ANGLE_BRACKETS = re.compile(r"[<>]")

DANGEROUS_COMMAND_PATTERNS = (
    re.compile(r"rm\s+-rf\s+/"),
    re.compile(r":\(\)\{\s*:\s*\|\s*:\s*&\s*\}\s*;"),
    re.compile(r"eval\s*\("),
    re.compile(r"exec\s*\("),
)

MAX_TAGS = 10
MAX_TAG_LENGTH = 50


def sanitize_text(text: str | None, max_length: int = 1000) -> str:
    """Trim, strip angle brackets and truncate free text."""
    if not text:
        return ""
    return _ANGLE_BRACKETS.sub("", text.strip())[:max_length]


def sanitize_command(command: str | None, max_length: int = 2000) -> str:
    """Trim and truncate a command, rejecting a few destructive idioms.

    Raises:
        BadRequestError: If the command matches a dangerous pattern.
    """
    if not command:
        return ""
    sanitized = command.strip()[:max_length]
    for pattern in DANGEROUS_COMMAND_PATTERNS:
        if pattern.search(sanitized):
            raise BadRequestError(detail="Command contains potentially dangerous patterns")
    return sanitized


def validate_tags(tags: list) -> list[str]:
    """Keep up to ``MAX_TAGS`` non-empty sanitized string tags."""
    cleaned = (sanitize_text(tag) for tag in tags if tag and isinstance(tag, str))
    return [tag for tag in cleaned if 0 < len(tag) <= MAX_TAG_LENGTH][:MAX_TAGS]
