"""Input validation helpers."""

from __future__ import annotations

from uuid import UUID

MAX_CONTENT_SIZE = 1024 * 1024  # 1MB of playbook markup


def is_valid_uuid(value: object) -> bool:
    """True for a well-formed UUID string in canonical or hex form."""
    if not isinstance(value, str):
        return False
    try:
        UUID(value)
    except ValueError:
        return False
    return True


def validate_content_size(content: str, max_bytes: int = MAX_CONTENT_SIZE) -> bool:
    """Check that playbook content doesn't exceed the size limit."""
    return len(content.encode()) <= max_bytes
