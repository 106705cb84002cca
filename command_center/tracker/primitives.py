"""
Common helpers shared by the tracker schemas.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ulid import ULID


def generate_ulid() -> str:
    """Generate a ULID for object IDs.

    ULIDs are lexicographically sortable and globally unique.
    """
    return str(ULID())


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def format_issue_code(project_key: str, sequence: int) -> str:
    """Build the human issue code, e.g. ``CMD-007``."""
    return f"{project_key}-{sequence:03d}"
