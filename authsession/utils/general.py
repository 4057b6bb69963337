"""General Utility Functions."""

from __future__ import annotations

from typing import Optional

__all__ = ["prepare_email"]


def prepare_email(email: Optional[str]) -> Optional[str]:
    """Normalise an email address: strip whitespace and lowercase.

    ``None`` and blank input both normalise to ``None``.
    """
    if not email:
        return None
    normalized = email.strip().lower()
    return normalized or None
