"""Stable identifiers for cards."""

from ulid import ULID


def generate_card_id() -> str:
    """Generate a stable card ID using ULID."""
    return str(ULID())
