"""Exceptions raised at the boundaries around the scheduler.

The scheduler itself never raises for in-domain input; these are raised by
the review service and the store adapters.
"""

from pathlib import Path


class MnemeError(Exception):
    """Base class for all mneme errors."""


class InvalidRating(MnemeError, ValueError):
    """A quality rating outside 0..5 was submitted for a graded review."""

    def __init__(self, quality: object):
        self.quality = quality
        super().__init__(f"Invalid rating {quality!r}: choose a rating between 0 and 5.")


class MissingCardState(MnemeError, LookupError):
    """No stored state exists for a card and creation was not allowed."""

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(f"No scheduling state for card '{card_id}'.")


class PersistenceError(MnemeError):
    """The card store could not be read or written."""

    def __init__(self, path: Path | str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Card store {path}: {reason}")
