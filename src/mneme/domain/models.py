"""
Domain models for scheduling state.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum

from .constants import PASSING_QUALITY


class Quality(IntEnum):
    """Self-assessed recall strength supplied at review time (0-5)."""

    BLACKOUT = 0
    WRONG = 1
    HARD_WRONG = 2
    HARD = 3
    GOOD = 4
    EASY = 5

    @property
    def is_lapse(self) -> bool:
        return self < PASSING_QUALITY


@dataclass(frozen=True)
class RatingEntry:
    """
    A single entry of a card's rating history.

    Attributes:
        timestamp: Instant of the review.
        ef: Easiness factor the card held right after the review.
        rating: Quality submitted for the review.
    """

    timestamp: datetime
    ef: float
    rating: int


@dataclass(frozen=True)
class CardState:
    """
    Scheduling state for one reviewable item.

    Only the scheduler produces new values of this type; every review
    replaces the state wholesale.

    Attributes:
        repetition: Consecutive successful reviews since the last lapse.
        interval: Current interval in days (authoritative once graduated).
        ef: Easiness factor, never below 1.3.
        last_review_date: Instant of the latest review or creation.
        next_review_date: Instant the card becomes due; None when unscheduled.
        active: Whether the card takes part in due/scheduled queries.
        is_learning: Whether the card is in the minute-scale learning phase.
        learning_step: Index into LEARNING_STEPS, set only while learning.
        rating_history: Append-only review log, oldest first.
    """

    repetition: int
    interval: int
    ef: float
    last_review_date: datetime
    next_review_date: datetime | None = None
    active: bool = True
    is_learning: bool = False
    learning_step: int | None = None
    rating_history: tuple[RatingEntry, ...] = ()


@dataclass(frozen=True)
class GradedReview:
    """A completed review carrying its quality rating."""

    quality: Quality


@dataclass(frozen=True)
class StopReview:
    """Request to take a card out of scheduling."""


ReviewOutcome = GradedReview | StopReview


@dataclass(frozen=True)
class CardRecord:
    """
    What the card store keeps per identifier: display metadata plus state.
    """

    card_id: str
    state: CardState
    created_at: datetime
    note_path: str | None = None
    content: str = ""
    title: str | None = None
    line: int | None = None

    @property
    def ef(self) -> float:
        return self.state.ef

    @property
    def next_review_date(self) -> datetime | None:
        return self.state.next_review_date


@dataclass
class CollectionStats:
    """Totals over every stored card."""

    total: int = 0
    due: int = 0
    scheduled: int = 0
    stopped: int = 0
    learning: int = 0
    mean_ef: float | None = None
    by_ef_class: dict[str, int] = field(default_factory=dict)
