"""
Metrics calculator for per-card review summaries.

This is a pure computation module with no I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from mneme.domain.constants import EF_HIGH, EF_MEDIUM, PASSING_QUALITY
from mneme.domain.models import CardRecord


@dataclass
class CardSummary:
    """
    A card's state enriched with computed metrics.
    """

    card_id: str
    title: str | None
    note_path: str | None
    ef: float
    repetition: int
    interval: int
    active: bool
    is_learning: bool
    next_review_date: datetime | None
    last_review_date: datetime

    # Computed metrics
    ef_class: str  # high / medium / low
    reviews: int
    lapses: int
    average_rating: float | None
    is_due: bool
    schedule_label: str | None  # "Next: ..." or "Last: ..."


def ef_class(ef: float) -> str:
    if ef >= EF_HIGH:
        return "high"
    if ef >= EF_MEDIUM:
        return "medium"
    return "low"


def format_review_date(when: datetime, now: datetime) -> str:
    """
    Short human label for a review instant relative to ``now``.

    ``Today HH:MM``, ``Tomorrow HH:MM``, otherwise ``DD-MM-YYYY HH:MM``.
    ``when`` is shown in ``now``'s timezone.
    """
    if now.tzinfo is not None and when.tzinfo is not None:
        when = when.astimezone(now.tzinfo)

    clock = when.strftime("%H:%M")
    if when.date() == now.date():
        return f"Today {clock}"
    if when.date() == (now + timedelta(days=1)).date():
        return f"Tomorrow {clock}"
    return when.strftime("%d-%m-%Y %H:%M")


class MetricsCalculator:
    """
    Computes derived metrics from CardRecord objects.

    Stateless and side-effect free.
    """

    def summarize(self, record: CardRecord, now: datetime) -> CardSummary:
        s = record.state
        history = s.rating_history
        ratings = [e.rating for e in history]

        return CardSummary(
            card_id=record.card_id,
            title=record.title,
            note_path=record.note_path,
            ef=s.ef,
            repetition=s.repetition,
            interval=s.interval,
            active=s.active,
            is_learning=s.is_learning,
            next_review_date=s.next_review_date,
            last_review_date=s.last_review_date,
            ef_class=ef_class(s.ef),
            reviews=len(history),
            lapses=sum(1 for r in ratings if r < PASSING_QUALITY),
            average_rating=sum(ratings) / len(ratings) if ratings else None,
            is_due=self._is_due(record, now),
            schedule_label=self._schedule_label(record, now),
        )

    def _is_due(self, record: CardRecord, now: datetime) -> bool:
        nxt = record.state.next_review_date
        return record.state.active and nxt is not None and nxt <= now

    def _schedule_label(self, record: CardRecord, now: datetime) -> str | None:
        """
        "Next: <date>" while scheduled in the future, "Last: <date>" once due.
        Unscheduled cards have no label.
        """
        nxt = record.state.next_review_date
        if nxt is None:
            return None
        if now < nxt:
            return f"Next: {format_review_date(nxt, now)}"
        return f"Last: {format_review_date(record.state.last_review_date, now)}"
