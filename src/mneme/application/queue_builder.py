"""
Queue builder for review sessions.

Selects cards for a session by:
1. Partitioning active cards into due and scheduled by next review date
2. Filtering by note, tag and fuzzy search text
3. Ordering by next review date, then easiness (hardest first)
"""

import difflib
import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from mneme.domain.constants import SEARCH_THRESHOLD
from mneme.domain.models import CardRecord

logger = logging.getLogger(__name__)

FilterMode = Literal["due", "scheduled", "note"]
TagLookup = Callable[[str], list[str] | str | None]

ALL_TAGS = "all"


@dataclass
class QueueBuildResult:
    """Result of queue building operation."""

    cards: list[CardRecord] = field(default_factory=list)
    fell_back: bool = False  # No cards were due; scheduled cards were used instead

    @property
    def empty(self) -> bool:
        return not self.cards


def is_due(record: CardRecord, now: datetime) -> bool:
    s = record.state
    return s.active and s.next_review_date is not None and s.next_review_date <= now


def is_scheduled(record: CardRecord, now: datetime) -> bool:
    s = record.state
    return s.active and s.next_review_date is not None and s.next_review_date > now


def partition(
    records: Iterable[CardRecord], now: datetime
) -> tuple[list[CardRecord], list[CardRecord]]:
    """
    Split records into (due, scheduled).

    Inactive cards and cards without a next review date are in neither list.
    """
    due: list[CardRecord] = []
    scheduled: list[CardRecord] = []
    for record in records:
        if is_due(record, now):
            due.append(record)
        elif is_scheduled(record, now):
            scheduled.append(record)
    return due, scheduled


def sort_for_review(records: Iterable[CardRecord]) -> list[CardRecord]:
    """Earliest next review first (unscheduled cards lead), then lowest ef."""

    def key(r: CardRecord) -> tuple[float, float]:
        nxt = r.state.next_review_date
        return (nxt.timestamp() if nxt else 0.0, r.state.ef)

    return sorted(records, key=key)


def has_tag(record: CardRecord, tag: str, tags_for_note: TagLookup | None) -> bool:
    if not record.note_path or tags_for_note is None:
        return False
    tags = tags_for_note(record.note_path)
    if not tags:
        return False
    if isinstance(tags, str):
        return tags == tag
    return tag in tags


def fuzzy_score(query: str, text: str | None) -> float:
    """
    Similarity of ``query`` to the best-matching stretch of ``text`` (0.0-1.0).

    A case-insensitive substring hit scores 1.0; otherwise every window of
    as many words as the query is compared with difflib.
    """
    if not text:
        return 0.0
    q = query.strip().lower()
    t = text.lower()
    if not q:
        return 0.0
    if q in t:
        return 1.0

    words = t.split()
    width = max(1, len(q.split()))
    best = difflib.SequenceMatcher(None, q, t).ratio()
    for i in range(max(1, len(words) - width + 1)):
        window = " ".join(words[i : i + width])
        best = max(best, difflib.SequenceMatcher(None, q, window).ratio())
    return best


def matches_search(record: CardRecord, query: str, threshold: float = SEARCH_THRESHOLD) -> bool:
    return max(fuzzy_score(query, record.title), fuzzy_score(query, record.content)) >= threshold


def select_cards(
    records: Iterable[CardRecord],
    mode: FilterMode,
    now: datetime,
    *,
    note_path: str | None = None,
    tag: str | None = None,
    search: str | None = None,
    tags_for_note: TagLookup | None = None,
    randomize: bool = False,
    rng: random.Random | None = None,
) -> list[CardRecord]:
    """
    Pick the cards for a review session.

    Args:
        records: Every candidate card.
        mode: "due", "scheduled", or "note" (all cards of ``note_path``,
            regardless of scheduling).
        now: Reference instant for due/scheduled.
        note_path: Note to select in "note" mode.
        tag: Keep only cards whose note carries this tag ("all" disables).
        search: Fuzzy text filter over card title and content.
        tags_for_note: Lookup from note path to its frontmatter tags.
        randomize: Shuffle the ordered result.
        rng: Random source for shuffling.

    Returns:
        The selected cards, ordered for presentation.
    """
    if mode == "note":
        selected = [r for r in records if note_path is not None and r.note_path == note_path]
    elif mode == "due":
        selected = [r for r in records if is_due(r, now)]
    elif mode == "scheduled":
        selected = [r for r in records if is_scheduled(r, now)]
    else:
        raise ValueError(f"Unknown filter mode: {mode!r}")

    if tag and tag != ALL_TAGS:
        selected = [r for r in selected if has_tag(r, tag, tags_for_note)]

    if search and search.strip():
        selected = [r for r in selected if matches_search(r, search)]

    ordered = sort_for_review(selected)
    if randomize:
        (rng or random.Random()).shuffle(ordered)

    logger.debug(
        f"[queue] mode={mode} note={note_path} tag={tag} search={search!r} -> {len(ordered)} cards"
    )
    return ordered


def build_review_queue(
    records: Iterable[CardRecord],
    now: datetime,
    *,
    randomize: bool = False,
    rng: random.Random | None = None,
) -> QueueBuildResult:
    """
    Queue for a "review everything" session: due cards, or the scheduled
    cards when nothing is due yet.
    """
    records = list(records)
    cards = select_cards(records, "due", now, randomize=randomize, rng=rng)
    if cards:
        return QueueBuildResult(cards=cards)

    cards = select_cards(records, "scheduled", now, randomize=randomize, rng=rng)
    if cards:
        logger.info("No due cards; falling back to scheduled cards")
    return QueueBuildResult(cards=cards, fell_back=bool(cards))


def next_due_time(records: Iterable[CardRecord], now: datetime) -> datetime | None:
    """Earliest future review instant among active cards."""
    upcoming = [r.state.next_review_date for r in records if is_scheduled(r, now)]
    return min(upcoming) if upcoming else None
