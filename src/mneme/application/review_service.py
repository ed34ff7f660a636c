"""
Review Service: Application layer entry points around the scheduler.

Validates input, loads and stores card records, and serialises every
read-modify-write of a card behind that card's lock.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone

from mneme.application.id_service import generate_card_id
from mneme.domain.constants import MAX_QUALITY, MIN_QUALITY
from mneme.domain.errors import InvalidRating, MissingCardState
from mneme.domain.models import CardRecord, GradedReview, Quality, ReviewOutcome, StopReview
from mneme.domain.ports import CardStore
from mneme.domain.scheduler import apply_outcome, initial_state, new_card_state, reset_state

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_quality(quality: object) -> Quality:
    """
    Check a submitted rating and turn it into a Quality.

    Raises:
        InvalidRating: If ``quality`` is not an integer in 0..5.
    """
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidRating(quality)
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidRating(quality)
    return Quality(quality)


class ReviewService:
    """
    Application service for submitting reviews and managing cards.

    Depends on the CardStore abstraction, not concrete adapters.
    """

    def __init__(
        self,
        store: CardStore,
        clock: Clock | None = None,
        create_missing: bool = True,
    ):
        """
        Args:
            store: The repository (port) holding card records.
            clock: Source of "now" when a caller does not pass an instant.
            create_missing: Start unknown cards from the initial state on
                their first review instead of raising MissingCardState.
        """
        self._store = store
        self._clock = clock or utc_now
        self._create_missing = create_missing
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @property
    def store(self) -> CardStore:
        return self._store

    @asynccontextmanager
    async def _card_lock(self, card_id: str) -> AsyncIterator[None]:
        """Hold the card's lock. The lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(card_id, asyncio.Lock())
        self._lock_users[card_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[card_id] -= 1
            if not self._lock_users[card_id]:
                del self._lock_users[card_id]
                del self._locks[card_id]

    async def get_card(self, card_id: str) -> CardRecord:
        record = await self._store.get(card_id)
        if record is None:
            raise MissingCardState(card_id)
        return record

    async def submit_review(
        self, card_id: str, quality: int, now: datetime | None = None
    ) -> CardRecord:
        """
        Grade a card and persist its next state.

        Raises:
            InvalidRating: If ``quality`` is outside 0..5.
            MissingCardState: If the card is unknown and creation is disabled.
        """
        outcome = GradedReview(validate_quality(quality))
        return await self.apply(card_id, outcome, now=now)

    async def stop_scheduling(self, card_id: str, now: datetime | None = None) -> CardRecord:
        """
        Take a card out of the due/scheduled queues.

        Raises:
            MissingCardState: If the card is unknown.
        """
        return await self.apply(card_id, StopReview(), now=now)

    async def apply(
        self, card_id: str, outcome: ReviewOutcome, now: datetime | None = None
    ) -> CardRecord:
        review_time = now or self._clock()

        async with self._card_lock(card_id):
            record = await self._store.get(card_id)
            if record is None:
                if isinstance(outcome, StopReview) or not self._create_missing:
                    raise MissingCardState(card_id)
                logger.info(f"Card {card_id} has no state yet; starting fresh")
                record = CardRecord(
                    card_id=card_id, state=initial_state(review_time), created_at=review_time
                )

            updated = replace(record, state=apply_outcome(record.state, outcome, review_time))
            await self._store.put(updated)

        if isinstance(outcome, StopReview):
            logger.info(f"Stopped scheduling for {card_id}")
        else:
            s = updated.state
            logger.info(
                f"Reviewed {card_id} q={int(outcome.quality)} -> rep={s.repetition} "
                f"interval={s.interval} ef={s.ef} learning={s.is_learning} "
                f"next={s.next_review_date.isoformat() if s.next_review_date else None}"
            )
        return updated

    async def register_card(
        self,
        note_path: str | None,
        content: str,
        card_id: str | None = None,
        title: str | None = None,
        line: int | None = None,
        now: datetime | None = None,
    ) -> CardRecord:
        """
        Add a card to the store, or refresh the display fields of a known one.

        Scheduling state of an existing card is left untouched.
        """
        card_id = card_id or generate_card_id()
        created = now or self._clock()

        async with self._card_lock(card_id):
            existing = await self._store.get(card_id)
            if existing is None:
                record = CardRecord(
                    card_id=card_id,
                    state=new_card_state(created),
                    created_at=created,
                    note_path=note_path,
                    content=content,
                    title=title,
                    line=line,
                )
                logger.info(f"Registered card {card_id} in '{note_path or ''}'")
            else:
                record = replace(
                    existing, note_path=note_path, content=content, title=title, line=line
                )
                logger.debug(f"Refreshed card {card_id}")
            await self._store.put(record)
        return record

    async def reset_cards(
        self, card_ids: Iterable[str], now: datetime | None = None
    ) -> list[CardRecord]:
        """
        Wipe scheduling progress for the given cards, keeping their creation time.
        Unknown ids are skipped.
        """
        reset_time = now or self._clock()
        results: list[CardRecord] = []

        for card_id in card_ids:
            async with self._card_lock(card_id):
                record = await self._store.get(card_id)
                if record is None:
                    logger.warning(f"Cannot reset unknown card {card_id}")
                    continue
                record = replace(record, state=reset_state(reset_time))
                await self._store.put(record)
            results.append(record)

        logger.info(f"Reset {len(results)} card(s)")
        return results

    async def remove_card(self, card_id: str) -> bool:
        async with self._card_lock(card_id):
            removed = await self._store.delete(card_id)
        return removed
