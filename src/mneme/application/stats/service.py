"""
Stats Service: Application layer orchestrator.

Coordinates fetching records from the store and summarising them.
"""

import logging
from datetime import datetime

from mneme.domain.models import CollectionStats
from mneme.domain.ports import CardStore

from .metrics_calculator import CardSummary, MetricsCalculator

logger = logging.getLogger(__name__)


class StatsService:
    """
    Application service for card summaries and collection totals.
    """

    def __init__(
        self,
        store: CardStore,
        calculator: MetricsCalculator | None = None,
    ):
        """
        Args:
            store: The repository (port) holding card records.
            calculator: Optional custom calculator; uses default if not provided.
        """
        self._store = store
        self._calc = calculator or MetricsCalculator()

    async def card_summaries(self, now: datetime) -> list[CardSummary]:
        records = await self._store.list_records()
        return [self._calc.summarize(r, now) for r in records]

    async def collection_stats(self, now: datetime) -> CollectionStats:
        """
        Totals over every stored card.

        A stopped card is one taken out of scheduling (inactive).
        """
        summaries = await self.card_summaries(now)
        stats = CollectionStats(total=len(summaries))

        for card in summaries:
            if not card.active:
                stats.stopped += 1
            elif card.is_due:
                stats.due += 1
            elif card.next_review_date is not None:
                stats.scheduled += 1

            if card.is_learning:
                stats.learning += 1
            stats.by_ef_class[card.ef_class] = stats.by_ef_class.get(card.ef_class, 0) + 1

        if summaries:
            stats.mean_ef = round(sum(c.ef for c in summaries) / len(summaries), 2)

        logger.debug(f"[stats] {stats}")
        return stats
