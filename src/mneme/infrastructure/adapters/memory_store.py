"""
In-memory Card Store: keeps records in a process-local dict.
"""

import logging

from mneme.domain.models import CardRecord
from mneme.domain.ports import CardStore

logger = logging.getLogger(__name__)


class InMemoryCardStore(CardStore):
    def __init__(self, records: list[CardRecord] | None = None):
        self._records: dict[str, CardRecord] = {r.card_id: r for r in records or []}

    async def get(self, card_id: str) -> CardRecord | None:
        return self._records.get(card_id)

    async def put(self, record: CardRecord) -> None:
        logger.debug(f"[memory] put {record.card_id}")
        self._records[record.card_id] = record

    async def delete(self, card_id: str) -> bool:
        return self._records.pop(card_id, None) is not None

    async def list_records(self) -> list[CardRecord]:
        return list(self._records.values())
