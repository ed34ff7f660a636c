"""
Ports (interfaces) for card storage.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import CardRecord


class CardStore(ABC):
    """
    Port for persisting card records keyed by card identifier.

    Implementations:
        - InMemoryCardStore: Process-local dict, used by tests and the memory backend.
        - JsonCardStore: The editor plugin's JSON data file.

    The store does not serialise read-modify-write cycles itself; the
    ReviewService holds a per-card lock around them.
    """

    @abstractmethod
    async def get(self, card_id: str) -> CardRecord | None:
        """
        Fetch the record for a card.

        Returns:
            The stored CardRecord, or None if the card is unknown.
        """
        pass

    @abstractmethod
    async def put(self, record: CardRecord) -> None:
        """Insert or replace the record for ``record.card_id``."""
        pass

    @abstractmethod
    async def delete(self, card_id: str) -> bool:
        """
        Remove a card.

        Returns:
            True if a record was removed.
        """
        pass

    @abstractmethod
    async def list_records(self) -> list[CardRecord]:
        """Return every stored record."""
        pass
