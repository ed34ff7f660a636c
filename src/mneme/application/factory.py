"""
Card Store Factory
Centralizes the logic for selecting the card store adapter.
"""

import logging

from mneme.application.config import AppConfig
from mneme.domain.ports import CardStore
from mneme.infrastructure.adapters import InMemoryCardStore, JsonCardStore

logger = logging.getLogger(__name__)


def get_card_store(config: AppConfig) -> CardStore:
    """
    Returns the CardStore implementation named by ``config.store``.
    """
    if config.store == "memory":
        logger.debug("Store: in-memory")
        return InMemoryCardStore()

    logger.debug(f"Store: JSON ({config.data_file})")
    return JsonCardStore(config.data_file)
