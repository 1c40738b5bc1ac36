"""
In-Memory Card Store — Infrastructure adapter implementing CardStore.

Keeps snapshots in a dict keyed by card id. Used by tests and by hosts that
own persistence themselves and only need a staging area.
"""

import logging
from collections.abc import Iterable

from episteme.domain.cards.models import Card
from episteme.domain.cards.ports import CardStore
from episteme.domain.errors import CardNotFoundError

logger = logging.getLogger(__name__)


class InMemoryCardStore(CardStore):
    def __init__(self, cards: Iterable[Card] = ()):
        self._cards: dict[str, Card] = {c.id: c for c in cards}

    def __len__(self) -> int:
        return len(self._cards)

    def all(self) -> list[Card]:
        return list(self._cards.values())

    async def get(self, card_id: str) -> Card | None:
        return self._cards.get(card_id)

    async def set(self, card: Card) -> None:
        self._cards[card.id] = card
        logger.debug(f"[store] Saved {card.id} ({card.state.name}, due {card.due.isoformat()})")

    async def delete(self, card_id: str) -> None:
        if card_id not in self._cards:
            raise CardNotFoundError(card_id)
        del self._cards[card_id]

    async def query_by_source_note(self, source_note_name: str) -> list[Card]:
        return [c for c in self._cards.values() if c.source_note_name == source_note_name]
