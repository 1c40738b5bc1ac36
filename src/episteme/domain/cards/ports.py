"""
Ports (interfaces) for card persistence and the external memory model.

These define the contracts that infrastructure adapters must implement.
The scheduling core never calls the store; only the review service persists
snapshots after each mutating call has left the session consistent.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from .models import Card, Rating


class CardStore(ABC):
    """
    Port for reading and writing card scheduling snapshots.

    Implementations:
        - InMemoryCardStore: Dictionary-backed store for tests and embedding.
    """

    @abstractmethod
    async def get(self, card_id: str) -> Card | None:
        """Return the stored card, or None if the id is unknown."""
        pass

    @abstractmethod
    async def set(self, card: Card) -> None:
        """Insert or replace a card snapshot."""
        pass

    @abstractmethod
    async def delete(self, card_id: str) -> None:
        """
        Delete a card.

        Raises:
            CardNotFoundError: If the id is unknown.
        """
        pass

    @abstractmethod
    async def query_by_source_note(self, source_note_name: str) -> list[Card]:
        """Return all cards generated from the given source note."""
        pass


# External memory model. Both must be pure: same inputs, same output, no mutation.
ScheduleFunction = Callable[[Card, Rating, datetime], Card]
RetrievabilityFunction = Callable[[Card, datetime], float]
