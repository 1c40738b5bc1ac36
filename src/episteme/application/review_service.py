"""
Review Session Service — Application layer orchestrator.

Coordinates the scheduling engine, queue builder and session state machine
for one study session, and persists changed cards through the CardStore
port once the in-memory state is consistent.
"""

import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from episteme.application.day_boundary import DayBoundaryService
from episteme.application.queue_builder import QueueBuildOptions, ReviewOrder, build_queue
from episteme.application.scheduling import SchedulingEngine
from episteme.application.session import SessionStateMachine
from episteme.application.utils.dates import utc_now
from episteme.domain.cards.models import Card, SchedulingPreview, is_valid_rating
from episteme.domain.cards.ports import CardStore
from episteme.domain.errors import InvalidRatingError

logger = logging.getLogger(__name__)


@dataclass
class UndoEntry:
    """
    One reversible action.

    Attributes:
        kind: What was done.
        previous_index: Queue index of the card the action applied to.
        original: Card snapshot before the action.
        removed: (position, card) pairs taken out of the queue.
        persisted_originals: Snapshots to write back to the store on undo.
        requeued_position: Where an answered learning card was reinserted.
    """

    kind: Literal["answer", "bury", "suspend"]
    previous_index: int
    original: Card
    removed: list[tuple[int, Card]] = field(default_factory=list)
    persisted_originals: list[Card] = field(default_factory=list)
    requeued_position: int | None = None


class ReviewSessionService:
    """
    Application service running a study session end to end.

    Follows Dependency Inversion: depends on the CardStore abstraction, not
    on a concrete storage adapter. Without a store nothing is persisted.
    """

    def __init__(
        self,
        engine: SchedulingEngine,
        day_boundary: DayBoundaryService,
        store: CardStore | None = None,
        session: SessionStateMachine | None = None,
        rng: random.Random | None = None,
    ):
        self.engine = engine
        self.day_boundary = day_boundary
        self.store = store
        self.session = session or SessionStateMachine()
        self._rng = rng or random.Random()
        self._review_order = ReviewOrder.DUE_DATE
        self._undo_stack: list[UndoEntry] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    def start(
        self,
        pool: Iterable[Card],
        options: QueueBuildOptions | None = None,
        now: datetime | None = None,
    ) -> list[Card]:
        """Build the queue from `pool` and start a session on it."""
        options = options or QueueBuildOptions()
        now = now or utc_now()
        queue = build_queue(
            pool,
            options,
            now,
            engine=self.engine,
            day_boundary=self.day_boundary,
            rng=self._rng,
        )
        self._review_order = options.review_order
        self._undo_stack.clear()
        self.session.start_session(queue, now)
        return queue

    def end(self, now: datetime | None = None) -> None:
        self.session.end_session(now)
        self._undo_stack.clear()

    def preview(self, now: datetime | None = None) -> SchedulingPreview | None:
        """Scheduling preview for the current card, cached until the card changes."""
        card = self.session.current_card
        if card is None:
            return None
        if self.session.scheduling_preview is None:
            self.session.set_scheduling_preview(
                self.engine.get_scheduling_preview(card, now or utc_now())
            )
        return self.session.scheduling_preview

    async def answer(self, rating: int, now: datetime | None = None) -> Card | None:
        """
        Grade the current card, requeue it if it is due again soon, and advance.

        Returns:
            The rescheduled card, or None when there is no card to answer.

        Raises:
            InvalidRatingError: If rating is not 1..4.
        """
        if not is_valid_rating(rating):
            raise InvalidRatingError(rating)
        card = self.session.current_card
        if card is None:
            logger.debug("answer ignored: no current card")
            return None

        now = now or utc_now()
        updated = self.engine.schedule_card(card, rating, now)

        index = self.session.current_index
        self.session.record_answer(rating, updated, now)

        requeued_position = None
        if self.session.should_requeue(updated, now):
            remaining = self.session.get_state().queue[index + 1 :]
            offset = self.session.get_requeue_position(
                remaining, updated, self._review_order, now, self._rng
            )
            requeued_position = index + 1 + offset
            self.session.requeue_card(updated, requeued_position)

        self.session.next_card(now)

        entry = UndoEntry(
            kind="answer",
            previous_index=index,
            original=card,
            persisted_originals=[card],
            requeued_position=requeued_position,
        )
        self._undo_stack.append(entry)
        await self._persist(entry, [updated])
        return updated

    async def bury_card(self, now: datetime | None = None) -> Card | None:
        """Hide the current card until the next review day."""
        card = self.session.current_card
        if card is None:
            return None
        now = now or utc_now()
        buried = self.engine.bury_card(card, now, self.day_boundary)
        entry = self._remove_upcoming("bury", card, lambda c: c.id == card.id, now)
        entry.persisted_originals = [card]
        self._undo_stack.append(entry)
        await self._persist(entry, [buried])
        return buried

    async def bury_note(self, now: datetime | None = None) -> list[Card]:
        """
        Bury the current card and every sibling from the same source note.

        Siblings are looked up in the store when there is one, otherwise in
        the session queue.
        """
        card = self.session.current_card
        if card is None:
            return []
        if card.source_note_name is None:
            buried = await self.bury_card(now)
            return [buried] if buried else []

        now = now or utc_now()
        note = card.source_note_name
        if self.store is not None:
            siblings = await self.store.query_by_source_note(note)
        else:
            siblings = []
        by_id = {c.id: c for c in siblings}
        by_id.setdefault(card.id, card)

        entry = self._remove_upcoming(
            "bury", card, lambda c: c.source_note_name == note, now
        )
        for _, removed in entry.removed:
            by_id.setdefault(removed.id, removed)
        entry.persisted_originals = list(by_id.values())

        buried = [self.engine.bury_card(c, now, self.day_boundary) for c in by_id.values()]
        self._undo_stack.append(entry)
        await self._persist(entry, buried)
        logger.info(f"Buried {len(buried)} cards from note {note}")
        return buried

    async def suspend_card(self, now: datetime | None = None) -> Card | None:
        """Exclude the current card from all future queues."""
        card = self.session.current_card
        if card is None:
            return None
        suspended = self.engine.suspend_card(card)
        entry = self._remove_upcoming("suspend", card, lambda c: c.id == card.id, now)
        entry.persisted_originals = [card]
        self._undo_stack.append(entry)
        await self._persist(entry, [suspended])
        return suspended

    async def undo(self, now: datetime | None = None) -> UndoEntry | None:
        """
        Revert the most recent answer, bury or suspend.

        Returns:
            The reverted entry, or None when there is nothing to undo.
        """
        if not self._undo_stack or not self.session.is_active:
            return None
        entry = self._undo_stack.pop()

        if entry.kind == "answer":
            if entry.requeued_position is not None:
                self.session.remove_card_at_position(entry.requeued_position, now)
            self.session.undo_last_answer(entry.previous_index, entry.original, now)
        else:
            for position, card in sorted(entry.removed, key=lambda item: item[0]):
                self.session.insert_card_at_position(card, position)
            self.session.hide_answer()
            self.session.set_scheduling_preview(None)

        if self.store is not None:
            for card in entry.persisted_originals:
                await self.store.set(card)
        logger.debug(f"Undid {entry.kind} of card {entry.original.id}")
        return entry

    def _remove_upcoming(
        self,
        kind: str,
        card: Card,
        matches: Callable[[Card], bool],
        now: datetime | None = None,
    ) -> UndoEntry:
        """Remove matching cards from the current position onwards."""
        state = self.session.get_state()
        index = state.current_index
        positions = [
            i for i in range(index, len(state.queue)) if matches(state.queue[i])
        ]
        removed = [(i, state.queue[i]) for i in positions]
        for position in reversed(positions):
            self.session.remove_card_at_position(position, now)
        return UndoEntry(kind=kind, previous_index=index, original=card, removed=removed)

    async def _persist(self, entry: UndoEntry, cards: list[Card]) -> None:
        if self.store is None:
            return
        try:
            for card in cards:
                await self.store.set(card)
        except Exception:
            self._undo_stack.remove(entry)
            logger.error(f"Failed to persist {entry.kind} of card {entry.original.id}")
            raise
