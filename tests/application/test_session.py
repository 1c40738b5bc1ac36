import random
from datetime import timedelta

import pytest

from episteme.application.queue_builder import ReviewOrder
from episteme.application.session import SessionStateMachine
from episteme.domain.cards.models import CardState, Rating


@pytest.fixture
def machine(now):
    return SessionStateMachine(clock=lambda: now)


@pytest.fixture
def queue(make_card, now):
    return [
        make_card("new1"),
        make_card("rev1", CardState.REVIEW, due=now - timedelta(days=1), scheduled_days=4,
                  last_review=now - timedelta(days=5)),
        make_card("learn1", CardState.LEARNING, due=now - timedelta(minutes=1)),
    ]


def answer(machine, engine, rating, now):
    card = machine.current_card
    updated = engine.schedule_card(card, rating, now)
    assert machine.record_answer(rating, updated, now)
    machine.next_card(now)
    return card, updated


class TestLifecycle:
    def test_inactive_by_default(self, machine):
        assert not machine.is_active
        assert machine.current_card is None
        assert not machine.is_complete()

    def test_start_session(self, machine, queue, now):
        machine.start_session(queue, now)
        state = machine.get_state()
        assert state.is_active
        assert state.current_index == 0
        assert state.stats.total == 3
        assert state.start_time == now
        assert machine.current_card.id == "new1"

    def test_get_state_returns_copy(self, machine, queue, now):
        machine.start_session(queue, now)
        state = machine.get_state()
        state.queue.clear()
        state.stats.reviewed = 99
        assert len(machine.get_state().queue) == 3
        assert machine.get_stats(now).reviewed == 0

    def test_end_session_freezes_duration(self, machine, queue, now):
        machine.start_session(queue, now)
        machine.end_session(now + timedelta(minutes=5))
        assert not machine.is_active
        assert machine.get_stats(now + timedelta(hours=1)).duration_ms == 300_000

    def test_live_duration_while_active(self, machine, queue, now):
        machine.start_session(queue, now)
        assert machine.get_stats(now + timedelta(seconds=30)).duration_ms == 30_000

    def test_reset(self, machine, queue, now):
        machine.start_session(queue, now)
        machine.reset()
        assert not machine.is_active
        assert machine.get_state().queue == []

    def test_empty_queue_is_immediately_complete(self, machine, now):
        machine.start_session([], now)
        assert machine.is_complete()
        assert machine.get_progress().percentage == 0.0


class TestAnswerFlow:
    def test_reveal_and_hide(self, machine, queue, now):
        machine.start_session(queue, now)
        machine.reveal_answer()
        assert machine.is_answer_revealed
        machine.hide_answer()
        assert not machine.is_answer_revealed

    def test_reveal_ignored_when_inactive(self, machine):
        machine.reveal_answer()
        assert not machine.is_answer_revealed

    def test_record_answer_updates_stats_and_queue(self, machine, queue, engine, now):
        machine.start_session(queue, now)
        updated = engine.schedule_card(queue[0], Rating.GOOD, now)
        assert machine.record_answer(Rating.GOOD, updated, now + timedelta(seconds=4))

        state = machine.get_state()
        assert state.current_index == 0
        assert state.queue[0] == updated
        assert state.stats.reviewed == 1
        assert state.stats.good == 1
        assert state.stats.new_cards == 1
        result = state.results[0]
        assert result.card_id == "new1"
        assert result.previous_state == CardState.NEW
        assert result.response_time_ms == 4000

    def test_record_answer_elapsed_days(self, machine, queue, engine, now):
        machine.start_session(queue[1:], now)
        machine.record_answer(Rating.HARD, engine.schedule_card(queue[1], Rating.HARD, now), now)
        result = machine.get_state().results[0]
        assert result.elapsed_days == 5
        assert result.scheduled_days == 4
        assert machine.get_stats(now).review_cards == 1

    @pytest.mark.parametrize("rating", [0, 5, -1, True, "3", 2.5, None])
    def test_invalid_rating_is_noop(self, machine, queue, now, rating):
        machine.start_session(queue, now)
        before = machine.get_state()
        assert not machine.record_answer(rating, queue[0], now)
        assert machine.get_state() == before

    def test_record_answer_inactive_is_noop(self, machine, queue, now):
        assert not machine.record_answer(Rating.GOOD, queue[0], now)
        assert machine.get_state().results == []

    def test_record_answer_when_complete_is_noop(self, machine, queue, now):
        machine.start_session(queue[:1], now)
        machine.next_card(now)
        assert machine.is_complete()
        assert not machine.record_answer(Rating.GOOD, queue[0], now)

    def test_record_answer_rejects_other_card(self, machine, queue, now):
        machine.start_session(queue, now)
        assert not machine.record_answer(Rating.GOOD, queue[1], now)
        assert machine.get_stats(now).reviewed == 0

    def test_next_card_reaches_completion(self, machine, queue, now):
        machine.start_session(queue, now)
        machine.reveal_answer()
        assert machine.next_card(now)
        assert not machine.is_answer_revealed
        assert machine.next_card(now)
        assert not machine.next_card(now)
        assert machine.is_complete()
        assert machine.get_state().current_index == 3
        assert machine.get_remaining_count() == 0

    def test_progress_and_remaining(self, machine, queue, now):
        machine.start_session(queue, now)
        progress = machine.get_progress()
        assert (progress.current, progress.total) == (1, 3)
        remaining = machine.get_remaining_by_type()
        assert (remaining.new, remaining.learning, remaining.due) == (1, 1, 1)
        machine.next_card(now)
        assert machine.get_remaining_count() == 2
        assert machine.get_remaining_by_type().new == 0


class TestUndo:
    def test_undo_restores_card_and_stats(self, machine, queue, engine, now):
        machine.start_session(queue, now)
        before = machine.get_state()
        original, _ = answer(machine, engine, Rating.AGAIN, now)

        assert machine.undo_last_answer(0, original, now)
        after = machine.get_state()
        assert after.queue == before.queue
        assert after.stats == before.stats
        assert after.results == []
        assert after.current_index == 0

    def test_undo_any_prefix_of_answers(self, machine, queue, engine, now):
        machine.start_session(queue, now)
        snapshots = []
        for rating in (Rating.GOOD, Rating.HARD, Rating.EASY):
            snapshots.append((machine.get_state(), machine.current_index))
            answer(machine, engine, rating, now)

        for state, index in reversed(snapshots):
            assert machine.undo_last_answer(index, state.queue[index], now)
            restored = machine.get_state()
            assert restored.queue == state.queue
            assert restored.stats == state.stats
            assert restored.results == state.results

    def test_undo_without_results_is_noop(self, machine, queue, now):
        machine.start_session(queue, now)
        before = machine.get_state()
        assert not machine.undo_last_answer(0, queue[0], now)
        assert machine.get_state() == before

    def test_undo_rejects_out_of_range_index(self, machine, queue, engine, now):
        machine.start_session(queue, now)
        original, _ = answer(machine, engine, Rating.GOOD, now)
        assert not machine.undo_last_answer(10, original, now)
        assert machine.get_stats(now).reviewed == 1

    def test_undo_resets_edit_mode(self, machine, queue, engine, now):
        machine.start_session(queue, now)
        original, _ = answer(machine, engine, Rating.GOOD, now)
        assert machine.start_edit("answer")
        machine.undo_last_answer(0, original, now)
        assert not machine.is_editing()

    def test_counters_never_negative(self, machine, queue, engine, now):
        machine.start_session(queue, now)
        original, _ = answer(machine, engine, Rating.GOOD, now)
        # Corrupt a counter from outside; undo must clamp rather than go below zero
        machine._state.stats.good = 0
        machine.undo_last_answer(0, original, now)
        assert machine.get_stats(now).good == 0


class TestQueueSurgery:
    def test_requeue_appends_and_updates_total(self, machine, queue, make_card, now):
        machine.start_session(queue, now)
        machine.requeue_card(make_card("extra"))
        state = machine.get_state()
        assert state.queue[-1].id == "extra"
        assert state.stats.total == 4

    def test_requeue_position_clamped(self, machine, queue, make_card, now):
        machine.start_session(queue, now)
        machine.requeue_card(make_card("far"), 99)
        machine.requeue_card(make_card("neg"), -3)
        state = machine.get_state()
        assert state.queue[-1].id == "far"
        assert state.queue[0].id == "neg"

    def test_insert_card_at_position_clamped(self, machine, queue, make_card, now):
        machine.start_session(queue, now)
        machine.insert_card_at_position(make_card("x"), 100)
        machine.insert_card_at_position(make_card("y"), -1)
        state = machine.get_state()
        assert state.queue[-1].id == "x"
        assert state.queue[0].id == "y"

    def test_mutations_ignored_when_inactive(self, machine, make_card):
        machine.requeue_card(make_card("x"))
        machine.insert_card_at_position(make_card("y"), 0)
        assert machine.remove_card_by_id("x") == 0
        assert machine.get_state().queue == []

    def test_remove_current_card(self, machine, queue, now):
        machine.start_session(queue, now)
        machine.reveal_answer()
        removed = machine.remove_current_card()
        assert removed.id == "new1"
        assert machine.current_card.id == "rev1"
        assert not machine.is_answer_revealed
        assert machine.get_stats(now).total == 2

    def test_remove_current_card_uses_supplied_time(self, machine, queue, now):
        machine.start_session(queue, now)
        later = now + timedelta(seconds=7)
        machine.remove_current_card(later)
        assert machine.get_state().question_shown_time == later

        machine.reveal_answer()
        latest = now + timedelta(seconds=20)
        assert machine.remove_card_by_id("rev1", latest) == 1
        assert machine.current_card.id == "learn1"
        assert machine.get_state().question_shown_time == latest
        assert not machine.is_answer_revealed

    def test_remove_card_at_position_uses_supplied_time(self, machine, queue, now):
        machine.start_session(queue, now)
        later = now + timedelta(minutes=2)
        assert machine.remove_card_at_position(0, later).id == "new1"
        assert machine.get_state().question_shown_time == later

    def test_remove_last_card_completes(self, machine, queue, now):
        machine.start_session(queue[:1], now)
        machine.remove_current_card()
        assert machine.is_complete()
        assert machine.remove_current_card() is None

    def test_remove_card_before_current_shifts_index(self, machine, queue, now):
        machine.start_session(queue, now)
        machine.next_card(now)
        machine.next_card(now)
        assert machine.current_card.id == "learn1"
        assert machine.remove_card_by_id("new1") == 1
        assert machine.current_index == 1
        assert machine.current_card.id == "learn1"

    def test_remove_card_by_id_removes_every_copy(self, machine, queue, now):
        machine.start_session(queue, now)
        machine.requeue_card(queue[0])
        assert machine.remove_card_by_id("new1") == 2
        assert [c.id for c in machine.get_state().queue] == ["rev1", "learn1"]
        assert machine.current_card.id == "rev1"

    def test_remove_unknown_id(self, machine, queue, now):
        machine.start_session(queue, now)
        assert machine.remove_card_by_id("missing") == 0


class TestLearningRequeue:
    def test_should_requeue(self, machine, make_card, now):
        soon = make_card("a", CardState.LEARNING, due=now + timedelta(minutes=5))
        later = make_card("b", CardState.RELEARNING, due=now + timedelta(minutes=30))
        review = make_card("c", CardState.REVIEW, due=now)
        assert machine.should_requeue(soon, now)
        assert not machine.should_requeue(later, now)
        assert not machine.should_requeue(review, now)

    def test_due_date_position_scan(self, machine, make_card, now):
        remaining = [
            make_card("a", CardState.REVIEW, due=now - timedelta(hours=2)),
            make_card("b", CardState.LEARNING, due=now + timedelta(minutes=3)),
            make_card("c", CardState.LEARNING, due=now + timedelta(minutes=8)),
        ]
        card = make_card("x", CardState.LEARNING, due=now + timedelta(minutes=5))
        assert machine.get_requeue_position(remaining, card, ReviewOrder.DUE_DATE, now) == 2
        late = make_card("y", CardState.LEARNING, due=now + timedelta(days=1))
        assert machine.get_requeue_position(remaining, late, "due-date-random", now) == 3

    def test_random_position_within_window(self, machine, make_card, now):
        remaining = [make_card(f"r{i}") for i in range(10)]
        card = make_card("x", CardState.LEARNING, due=now + timedelta(minutes=1))
        rng = random.Random(42)
        for _ in range(50):
            position = machine.get_requeue_position(
                remaining, card, ReviewOrder.RANDOM, now, rng
            )
            assert 0 <= position <= 3

    def test_random_position_not_due_soon_appends(self, machine, make_card, now):
        remaining = [make_card(f"r{i}") for i in range(10)]
        card = make_card("x", CardState.LEARNING, due=now + timedelta(hours=1))
        assert machine.get_requeue_position(remaining, card, ReviewOrder.RANDOM, now) == 10

    def test_waiting_for_learning_cards(self, machine, make_card, now):
        pending = make_card("p", CardState.LEARNING, due=now + timedelta(minutes=2))
        machine.start_session([pending], now)
        assert machine.is_waiting_for_learning_cards(now)
        assert machine.get_time_until_next_due(now) == 120_000
        assert [c.id for c in machine.get_pending_learning_cards(now)] == ["p"]
        assert not machine.is_waiting_for_learning_cards(now + timedelta(minutes=2))
        assert machine.get_time_until_next_due(now + timedelta(minutes=3)) == 0

    def test_not_waiting_when_no_card(self, machine, now):
        assert not machine.is_waiting_for_learning_cards(now)
        assert machine.get_time_until_next_due(now) == 0


class TestPreviewAndEdit:
    def test_preview_cleared_on_advance(self, machine, queue, engine, now):
        machine.start_session(queue, now)
        machine.set_scheduling_preview(engine.get_scheduling_preview(queue[0], now))
        assert machine.scheduling_preview is not None
        machine.next_card(now)
        assert machine.scheduling_preview is None

    def test_edit_mode(self, machine, queue, now):
        assert not machine.start_edit("question")
        machine.start_session(queue, now)
        assert not machine.start_edit("title")
        assert machine.start_edit("question")
        assert machine.get_edit_state().field == "question"
        machine.cancel_edit()
        assert not machine.is_editing()
