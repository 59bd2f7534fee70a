import pytest

from events import MIGRATION_FINISH, TICK, VM_CREATE, EventQueue, PastEventError


def test_events_are_dispatched_in_time_order_then_fifo():
    queue = EventQueue()
    dispatched = []
    queue.register(TICK, lambda event: dispatched.append(event["data"]["name"]))

    queue.schedule(TICK, 2.0, data={"name": "late"})
    queue.schedule(TICK, 1.0, data={"name": "first"})
    queue.schedule(TICK, 1.0, data={"name": "second"})

    while queue.advance() is not None:
        pass

    assert dispatched == ["first", "second", "late"]
    assert queue.clock == 2.0


def test_scheduling_in_the_past_fails():
    queue = EventQueue(start_time=5.0)
    with pytest.raises(PastEventError):
        queue.schedule(TICK, 4.9)
    # Same time is allowed
    queue.schedule(TICK, 5.0)


def test_cancelled_events_are_skipped():
    queue = EventQueue()
    dispatched = []
    queue.register(MIGRATION_FINISH, lambda event: dispatched.append(event["id"]))

    withdrawn = queue.schedule(MIGRATION_FINISH, 1.0)
    kept = queue.schedule(MIGRATION_FINISH, 2.0)
    assert len(queue) == 2

    assert queue.cancel(withdrawn)
    assert not queue.cancel(withdrawn)
    assert len(queue) == 1
    assert queue.peek_time() == 2.0

    queue.advance()
    assert dispatched == [kept["id"]]
    assert len(queue) == 0
    assert queue.advance() is None


def test_dispatched_events_cannot_be_cancelled():
    queue = EventQueue()
    queue.register(TICK, lambda event: None)
    event = queue.schedule(TICK, 0.0)
    queue.advance()

    assert event["dispatched"]
    assert not queue.cancel(event)
    assert not queue.cancel(None)
    assert len(queue) == 0


def test_missing_handler_and_unknown_kind():
    queue = EventQueue()
    queue.schedule(VM_CREATE, 0.0, vm=1)
    with pytest.raises(ValueError):
        queue.advance()
    with pytest.raises(ValueError):
        queue.schedule("power_off", 1.0)
