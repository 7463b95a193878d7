from des.des import DiscreteEventSimulator
from des.min_value_priority_queue import MinValuePriorityQueue


def test_run_without_until_executes_all_events_and_advances_time():
    sim = DiscreteEventSimulator()
    calls = []

    def make_action(name):
        return lambda: calls.append((name, sim.current_time))

    sim.schedule_event(1.0, make_action("a"))
    sim.schedule_event(2.5, make_action("b"))

    sim.run()

    # Both actions should have run in time order
    assert calls == [("a", 1.0), ("b", 2.5)]
    # Simulator current time should be the time of the last event
    assert sim.current_time == 2.5
    assert sim.end_time == 2.5


def test_same_timestamp_events_run_in_insertion_order():
    sim = DiscreteEventSimulator()
    calls = []

    for name in ("first", "second", "third"):
        sim.schedule_event(1.0, lambda n=name: calls.append(n))

    sim.run()

    assert calls == ["first", "second", "third"]


def test_event_scheduled_from_action_at_zero_delay_runs_after_queued_peers():
    sim = DiscreteEventSimulator()
    calls = []

    def a():
        calls.append("a")
        sim.schedule_event(0.0, lambda: calls.append("a-continuation"))

    sim.schedule_event(1.0, a)
    sim.schedule_event(1.0, lambda: calls.append("b"))

    sim.run()

    assert calls == ["a", "b", "a-continuation"]


def test_run_until_stops_clock_at_horizon_and_keeps_later_events():
    sim = DiscreteEventSimulator()
    calls = []

    sim.schedule_event(1.0, lambda: calls.append("early"))
    sim.schedule_at(10.0, lambda: calls.append("late"))

    sim.run(until=5.0)

    assert calls == ["early"]
    assert sim.end_time == 5.0
    assert sim.pending_events() == 1


def test_priority_queue_returns_smallest_first():
    q = MinValuePriorityQueue()
    for v in (5, 1, 3):
        q.enqueue(v)

    assert len(q) == 3
    assert q.peek() == 1
    assert [q.dequeue(), q.dequeue(), q.dequeue()] == [1, 3, 5]
    assert not q


def test_run_until_advances_clock_when_queue_drains_early():
    sim = DiscreteEventSimulator()
    sim.schedule_event(1.0, lambda: None)

    sim.run(until=5.0)

    assert sim.current_time == 5.0
    assert sim.executed_events == 1
