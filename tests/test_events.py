"""
Event bus and journal.

Run with: pytest tests/test_events.py -v
"""

from coursepass.events import (
    EVENT_TYPES,
    CourseBought,
    CourseCreated,
    EventBus,
    EventStore,
    PriceSet,
)


class TestEventBus:
    """Typed pub/sub."""

    def test_typed_subscription(self):
        bus = EventBus()
        created = []
        bus.subscribe(CourseCreated)(created.append)
        bus.publish(CourseCreated(owner="alice", course_id="x"))
        bus.publish(PriceSet(owner="alice", course_id="x", price="1"))
        assert [e.course_id for e in created] == ["x"]

    def test_priority_order(self):
        bus = EventBus()
        order = []
        bus.subscribe(priority=1)(lambda e: order.append("low"))
        bus.subscribe(priority=5)(lambda e: order.append("high"))
        bus.publish(CourseCreated())
        assert order == ["high", "low"]

    def test_filter(self):
        bus = EventBus()
        seen = []
        bus.subscribe(CourseBought, filter_func=lambda e: e.buyer == "bob")(seen.append)
        bus.publish(CourseBought(buyer="carol"))
        bus.publish(CourseBought(buyer="bob"))
        assert [e.buyer for e in seen] == ["bob"]

    def test_handler_error_isolated(self):
        errors = []
        bus = EventBus(on_error=errors.append)
        calls = []

        @bus.subscribe(priority=2)
        def broken(event):
            raise RuntimeError("nope")

        bus.subscribe(priority=1)(calls.append)
        bus.publish(CourseCreated())
        assert len(calls) == 1
        assert len(errors) == 1
        assert bus.metrics["error_count"] == 1
        assert bus.metrics["handled_count"] == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe()(seen.append)
        assert bus.unsubscribe(seen.append)
        bus.publish(CourseCreated())
        assert seen == []


class TestEvents:
    """Event serialization."""

    def test_dict_round_trip(self):
        event = CourseBought(buyer="bob", seller="alice", course_id="x", price="100")
        data = event.to_dict()
        assert data["event_type"] == "CourseBought"
        assert EVENT_TYPES[data["event_type"]].from_dict(data) == event

    def test_digest_is_stable(self):
        event = PriceSet(owner="alice", course_id="x", price=None)
        assert event.digest() == event.digest()
        assert len(event.digest()) == 64


class TestEventStore:
    """Append-only journal."""

    def test_streams_and_versions(self):
        store = EventStore()
        store.append("c1", [CourseCreated(course_id="c1")])
        records = store.append("c1", [PriceSet(course_id="c1", price="5")])
        store.append("c2", [CourseCreated(course_id="c2")])

        assert records[0].version == 2
        assert [type(e) for e in store.read_stream("c1")] == [CourseCreated, PriceSet]
        assert store.get_stream_ids() == ["c1", "c2"]
        assert store.total_events == 3
        assert [r.sequence_number for r in store.read_all()] == [1, 2, 3]

    def test_engine_journals_by_course(self, funded):
        course_id = funded.submit("alice", "mint")
        funded.submit("alice", "set_price", course_id=course_id, new_price=10)
        funded.submit("bob", "buy_course", course_id=course_id, bid_price=10)
        history = funded.journal.read_stream(course_id)
        assert [e.event_type for e in history] == ["CourseCreated", "PriceSet", "CourseBought"]
        assert all(e.correlation_id for e in history)
        assert len({e.correlation_id for e in history}) == 3
