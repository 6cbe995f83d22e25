"""
Failure atomicity: no partial state, no early events, payments compensated.

Run with: pytest tests/test_atomicity.py -v
"""

from decimal import Decimal

import pytest

from coursepass.errors import InsufficientFunds
from coursepass.events import CourseBought
from coursepass.hardening import InvariantChecker
from coursepass.ports import ExistenceRequirement
from coursepass.saga import CompensationFailed


@pytest.fixture
def listed(funded):
    """alice owns a course listed at 100."""
    course_id = funded.submit("alice", "mint")
    funded.submit("alice", "set_price", course_id=course_id, new_price=100)
    return funded, course_id


class TestBuyRollback:
    """Ownership change failing after the payment settled."""

    def test_payment_refunded_and_state_unchanged(self, listed, monkeypatch):
        runtime, course_id = listed
        engine = runtime.engine
        published = []
        runtime.bus.subscribe(CourseBought)(published.append)
        snapshot = engine.snapshot()
        balances = runtime.ledger.balances()

        def broken_transfer(*args):
            raise RuntimeError("storage unavailable")

        monkeypatch.setattr(engine, "_transfer_course_to", broken_transfer)

        with pytest.raises(RuntimeError, match="storage unavailable"):
            runtime.submit("bob", "buy_course", course_id=course_id, bid_price=100)

        assert runtime.ledger.balances() == balances
        assert engine.snapshot() == snapshot
        assert engine.course(course_id).price == Decimal("100")
        assert published == []
        InvariantChecker.check_registry(runtime.store)

    def test_refund_failure_is_reported(self, listed, monkeypatch):
        runtime, course_id = listed
        engine = runtime.engine
        ledger = runtime.ledger
        original = ledger.transfer

        def transfer(source, dest, amount, requirement=ExistenceRequirement.KEEP_ALIVE):
            if requirement is ExistenceRequirement.ALLOW_DEATH:
                raise InsufficientFunds("seller already spent it")
            original(source, dest, amount, requirement)

        def broken_transfer(*args):
            raise RuntimeError("storage unavailable")

        monkeypatch.setattr(ledger, "transfer", transfer)
        monkeypatch.setattr(engine, "_transfer_course_to", broken_transfer)

        with pytest.raises(CompensationFailed) as exc_info:
            runtime.submit("bob", "buy_course", course_id=course_id, bid_price=100)

        assert exc_info.value.step == "settle"
        assert isinstance(exc_info.value.original, RuntimeError)
        # The registry itself still rolled back
        assert engine.course(course_id).owner == "alice"


class TestEventsAfterCommit:
    """Subscribers only hear about committed changes."""

    def test_handler_sees_committed_state(self, funded):
        engine = funded.engine
        observed = []

        @funded.bus.subscribe()
        def check(event):
            observed.append(engine.store.in_transaction)
            observed.append(engine.course(event.course_id) is not None)

        funded.submit("alice", "mint")
        assert observed == [False, True]

    def test_failing_handler_does_not_undo_operation(self, funded):
        @funded.bus.subscribe()
        def explode(event):
            raise ValueError("subscriber bug")

        course_id = funded.submit("alice", "mint")
        assert funded.engine.course(course_id) is not None
        assert funded.bus.metrics["error_count"] == 1


class TestAuditTrail:
    """Every call leaves exactly one audit record."""

    def test_success_and_failure_records(self, listed):
        runtime, course_id = listed
        with pytest.raises(Exception):
            runtime.submit("bob", "buy_course", course_id=course_id, bid_price=1)
        entries = runtime.engine.audit.entries
        assert [(e.action, e.outcome) for e in entries] == [
            ("mint", "success"),
            ("set_price", "success"),
            ("buy_course", "failure"),
        ]
        assert entries[-1].details["error"] == "bid_too_low"
        assert runtime.engine.audit.verify_chain()
