"""
Structured logging and the audit chain.

Run with: pytest tests/test_observability.py -v
"""

import io
import json

import pytest

from coursepass.observability import (
    AuditLogger,
    Layer,
    configure_logging,
    correlation_id_var,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    timed_operation,
)


@pytest.fixture
def stream():
    buf = io.StringIO()
    configure_logging("debug", "json", buf)
    return buf


def _records(buf):
    return [json.loads(line) for line in buf.getvalue().splitlines()]


class TestStructuredLogging:
    """JSON log lines with layer and context."""

    def test_record_fields(self, stream):
        token = set_correlation_id("corr-test")
        try:
            get_logger("engine", Layer.ENGINE).info("minted", course_id="abc")
        finally:
            correlation_id_var.reset(token)
        record = _records(stream)[-1]
        assert record["message"] == "minted"
        assert record["level"] == "info"
        assert record["layer"] == "engine"
        assert record["logger"] == "coursepass.engine.engine"
        assert record["correlation_id"] == "corr-test"
        assert record["context"] == {"course_id": "abc"}

    def test_level_filtering(self):
        buf = io.StringIO()
        configure_logging("warning", "json", buf)
        logger = get_logger("x", Layer.STORE)
        logger.info("hidden")
        logger.warning("shown")
        assert [r["message"] for r in _records(buf)] == ["shown"]

    def test_text_format(self):
        buf = io.StringIO()
        configure_logging("info", "text", buf)
        get_logger("x", Layer.CLI).info("plain")
        assert "plain" in buf.getvalue()
        assert not buf.getvalue().startswith("{")

    def test_timed_operation(self, stream):
        logger = get_logger("timer", Layer.RUNTIME)

        @timed_operation(logger, "work")
        def work():
            return 42

        @timed_operation(logger, "fail")
        def fail():
            raise RuntimeError("x")

        assert work() == 42
        with pytest.raises(RuntimeError):
            fail()
        records = [r for r in _records(stream) if r.get("operation") in ("work", "fail")]
        assert [(r["operation"], r["level"]) for r in records] == [("work", "info"), ("fail", "warning")]
        assert all("duration_ms" in r for r in records)

    def test_engine_rejection_logged_as_warning(self, stream, runtime):
        with pytest.raises(Exception):
            runtime.submit("alice", "set_price", course_id="ab" * 32, new_price=1)
        warnings = [r for r in _records(stream) if r["level"] == "warning"]
        assert warnings[-1]["error_code"] == "not_found"
        assert warnings[-1]["operation"] == "set_price"

    def test_correlation_id_generated_on_demand(self):
        token = correlation_id_var.set("")
        try:
            cid = get_correlation_id()
            assert cid.startswith("corr-")
            assert get_correlation_id() == cid
        finally:
            correlation_id_var.reset(token)


class TestAuditLogger:
    """Hash-chained audit records."""

    def test_chain_links(self):
        audit = AuditLogger(get_logger("audit", Layer.ENGINE))
        first = audit.log("alice", "mint", "c1", "success")
        second = audit.log("bob", "buy_course", "c1", "failure", error="bid_too_low")
        assert first.previous_hash == AuditLogger.GENESIS_HASH
        assert second.previous_hash == first.event_hash
        assert audit.verify_chain()

    def test_tampering_detected(self):
        audit = AuditLogger(get_logger("audit", Layer.ENGINE))
        audit.log("alice", "mint", "c1", "success")
        audit.log("alice", "transfer", "c1", "success")
        audit._entries[0].actor = "mallory"
        assert not audit.verify_chain()

    def test_none_details_dropped(self):
        audit = AuditLogger(get_logger("audit", Layer.ENGINE))
        event = audit.log("alice", "mint", "", "success", reason=None, kind="x")
        assert event.details == {"kind": "x"}

    def test_retention_bounds_memory(self):
        audit = AuditLogger(get_logger("audit", Layer.ENGINE), retention=3)
        logged = [audit.log("alice", "mint", f"c{i}", "success") for i in range(10)]
        entries = audit.entries
        assert entries == logged[-3:]
        assert entries[0].previous_hash == logged[6].event_hash
        assert audit.verify_chain()
        audit._entries[0].actor = "mallory"
        assert not audit.verify_chain()

    def test_runtime_audit_retention_from_config(self):
        from coursepass.config import get_config_manager
        from coursepass.runtime import Runtime

        get_config_manager().set("observability.audit_retention", 50)
        runtime = Runtime.build(seed=bytes(32))
        for _ in range(120):
            with pytest.raises(Exception):
                runtime.submit("alice", "set_price", course_id="ab" * 32, new_price=1)
        assert len(runtime.engine.audit.entries) == 50
        assert runtime.engine.audit.verify_chain()


class TestCorrelation:
    """Correlation ids on direct engine calls."""

    def test_each_direct_call_gets_its_own_id(self, runtime):
        seen = []
        runtime.bus.subscribe()(seen.append)
        engine = runtime.engine
        token = correlation_id_var.set("")
        try:
            engine.mint("alice", dna="00" * 16)
            engine.mint("alice", dna="11" * 16)
            assert correlation_id_var.get() == ""
        finally:
            correlation_id_var.reset(token)
        assert seen[0].correlation_id
        assert seen[0].correlation_id != seen[1].correlation_id

    def test_host_id_is_kept(self, runtime):
        seen = []
        runtime.bus.subscribe()(seen.append)
        token = set_correlation_id("corr-host")
        try:
            runtime.engine.mint("alice", dna="00" * 16)
        finally:
            correlation_id_var.reset(token)
        assert seen[0].correlation_id == "corr-host"
        assert runtime.engine.audit.entries[-1].correlation_id == "corr-host"
