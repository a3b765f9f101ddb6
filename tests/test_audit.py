"""
Unit Tests for Audit Sinks
"""

import logging
from datetime import datetime

from financing_engine.audit import AuditEvent, AuditSink, LoggingAuditSink, StoreAuditSink, safe_emit
from financing_engine.store import AUDIT_LOG, InMemoryDocumentStore

EVENT = AuditEvent("application_status_changed", "admin-1", "app-1", datetime(2025, 6, 16, 12, 0), {"to": "review"})


class _ExplodingSink(AuditSink):
    def emit(self, event):
        raise RuntimeError("audit backend down")


class TestAuditSinks:
    def test_store_sink_appends_record(self):
        store = InMemoryDocumentStore()

        StoreAuditSink(store).emit(EVENT)
        StoreAuditSink(store).emit(EVENT)

        records = store.list(AUDIT_LOG)
        assert len(records) == 2
        assert records[0].data["actorId"] == "admin-1"
        assert records[0].data["details"] == {"to": "review"}

    def test_logging_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="financing_engine.audit.events"):
            LoggingAuditSink().emit(EVENT)

        assert "AUDIT application_status_changed actor=admin-1 subject=app-1" in caplog.text

    def test_safe_emit_swallows_sink_failure(self, caplog):
        with caplog.at_level(logging.ERROR):
            safe_emit(_ExplodingSink(), EVENT)

        assert "Audit sink failed" in caplog.text

    def test_safe_emit_without_sink(self):
        safe_emit(None, EVENT)
