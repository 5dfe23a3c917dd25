"""Audit log recording, querying, export and retention."""
import csv
import io
import json
from dataclasses import replace
from datetime import datetime, timedelta
from types import SimpleNamespace

from flask import g

from models import db
from models.audit_log import AuditLog
from utils.audit import AuditLogFilters
from utils.events import ActorType, AuditEvent, EventStatus, SecurityEventType


def _event(event_type=SecurityEventType.AUTH_LOGIN_SUCCESS, status=EventStatus.SUCCESS, **kwargs):
    kwargs.setdefault("actor_type", ActorType.CUSTOMER)
    kwargs.setdefault("action", "login")
    return AuditEvent(event_type=event_type, status=status, **kwargs)


def test_log_persists_event(engine):
    engine.audit.log(_event(actor_id="7", ip_address="198.51.100.3", metadata={"attempt": 1}))

    row = AuditLog.query.one()
    assert row.event_type == "auth.login.success"
    assert row.actor_type == "customer"
    assert row.status == "success"
    assert row.metadata_json == {"attempt": 1}


def test_log_never_raises_when_store_fails(engine, monkeypatch):
    def boom():
        raise RuntimeError("disk full")

    monkeypatch.setattr(db.session, "commit", boom)

    assert engine.audit.log(_event()) is None


def test_emit_is_best_effort(engine, monkeypatch):
    def boom(event):
        raise RuntimeError("worker crashed")

    monkeypatch.setattr(engine.audit, "log", boom)

    engine.audit.emit(_event())


def test_query_filters_and_orders_newest_first(engine):
    engine.audit.log(_event(actor_id="1"))
    engine.audit.log(_event(SecurityEventType.AUTH_LOGIN_FAILURE, EventStatus.FAILURE, actor_id="1"))
    engine.audit.log(_event(actor_id="2"))

    rows = engine.audit.query(AuditLogFilters(actor_id="1"))
    assert [r.event_type for r in rows] == ["auth.login.failure", "auth.login.success"]

    failures = engine.audit.query(AuditLogFilters(status="failure"))
    assert len(failures) == 1

    by_type = engine.audit.query(AuditLogFilters(event_types=("auth.login.success",)))
    assert {r.actor_id for r in by_type} == {"1", "2"}

    page = engine.audit.query(AuditLogFilters(limit=1, offset=1))
    assert len(page) == 1


def test_query_by_date_range(engine):
    engine.audit.log(_event(actor_id="old"))
    engine.audit.log(_event(actor_id="new"))
    AuditLog.query.filter_by(actor_id="old").update(
        {AuditLog.timestamp: datetime.utcnow() - timedelta(days=3)}
    )
    db.session.commit()

    rows = engine.audit.query(AuditLogFilters(start_date=datetime.utcnow() - timedelta(days=1)))

    assert [r.actor_id for r in rows] == ["new"]


def test_csv_export_quotes_special_characters(engine):
    engine.audit.log(_event(user_agent='Agent "X", v1', metadata={"note": "a,b"}))

    text = engine.audit.export_to_csv(AuditLogFilters())

    lines = text.split("\n")
    assert lines[0].startswith("ID,Timestamp,Event Type")
    assert '"Agent ""X"", v1"' in lines[1]

    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[1][11] == 'Agent "X", v1'
    assert json.loads(parsed[1][14]) == {"note": "a,b"}


def test_csv_export_empty(engine):
    assert engine.audit.export_to_csv(AuditLogFilters()) == "No logs found"


def test_json_export(engine):
    engine.audit.log(_event(actor_id="9"))

    data = json.loads(engine.audit.export_to_json(AuditLogFilters()))

    assert data[0]["actor_id"] == "9"
    assert data[0]["event_type"] == "auth.login.success"


def test_statistics(engine):
    engine.audit.log(_event())
    engine.audit.log(_event())
    engine.audit.log(_event(SecurityEventType.AUTH_LOGIN_FAILURE, EventStatus.FAILURE))
    engine.audit.log(_event(SecurityEventType.AUTH_LOGIN_LOCKED, EventStatus.DENIED))

    stats = engine.audit.get_statistics()

    assert stats["total_logs"] == 4
    assert stats["success_count"] == 2
    assert stats["failure_count"] == 1
    assert stats["denied_count"] == 1
    assert stats["event_type_counts"]["auth.login.success"] == 2


def test_cleanup_purges_past_retention(engine):
    engine.audit.log(_event(actor_id="stale"))
    engine.audit.log(_event(actor_id="recent"))
    AuditLog.query.filter_by(actor_id="stale").update(
        {AuditLog.timestamp: datetime.utcnow() - timedelta(days=91)}
    )
    db.session.commit()

    assert engine.audit.cleanup() == 1
    assert [r.actor_id for r in AuditLog.query.all()] == ["recent"]


def test_log_from_request_fills_request_context(app, engine):
    headers = {
        "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
        "User-Agent": "ops-console/2.1",
        "X-Request-ID": "rid-1",
    }
    with app.test_request_context("/auth/login", headers=headers):
        g.session = SimpleNamespace(id="sess-1")
        engine.audit.log_from_request(_event(actor_id="7"))

    row = AuditLog.query.one()
    assert row.ip_address == "203.0.113.7"
    assert row.user_agent == "ops-console/2.1"
    assert row.request_id == "rid-1"
    assert row.session_id == "sess-1"


def test_exports_are_capped(engine, monkeypatch):
    monkeypatch.setattr(engine.audit, "retention", replace(engine.audit.retention, export_max_rows=3))
    for i in range(5):
        engine.audit.log(_event(actor_id=str(i)))

    assert len(engine.audit.export_to_csv(AuditLogFilters()).split("\n")) == 4
    assert len(json.loads(engine.audit.export_to_json(AuditLogFilters()))) == 3
