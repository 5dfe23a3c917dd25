"""Engine wiring, policy reload, scheduled jobs and CLI commands."""
from datetime import timedelta

import pytest

from security.engine import reload_policies
from utils.params import ParamError, datetime_arg, int_arg
from utils.scheduler import CLEANUP_JOBS, _build_job_specs, run_job


def test_reload_swaps_policies(app, engine):
    assert engine.lockout.policy.max_attempts == 5

    app.config["MAX_LOGIN_ATTEMPTS"] = 3
    app.config["LOCKOUT_MINUTES"] = 5
    reload_policies(app)

    assert engine.lockout.policy.max_attempts == 3
    assert engine.lockout.policy.lockout_duration == timedelta(minutes=5)


def test_reload_changes_lockout_threshold(app, engine, make_customer):
    customer = make_customer()
    app.config["MAX_LOGIN_ATTEMPTS"] = 2
    reload_policies(app)

    engine.lockout.record_attempt(customer.email, False, customer.id, "invalid_credentials")
    attempt = engine.lockout.record_attempt(customer.email, False, customer.id, "invalid_credentials")

    assert attempt.triggered_lockout is True


def test_job_specs_cover_every_cleanup():
    specs = _build_job_specs()

    assert {s["id"] for s in specs} == set(CLEANUP_JOBS)
    assert all(s["trigger"] == "cron" for s in specs)


def test_run_job_logs_failures(app, monkeypatch):
    def broken():
        raise RuntimeError("boom")

    monkeypatch.setitem(CLEANUP_JOBS, "sessions", broken)

    assert run_job(app, "sessions") is None
    assert run_job(app, "audit-logs") == {"deleted_count": 0}


def test_cli_cleanup_all(app):
    result = app.test_cli_runner().invoke(args=["cleanup"])

    assert result.exit_code == 0
    assert "sessions: {'deleted_count': 0}" in result.output
    assert "ip-reputation:" in result.output


def test_cli_block_and_unblock(app, engine):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["block-ip", "203.0.113.80", "--reason", "abuse", "--hours", "1"])
    assert result.exit_code == 0
    assert engine.reputation.is_blocked("203.0.113.80") is True

    result = runner.invoke(args=["unblock-ip", "203.0.113.80"])
    assert "unblocked" in result.output
    assert engine.reputation.is_blocked("203.0.113.80") is False


def test_cli_unlock_account(app, engine, make_customer):
    customer = make_customer(email="locked@example.com")
    for _ in range(5):
        engine.lockout.record_attempt(customer.email, False, customer.id, "invalid_credentials")

    result = app.test_cli_runner().invoke(args=["unlock-account", "Locked@Example.com"])

    assert "locked@example.com unlocked" in result.output
    assert engine.lockout.check_lockout_status(customer.email).is_locked is False


def test_int_arg_clamps_and_rejects():
    assert int_arg({"limit": "9999"}, "limit", 50, 1, 500) == 500
    assert int_arg({"limit": "0"}, "limit", 50, 1, 500) == 1
    assert int_arg({}, "limit", 50, 1, 500) == 50
    with pytest.raises(ParamError):
        int_arg({"limit": "many"}, "limit", 50)


def test_datetime_arg_normalizes_to_naive_utc():
    value = datetime_arg({"start_date": "2026-03-01T12:00:00+02:00"}, "start_date")

    assert value.tzinfo is None
    assert value.hour == 10
