"""IP reputation scoring, blocking and the recovery job."""
from datetime import datetime, timedelta

import pytest

from models import db
from models.ip_reputation import IpReputation
from security.ip_reputation import AUTO_BLOCK_REASON, compute_score


@pytest.mark.parametrize(
    "counters, expected",
    [
        ((0, 0, 0, 0), 100),
        ((4, 0, 0, 0), 80),
        ((0, 3, 0, 0), 70),
        ((0, 0, 6, 0), 0),
        ((1, 1, 1, 10), 85),
        ((0, 0, 0, 50), 100),
    ],
)
def test_compute_score_is_clamped(counters, expected):
    assert compute_score(*counters) == expected


def test_unknown_ip_gets_default_record(engine):
    rep = engine.reputation.get_reputation("203.0.113.9")

    assert rep.reputation_score == 100
    assert rep.is_blocked is False
    assert engine.reputation.find("203.0.113.9") is None


def test_score_follows_counters_and_auto_blocks(engine):
    svc = engine.reputation
    ip = "1.2.3.4"

    for _ in range(3):
        svc.track_ip(ip, "rate_limit", False)
    assert svc.get_reputation(ip).reputation_score == 70
    assert svc.is_blocked(ip) is False

    for _ in range(2):
        svc.track_ip(ip, "abuse_report", False)
    assert svc.get_reputation(ip).reputation_score == 30
    assert svc.is_blocked(ip) is False

    svc.track_ip(ip, "abuse_report", False)
    rep = svc.get_reputation(ip)
    assert rep.reputation_score == 10
    assert rep.block_reason == AUTO_BLOCK_REASON
    assert rep.blocked_until is None
    assert svc.is_blocked(ip) is True


def test_successful_logins_raise_score_up_to_cap(engine):
    svc = engine.reputation
    ip = "198.51.100.7"

    svc.track_ip(ip, "login", False)
    svc.track_ip(ip, "login", False)
    assert svc.get_reputation(ip).reputation_score == 90

    for _ in range(10):
        svc.track_ip(ip, "login", True)
    rep = svc.get_reputation(ip)
    assert rep.reputation_score == 100
    assert rep.successful_logins == 10
    assert rep.failed_login_attempts == 2


def test_track_ip_records_user_agent(engine):
    engine.reputation.track_ip("198.51.100.8", "api_request", True, {"user_agent": "curl/8.0"})

    assert engine.reputation.find("198.51.100.8").user_agent == "curl/8.0"


def test_track_ip_swallows_store_errors(engine, monkeypatch):
    def boom():
        raise RuntimeError("database is gone")

    monkeypatch.setattr(db.session, "commit", boom)

    engine.reputation.track_ip("198.51.100.9", "login", False)


def test_temporary_block_expires_on_first_check(engine):
    svc = engine.reputation
    ip = "192.0.2.10"

    svc.block_ip(ip, "manual review", duration_hours=1)
    assert svc.is_blocked(ip) is True

    IpReputation.query.filter_by(ip_address=ip).update(
        {IpReputation.blocked_until: datetime.utcnow() - timedelta(minutes=1)}
    )
    db.session.commit()

    assert svc.is_blocked(ip) is False
    rep = svc.find(ip)
    assert rep.is_blocked is False
    assert rep.blocked_until is None
    assert rep.block_reason is None


def test_permanent_block_and_unblock(engine):
    svc = engine.reputation
    ip = "192.0.2.11"

    rep = svc.block_ip(ip, "scraper")
    assert rep.blocked_until is None
    assert svc.is_blocked(ip) is True

    assert svc.unblock_ip(ip) is True
    assert svc.is_blocked(ip) is False


def test_unblock_unknown_ip_returns_false(engine):
    assert engine.reputation.unblock_ip("192.0.2.250") is False


def test_cleanup_lifts_expired_blocks_and_recovers_score(engine):
    svc = engine.reputation
    svc.block_ip("192.0.2.20", "temp", duration_hours=1)
    svc.block_ip("192.0.2.21", "permanent")
    for _ in range(4):
        svc.track_ip("192.0.2.22", "rate_limit", False)

    IpReputation.query.filter_by(ip_address="192.0.2.20").update(
        {IpReputation.blocked_until: datetime.utcnow() - timedelta(hours=1)}
    )
    db.session.commit()

    result = svc.cleanup_expired_blocks()

    assert result["unblocked_count"] == 1
    assert result["improved_count"] == 1
    assert svc.find("192.0.2.20").is_blocked is False
    assert svc.find("192.0.2.21").is_blocked is True
    assert svc.find("192.0.2.22").reputation_score == 70


def test_cleanup_recovery_does_not_stack(engine):
    svc = engine.reputation
    for _ in range(5):
        svc.track_ip("192.0.2.30", "rate_limit", False)

    svc.cleanup_expired_blocks()
    second = svc.cleanup_expired_blocks()

    assert second == {"unblocked_count": 0, "improved_count": 0}
    assert svc.find("192.0.2.30").reputation_score == 60


def test_recovery_is_capped_at_max(engine):
    svc = engine.reputation
    svc.track_ip("192.0.2.31", "login", False)

    svc.cleanup_expired_blocks()

    assert svc.find("192.0.2.31").reputation_score == 100


def test_statistics_and_query(engine):
    svc = engine.reputation
    svc.track_ip("192.0.2.40", "api_request", True)
    for _ in range(6):
        svc.track_ip("192.0.2.41", "rate_limit", False)
    for _ in range(9):
        svc.track_ip("192.0.2.42", "rate_limit", False)

    stats = svc.get_statistics()
    assert stats["total_ips"] == 3
    assert stats["blocked_ips"] == 1
    assert stats["suspicious_ips"] == 1
    assert stats["good_ips"] == 1

    blocked = svc.query(is_blocked=True)
    assert [r.ip_address for r in blocked] == ["192.0.2.42"]

    low = svc.query(max_score=50)
    assert [r.ip_address for r in low] == ["192.0.2.42", "192.0.2.41"]
