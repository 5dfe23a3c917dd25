"""Reputation-aware fixed-window rate limiting."""
import pytest

from models.ip_rate_limit import IpRateLimit
from security.errors import IpBlocked, TooManyRequests
from security.policies import RateLimitPolicy


def test_policy_limit_for_score():
    policy = RateLimitPolicy(name="api", window_seconds=60, max_requests=30, suspicious_max=15)

    assert policy.limit_for(None, 50) == 30
    assert policy.limit_for(80, 50) == 30
    assert policy.limit_for(49, 50) == 15


def test_suspicious_limit_defaults_to_half():
    assert RateLimitPolicy(name="x", window_seconds=60, max_requests=100).suspicious_limit == 50


def test_decisions_count_down_then_reject(engine):
    limiter = engine.limiter
    limit = limiter.policies["strict"].max_requests

    decisions = [limiter.check("strict", "198.51.100.4") for _ in range(limit)]
    assert decisions[0].remaining == limit - 1
    assert decisions[-1].remaining == 0

    with pytest.raises(TooManyRequests) as exc_info:
        limiter.check("strict", "198.51.100.4")

    decision = exc_info.value.decision
    assert decision.allowed is False
    assert exc_info.value.retry_after >= 1
    assert decision.headers()["Retry-After"] == str(decision.retry_after)
    assert engine.reputation.find("198.51.100.4").rate_limit_violations == 1


def test_windows_are_per_ip_and_scope(engine):
    limiter = engine.limiter
    for _ in range(limiter.policies["strict"].max_requests):
        limiter.check("strict", "198.51.100.5")

    assert limiter.check("strict", "198.51.100.6").allowed is True
    assert limiter.check("api", "198.51.100.5").allowed is True


def test_suspicious_ip_gets_reduced_quota(engine):
    for _ in range(6):
        engine.reputation.track_ip("198.51.100.7", "rate_limit", False)

    decision = engine.limiter.check("strict", "198.51.100.7")

    assert decision.limit == engine.limiter.policies["strict"].suspicious_limit


def test_blocked_ip_rejected_without_consuming_quota(engine):
    engine.reputation.block_ip("198.51.100.8", "abuse")

    with pytest.raises(IpBlocked):
        engine.limiter.check("default", "198.51.100.8")

    assert IpRateLimit.query.filter_by(ip="198.51.100.8").count() == 0


def test_reputation_failure_falls_back_to_regular_quota(engine, monkeypatch):
    def broken(ip):
        raise RuntimeError("reputation store down")

    monkeypatch.setattr(engine.reputation, "is_blocked", broken)

    decision = engine.limiter.check("strict", "198.51.100.9")

    assert decision.allowed is True
    assert decision.limit == engine.limiter.policies["strict"].max_requests


def test_headers_on_allowed_decision(engine):
    headers = engine.limiter.check("default", "198.51.100.10").headers()

    assert headers["X-RateLimit-Limit"] == "100"
    assert headers["X-RateLimit-Remaining"] == "99"
    assert headers["X-RateLimit-Reset"].endswith("Z")
    assert "Retry-After" not in headers
