import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import wraps
from math import ceil

from flask import current_app, g, request
from sqlalchemy.exc import IntegrityError

from models import db
from models.ip_rate_limit import IpRateLimit
from security.errors import IpBlocked, TooManyRequests
from utils.events import ActorType, AuditEvent, EventStatus, SecurityEventType
from utils.request_context import client_ip, user_agent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int

    def headers(self) -> dict:
        out = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_at.isoformat() + "Z",
        }
        if not self.allowed:
            out["Retry-After"] = str(self.retry_after)
        return out


class FixedWindowCounter:
    """Fixed-window request counter per (scope, ip), stored in the shared database."""

    def hit(self, scope: str, ip: str, window_seconds: int, max_requests: int) -> RateLimitDecision:
        now = datetime.utcnow()

        row = self._get_or_create(scope, ip, now)
        window_end = row.window_start + timedelta(seconds=window_seconds)

        # Reset window if expired
        if now >= window_end:
            row.window_start = now
            row.count = 0
            window_end = row.window_start + timedelta(seconds=window_seconds)

        row.count += 1
        count = row.count
        db.session.commit()

        retry_after = max(1, ceil((window_end - now).total_seconds()))
        return RateLimitDecision(
            allowed=count <= max_requests,
            limit=max_requests,
            remaining=max(0, max_requests - count),
            reset_at=window_end,
            retry_after=retry_after,
        )

    def _get_or_create(self, scope, ip, now):
        row = IpRateLimit.query.filter_by(scope=scope, ip=ip).first()
        if row is not None:
            return row
        row = IpRateLimit(scope=scope, ip=ip, window_start=now, count=0)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            row = IpRateLimit.query.filter_by(scope=scope, ip=ip).one()
        return row


class AdaptiveRateLimiter:
    """
    Fixed-window limiter whose quota follows the caller's IP reputation.

    Blocked IPs are rejected before any quota is consumed. Suspicious IPs
    (score below the suspicious threshold) get the policy's reduced quota.
    Each rejection is fed back into the reputation engine. If reputation
    cannot be evaluated the policy's regular quota applies.
    """

    def __init__(self, policies, reputation, counter, suspicious_threshold: int, audit=None):
        self.policies = policies
        self.reputation = reputation
        self.counter = counter
        self.suspicious_threshold = suspicious_threshold
        self.audit = audit

    def check(self, scope: str, ip: str, ua: str = None) -> RateLimitDecision:
        policy = self.policies[scope]

        degraded = False
        try:
            blocked = self.reputation.is_blocked(ip)
            score = None if blocked else self.reputation.get_reputation(ip).reputation_score
        except Exception:
            db.session.rollback()
            logger.exception("Reputation lookup failed for %s, applying default limit", ip)
            blocked, score, degraded = False, None, True

        if blocked:
            logger.warning("Request from blocked IP %s rejected", ip)
            raise IpBlocked()

        limit = policy.limit_for(score, self.suspicious_threshold)
        if limit != policy.max_requests:
            logger.info("Applying suspicious limit %s/%s to %s (score=%s)", limit, policy.max_requests, ip, score)

        decision = self.counter.hit(scope, ip, policy.window_seconds, limit)
        if decision.allowed:
            return decision

        logger.warning(
            "Rate limit exceeded: ip=%s scope=%s limit=%s window=%ss score=%s",
            ip, scope, limit, policy.window_seconds, score,
        )
        if not degraded:
            self.reputation.track_ip(ip, "rate_limit", False, {"user_agent": ua, "reason": "Rate limit exceeded"})
        raise TooManyRequests(policy.message, decision)

    def enforce(self, scope: str = "default") -> RateLimitDecision:
        """Checks the current request and remembers the decision for response headers."""
        try:
            decision = self.check(scope, client_ip(), user_agent())
        except TooManyRequests as exc:
            g.rate_limit = exc.decision
            if self.audit is not None:
                self.audit.log_from_request(AuditEvent(
                    event_type=SecurityEventType.RATE_LIMIT_EXCEEDED,
                    actor_type=ActorType.SYSTEM,
                    action="rate_limit",
                    status=EventStatus.DENIED,
                    metadata={"scope": scope, "limit": exc.decision.limit, "path": request.path},
                ))
            raise
        g.rate_limit = decision
        return decision


def rate_limited(scope: str):
    """
    Usage: @rate_limited("auth")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            current_app.extensions["trust_engine"].limiter.enforce(scope)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
