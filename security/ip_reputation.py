"""
IP reputation engine.

Every tracked IP carries four lifetime counters and a 0-100 score derived
from them:

    score = clamp(100 - 5*failed_logins - 10*rate_limit_violations
                  - 20*abuse_reports + 2*successful_logins, 0, 100)

An IP whose score drops below the block threshold (20) is blocked with no
expiry. Blocks can also be placed and lifted by operators.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.ip_reputation import IpReputation

logger = logging.getLogger(__name__)

TRACKED_ACTIONS = ("login", "rate_limit", "abuse_report", "api_request")
AUTO_BLOCK_REASON = "Automatic block due to low reputation score"

MAX_SCORE = 100
FAILED_LOGIN_PENALTY = 5
RATE_LIMIT_PENALTY = 10
ABUSE_REPORT_PENALTY = 20
SUCCESSFUL_LOGIN_BONUS = 2


def compute_score(failed_logins: int, rate_limit_violations: int, abuse_reports: int, successful_logins: int) -> int:
    score = (
        MAX_SCORE
        - FAILED_LOGIN_PENALTY * (failed_logins or 0)
        - RATE_LIMIT_PENALTY * (rate_limit_violations or 0)
        - ABUSE_REPORT_PENALTY * (abuse_reports or 0)
        + SUCCESSFUL_LOGIN_BONUS * (successful_logins or 0)
    )
    return max(0, min(MAX_SCORE, score))


def default_reputation(ip: str) -> IpReputation:
    """Unsaved record standing in for an IP that has never been seen."""
    now = datetime.utcnow()
    return IpReputation(
        ip_address=ip,
        reputation_score=MAX_SCORE,
        failed_login_attempts=0,
        successful_logins=0,
        rate_limit_violations=0,
        abuse_reports=0,
        is_blocked=False,
        first_seen_at=now,
        last_seen_at=now,
    )


def _safe_rollback():
    try:
        db.session.rollback()
    except Exception:
        logger.exception("Rollback failed")


class IpReputationService:
    def __init__(self, policy):
        self.policy = policy

    def track_ip(self, ip: str, action: str, success: bool, metadata: Optional[dict] = None) -> None:
        """
        Record one observed action for an IP and re-derive its score.

        Side effect only: any failure is logged and swallowed, a tracking
        problem must never break the request that triggered it.
        """
        if action not in TRACKED_ACTIONS:
            logger.warning("Ignoring unknown reputation action %r for %s", action, ip)
            return

        metadata = metadata or {}
        try:
            record = self._get_or_create(ip, metadata)
            now = datetime.utcnow()
            record.last_seen_at = now

            if action == "login":
                if success:
                    record.successful_logins += 1
                else:
                    record.failed_login_attempts += 1
            elif action == "rate_limit":
                record.rate_limit_violations += 1
            elif action == "abuse_report":
                record.abuse_reports += 1

            if metadata.get("user_agent"):
                record.user_agent = metadata["user_agent"]
            if metadata.get("country"):
                record.country = metadata["country"][:100]

            record.reputation_score = compute_score(
                record.failed_login_attempts,
                record.rate_limit_violations,
                record.abuse_reports,
                record.successful_logins,
            )

            if record.reputation_score < self.policy.block_threshold and not record.is_blocked:
                record.is_blocked = True
                record.blocked_at = now
                record.block_reason = AUTO_BLOCK_REASON
                record.blocked_until = None
                logger.warning(
                    "IP %s automatically blocked (score=%s failed=%s rate_limit=%s abuse=%s)",
                    ip, record.reputation_score, record.failed_login_attempts,
                    record.rate_limit_violations, record.abuse_reports,
                )

            db.session.commit()
        except Exception:
            _safe_rollback()
            logger.exception("Failed to track IP %s (action=%s success=%s)", ip, action, success)

    def find(self, ip: str) -> Optional[IpReputation]:
        return IpReputation.query.filter_by(ip_address=ip).first()

    def get_reputation(self, ip: str) -> IpReputation:
        return self.find(ip) or default_reputation(ip)

    def is_blocked(self, ip: str) -> bool:
        """
        True while a block is in force. A temporary block that has run out
        is lifted here and reported as not blocked.
        """
        try:
            record = self.find(ip)
            if record is None or not record.is_blocked:
                return False

            now = datetime.utcnow()
            if record.blocked_until is not None and record.blocked_until <= now:
                self._release_expired(ip, now)
                return False

            return True
        except Exception:
            # false negatives are tolerable, locking out a good client is not
            _safe_rollback()
            logger.exception("Failed to check block status for %s", ip)
            return False

    def block_ip(self, ip: str, reason: str, duration_hours: Optional[float] = None) -> IpReputation:
        now = datetime.utcnow()
        blocked_until = now + timedelta(hours=duration_hours) if duration_hours else None
        try:
            record = self._get_or_create(ip)
            record.is_blocked = True
            record.block_reason = (reason or "")[:255]
            record.blocked_at = now
            record.blocked_until = blocked_until
            db.session.commit()
        except Exception:
            _safe_rollback()
            logger.exception("Failed to block IP %s", ip)
            raise

        logger.info(
            "IP %s blocked (reason=%s until=%s)",
            ip, reason, blocked_until.isoformat() if blocked_until else "permanent",
        )
        return record

    def unblock_ip(self, ip: str) -> bool:
        try:
            updated = (
                IpReputation.query
                .filter_by(ip_address=ip)
                .update(
                    {
                        IpReputation.is_blocked: False,
                        IpReputation.block_reason: None,
                        IpReputation.blocked_at: None,
                        IpReputation.blocked_until: None,
                        IpReputation.updated_at: datetime.utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            db.session.commit()
        except Exception:
            _safe_rollback()
            logger.exception("Failed to unblock IP %s", ip)
            raise

        if updated:
            logger.info("IP %s unblocked", ip)
        return bool(updated)

    def cleanup_expired_blocks(self) -> dict:
        """
        Lift blocks whose expiry has passed, then grant reputation recovery
        to every IP below the maximum score. Both steps are conditional bulk
        updates; recovery is applied at most once per recovery interval per
        IP, so redundant runs on several replicas do not stack.
        """
        now = datetime.utcnow()
        recovery_cutoff = now - self.policy.recovery_interval
        points = self.policy.recovery_points

        try:
            unblocked = (
                IpReputation.query
                .filter(
                    IpReputation.is_blocked.is_(True),
                    IpReputation.blocked_until.isnot(None),
                    IpReputation.blocked_until <= now,
                )
                .update(
                    {
                        IpReputation.is_blocked: False,
                        IpReputation.block_reason: None,
                        IpReputation.blocked_at: None,
                        IpReputation.blocked_until: None,
                        IpReputation.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )

            improved = (
                IpReputation.query
                .filter(
                    IpReputation.reputation_score < MAX_SCORE,
                    or_(
                        IpReputation.last_recovered_at.is_(None),
                        IpReputation.last_recovered_at <= recovery_cutoff,
                    ),
                )
                .update(
                    {
                        IpReputation.reputation_score: case(
                            (IpReputation.reputation_score + points >= MAX_SCORE, MAX_SCORE),
                            else_=IpReputation.reputation_score + points,
                        ),
                        IpReputation.last_recovered_at: now,
                        IpReputation.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            db.session.commit()
        except Exception:
            _safe_rollback()
            logger.exception("Failed to clean up IP reputation")
            raise

        logger.info("IP reputation cleanup completed: unblocked=%s improved=%s", unblocked, improved)
        return {"unblocked_count": unblocked, "improved_count": improved}

    def get_statistics(self) -> dict:
        threshold = self.policy.suspicious_threshold
        total = IpReputation.query.count()
        average = db.session.query(db.func.avg(IpReputation.reputation_score)).scalar()
        return {
            "total_ips": total,
            "blocked_ips": IpReputation.query.filter(IpReputation.is_blocked.is_(True)).count(),
            "suspicious_ips": IpReputation.query.filter(
                IpReputation.is_blocked.is_(False),
                IpReputation.reputation_score < threshold,
            ).count(),
            "good_ips": IpReputation.query.filter(IpReputation.reputation_score >= threshold).count(),
            "average_score": round(float(average), 2) if average is not None else float(MAX_SCORE),
        }

    def query(
        self,
        is_blocked: Optional[bool] = None,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[IpReputation]:
        q = IpReputation.query
        if is_blocked is not None:
            q = q.filter(IpReputation.is_blocked.is_(is_blocked))
        if min_score is not None:
            q = q.filter(IpReputation.reputation_score >= min_score)
        if max_score is not None:
            q = q.filter(IpReputation.reputation_score <= max_score)
        return (
            q.order_by(IpReputation.reputation_score.asc(), IpReputation.last_seen_at.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    def _get_or_create(self, ip: str, metadata: Optional[dict] = None) -> IpReputation:
        record = self.find(ip)
        if record is not None:
            return record

        metadata = metadata or {}
        record = default_reputation(ip)
        record.user_agent = metadata.get("user_agent")
        record.country = (metadata.get("country") or "")[:100] or None
        db.session.add(record)
        try:
            db.session.flush()
        except IntegrityError:
            # another request created it first
            db.session.rollback()
            record = self.find(ip)
            if record is None:
                raise
        return record

    def _release_expired(self, ip: str, now: datetime) -> None:
        # conditional update so concurrent callers release the block once
        (
            IpReputation.query
            .filter(
                IpReputation.ip_address == ip,
                IpReputation.is_blocked.is_(True),
                IpReputation.blocked_until.isnot(None),
                IpReputation.blocked_until <= now,
            )
            .update(
                {
                    IpReputation.is_blocked: False,
                    IpReputation.block_reason: None,
                    IpReputation.blocked_at: None,
                    IpReputation.blocked_until: None,
                    IpReputation.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        db.session.commit()
        logger.info("Temporary block on %s expired and was lifted", ip)
