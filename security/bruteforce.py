"""
Login attempt ledger and account lockout.

Lockout is never stored as a flag of its own: it is projected from the
attempt ledger (the newest lockout-triggering row) and the time the lock
was last lifted early. The projections below are pure functions so they
can be replayed over any slice of history.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from math import ceil
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.login_attempt import LoginAttempt
from security.customer_directory import normalize_email
from security.errors import TransientStoreFailure
from utils.events import ActorType, AuditEvent, EventStatus, SecurityEventType

logger = logging.getLogger(__name__)

LOCK_REASON = "Too many failed login attempts"

# upper bound on ledger rows scanned per email when counting a failure run
HISTORY_SCAN_LIMIT = 100


@dataclass(frozen=True)
class AttemptDevice:
    ip_address: str
    user_agent: Optional[str] = None
    device_type: Optional[str] = None
    device_browser: Optional[str] = None
    ip_country: Optional[str] = None
    ip_city: Optional[str] = None


@dataclass(frozen=True)
class LockoutStatus:
    is_locked: bool
    consecutive_failures: int
    lockout_end_time: Optional[datetime] = None
    remaining_time: Optional[timedelta] = None

    @property
    def remaining_seconds(self) -> int:
        if not self.remaining_time:
            return 0
        return max(1, ceil(self.remaining_time.total_seconds()))


def count_consecutive_failures(attempts: Iterable) -> int:
    """Failures at the head of a newest-first attempt sequence, up to the first success."""
    failures = 0
    for attempt in attempts:
        if attempt.success:
            break
        failures += 1
    return failures


def derive_lockout_status(lockout_at, failures_at_lockout, cleared_at, now, policy) -> LockoutStatus:
    if lockout_at is None:
        return LockoutStatus(is_locked=False, consecutive_failures=0)

    if cleared_at is not None and cleared_at >= lockout_at:
        return LockoutStatus(is_locked=False, consecutive_failures=0)

    lockout_end = lockout_at + policy.lockout_duration
    if now >= lockout_end:
        return LockoutStatus(is_locked=False, consecutive_failures=0)

    return LockoutStatus(
        is_locked=True,
        consecutive_failures=failures_at_lockout,
        lockout_end_time=lockout_end,
        remaining_time=lockout_end - now,
    )


def format_remaining_time(remaining) -> str:
    seconds = remaining.total_seconds() if isinstance(remaining, timedelta) else float(remaining)
    minutes = max(1, ceil(seconds / 60))
    if minutes == 1:
        return "1 minute"
    return f"{minutes} minutes"


class LoginAttemptService:
    def __init__(self, policy, audit, customers):
        self.policy = policy
        self.audit = audit
        self.customers = customers

    def record_attempt(
        self,
        email: str,
        success: bool,
        customer_id=None,
        failure_reason: Optional[str] = None,
        device: Optional[AttemptDevice] = None,
    ) -> LoginAttempt:
        email = normalize_email(email)
        device = device or AttemptDevice(ip_address="unknown")

        try:
            now = datetime.utcnow()
            consecutive = 0 if success else self._recent_failures(email, now) + 1
            triggered = (not success) and consecutive >= self.policy.max_attempts

            row = LoginAttempt(
                customer_id=customer_id,
                email=email,
                success=success,
                failure_reason=None if success else failure_reason,
                ip_address=device.ip_address,
                user_agent=(device.user_agent or "")[:500] or None,
                device_type=device.device_type,
                device_browser=device.device_browser,
                ip_country=device.ip_country,
                ip_city=device.ip_city,
                consecutive_failures=consecutive,
                triggered_lockout=triggered,
                attempted_at=now,
            )
            db.session.add(row)
            db.session.commit()

            if triggered and customer_id is not None:
                self._lock_account(customer_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to record login attempt for %s", email)
            raise TransientStoreFailure() from exc

        if success:
            self.clear_failed_attempts(email)
        return row

    def get_recent_failures(self, email: str) -> int:
        try:
            return self._recent_failures(normalize_email(email), datetime.utcnow())
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise TransientStoreFailure() from exc

    def check_lockout_status(self, email: str) -> LockoutStatus:
        email = normalize_email(email)
        try:
            now = datetime.utcnow()
            last_lockout = (
                LoginAttempt.query
                .filter_by(email=email, triggered_lockout=True)
                .order_by(LoginAttempt.attempted_at.desc(), LoginAttempt.id.desc())
                .first()
            )
            if last_lockout is None:
                return LockoutStatus(
                    is_locked=False,
                    consecutive_failures=self._recent_failures(email, now),
                )

            return derive_lockout_status(
                last_lockout.attempted_at,
                last_lockout.consecutive_failures,
                self._cleared_at(email),
                now,
                self.policy,
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to check lockout status for %s", email)
            raise TransientStoreFailure() from exc

    def clear_failed_attempts(self, email: str) -> bool:
        """
        Called after a successful login. Lifts the customer's locked flag if
        set; ledger rows stay as the audit trail.
        """
        try:
            customer = self.customers.find_by_email(email)
            if customer is None or not customer.account_locked:
                return False
            self.customers.clear_locked(customer)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise TransientStoreFailure() from exc

        logger.info("Lock cleared for customer %s after successful login", customer.id)
        return True

    def unlock_account(self, customer_id, actor_id: Optional[str] = None) -> bool:
        try:
            customer = self.customers.find_by_id(customer_id)
            if customer is None:
                return False
            self.customers.clear_locked(customer)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise TransientStoreFailure() from exc

        logger.info("Customer %s unlocked by %s", customer_id, actor_id or "admin")
        self.audit.log_from_request(AuditEvent(
            event_type=SecurityEventType.ACCOUNT_UNLOCKED,
            actor_type=ActorType.ADMIN,
            actor_id=actor_id,
            target_type="customer",
            target_id=str(customer_id),
            action="account_unlock",
            status=EventStatus.SUCCESS,
            metadata={"method": "admin_action"},
        ))
        return True

    def get_attempt_history(self, customer_id, limit: int = 50) -> List[LoginAttempt]:
        return (
            LoginAttempt.query
            .filter_by(customer_id=customer_id)
            .order_by(LoginAttempt.attempted_at.desc(), LoginAttempt.id.desc())
            .limit(limit)
            .all()
        )

    def _recent_failures(self, email: str, now: datetime) -> int:
        window_start = now - self.policy.attempt_window
        customer = self.customers.find_by_email(email)
        if customer is not None and customer.account_unlocked_at and customer.account_unlocked_at > window_start:
            # an admin unlock starts a fresh count
            window_start = customer.account_unlocked_at

        attempts = (
            LoginAttempt.query
            .filter(LoginAttempt.email == email, LoginAttempt.attempted_at >= window_start)
            .order_by(LoginAttempt.attempted_at.desc(), LoginAttempt.id.desc())
            .limit(HISTORY_SCAN_LIMIT)
            .all()
        )
        return count_consecutive_failures(attempts)

    def _cleared_at(self, email: str) -> Optional[datetime]:
        last_success = (
            LoginAttempt.query
            .filter_by(email=email, success=True)
            .order_by(LoginAttempt.attempted_at.desc())
            .first()
        )
        customer = self.customers.find_by_email(email)
        candidates = [
            last_success.attempted_at if last_success else None,
            customer.account_unlocked_at if customer else None,
        ]
        candidates = [c for c in candidates if c is not None]
        return max(candidates) if candidates else None

    def _lock_account(self, customer_id) -> None:
        customer = self.customers.find_by_id(customer_id)
        if customer is None:
            logger.warning("Lockout triggered for unknown customer %s", customer_id)
            return

        self.customers.set_locked(customer, LOCK_REASON)
        logger.warning("Customer %s locked after %s consecutive failures", customer_id, self.policy.max_attempts)

        self.audit.emit(AuditEvent(
            event_type=SecurityEventType.ACCOUNT_LOCKED,
            actor_type=ActorType.SYSTEM,
            actor_id=str(customer_id),
            actor_email=customer.email,
            action="account_lockout",
            status=EventStatus.SUCCESS,
            metadata={
                "reason": "too_many_failed_attempts",
                "lockout_duration": f"{int(self.policy.lockout_duration.total_seconds() // 60)}_minutes",
            },
        ))
