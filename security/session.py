import hashlib
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.session import Session
from security.device import parse_user_agent
from security.errors import TransientStoreFailure

logger = logging.getLogger(__name__)

REVOKE_REASONS = ("user_action", "security", "admin_action")
PENDING_TOKEN_PREFIX = "pending:"


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _check_reason(reason: str) -> str:
    if reason not in REVOKE_REASONS:
        raise ValueError(f"Unknown revoke reason: {reason!r}")
    return reason


class SessionManager:
    def __init__(self, retention, dispatcher):
        self.retention = retention
        self.dispatcher = dispatcher

    def create_session(self, customer_id, user_agent: str, ip_address: str, geo: Optional[dict] = None) -> str:
        """
        Creates the session row and returns its id for embedding into the
        issued credential. The token hash is attached afterwards with
        ``set_token_hash``; until then the row holds a unique placeholder.
        """
        device = parse_user_agent(user_agent)
        geo = geo or {}
        now = datetime.utcnow()

        row = Session(
            customer_id=customer_id,
            token_hash=f"{PENDING_TOKEN_PREFIX}{uuid.uuid4().hex}",
            device_name=device.device_name,
            device_type=device.device_type,
            device_browser=device.browser,
            browser_version=device.browser_version,
            os_name=device.os,
            os_version=device.os_version,
            ip_address=ip_address or "unknown",
            ip_country=geo.get("country"),
            ip_city=geo.get("city"),
            ip_latitude=geo.get("latitude"),
            ip_longitude=geo.get("longitude"),
            user_agent=user_agent or "",
            login_at=now,
            last_activity_at=now,
            created_at=now,
        )
        db.session.add(row)
        db.session.commit()

        logger.info(
            "Session %s created for customer %s (%s, ip=%s)",
            row.id, customer_id, device.device_name, ip_address,
        )
        return row.id

    def set_token_hash(self, session_id: str, raw_token: str) -> bool:
        """Only the hash of the issued token is persisted."""
        updated = (
            Session.query
            .filter_by(id=session_id)
            .update({Session.token_hash: hash_token(raw_token)}, synchronize_session=False)
        )
        db.session.commit()
        return bool(updated)

    def validate_session(self, session_id: str) -> Optional[Session]:
        if not session_id:
            return None
        try:
            return Session.query.filter_by(id=session_id, is_active=True).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Session validation failed for %s", session_id)
            raise TransientStoreFailure() from exc

    def find_by_token(self, raw_token: str) -> Optional[Session]:
        if not raw_token:
            return None
        try:
            return Session.query.filter_by(token_hash=hash_token(raw_token), is_active=True).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Session lookup by token failed")
            raise TransientStoreFailure() from exc

    def update_activity(self, session_id: str) -> None:
        """Best effort: failures are logged, never propagated."""
        try:
            Session.query.filter_by(id=session_id).update(
                {Session.last_activity_at: datetime.utcnow()},
                synchronize_session=False,
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.warning("Failed to update activity for session %s", session_id, exc_info=True)

    def touch(self, session_id: str) -> None:
        self.dispatcher.submit(self.update_activity, session_id)

    def get_active_sessions(self, customer_id) -> List[Session]:
        return (
            Session.query
            .filter_by(customer_id=customer_id, is_active=True)
            .order_by(Session.last_activity_at.desc())
            .all()
        )

    def revoke_session(self, session_id: str, reason: str = "user_action") -> bool:
        _check_reason(reason)
        updated = (
            Session.query
            .filter_by(id=session_id, is_active=True)
            .update(
                {
                    Session.is_active: False,
                    Session.revoked_at: datetime.utcnow(),
                    Session.revoke_reason: reason,
                },
                synchronize_session=False,
            )
        )
        db.session.commit()
        if updated:
            logger.info("Session %s revoked (%s)", session_id, reason)
        return bool(updated)

    def revoke_other_sessions(self, customer_id, except_session_id: str, reason: str = "user_action") -> int:
        _check_reason(reason)
        if not except_session_id:
            raise ValueError("except_session_id is required")
        count = (
            Session.query
            .filter(
                Session.customer_id == customer_id,
                Session.is_active.is_(True),
                Session.id != except_session_id,
            )
            .update(
                {
                    Session.is_active: False,
                    Session.revoked_at: datetime.utcnow(),
                    Session.revoke_reason: reason,
                },
                synchronize_session=False,
            )
        )
        db.session.commit()
        logger.info("Revoked %s other session(s) for customer %s", count, customer_id)
        return count

    def revoke_all_sessions(self, customer_id, reason: str = "user_action") -> int:
        _check_reason(reason)
        count = (
            Session.query
            .filter(Session.customer_id == customer_id, Session.is_active.is_(True))
            .update(
                {
                    Session.is_active: False,
                    Session.revoked_at: datetime.utcnow(),
                    Session.revoke_reason: reason,
                },
                synchronize_session=False,
            )
        )
        db.session.commit()
        logger.info("Revoked all %s session(s) for customer %s", count, customer_id)
        return count

    def cleanup_sessions(self) -> int:
        """
        Deletes rows matching any retention rule:
          - revoked more than ``revoked_days`` ago
          - inactive with no activity for ``inactive_days``
          - created more than ``max_age_days`` ago
        """
        now = datetime.utcnow()
        revoked_cutoff = now - timedelta(days=self.retention.revoked_days)
        inactive_cutoff = now - timedelta(days=self.retention.inactive_days)
        age_cutoff = now - timedelta(days=self.retention.max_age_days)

        try:
            count = (
                Session.query
                .filter(or_(
                    and_(Session.is_active.is_(False), Session.revoked_at < revoked_cutoff),
                    and_(Session.is_active.is_(False), Session.last_activity_at < inactive_cutoff),
                    Session.created_at < age_cutoff,
                ))
                .delete(synchronize_session=False)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Session cleanup failed")
            raise

        logger.info("Sessions cleaned up: deleted=%s", count)
        return count
