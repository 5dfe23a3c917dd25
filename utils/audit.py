import csv
import io
import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import func

from models import db
from models.audit_log import AuditLog
from utils.events import AuditEvent, EventStatus
from utils.request_context import RequestContext, capture

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "ID",
    "Timestamp",
    "Event Type",
    "Actor Type",
    "Actor ID",
    "Actor Email",
    "Target Type",
    "Target ID",
    "Action",
    "Status",
    "IP Address",
    "User Agent",
    "Session ID",
    "Request ID",
    "Metadata",
]


@dataclass(frozen=True)
class AuditLogFilters:
    actor_id: Optional[str] = None
    event_types: Sequence[str] = ()
    status: Optional[str] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = 50
    offset: int = 0


def _value(enum_or_str):
    return getattr(enum_or_str, "value", enum_or_str)


def _safe_rollback():
    try:
        db.session.rollback()
    except Exception:
        logger.exception("Rollback after failed audit write also failed")


class AuditLogRecorder:
    """
    Append-only security audit log.

    ``log`` is a no-fail operation: a storage error is logged locally and
    swallowed so that auditing can never block the security decision that
    produced the event. Request handlers use ``emit`` / ``log_from_request``,
    which hand the write to the background dispatcher.
    """

    def __init__(self, retention, dispatcher):
        self.retention = retention
        self.dispatcher = dispatcher

    def log(self, event: AuditEvent) -> None:
        try:
            row = AuditLog(
                timestamp=datetime.utcnow(),
                event_type=_value(event.event_type),
                actor_type=_value(event.actor_type),
                actor_id=str(event.actor_id) if event.actor_id is not None else None,
                actor_email=event.actor_email,
                target_type=event.target_type,
                target_id=str(event.target_id) if event.target_id is not None else None,
                action=event.action,
                status=_value(event.status),
                ip_address=event.ip_address,
                user_agent=event.user_agent,
                session_id=event.session_id,
                request_id=event.request_id,
                metadata_json=event.metadata or None,
            )
            db.session.add(row)
            db.session.commit()
        except Exception:
            _safe_rollback()
            logger.exception(
                "Failed to write audit log (event_type=%s action=%s actor_id=%s)",
                _value(event.event_type), event.action, event.actor_id,
            )

    def emit(self, event: AuditEvent) -> None:
        self.dispatcher.submit(self.log, event)

    def log_from_request(self, event: AuditEvent, ctx: Optional[RequestContext] = None) -> None:
        ctx = ctx or capture()
        self.emit(replace(
            event,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            session_id=event.session_id or ctx.session_id,
            request_id=ctx.request_id,
        ))

    def _filtered(self, filters: AuditLogFilters):
        q = AuditLog.query
        if filters.actor_id:
            q = q.filter(AuditLog.actor_id == str(filters.actor_id))
        if filters.event_types:
            q = q.filter(AuditLog.event_type.in_([_value(t) for t in filters.event_types]))
        if filters.status:
            q = q.filter(AuditLog.status == _value(filters.status))
        if filters.ip_address:
            q = q.filter(AuditLog.ip_address == filters.ip_address)
        if filters.session_id:
            q = q.filter(AuditLog.session_id == filters.session_id)
        if filters.start_date:
            q = q.filter(AuditLog.timestamp >= filters.start_date)
        if filters.end_date:
            q = q.filter(AuditLog.timestamp <= filters.end_date)
        return q

    def query(self, filters: AuditLogFilters) -> List[AuditLog]:
        return (
            self._filtered(filters)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(filters.limit)
            .offset(filters.offset)
            .all()
        )

    def get_by_id(self, log_id: int) -> Optional[AuditLog]:
        return db.session.get(AuditLog, log_id)

    def _export_rows(self, filters: AuditLogFilters) -> List[AuditLog]:
        return self.query(replace(filters, limit=self.retention.export_max_rows, offset=0))

    def export_to_json(self, filters: AuditLogFilters) -> str:
        return json.dumps([row.to_dict() for row in self._export_rows(filters)], indent=2)

    def export_to_csv(self, filters: AuditLogFilters) -> str:
        rows = self._export_rows(filters)
        if not rows:
            return "No logs found"

        buf = io.StringIO()
        # QUOTE_MINIMAL quotes any value holding a comma, quote or newline and doubles quotes
        writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for row in rows:
            writer.writerow([
                row.id,
                row.timestamp.isoformat(),
                row.event_type,
                row.actor_type,
                row.actor_id or "",
                row.actor_email or "",
                row.target_type or "",
                row.target_id or "",
                row.action,
                row.status,
                row.ip_address or "",
                row.user_agent or "",
                row.session_id or "",
                row.request_id or "",
                json.dumps(row.metadata_json) if row.metadata_json else "",
            ])
        return buf.getvalue().rstrip("\n")

    def get_statistics(self, filters: Optional[AuditLogFilters] = None) -> dict:
        filters = filters or AuditLogFilters()

        by_status = dict(
            self._filtered(filters)
            .with_entities(AuditLog.status, func.count(AuditLog.id))
            .group_by(AuditLog.status)
            .all()
        )
        by_event_type = dict(
            self._filtered(filters)
            .with_entities(AuditLog.event_type, func.count(AuditLog.id))
            .group_by(AuditLog.event_type)
            .all()
        )

        return {
            "total_logs": sum(by_status.values()),
            "success_count": by_status.get(EventStatus.SUCCESS.value, 0),
            "failure_count": by_status.get(EventStatus.FAILURE.value, 0),
            "denied_count": by_status.get(EventStatus.DENIED.value, 0),
            "event_type_counts": by_event_type,
        }

    def cleanup(self) -> int:
        """Purge entries past the retention window. Safe to run on every replica."""
        cutoff = datetime.utcnow() - timedelta(days=self.retention.retention_days)
        try:
            deleted = (
                AuditLog.query
                .filter(AuditLog.timestamp < cutoff)
                .delete(synchronize_session=False)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Failed to clean up audit logs")
            raise

        logger.info("Audit log cleanup completed: deleted=%s cutoff=%s", deleted, cutoff.isoformat())
        return deleted
