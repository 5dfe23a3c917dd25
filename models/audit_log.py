from datetime import datetime
from models.db import db


class AuditLog(db.Model):
    """Append-only security event. Rows are never updated, only purged past retention."""

    __tablename__ = "security_audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    event_type = db.Column(db.String(100), nullable=False, index=True)  # e.g. auth.login.failure

    # who performed the action
    actor_type = db.Column(db.String(20), nullable=False)  # customer | admin | system
    actor_id = db.Column(db.String(64), nullable=True, index=True)
    actor_email = db.Column(db.String(255), nullable=True)

    # what was acted upon
    target_type = db.Column(db.String(50), nullable=True)
    target_id = db.Column(db.String(64), nullable=True)

    action = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # success | failure | denied

    ip_address = db.Column(db.String(45), nullable=True, index=True)
    user_agent = db.Column(db.Text, nullable=True)
    session_id = db.Column(db.String(36), nullable=True, index=True)
    request_id = db.Column(db.String(64), nullable=True)

    metadata_json = db.Column(db.JSON, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "event_type": self.event_type,
            "actor_type": self.actor_type,
            "actor_id": self.actor_id,
            "actor_email": self.actor_email,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "action": self.action,
            "status": self.status,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "session_id": self.session_id,
            "request_id": self.request_id,
            "metadata": self.metadata_json,
        }
