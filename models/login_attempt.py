from datetime import datetime
from models.db import db


class LoginAttempt(db.Model):
    """One row per attempt. The ledger is never updated; lockout is derived from it."""

    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=True, index=True)

    email = db.Column(db.String(255), nullable=False, index=True)
    success = db.Column(db.Boolean, nullable=False)
    failure_reason = db.Column(db.String(100), nullable=True)  # invalid_credentials | account_locked | ...

    ip_address = db.Column(db.String(45), nullable=False)
    user_agent = db.Column(db.String(500), nullable=True)
    device_type = db.Column(db.String(50), nullable=True)
    device_browser = db.Column(db.String(50), nullable=True)
    ip_country = db.Column(db.String(100), nullable=True)
    ip_city = db.Column(db.String(100), nullable=True)

    consecutive_failures = db.Column(db.Integer, default=0, nullable=False)
    triggered_lockout = db.Column(db.Boolean, default=False, nullable=False)

    attempted_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "email": self.email,
            "success": self.success,
            "failure_reason": self.failure_reason,
            "ip_address": self.ip_address,
            "device_type": self.device_type,
            "device_browser": self.device_browser,
            "consecutive_failures": self.consecutive_failures,
            "triggered_lockout": self.triggered_lockout,
            "attempted_at": self.attempted_at.isoformat(),
        }
