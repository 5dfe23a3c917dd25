import uuid
from datetime import datetime
from models.db import db


def _new_session_id():
    return str(uuid.uuid4())


class Session(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.String(36), primary_key=True, default=_new_session_id)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)

    # store only hashed token in DB (never store raw token)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    device_name = db.Column(db.String(100), nullable=True)
    device_type = db.Column(db.String(50), nullable=True)  # desktop | mobile | tablet
    device_browser = db.Column(db.String(50), nullable=True)
    browser_version = db.Column(db.String(50), nullable=True)
    os_name = db.Column(db.String(50), nullable=True)
    os_version = db.Column(db.String(50), nullable=True)

    ip_address = db.Column(db.String(45), nullable=False)
    ip_country = db.Column(db.String(100), nullable=True)
    ip_city = db.Column(db.String(100), nullable=True)
    ip_latitude = db.Column(db.Numeric(10, 8), nullable=True)
    ip_longitude = db.Column(db.Numeric(11, 8), nullable=True)

    user_agent = db.Column(db.Text, nullable=False, default="")

    login_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_activity_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    revoked_at = db.Column(db.DateTime, nullable=True)
    revoke_reason = db.Column(db.String(100), nullable=True)  # user_action | security | admin_action

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "device_name": self.device_name or "Unknown Device",
            "device_type": self.device_type or "desktop",
            "device_browser": self.device_browser or "",
            "browser_version": self.browser_version or "",
            "os_name": self.os_name or "",
            "os_version": self.os_version or "",
            "ip_address": self.ip_address,
            "ip_city": self.ip_city,
            "ip_country": self.ip_country,
            "login_at": self.login_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "is_active": self.is_active,
        }
