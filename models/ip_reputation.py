from datetime import datetime
from models.db import db


class IpReputation(db.Model):
    __tablename__ = "ip_reputation"

    id = db.Column(db.Integer, primary_key=True)
    ip_address = db.Column(db.String(45), unique=True, nullable=False, index=True)

    # 0-100, lower = worse; recomputed from the counters on every tracked action
    reputation_score = db.Column(db.Integer, default=100, nullable=False, index=True)

    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    successful_logins = db.Column(db.Integer, default=0, nullable=False)
    rate_limit_violations = db.Column(db.Integer, default=0, nullable=False)
    abuse_reports = db.Column(db.Integer, default=0, nullable=False)

    is_blocked = db.Column(db.Boolean, default=False, nullable=False, index=True)
    block_reason = db.Column(db.String(255), nullable=True)
    blocked_at = db.Column(db.DateTime, nullable=True)
    blocked_until = db.Column(db.DateTime, nullable=True)  # NULL = permanent

    last_recovered_at = db.Column(db.DateTime, nullable=True)

    user_agent = db.Column(db.Text, nullable=True)
    country = db.Column(db.String(100), nullable=True)

    first_seen_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "ip_address": self.ip_address,
            "reputation_score": self.reputation_score,
            "failed_login_attempts": self.failed_login_attempts,
            "successful_logins": self.successful_logins,
            "rate_limit_violations": self.rate_limit_violations,
            "abuse_reports": self.abuse_reports,
            "is_blocked": self.is_blocked,
            "block_reason": self.block_reason,
            "blocked_at": self.blocked_at.isoformat() if self.blocked_at else None,
            "blocked_until": self.blocked_until.isoformat() if self.blocked_until else None,
            "country": self.country,
            "first_seen_at": self.first_seen_at.isoformat() if self.first_seen_at else None,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
        }
