from datetime import datetime
from models.db import db


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # the only customer state the trust engine mutates
    account_locked = db.Column(db.Boolean, default=False, nullable=False)
    account_locked_at = db.Column(db.DateTime, nullable=True)
    account_locked_reason = db.Column(db.String(255), nullable=True)
    # set when a lock is lifted early (successful login or admin unlock)
    account_unlocked_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
