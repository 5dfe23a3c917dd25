from datetime import datetime
from typing import Optional

from models import db
from models.customer import Customer


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


class CustomerDirectory:
    """Set/clear the locked flag on customer records. Nothing else about customers lives here."""

    def find_by_id(self, customer_id) -> Optional[Customer]:
        if customer_id is None:
            return None
        return db.session.get(Customer, int(customer_id))

    def find_by_email(self, email: str) -> Optional[Customer]:
        return Customer.query.filter_by(email=normalize_email(email)).first()

    def set_locked(self, customer: Customer, reason: str) -> None:
        customer.account_locked = True
        customer.account_locked_at = datetime.utcnow()
        customer.account_locked_reason = reason
        db.session.commit()

    def clear_locked(self, customer: Customer) -> bool:
        """Returns False when the flag was already clear."""
        was_locked = customer.account_locked
        customer.account_locked = False
        customer.account_locked_at = None
        customer.account_locked_reason = None
        customer.account_unlocked_at = datetime.utcnow()
        db.session.commit()
        return was_locked
