from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class SecurityEventType(str, Enum):
    # Authentication
    AUTH_LOGIN_SUCCESS = "auth.login.success"
    AUTH_LOGIN_FAILURE = "auth.login.failure"
    AUTH_LOGIN_LOCKED = "auth.login.locked"
    AUTH_LOGOUT = "auth.logout"
    AUTH_SESSION_CREATED = "auth.session.created"
    AUTH_SESSION_REVOKED = "auth.session.revoked"

    # Password
    PASSWORD_CHANGED = "password.changed"
    PASSWORD_RESET_REQUESTED = "password.reset.requested"
    PASSWORD_RESET_COMPLETED = "password.reset.completed"
    PASSWORD_BREACH_DETECTED = "password.breach.detected"
    PASSWORD_REUSE_BLOCKED = "password.reuse.blocked"

    # Account management
    ACCOUNT_CREATED = "account.created"
    ACCOUNT_VERIFIED = "account.verified"
    ACCOUNT_LOCKED = "account.locked"
    ACCOUNT_UNLOCKED = "account.unlocked"
    ACCOUNT_DISABLED = "account.disabled"
    EMAIL_CHANGED = "email.changed"
    EMAIL_VERIFICATION_SENT = "email.verification.sent"

    # Authorization
    PERMISSION_DENIED = "permission.denied"
    ADMIN_ACCESS_GRANTED = "admin.access.granted"
    ADMIN_ACTION = "admin.action.performed"

    # Abuse
    RATE_LIMIT_EXCEEDED = "rate_limit.exceeded"
    SUSPICIOUS_ACTIVITY = "suspicious_activity.detected"


class ActorType(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


class EventStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


@dataclass(frozen=True)
class AuditEvent:
    event_type: SecurityEventType
    actor_type: ActorType
    action: str
    status: EventStatus
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
