from .db import db
from .customer import Customer
from .audit_log import AuditLog
from .ip_reputation import IpReputation
from .login_attempt import LoginAttempt
from .session import Session
from .ip_rate_limit import IpRateLimit
