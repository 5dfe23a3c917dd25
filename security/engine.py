import logging

from flask import current_app

from security.bruteforce import LoginAttemptService
from security.customer_directory import CustomerDirectory
from security.ip_reputation import IpReputationService
from security.policies import (
    AuditRetention,
    LockoutPolicy,
    ReputationPolicy,
    SessionRetention,
    rate_limit_policies_from_config,
)
from security.rate_limit import AdaptiveRateLimiter, FixedWindowCounter
from security.session import SessionManager
from utils.audit import AuditLogRecorder
from utils.background import BackgroundDispatcher

logger = logging.getLogger(__name__)


class TrustEngine:
    """
    Holds the wired services for one app. Policies are read from the
    config only in ``init_app`` and ``reload``.
    """

    def __init__(self, app=None):
        self.dispatcher = BackgroundDispatcher()
        self.customers = CustomerDirectory()
        self.counter = FixedWindowCounter()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.dispatcher.init_app(app)
        self._build(app.config)
        app.extensions["trust_engine"] = self

    def reload(self, config):
        """
        Rebuild every service from ``config`` and swap them in. Requests
        already holding a service keep the old policy until they finish;
        anything resolving the service after this call sees the new one.
        """
        self._build(config)
        logger.info("Trust engine policies reloaded")

    def _build(self, config):
        reputation_policy = ReputationPolicy.from_config(config)

        audit = AuditLogRecorder(AuditRetention.from_config(config), self.dispatcher)
        reputation = IpReputationService(reputation_policy)
        lockout = LoginAttemptService(LockoutPolicy.from_config(config), audit, self.customers)
        sessions = SessionManager(SessionRetention.from_config(config), self.dispatcher)
        limiter = AdaptiveRateLimiter(
            rate_limit_policies_from_config(config),
            reputation,
            self.counter,
            reputation_policy.suspicious_threshold,
            audit,
        )

        self.audit = audit
        self.reputation = reputation
        self.lockout = lockout
        self.sessions = sessions
        self.limiter = limiter


def get_engine() -> TrustEngine:
    return current_app.extensions["trust_engine"]


def reload_policies(app) -> None:
    app.extensions["trust_engine"].reload(app.config)
