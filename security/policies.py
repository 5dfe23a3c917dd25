"""
Explicit per-component settings, built from the Flask config once at
startup (and again on reload) and handed to each service constructor.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=15)
    attempt_window: timedelta = timedelta(minutes=30)

    @classmethod
    def from_config(cls, config):
        return cls(
            max_attempts=config.get("MAX_LOGIN_ATTEMPTS", 5),
            lockout_duration=timedelta(minutes=config.get("LOCKOUT_MINUTES", 15)),
            attempt_window=timedelta(minutes=config.get("ATTEMPT_WINDOW_MINUTES", 30)),
        )


@dataclass(frozen=True)
class ReputationPolicy:
    block_threshold: int = 20
    suspicious_threshold: int = 50
    recovery_points: int = 10
    recovery_interval: timedelta = timedelta(hours=20)

    @classmethod
    def from_config(cls, config):
        return cls(
            block_threshold=config.get("REPUTATION_BLOCK_THRESHOLD", 20),
            suspicious_threshold=config.get("REPUTATION_SUSPICIOUS_THRESHOLD", 50),
            recovery_points=config.get("REPUTATION_RECOVERY_POINTS", 10),
            recovery_interval=timedelta(hours=config.get("REPUTATION_RECOVERY_INTERVAL_HOURS", 20)),
        )


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    window_seconds: int
    max_requests: int
    suspicious_max: Optional[int] = None
    message: str = "Too many requests, please try again later"

    @property
    def suspicious_limit(self) -> int:
        if self.suspicious_max:
            return self.suspicious_max
        return max(1, self.max_requests // 2)

    def limit_for(self, score: Optional[int], suspicious_threshold: int) -> int:
        if score is not None and score < suspicious_threshold:
            return self.suspicious_limit
        return self.max_requests


@dataclass(frozen=True)
class SessionRetention:
    revoked_days: int = 30
    inactive_days: int = 7
    max_age_days: int = 90

    @classmethod
    def from_config(cls, config):
        return cls(
            revoked_days=config.get("SESSION_REVOKED_RETENTION_DAYS", 30),
            inactive_days=config.get("SESSION_INACTIVE_RETENTION_DAYS", 7),
            max_age_days=config.get("SESSION_MAX_AGE_DAYS", 90),
        )


@dataclass(frozen=True)
class AuditRetention:
    retention_days: int = 90
    export_max_rows: int = 10000

    @classmethod
    def from_config(cls, config):
        return cls(
            retention_days=config.get("AUDIT_RETENTION_DAYS", 90),
            export_max_rows=config.get("AUDIT_EXPORT_MAX_ROWS", 10000),
        )


def rate_limit_policies_from_config(config) -> Dict[str, RateLimitPolicy]:
    return {
        "default": RateLimitPolicy(
            name="default",
            window_seconds=config.get("RATE_LIMIT_WINDOW_SECONDS", 60),
            max_requests=config.get("RATE_LIMIT_MAX_REQUESTS", 100),
            suspicious_max=config.get("RATE_LIMIT_SUSPICIOUS_MAX") or None,
        ),
        "auth": RateLimitPolicy(
            name="auth",
            window_seconds=config.get("AUTH_RATE_WINDOW_SECONDS", 900),
            max_requests=config.get("AUTH_RATE_MAX_REQUESTS", 5),
            suspicious_max=config.get("AUTH_RATE_SUSPICIOUS_MAX") or None,
            message="Too many authentication attempts, please try again later",
        ),
        "api": RateLimitPolicy(
            name="api",
            window_seconds=config.get("API_RATE_WINDOW_SECONDS", 60),
            max_requests=config.get("API_RATE_MAX_REQUESTS", 30),
            suspicious_max=config.get("API_RATE_SUSPICIOUS_MAX") or None,
            message="Too many API requests, please try again later",
        ),
        "strict": RateLimitPolicy(
            name="strict",
            window_seconds=config.get("STRICT_RATE_WINDOW_SECONDS", 60),
            max_requests=config.get("STRICT_RATE_MAX_REQUESTS", 10),
            suspicious_max=config.get("STRICT_RATE_SUSPICIOUS_MAX") or None,
            message="Too many requests for this operation, please try again later",
        ),
    }
