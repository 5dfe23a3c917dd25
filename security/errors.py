from typing import Optional


class SecurityError(Exception):
    status = 400
    code = "SECURITY_ERROR"
    message = "Request rejected"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class Unauthorized(SecurityError):
    status = 401
    code = "UNAUTHORIZED"
    message = "Authentication required"


class IpBlocked(SecurityError):
    status = 403
    code = "IP_BLOCKED"
    message = (
        "Your IP address has been blocked due to suspicious activity. "
        "Please contact support if you believe this is an error."
    )


class AccountLocked(SecurityError):
    status = 423
    code = "ACCOUNT_LOCKED"
    message = "Account temporarily locked. Try again later."

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class TooManyRequests(SecurityError):
    status = 429
    code = "TOO_MANY_REQUESTS"
    message = "Too many requests, please try again later"

    def __init__(self, message: Optional[str] = None, decision=None):
        super().__init__(message)
        self.decision = decision

    @property
    def retry_after(self) -> Optional[int]:
        return self.decision.retry_after if self.decision is not None else None


class TransientStoreFailure(SecurityError):
    status = 503
    code = "STORE_UNAVAILABLE"
    message = "Service temporarily unavailable, please retry"
