import secrets
from functools import wraps
from flask import current_app, g, request

from utils.responses import fail


def _matches(provided, expected) -> bool:
    if not expected or not provided:
        return False
    return secrets.compare_digest(str(provided), str(expected))


def require_admin(fn):
    """
    Usage: @require_admin
    Operators authenticate with the shared X-Admin-Token header; X-Admin-Actor
    names them in the audit trail.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        token = request.headers.get("X-Admin-Token")
        if not _matches(token, current_app.config.get("ADMIN_API_TOKEN")):
            return fail("UNAUTHORIZED", "Admin authentication required", 401)
        g.admin_actor = (request.headers.get("X-Admin-Actor") or "admin")[:64]
        return fn(*args, **kwargs)
    return wrapper


def require_cron_secret(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        secret = request.headers.get("X-Cron-Secret")
        if not _matches(secret, current_app.config.get("CRON_SECRET")):
            return fail("UNAUTHORIZED", "Unauthorized", 401)
        return fn(*args, **kwargs)
    return wrapper
