from functools import wraps
from flask import current_app, g, request

from security.engine import get_engine
from security.errors import Unauthorized


def _raw_token_from_request():
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "trustgate_session")
    return request.cookies.get(cookie_name)


def load_current_session():
    """
    Resolves the caller's session from the issued token. A store failure
    propagates (fail closed); a missing or revoked session leaves the
    request anonymous.
    """
    g.session = None
    g.customer_id = None

    raw_token = _raw_token_from_request()
    if not raw_token:
        return

    engine = get_engine()
    sess = engine.sessions.find_by_token(raw_token)
    if sess is None:
        return

    g.session = sess
    g.customer_id = sess.customer_id
    engine.sessions.touch(sess.id)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "session", None) is None:
            raise Unauthorized()
        return fn(*args, **kwargs)
    return wrapper
