import ipaddress
import uuid
from dataclasses import dataclass
from typing import Optional

from flask import g, has_request_context, request


@dataclass(frozen=True)
class RequestContext:
    """Snapshot of the ambient request values, safe to hand to a worker thread."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    session_id: Optional[str] = None


def _parse_ip(value) -> Optional[str]:
    try:
        return str(ipaddress.ip_address((value or "").strip()))
    except ValueError:
        return None


def client_ip() -> str:
    # first hop of the proxy chain is the client; anything that is not an address is ignored
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = _parse_ip(forwarded.split(",")[0])
    if first:
        return first
    return _parse_ip(request.remote_addr) or "unknown"


def user_agent() -> Optional[str]:
    return request.headers.get("User-Agent") or None


def request_id() -> str:
    rid = getattr(g, "request_id", None)
    if not rid:
        rid = (request.headers.get("X-Request-ID") or "").strip()[:64] or str(uuid.uuid4())
        g.request_id = rid
    return rid


def current_session_id() -> Optional[str]:
    sess = getattr(g, "session", None)
    return sess.id if sess is not None else None


def capture() -> RequestContext:
    if not has_request_context():
        return RequestContext()
    return RequestContext(
        ip_address=client_ip(),
        user_agent=user_agent(),
        request_id=request_id(),
        session_id=current_session_id(),
    )
