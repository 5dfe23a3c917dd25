from flask import Blueprint, current_app, g, jsonify

from security.engine import get_engine
from utils.auth_context import login_required
from utils.events import ActorType, AuditEvent, EventStatus, SecurityEventType
from utils.responses import fail, ok

sessions_bp = Blueprint("sessions", __name__, url_prefix="/auth/sessions")


def _revoked_event(session_id, scope, count=None):
    metadata = {"scope": scope}
    if count is not None:
        metadata["count"] = count
    return AuditEvent(
        event_type=SecurityEventType.AUTH_SESSION_REVOKED,
        actor_type=ActorType.CUSTOMER,
        actor_id=str(g.customer_id),
        target_type="session",
        target_id=session_id,
        action="session_revoke",
        status=EventStatus.SUCCESS,
        metadata=metadata,
    )


@sessions_bp.get("")
@login_required
def list_sessions():
    current_id = g.session.id
    sessions = get_engine().sessions.get_active_sessions(g.customer_id)
    return ok({
        "sessions": [dict(s.to_dict(), is_current=s.id == current_id) for s in sessions],
        "current_session_id": current_id,
    })


@sessions_bp.delete("/<session_id>")
@login_required
def revoke_session(session_id):
    engine = get_engine()
    owned = {s.id for s in engine.sessions.get_active_sessions(g.customer_id)}
    if session_id not in owned:
        return fail("NOT_FOUND", "Session not found or already revoked", 404)

    engine.sessions.revoke_session(session_id, "user_action")
    engine.audit.log_from_request(_revoked_event(session_id, "single"))
    return ok({"message": "Session revoked successfully"})


@sessions_bp.post("/logout-others")
@login_required
def logout_others():
    engine = get_engine()
    count = engine.sessions.revoke_other_sessions(g.customer_id, g.session.id)
    engine.audit.log_from_request(_revoked_event(None, "others", count))
    return ok({"message": f"{count} session(s) logged out successfully", "count": count})


@sessions_bp.post("/logout-all")
@login_required
def logout_all():
    engine = get_engine()
    count = engine.sessions.revoke_all_sessions(g.customer_id)
    engine.audit.log_from_request(_revoked_event(None, "all", count))

    resp = jsonify(success=True, data={"message": f"All {count} session(s) logged out successfully", "count": count})
    resp.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "trustgate_session"), path="/")
    return resp, 200
