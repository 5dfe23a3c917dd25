from flask import Blueprint, g, request

from models import db
from models.session import Session
from security.engine import get_engine
from security.rate_limit import rate_limited
from security.rbac import require_admin
from utils.events import ActorType, AuditEvent, EventStatus, SecurityEventType
from utils.params import ParamError, bool_arg, int_arg
from utils.responses import fail, not_found, ok

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _admin_event(action, target_type, target_id, **metadata):
    return AuditEvent(
        event_type=SecurityEventType.ADMIN_ACTION,
        actor_type=ActorType.ADMIN,
        actor_id=g.admin_actor,
        target_type=target_type,
        target_id=str(target_id),
        action=action,
        status=EventStatus.SUCCESS,
        metadata=metadata,
    )


@admin_bp.errorhandler(ParamError)
def _bad_param(exc):
    return fail("VALIDATION_ERROR", str(exc), 400)


@admin_bp.before_request
def _api_rate_limit():
    get_engine().limiter.enforce("api")


# IP reputation


@admin_bp.get("/ip-reputation")
@require_admin
def list_ip_reputation():
    rows = get_engine().reputation.query(
        is_blocked=bool_arg(request.args, "is_blocked"),
        min_score=int_arg(request.args, "min_score", None, 0, 100),
        max_score=int_arg(request.args, "max_score", None, 0, 100),
        limit=int_arg(request.args, "limit", 50, 1, 500),
        offset=int_arg(request.args, "offset", 0, 0),
    )
    return ok([r.to_dict() for r in rows])


@admin_bp.get("/ip-reputation/statistics")
@require_admin
def ip_reputation_statistics():
    return ok(get_engine().reputation.get_statistics())


@admin_bp.get("/ip-reputation/<ip>")
@require_admin
def get_ip_reputation(ip):
    return ok(get_engine().reputation.get_reputation(ip).to_dict())


@admin_bp.post("/ip-reputation/<ip>/block")
@require_admin
@rate_limited("strict")
def block_ip(ip):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()
    duration_hours = data.get("duration_hours")

    if not reason:
        return fail("VALIDATION_ERROR", "reason is required", 400)
    if duration_hours is not None:
        if not isinstance(duration_hours, (int, float)) or isinstance(duration_hours, bool) or duration_hours <= 0:
            return fail("VALIDATION_ERROR", "duration_hours must be a positive number", 400)

    engine = get_engine()
    record = engine.reputation.block_ip(ip, reason, duration_hours)
    engine.audit.log_from_request(_admin_event("ip_block", "ip", ip, reason=reason, duration_hours=duration_hours))
    return ok(record.to_dict())


@admin_bp.post("/ip-reputation/<ip>/unblock")
@require_admin
@rate_limited("strict")
def unblock_ip(ip):
    engine = get_engine()
    if not engine.reputation.unblock_ip(ip):
        return not_found("IP not found")
    engine.audit.log_from_request(_admin_event("ip_unblock", "ip", ip))
    return ok({"message": f"{ip} unblocked"})


# Customers


@admin_bp.post("/customers/<int:customer_id>/unlock")
@require_admin
@rate_limited("strict")
def unlock_customer(customer_id: int):
    if not get_engine().lockout.unlock_account(customer_id, actor_id=g.admin_actor):
        return not_found("Customer not found")
    return ok({"message": "Account unlocked"})


@admin_bp.get("/customers/<int:customer_id>/login-attempts")
@require_admin
def customer_login_attempts(customer_id: int):
    limit = int_arg(request.args, "limit", 50, 1, 500)
    attempts = get_engine().lockout.get_attempt_history(customer_id, limit)
    return ok([a.to_dict() for a in attempts])


@admin_bp.get("/customers/<int:customer_id>/sessions")
@require_admin
def customer_sessions(customer_id: int):
    sessions = get_engine().sessions.get_active_sessions(customer_id)
    return ok([s.to_dict() for s in sessions])


@admin_bp.delete("/sessions/<session_id>")
@require_admin
@rate_limited("strict")
def revoke_customer_session(session_id):
    engine = get_engine()
    if not engine.sessions.revoke_session(session_id, "admin_action"):
        return not_found("Session not found or already revoked")

    sess = db.session.get(Session, session_id)
    engine.audit.log_from_request(AuditEvent(
        event_type=SecurityEventType.AUTH_SESSION_REVOKED,
        actor_type=ActorType.ADMIN,
        actor_id=g.admin_actor,
        target_type="session",
        target_id=session_id,
        action="session_revoke",
        status=EventStatus.SUCCESS,
        metadata={"customer_id": sess.customer_id if sess else None, "reason": "admin_action"},
    ))
    return ok({"message": "Session revoked successfully"})
