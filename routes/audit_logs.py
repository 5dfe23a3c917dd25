from datetime import datetime

from flask import Blueprint, Response, g, request

from security.engine import get_engine
from security.rate_limit import rate_limited
from security.rbac import require_admin
from utils.audit import AuditLogFilters
from utils.events import ActorType, AuditEvent, EventStatus, SecurityEventType
from utils.params import ParamError, datetime_arg, int_arg
from utils.responses import fail, not_found, ok

audit_bp = Blueprint("audit", __name__, url_prefix="/admin/audit-logs")

_STATUSES = {s.value for s in EventStatus}


@audit_bp.errorhandler(ParamError)
def _bad_param(exc):
    return fail("VALIDATION_ERROR", str(exc), 400)


@audit_bp.before_request
def _api_rate_limit():
    get_engine().limiter.enforce("api")


def _filters_from_args(args, default_limit=50) -> AuditLogFilters:
    event_types = []
    for raw in args.getlist("event_type") + args.getlist("event_types"):
        event_types.extend(t.strip() for t in raw.split(",") if t.strip())

    status = args.get("status")
    if status and status not in _STATUSES:
        raise ParamError(f"status must be one of {sorted(_STATUSES)}")

    return AuditLogFilters(
        actor_id=args.get("actor_id") or None,
        event_types=tuple(event_types),
        status=status or None,
        ip_address=args.get("ip_address") or None,
        session_id=args.get("session_id") or None,
        start_date=datetime_arg(args, "start_date"),
        end_date=datetime_arg(args, "end_date"),
        limit=int_arg(args, "limit", default_limit, 1, 500),
        offset=int_arg(args, "offset", 0, 0),
    )


@audit_bp.get("")
@require_admin
def list_audit_logs():
    filters = _filters_from_args(request.args)
    rows = get_engine().audit.query(filters)
    return ok({
        "logs": [r.to_dict() for r in rows],
        "limit": filters.limit,
        "offset": filters.offset,
    })


@audit_bp.get("/statistics")
@require_admin
def audit_log_statistics():
    return ok(get_engine().audit.get_statistics(_filters_from_args(request.args)))


@audit_bp.get("/export")
@require_admin
@rate_limited("strict")
def export_audit_logs():
    fmt = (request.args.get("format") or "json").lower()
    if fmt not in ("json", "csv"):
        return fail("VALIDATION_ERROR", "format must be json or csv", 400)

    engine = get_engine()
    filters = _filters_from_args(request.args)
    if fmt == "csv":
        body = engine.audit.export_to_csv(filters)
        mimetype = "text/csv"
    else:
        body = engine.audit.export_to_json(filters)
        mimetype = "application/json"

    engine.audit.log_from_request(AuditEvent(
        event_type=SecurityEventType.ADMIN_ACTION,
        actor_type=ActorType.ADMIN,
        actor_id=g.admin_actor,
        target_type="audit_log",
        action="audit_log_export",
        status=EventStatus.SUCCESS,
        metadata={"format": fmt},
    ))

    filename = f"audit-logs-{datetime.utcnow().date().isoformat()}.{fmt}"
    return Response(
        body,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@audit_bp.get("/<int:log_id>")
@require_admin
def get_audit_log(log_id: int):
    row = get_engine().audit.get_by_id(log_id)
    if row is None:
        return not_found("Audit log not found")
    return ok(row.to_dict())
