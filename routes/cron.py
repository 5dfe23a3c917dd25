import logging
from datetime import datetime

from flask import Blueprint

from security.rate_limit import rate_limited
from security.rbac import require_cron_secret
from utils.responses import fail, ok
from utils.scheduler import CLEANUP_JOBS

logger = logging.getLogger(__name__)

cron_bp = Blueprint("cron", __name__, url_prefix="/cron")


def _run(name):
    started = datetime.utcnow()
    try:
        result = CLEANUP_JOBS[name]()
    except Exception:
        logger.exception("Cron-triggered %s cleanup failed", name)
        return fail("JOB_FAILED", f"{name} cleanup failed", 500)

    duration_ms = int((datetime.utcnow() - started).total_seconds() * 1000)
    logger.info("Cron-triggered %s cleanup completed in %sms: %s", name, duration_ms, result)
    return ok({"job": name, "result": result, "duration_ms": duration_ms})


@cron_bp.post("/ip-reputation")
@require_cron_secret
@rate_limited("strict")
def cron_ip_reputation():
    return _run("ip-reputation")


@cron_bp.post("/sessions")
@require_cron_secret
@rate_limited("strict")
def cron_sessions():
    return _run("sessions")


@cron_bp.post("/audit-logs")
@require_cron_secret
@rate_limited("strict")
def cron_audit_logs():
    return _run("audit-logs")


@cron_bp.get("/health")
def cron_health():
    return ok({"status": "ok", "jobs": sorted(CLEANUP_JOBS)})
