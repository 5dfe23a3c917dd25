"""
Cleanup jobs for the trust engine.

Each job is idempotent and holds no lock, so every replica may run its own
timer. Jobs are independent of each other.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from security.engine import get_engine

logger = logging.getLogger(__name__)


def cleanup_ip_reputation() -> dict:
    return get_engine().reputation.cleanup_expired_blocks()


def cleanup_sessions() -> dict:
    return {"deleted_count": get_engine().sessions.cleanup_sessions()}


def cleanup_audit_logs() -> dict:
    return {"deleted_count": get_engine().audit.cleanup()}


CLEANUP_JOBS = {
    "ip-reputation": cleanup_ip_reputation,
    "sessions": cleanup_sessions,
    "audit-logs": cleanup_audit_logs,
}


def _build_job_specs():
    # all times UTC
    return [
        {"id": "ip-reputation", "trigger": "cron", "trigger_kwargs": {"hour": 3, "minute": 0}},
        {"id": "sessions", "trigger": "cron", "trigger_kwargs": {"hour": 3, "minute": 30}},
        {"id": "audit-logs", "trigger": "cron", "trigger_kwargs": {"hour": 4, "minute": 0}},
    ]


def run_job(app, name: str):
    """Scheduler entry point: a failed run is logged and waits for the next tick."""
    with app.app_context():
        try:
            logger.info("Starting %s cleanup job", name)
            result = CLEANUP_JOBS[name]()
            logger.info("%s cleanup job completed: %s", name, result)
            return result
        except Exception:
            logger.exception("%s cleanup job failed", name)
            return None


def start_scheduler(app) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    for spec in _build_job_specs():
        scheduler.add_job(
            run_job,
            spec["trigger"],
            args=[app, spec["id"]],
            id=spec["id"],
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            **spec["trigger_kwargs"],
        )
    scheduler.start()
    logger.info("Cleanup scheduler started with %s jobs", len(scheduler.get_jobs()))
    return scheduler
