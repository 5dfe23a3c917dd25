from datetime import datetime
from flask import Blueprint

from utils.responses import ok

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return ok({"status": "ok", "timestamp": datetime.utcnow().isoformat() + "Z"})
