import json
import logging

access_logger = logging.getLogger("trustgate.access")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def log_request(method: str, path: str, status: int, duration_ms: float, request_id: str) -> None:
    log_data = {
        "request_id": request_id,
        "method": method,
        "path": path,
        "status": status,
        "duration_ms": duration_ms,
    }
    level = logging.WARNING if status >= 400 else logging.INFO
    access_logger.log(level, json.dumps(log_data))
