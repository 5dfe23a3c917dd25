from flask import jsonify


def ok(data=None, status: int = 200):
    return jsonify(success=True, data=data), status


def fail(code: str, message: str, status: int, details=None):
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return jsonify(success=False, error=error), status


def not_found(message: str = "Resource not found"):
    return fail("NOT_FOUND", message, 404)
