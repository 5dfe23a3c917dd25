import secrets

from flask import Blueprint, current_app, g, jsonify, request

from security.bruteforce import AttemptDevice, format_remaining_time
from security.customer_directory import normalize_email
from security.device import parse_user_agent
from security.engine import get_engine
from security.errors import AccountLocked, IpBlocked
from security.password import verify_password
from security.rate_limit import rate_limited
from utils.auth_context import login_required
from utils.events import ActorType, AuditEvent, EventStatus, SecurityEventType
from utils.request_context import capture
from utils.responses import fail, ok

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _login_event(event_type, status, email, customer_id=None, session_id=None, **metadata):
    return AuditEvent(
        event_type=event_type,
        actor_type=ActorType.CUSTOMER,
        actor_id=str(customer_id) if customer_id is not None else None,
        actor_email=email,
        action="login",
        status=status,
        session_id=session_id,
        metadata=metadata,
    )


@auth_bp.post("/login")
@rate_limited("auth")
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    if not _is_valid_email(email) or not password:
        return fail("VALIDATION_ERROR", "Email and password are required", 400)

    engine = get_engine()
    ctx = capture()

    if engine.reputation.is_blocked(ctx.ip_address):
        raise IpBlocked()

    status = engine.lockout.check_lockout_status(email)
    if status.is_locked:
        engine.audit.log_from_request(
            _login_event(
                SecurityEventType.AUTH_LOGIN_LOCKED, EventStatus.DENIED, email,
                remaining_seconds=status.remaining_seconds,
            ),
            ctx,
        )
        raise AccountLocked(
            f"Account temporarily locked. Try again in {format_remaining_time(status.remaining_time)}.",
            retry_after=status.remaining_seconds,
        )

    device = parse_user_agent(ctx.user_agent)
    attempt_device = AttemptDevice(
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
        device_type=device.device_type,
        device_browser=device.browser,
    )
    reputation_meta = {"user_agent": ctx.user_agent}

    customer = engine.customers.find_by_email(email)
    if customer is None or not verify_password(password, customer.password_hash):
        attempt = engine.lockout.record_attempt(
            email,
            False,
            customer.id if customer else None,
            "invalid_credentials",
            attempt_device,
        )
        engine.reputation.track_ip(ctx.ip_address, "login", False, reputation_meta)
        engine.audit.log_from_request(
            _login_event(
                SecurityEventType.AUTH_LOGIN_FAILURE, EventStatus.FAILURE, email,
                customer_id=customer.id if customer else None,
                consecutive_failures=attempt.consecutive_failures,
                triggered_lockout=attempt.triggered_lockout,
            ),
            ctx,
        )
        if attempt.triggered_lockout:
            duration = engine.lockout.policy.lockout_duration
            raise AccountLocked(
                f"Too many failed attempts. Account locked for {format_remaining_time(duration)}.",
                retry_after=int(duration.total_seconds()),
            )
        return fail("INVALID_CREDENTIALS", "Invalid email or password", 401)

    engine.lockout.record_attempt(email, True, customer.id, None, attempt_device)
    engine.reputation.track_ip(ctx.ip_address, "login", True, reputation_meta)

    session_id = engine.sessions.create_session(customer.id, ctx.user_agent or "", ctx.ip_address)
    raw_token = secrets.token_urlsafe(32)
    engine.sessions.set_token_hash(session_id, raw_token)

    engine.audit.log_from_request(
        _login_event(
            SecurityEventType.AUTH_LOGIN_SUCCESS, EventStatus.SUCCESS, email,
            customer_id=customer.id, session_id=session_id,
        ),
        ctx,
    )

    resp = jsonify(success=True, data={"session_id": session_id, "token": raw_token})
    resp.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "trustgate_session"),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return ok({
        "customer_id": g.customer_id,
        "session": g.session.to_dict(),
    })


@auth_bp.post("/logout")
@login_required
def logout():
    engine = get_engine()
    engine.sessions.revoke_session(g.session.id, "user_action")
    engine.audit.log_from_request(AuditEvent(
        event_type=SecurityEventType.AUTH_LOGOUT,
        actor_type=ActorType.CUSTOMER,
        actor_id=str(g.customer_id),
        action="logout",
        status=EventStatus.SUCCESS,
    ))

    resp = jsonify(success=True, data={"message": "Logged out"})
    resp.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "trustgate_session"), path="/")
    return resp, 200
