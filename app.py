import time

from flask import Flask, g, request
from config import Config
from routes import health_bp, auth_bp, sessions_bp, admin_bp, audit_bp, cron_bp

from models import db
from flask_migrate import Migrate
from security.engine import TrustEngine
from security.errors import SecurityError
from utils.auth_context import load_current_session
from utils.log_setup import log_request, setup_logging
from utils.request_context import request_id
from utils.responses import fail

RATE_LIMIT_EXEMPT_PATHS = {
    "/health",
    "/cron/health",
}


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    setup_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    engine = TrustEngine(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(cron_bp)

    @app.before_request
    def _start_request():
        # g lives on the app context, which a caller may share across requests
        g.pop("request_id", None)
        g.pop("rate_limit", None)
        g.request_started = time.perf_counter()
        request_id()

    @app.before_request
    def _rate_limit():
        if request.path in RATE_LIMIT_EXEMPT_PATHS:
            return None
        engine.limiter.enforce("default")

    @app.before_request
    def _load_session():
        load_current_session()

    @app.errorhandler(SecurityError)
    def _security_error(exc):
        resp, status = fail(exc.code, exc.message, exc.status)
        retry_after = getattr(exc, "retry_after", None)
        if retry_after:
            resp.headers["Retry-After"] = str(retry_after)
        return resp, status

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    @app.after_request
    def _request_headers(resp):
        resp.headers["X-Request-ID"] = request_id()
        decision = getattr(g, "rate_limit", None)
        if decision is not None:
            for name, value in decision.headers().items():
                resp.headers.setdefault(name, value)

        started = getattr(g, "request_started", None)
        if started is not None:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            log_request(request.method, request.path, resp.status_code, duration_ms, request_id())
        return resp

    register_cli(app)

    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        from utils.scheduler import start_scheduler
        app.extensions["cleanup_scheduler"] = start_scheduler(app)

    return app

#-------------------------
import click
from models.customer import Customer
from security.customer_directory import normalize_email
from security.password import hash_password
from utils.scheduler import CLEANUP_JOBS


def register_cli(app):
    @app.cli.command("cleanup")
    @click.argument("job", type=click.Choice(sorted(CLEANUP_JOBS) + ["all"]), default="all")
    def cleanup(job):
        """Run one cleanup job (or all of them) right now."""
        names = sorted(CLEANUP_JOBS) if job == "all" else [job]
        for name in names:
            result = CLEANUP_JOBS[name]()
            click.echo(f"{name}: {result}")

    @app.cli.command("unlock-account")
    @click.argument("email")
    def unlock_account(email):
        """Lift a brute-force lock on a customer by email."""
        customer = Customer.query.filter_by(email=normalize_email(email)).first()
        if not customer:
            click.echo("Customer not found")
            return
        app.extensions["trust_engine"].lockout.unlock_account(customer.id, actor_id="cli")
        click.echo(f"{customer.email} unlocked")

    @app.cli.command("block-ip")
    @click.argument("ip")
    @click.option("--reason", required=True)
    @click.option("--hours", type=float, default=None, help="Block duration; permanent when omitted.")
    def block_ip(ip, reason, hours):
        record = app.extensions["trust_engine"].reputation.block_ip(ip, reason, hours)
        until = record.blocked_until.isoformat() if record.blocked_until else "permanent"
        click.echo(f"{ip} blocked until {until}")

    @app.cli.command("unblock-ip")
    @click.argument("ip")
    def unblock_ip(ip):
        if app.extensions["trust_engine"].reputation.unblock_ip(ip):
            click.echo(f"{ip} unblocked")
        else:
            click.echo("IP not found")

    @app.cli.command("create-customer")
    @click.argument("email")
    @click.password_option()
    def create_customer(email, password):
        """Bootstrap a customer account for local testing."""
        email = normalize_email(email)
        if Customer.query.filter_by(email=email).first():
            click.echo("Customer already exists")
            return
        customer = Customer(email=email, password_hash=hash_password(password))
        db.session.add(customer)
        db.session.commit()
        click.echo(f"Customer {customer.email} created (id={customer.id})")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
