from datetime import timedelta

from flask import Flask
from config import Config
from routes import health_bp, auth_bp, admin_bp

from models import db
from flask_migrate import Migrate
from jobs.cleanup import CleanupScheduler
from security.credentials import CredentialIssuer
from security.oauth_state import OAuthStateManager
from security.otp import OtpLedger
from utils.auth_context import load_current_claims
from utils.clock import utcnow
from utils.logger import configure_logging
from utils.notifications import build_gateway


def create_app(config_object=Config, *, gateway=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logger = configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FILE"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    init_identity(app, gateway=gateway, clock=clock or utcnow)

    @app.before_request
    def _load_claims():
        load_current_claims()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    scheduler = app.extensions["cleanup_scheduler"]
    if app.config.get("CLEANUP_SCHEDULER_ENABLED") and not app.testing:
        scheduler.start()

    logger.info("Identity service ready (notifications: %s)", type(app.extensions["notification_gateway"]).__name__)
    return app


def init_identity(app, *, gateway=None, clock=utcnow):
    """Builds the identity components once and hangs them off app.extensions."""
    cfg = app.config

    gateway = gateway or build_gateway(cfg)

    otp_ledger = OtpLedger(
        gateway,
        ttl_minutes=cfg["OTP_TTL_MINUTES"],
        max_attempts=cfg["OTP_MAX_ATTEMPTS"],
        code_length=cfg["OTP_LENGTH"],
        hash_rounds=cfg["OTP_HASH_ROUNDS"],
        send_limits=cfg["OTP_SEND_LIMITS"],
        country_code=cfg["PHONE_COUNTRY_CODE"],
        leading_digits=cfg["PHONE_MOBILE_LEADING_DIGITS"],
        clock=clock,
    )
    oauth_states = OAuthStateManager(ttl_minutes=cfg["OAUTH_STATE_TTL_MINUTES"], clock=clock)
    credentials = CredentialIssuer(
        cfg["SESSION_SIGNING_SECRET"],
        lifetime=timedelta(days=cfg["SESSION_LIFETIME_DAYS"]),
        algorithm=cfg["SESSION_TOKEN_ALGORITHM"],
        clock=clock,
    )
    scheduler = CleanupScheduler(
        app,
        oauth_states,
        otp_ledger=otp_ledger,
        interval_seconds=cfg["CLEANUP_INTERVAL_SECONDS"],
    )

    app.extensions["notification_gateway"] = gateway
    app.extensions["otp_ledger"] = otp_ledger
    app.extensions["oauth_states"] = oauth_states
    app.extensions["credentials"] = credentials
    app.extensions["cleanup_scheduler"] = scheduler

#-------------------------
import click
from models.user import User
from security import phone
from security.otp import normalize_email
from utils.roles import DEFAULT_ROLE, normalize_role

def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--phone", "phone_number", default=None, help="Mobile number, any common spelling.")
    @click.option("--role", default=DEFAULT_ROLE, show_default=True)
    @click.option("--name", "full_name", default=None)
    def create_user(email, phone_number, role, full_name):
        """Create a user that can log in with an OTP."""
        email = normalize_email(email)
        role_name = normalize_role(role)
        if not role_name:
            raise click.BadParameter(f"Unknown role {role!r}", param_hint="--role")

        canonical_phone = None
        if phone_number:
            cc = app.config["PHONE_COUNTRY_CODE"]
            if not phone.is_valid_mobile(phone_number, cc, app.config["PHONE_MOBILE_LEADING_DIGITS"]):
                raise click.BadParameter("Invalid mobile number", param_hint="--phone")
            canonical_phone = phone.normalize(phone_number, cc)

        if User.query.filter_by(email=email).first():
            click.echo("User already exists")
            return

        db.session.add(User(email=email, phone_number=canonical_phone, role=role_name, full_name=full_name))
        db.session.commit()
        click.echo(f"{email} created with role {role_name}")

    @app.cli.command("set-role")
    @click.argument("email")
    @click.argument("role")
    def set_role(email, role):
        """Change a user's role (e.g. bootstrap the first ADMIN)."""
        user = User.query.filter_by(email=normalize_email(email)).first()
        if not user:
            click.echo("User not found")
            return

        role_name = normalize_role(role)
        if not role_name:
            raise click.BadParameter(f"Unknown role {role!r}", param_hint="role")

        user.role = role_name
        db.session.commit()
        click.echo(f"{user.email} is now {role_name}")

    @app.cli.command("cleanup-expired")
    def cleanup_expired():
        """Run one sweep of expired OAuth states and OTP records."""
        counts = app.extensions["cleanup_scheduler"].run_once()
        click.echo(f"Removed {counts['oauth_states']} OAuth state(s), {counts['otp_records']} OTP record(s)")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
