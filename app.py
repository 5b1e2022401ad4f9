from dataclasses import replace

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import IntegrityError

from config import Config
from routes import health_bp, auth_bp, users_bp, issues_bp, audit_bp

from models import db
from models.user import User, ROLE_OFFICER
from security.account_store import SqlAccountRepository
from security.errors import StorageError
from security.password import hash_password
from security.password_policy import validate_password
from utils.auth_context import load_current_user
from utils.clock import utcnow
from utils.validation import is_valid_email, normalize_email


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(issues_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Clock used by the login lockout; tests swap it for a fixed one
    app.extensions.setdefault("login_clock", utcnow)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(StorageError)
    def _storage_error(exc):
        db.session.rollback()
        app.logger.exception("Storage failure: %s", exc)
        return jsonify(error="Service temporarily unavailable"), 503

    @app.errorhandler(404)
    def _not_found(exc):
        return jsonify(error="Not found"), 404

    @app.errorhandler(405)
    def _method_not_allowed(exc):
        return jsonify(error="Method not allowed"), 405

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("add-officer")
    @click.argument("username")
    @click.argument("email")
    @click.argument("name")
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--officer-id", default=None)
    @click.option("--department", default=None)
    @click.option("--designation", default=None)
    @click.option("--verified/--unverified", default=True, help="Bootstrap officers are verified by default.")
    def add_officer(username, email, name, password, officer_id, department, designation, verified):
        """Create an officer account (bootstrap for the first officer)."""
        email = normalize_email(email)
        if not is_valid_email(email):
            raise click.ClickException("Invalid email")
        valid, errors = validate_password(password)
        if not valid:
            raise click.ClickException("; ".join(errors))

        user = User(
            username=username.strip(),
            email=email,
            name=name.strip(),
            password_hash=hash_password(password, rounds=app.config.get("BCRYPT_ROUNDS", 12)),
            role=ROLE_OFFICER,
            officer_id=officer_id,
            department=department,
            designation=designation,
            is_verified=verified,
            verified_at=utcnow() if verified else None,
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise click.ClickException("Username, email or officer id already exists")

        click.echo(f"Officer {user.username} created ({'verified' if verified else 'unverified'})")

    @app.cli.command("verify-officer")
    @click.argument("username")
    def verify_officer(username):
        """Mark an officer account as verified."""
        user = User.query.filter_by(username=username.strip()).first()
        if not user or user.role != ROLE_OFFICER:
            raise click.ClickException("Officer not found")
        if user.is_verified:
            click.echo(f"{user.username} is already verified")
            return

        user.is_verified = True
        user.verified_at = utcnow()
        db.session.commit()
        click.echo(f"{user.username} verified")

    @app.cli.command("unlock-account")
    @click.argument("username")
    def unlock_account(username):
        """Clear failed-login counters and any active lock."""
        repo = SqlAccountRepository(active_only=False)
        account = repo.load(username.strip())
        if account is None:
            raise click.ClickException("User not found")

        repo.save(replace(account, failed_attempts=0, locked_until=None))
        click.echo(f"{account.username} unlocked")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5000)
