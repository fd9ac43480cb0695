import click
from flask import Flask, jsonify

from config import Config
from models import db
from flask_migrate import Migrate
from routes import health_bp, auth_bp, infrastructure_bp, booking_bp, admin_bp, email_actions_bp
from services.errors import BookingError
from services.notifications import EXTENSION_KEY, EmailNotifier
from utils.auth_context import load_current_user
from utils.seed import seed_roles


def create_app(config_object=Config, notifier=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(infrastructure_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(email_actions_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Outbound booking mail; tests swap in a recording notifier
    app.extensions[EXTENSION_KEY] = notifier or EmailNotifier()

    if app.config.get("SEED_ROLES_ON_STARTUP"):
        with app.app_context():
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.http_status >= 500:
            app.logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.http_status

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
from models.user import User, Role
from security.action_tokens import purge_expired_tokens

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Grant the ADMIN role to a registered user."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)

        if admin_role not in user.roles:
            user.roles.append(admin_role)
        db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("purge-action-tokens")
    @click.option("--days", default=30, show_default=True, help="Keep tokens used or expired more recently than this.")
    def purge_action_tokens(days):
        """Delete email-action tokens that can no longer be used."""
        removed = purge_expired_tokens(db.session, older_than_days=days)
        db.session.commit()
        click.echo(f"Removed {removed} email-action token(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
