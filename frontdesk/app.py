import logging
import os

import click
from flask import Flask, jsonify

from frontdesk.config.settings import Config
from frontdesk.adapters.sqlite.core import close_connection
from frontdesk.common.errors import FrontDeskError

logger = logging.getLogger(__name__)


def _configure_logging(app):
    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    # Werkzeug request lines drown out the queue events
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def create_app(test_config=None, repository=None):
    """
    Build the Flask application.

    ``test_config`` replaces the default Config mapping; ``repository`` lets
    callers supply a PatientRepository wired to a different store.
    """
    app = Flask(__name__)

    # --------- Config ---------
    app.config.from_object(Config)
    if test_config is not None:
        if isinstance(test_config, dict):
            app.config.from_mapping(test_config)
        else:
            app.config.from_object(test_config)

    if not app.config.get('TESTING', False):
        env_name = os.environ.get('FLASK_ENV') or os.environ.get('APP_ENV') or app.config.get('ENV', 'development')
        if str(env_name).lower() == 'production':
            app.config['ENV'] = 'production'
            app.config['DEBUG'] = False
        else:
            app.config['ENV'] = 'development'

    _configure_logging(app)

    # --------- Database teardown ---------
    app.teardown_appcontext(close_connection)

    # --------- Shared visit projection ---------
    from frontdesk.services.patient_repository import init_repository
    init_repository(app, repository)

    # --------- Errors ---------
    @app.errorhandler(FrontDeskError)
    def handle_front_desk_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", error.kind, error.message)
        return jsonify(error.to_dict()), error.status_code

    # --------- CLI ---------
    from frontdesk.adapters.sqlite.core import init_db_command
    from frontdesk.services.auth_service import AuthService

    @app.cli.command("init-db")
    def init_db():
        init_db_command()

    @app.cli.command("create-user")
    @click.argument("username")
    @click.argument("password")
    @click.argument("role", type=click.Choice(["doctor", "receptionist"]), default="receptionist")
    @click.option("--full-name", default=None)
    def create_user(username, password, role, full_name):
        service = AuthService()
        if service.register_user(username, password, role, full_name):
            click.echo(f"User {username} created successfully.")
        else:
            click.echo(f"User {username} already exists.")

    @app.cli.command("today")
    @click.option("--status", default=None, help="Only visits in this status.")
    def today(status):
        """Print today's queue."""
        from frontdesk.services.patient_repository import get_repository
        repo = get_repository()
        repo.refresh()
        visits = repo.by_status(status) if status else repo.today()
        for visit in visits:
            flag = " (offline token)" if visit.is_offline_token else ""
            click.echo(f"{visit.token_number}  {visit.status:<16} {visit.name}{flag}")
        click.echo(f"{len(visits)} visit(s)")

    # --------- Blueprints ---------
    from frontdesk.api.auth import bp as auth_bp
    app.register_blueprint(auth_bp)

    from frontdesk.api.visits import bp as visits_bp
    app.register_blueprint(visits_bp)

    @app.route("/")
    def index():
        return jsonify({"service": "frontdesk", "status": "ok"})

    return app


# Expose a WSGI application callable for production servers (Gunicorn, uWSGI, etc.)
def get_wsgi_app():
    return create_app()


if __name__ == "__main__":
    application = create_app()
    port = int(os.environ.get('PORT', 8080))
    application.run(debug=False, host="0.0.0.0", port=port, use_reloader=False)
