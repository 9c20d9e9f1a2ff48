import time
import uuid

import click
from flask import Flask, g, jsonify, request
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=flask_app.config.get('CORS_ORIGINS', []))

    from pairplay.mailer import init_mailer
    init_mailer(flask_app)

    prefix = flask_app.config.get('API_PREFIX', '/api/v1')

    from pairplay.main import main
    flask_app.register_blueprint(main, url_prefix=prefix)

    from pairplay.api.partners import partners
    flask_app.register_blueprint(partners, url_prefix=f"{prefix}/partners")

    from pairplay.api.games import games
    flask_app.register_blueprint(games, url_prefix=f"{prefix}/games")

    _register_error_handlers(flask_app)
    _register_request_logging(flask_app)

    # Flask-Login: stateless bearer tokens, no session cookie
    from pairplay.models import User
    from pairplay.services.auth import verify_token

    def _load(user_id):
        try:
            return db.session.get(User, uuid.UUID(str(user_id)))
        except ValueError:
            return None

    @login_manager.user_loader
    def load_user(user_id):
        return _load(user_id)

    @login_manager.request_loader
    def load_user_from_request(req):
        header = req.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer' or not token:
            return None
        claims = verify_token(token.strip())
        if claims is None:
            return None
        return _load(claims[0])

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from pairplay.services.catalog import seed_games
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            added = seed_games()
            click.echo(f'Database has been reset and seeded with {added} game(s)!')

    @click.command('seed-games')
    def seed_games_command():
        """Adds missing catalog games without touching existing rows."""
        from pairplay.services.catalog import seed_games
        with flask_app.app_context():
            click.echo(f'Seeded {seed_games()} game(s)')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_games_command)

    return flask_app


def _register_error_handlers(flask_app):
    from pairplay.errors import PairPlayError

    @flask_app.errorhandler(PairPlayError)
    def handle_domain_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({'error': exc.description or exc.name}), exc.code

    @flask_app.errorhandler(Exception)
    def handle_unexpected(exc):
        db.session.rollback()
        flask_app.logger.exception(f"[recovery] unhandled {exc.__class__.__name__} on {request.method} {request.path}")
        return jsonify({'error': 'Internal server error', 'message': 'An unexpected error occurred'}), 500


def _register_request_logging(flask_app):
    @flask_app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @flask_app.after_request
    def log_request(response):
        started = g.pop('request_started', None)
        elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        flask_app.logger.info(
            f"[request] {request.method} {request.path} -> {response.status_code} ({elapsed_ms:.1f}ms)"
        )
        return response
