import os
import sys
import pytest

# Ensure the backend root (containing the `pairplay` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from pairplay import create_app, db


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    ENVIRONMENT = 'testing'
    EMAIL_PROVIDER = 'console'
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:5173']


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    # Client requests reuse the fixture's app context (and its `g`); drop
    # Flask-Login's cached user so each request authenticates on its own.
    @application.before_request
    def _reset_login_cache():
        from flask import g
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import pairplay.models  # noqa: F401
        from pairplay.services.catalog import seed_games
        db.create_all()
        seed_games()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def login(client, flask_app):
    """Sign in through the email-code flow and return auth headers plus the user."""
    def _login(email):
        res = client.post('/api/v1/auth/request-otp', json={'email': email})
        assert res.status_code == 200
        code = flask_app.extensions['mailer'].last_code_for(email.strip().lower())
        res = client.post('/api/v1/auth/verify-otp', json={'email': email, 'otp': code})
        assert res.status_code == 200
        body = res.get_json()
        return {'Authorization': f"Bearer {body['token']}"}, body['user']
    return _login


@pytest.fixture()
def partnered(client, login):
    """Alice and Bob, partnered. Alice sent the request."""
    alice_headers, alice = login('alice@example.com')
    bob_headers, bob = login('bob@example.com')
    req = client.post('/api/v1/partners/request', json={'email': 'bob@example.com'}, headers=alice_headers)
    assert req.status_code == 201
    res = client.post(f"/api/v1/partners/accept/{req.get_json()['id']}", headers=bob_headers)
    assert res.status_code == 201
    return {
        'alice': (alice_headers, alice),
        'bob': (bob_headers, bob),
    }
