"""
Test configuration and fixtures for the Squares Pool application.
"""
import pytest
import os
from flask import g, has_app_context
from flask.testing import FlaskClient
from app import create_app, db
from tests.fixtures.factories import UserFactory, PoolFactory

# Set environment variables for testing
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'


class SessionUserClient(FlaskClient):
    """
    Test client whose requests always load the user from its own session cookie.

    Requests made while a test holds an app context share that context's `g`,
    where Flask-Login caches the loaded user.
    """

    def open(self, *args, **kwargs):
        if has_app_context():
            g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')
    app.test_client_class = SessionUserClient

    with app.app_context():
        # Ensure all models are registered with SQLAlchemy
        from app import models

        db.create_all()

        import sqlalchemy as sa
        inspector = sa.inspect(db.engine)
        tables = inspector.get_table_names()
        if 'pools' not in tables:
            raise RuntimeError(f"Database setup failed. Tables created: {tables}")

        yield app

        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def db_session(app):
    """Create database session for testing."""
    with app.app_context():
        yield db.session

        # Clear all tables for clean state between tests
        try:
            for table in reversed(db.metadata.sorted_tables):
                db.session.execute(table.delete())
            db.session.commit()
        except Exception:
            db.session.rollback()
        finally:
            db.session.remove()


@pytest.fixture
def owner(db_session):
    """The user who owns test_pool."""
    return UserFactory.create(name='Olivia Owner', email='owner@example.com')


@pytest.fixture
def player(db_session):
    """A user who plays in pools but owns none."""
    return UserFactory.create(name='Pat Player', email='player@example.com')


@pytest.fixture
def other_player(db_session):
    return UserFactory.create(name='Sam Second', email='second@example.com')


@pytest.fixture
def test_pool(db_session, owner):
    """An open public pool with an empty board."""
    return PoolFactory.create(owner=owner, name='Big Game Pool', max_squares_per_user=5)


@pytest.fixture
def numbered_pool(db_session, owner):
    """
    A numbered pool whose axes are both 0-9 in order, so a score's last
    digits are its winning row and column.
    """
    return PoolFactory.create(owner=owner, name='Numbered Pool', status='numbered', axis=True)


def login_as(client, user):
    with client.session_transaction() as sess:
        sess['_user_id'] = str(user.id)
        sess['_fresh'] = True
    return client


@pytest.fixture
def owner_client(client, owner):
    """Test client logged in as the pool owner."""
    return login_as(client, owner)


@pytest.fixture
def player_client(app, player):
    """A second test client logged in as the player."""
    return login_as(app.test_client(), player)
