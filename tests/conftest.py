"""Shared fixtures: an app on in-memory SQLite, a logged-in client and a seeded profile."""
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from models import Profile, User, db
from services import ProfileStore

PASSWORD = 'secret123'


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SECRET_KEY': 'test',
    })
    yield app


@pytest.fixture
def session(app):
    with app.app_context():
        yield db.session
        db.session.remove()


def make_user(session, username='alice', email=None):
    user = User(
        username=username,
        email=email or f'{username}@example.com',
        password_hash=generate_password_hash(PASSWORD),
    )
    session.add(user)
    session.commit()
    return user


def make_profile(session, user, name='Main', initial_balance='500.00'):
    profile = Profile(user_id=user.id, name=name, initial_balance=Decimal(initial_balance))
    assert ProfileStore(session).save(profile)
    return profile


@pytest.fixture
def user(session):
    return make_user(session)


@pytest.fixture
def profile(session, user):
    return make_profile(session, user)


@pytest.fixture
def client(app, user):
    client = app.test_client()
    response = client.post('/login', data={'username': user.username, 'password': PASSWORD})
    assert response.status_code == 302
    return client
