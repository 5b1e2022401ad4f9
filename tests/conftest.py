from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db as _db
from models.user import User, ROLE_CITIZEN, ROLE_OFFICER
from security.password import hash_password
from security.tokens import create_access_token

PASSWORD = "Correct-Horse-9"


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 1, 9, 0, 0))


@pytest.fixture
def app(clock):
    app = create_app(TestingConfig)
    app.extensions["login_clock"] = clock
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(username=None, role=ROLE_CITIZEN, verified=None, password=PASSWORD, **fields):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            username=username,
            password_hash=hash_password(password, rounds=4),
            name=fields.pop("name", username.title()),
            email=fields.pop("email", f"{username}@example.org"),
            role=role,
            is_verified=(role == ROLE_CITIZEN) if verified is None else verified,
            **fields,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture
def citizen(make_user):
    return make_user("citizen1")


@pytest.fixture
def officer(make_user):
    return make_user("officer1", role=ROLE_OFFICER, verified=True, officer_id="OFF-001")


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def reload(model, pk):
    _db.session.expire_all()
    return _db.session.get(model, pk)
