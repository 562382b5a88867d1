import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_access_token
from database import USERS, ensure_indexes, get_db
from main import app


def bearer(email, **claims):
    token = create_access_token({"email": email, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db():
    database = mongomock.MongoClient()["travelDb"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Insert a user and return auth headers for it."""
    def _make(email, role="tourist", name=None):
        db[USERS].insert_one({"email": email, "name": name or email.split("@")[0], "photoURL": None, "role": role})
        return bearer(email)
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin@x.com", role="admin")
