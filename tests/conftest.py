import os

# must be set before the app (and its engine) is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

import db
import models  # noqa: F401
from main import app

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fresh_database():
    SQLModel.metadata.drop_all(db.engine)
    SQLModel.metadata.create_all(db.engine)
    yield


@pytest.fixture
def session():
    with Session(db.engine) as s:
        yield s


@pytest.fixture
def make_client():
    clients = []

    def _make() -> TestClient:
        client = TestClient(app)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def signup():
    """Sign a client up (and in) through the JSON endpoint."""

    def _signup(client, email, role, full_name="Test User", phone=None, address=None):
        r = client.post(
            "/auth/signup",
            json={
                "email": email,
                "password": PASSWORD,
                "confirm_password": PASSWORD,
                "full_name": full_name,
                "role": role,
                "phone": phone,
                "address": address,
            },
        )
        assert r.status_code == 200, r.text
        return client.get("/me").json()

    return _signup


@pytest.fixture
def donor_client(make_client, signup):
    client = make_client()
    client.profile = signup(client, "alice@bookshare.org", "donor", "Alice Donor", phone="555-0100")
    return client


@pytest.fixture
def receiver_client(make_client, signup):
    client = make_client()
    client.profile = signup(client, "bob@bookshare.org", "receiver", "Bob Reader")
    return client


@pytest.fixture
def add_book():
    def _add(client, title="Intro to Algorithms", author="Cormen", **extra):
        r = client.post("/books/", json={"title": title, "author": author, **extra})
        assert r.status_code == 201, r.text
        return r.json()

    return _add
