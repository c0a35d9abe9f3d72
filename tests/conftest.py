import pytest

from tagshelf import create_app
from tagshelf.config import TestConfig
from tagshelf.extensions import db
from tagshelf.models import User


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(app):
    with app.app_context():
        row = User(username="importer", is_active=True)
        row.set_password("secret")
        db.session.add(row)
        db.session.commit()
        return {"id": row.id, "username": "importer", "password": "secret"}


@pytest.fixture
def auth(client, user):
    response = client.post(
        "/api/v1/auth/token",
        json={"username": user["username"], "password": user["password"]},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.get_json()['token']}"}
