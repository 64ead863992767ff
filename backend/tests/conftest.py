import io
import json

import pytest

from app import create_app
from models import db


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "SECRET_KEY": "test-secret",
            "JWT_SECRET_KEY": "test-jwt-secret-key-that-is-long-enough-for-hs256",
            "STATEMENT_AUTO_PROCESS": False,
            "LOG_LEVEL": "WARNING",
        }
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, email="ana@example.com", name="Ana"):
    resp = client.post(
        "/auth/register", json={"name": name, "email": email, "password": "secret123"}
    )
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    return {"Authorization": f"Bearer {body['token']}"}, body


@pytest.fixture
def auth(client):
    headers, _ = register(client)
    return headers


@pytest.fixture
def profiles(client, auth):
    """{"PERSONAL": id, "BUSINESS": id} for the default profiles."""
    body = client.get("/profiles", headers=auth).get_json()
    return {p["type"]: p["id"] for p in body["profiles"]}


def upload(client, headers, content, filename="statement.csv", mapping=None, **form):
    if isinstance(content, str):
        content = content.encode("utf-8")
    data = {"file": (io.BytesIO(content), filename)}
    if mapping is not None:
        data["column_mapping"] = json.dumps(mapping)
    data.update({k: str(v) for k, v in form.items()})
    return client.post(
        "/statements/upload", headers=headers, data=data, content_type="multipart/form-data"
    )


def upload_and_process(client, headers, content, **kwargs):
    resp = upload(client, headers, content, **kwargs)
    assert resp.status_code == 201, resp.get_json()
    sid = resp.get_json()["upload_id"]
    processed = client.post(f"/statements/{sid}/process", headers=headers)
    return sid, processed
