import pytest

from portal_app import create_app, db
from portal_app.identity import hash_password
from portal_app.models import TeamMember

TEXT_DATA_URL = "data:text/plain;base64,aGVsbG8="  # "hello"
PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("UPLOAD_FOLDER", str(tmp_path / "uploads"))
    monkeypatch.setenv("CSRF_ENABLED", "false")
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("PUBLIC_UPLOAD_BASE_URL", raising=False)
    app = create_app()
    app.config["TESTING"] = True
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_member(app, username, password="secret-pass", role="super_admin", **extra):
    with app.app_context():
        member = TeamMember(username=username, password_hash=hash_password(password), role=role, **extra)
        db.session.add(member)
        db.session.commit()
        return member.id


@pytest.fixture
def operator(app):
    make_member(app, "admin", full_name="Site Admin", title="Lead Moderator")
    return {"username": "admin", "password": "secret-pass"}


@pytest.fixture
def admin_client(client, operator):
    resp = client.post("/api/admin/login", json=operator)
    assert resp.status_code == 200
    return client


def submit_biography(client, name="Jane Doe", **content):
    payload = {
        "type": "biography",
        "student_name": name,
        "department": "Marine Technology",
        "content": dict({"intake": "Batch 25", "bio": "Hello"}, **content),
    }
    resp = client.post("/api/submissions", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def approve(client, submission_id):
    return client.post(f"/api/admin/submissions/{submission_id}/review", json={"decision": "approved"})
