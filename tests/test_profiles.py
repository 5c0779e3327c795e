import os

import pytest
from sqlalchemy import update

from portal_app import db
from portal_app.directory import services as directory_services
from portal_app.models import Student

from conftest import PNG_DATA_URL


def make_student(app, slug, full_name, department="Computer Science", intake="Batch 25", **extra):
    with app.app_context():
        student = Student(slug=slug, full_name=full_name, department=department, intake=intake, **extra)
        db.session.add(student)
        db.session.commit()
        return student.id


def test_locked_profile_refuses_self_edit(app, client):
    make_student(app, "jane-doe-1a2b", "Jane Doe", is_locked=True)
    resp = client.get("/api/students/jane-doe-1a2b/edit")
    assert resp.status_code == 403
    error = resp.get_json()["error"]
    assert error["code"] == "profile_locked"
    assert error["message"] == "This profile is secured and cannot be edited. Contact an admin."

    resp = client.post("/api/students/jane-doe-1a2b/edit", json={"bio": "changed"})
    assert resp.status_code == 403
    with app.app_context():
        assert Student.query.filter_by(slug="jane-doe-1a2b").one().bio == ""


def test_self_edit_applies_once_then_relocks(app, client):
    make_student(app, "jane-doe-1a2b", "Jane Doe", is_locked=False)
    assert client.get("/api/students/jane-doe-1a2b/edit").status_code == 200

    resp = client.post("/api/students/jane-doe-1a2b/edit", json={
        "bio": "Updated bio",
        "avatar_url": PNG_DATA_URL,
        "social_links": [{"platform": "github", "url": "https://github.com/jane"}, {"platform": "x", "url": ""}],
    })
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["bio"] == "Updated bio"
    assert data["is_locked"] is True
    assert "/uploads/avatars/" in data["avatar_url"]
    assert data["social_links"] == [{"platform": "github", "url": "https://github.com/jane"}]

    resp = client.post("/api/students/jane-doe-1a2b/edit", json={"bio": "Second try"})
    assert resp.status_code == 403
    with app.app_context():
        assert Student.query.filter_by(slug="jane-doe-1a2b").one().bio == "Updated bio"


def test_self_edit_cannot_touch_moderation_fields(app, client):
    make_student(app, "jane-doe-1a2b", "Jane Doe", is_locked=False)
    resp = client.post("/api/students/jane-doe-1a2b/edit", json={
        "bio": "x", "is_featured": True, "views": 9000, "slug": "hijack", "status": "graduated",
    })
    data = resp.get_json()["data"]
    assert data["slug"] == "jane-doe-1a2b"
    assert data["is_featured"] is False
    assert data["views"] == 0
    assert data["status"] == "active"


def test_toggle_lock_twice_restores_value(app, admin_client):
    student_id = make_student(app, "jane-doe-1a2b", "Jane Doe", is_locked=False)
    first = admin_client.post(f"/api/admin/students/{student_id}/toggle-lock").get_json()["data"]
    assert first["is_locked"] is True
    second = admin_client.post(f"/api/admin/students/{student_id}/toggle-lock").get_json()["data"]
    assert second["is_locked"] is False


def test_toggle_unknown_student(admin_client):
    assert admin_client.post("/api/admin/students/404/toggle-lock").status_code == 404


def test_slug_is_immutable(app):
    make_student(app, "jane-doe-1a2b", "Jane Doe")
    with app.app_context():
        student = Student.query.filter_by(slug="jane-doe-1a2b").one()
        with pytest.raises(ValueError):
            student.slug = "someone-else"


def test_admin_update_ignores_slug(app, admin_client):
    student_id = make_student(app, "jane-doe-1a2b", "Jane Doe")
    resp = admin_client.put(f"/api/admin/students/{student_id}", json={
        "slug": "renamed", "bio": "Edited by staff", "status": "graduated",
    })
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["slug"] == "jane-doe-1a2b"
    assert data["bio"] == "Edited by staff"
    assert data["status"] == "graduated"


def test_profile_views_increment(app, client):
    make_student(app, "jane-doe-1a2b", "Jane Doe")
    assert client.get("/api/students/jane-doe-1a2b").get_json()["data"]["views"] == 1
    assert client.get("/api/students/jane-doe-1a2b").get_json()["data"]["views"] == 2


def test_unknown_profile_is_404(client):
    resp = client.get("/api/students/nobody-0000")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "not_found"


def test_suspended_student_is_hidden(app, admin_client):
    student_id = make_student(app, "jane-doe-1a2b", "Jane Doe")
    resp = admin_client.post(f"/api/admin/students/{student_id}/toggle-status")
    assert resp.get_json()["data"]["status"] == "suspended"
    assert admin_client.get("/api/students/jane-doe-1a2b").status_code == 404
    assert admin_client.get("/api/students").get_json()["data"]["total"] == 0

    resp = admin_client.post(f"/api/admin/students/{student_id}/toggle-status")
    assert resp.get_json()["data"]["status"] == "active"
    assert admin_client.get("/api/students/jane-doe-1a2b").status_code == 200


def test_directory_filters_combine(app, client):
    make_student(app, "ann-lee-0001", "Ann Lee", department="Computer Science", intake="Batch 25")
    make_student(app, "bo-chan-0002", "Bo Chan", department="Physics", intake="Batch 25")
    make_student(app, "cy-park-0003", "Cy Park", department="Computer Science", intake="Fall 2024")

    def names(**query):
        resp = client.get("/api/students", query_string=query)
        return [s["full_name"] for s in resp.get_json()["data"]["items"]]

    assert names() == ["Ann Lee", "Bo Chan", "Cy Park"]
    assert names(department="All") == ["Ann Lee", "Bo Chan", "Cy Park"]
    assert names(department="Computer Science") == ["Ann Lee", "Cy Park"]
    assert names(intake="batch") == ["Ann Lee", "Bo Chan"]
    assert names(department="Computer Science", intake="Batch 25") == ["Ann Lee"]
    assert names(search="PARK") == ["Cy Park"]
    assert names(search="zzz") == []


def test_featured_students_on_home(app, admin_client):
    student_id = make_student(app, "jane-doe-1a2b", "Jane Doe")
    make_student(app, "john-roe-3c4d", "John Roe")
    resp = admin_client.post(f"/api/admin/students/{student_id}/toggle-featured")
    assert resp.get_json()["data"]["is_featured"] is True

    home = admin_client.get("/api/home").get_json()["data"]
    assert [s["slug"] for s in home["featured_students"]] == ["jane-doe-1a2b"]


def test_delete_student(app, admin_client):
    student_id = make_student(app, "jane-doe-1a2b", "Jane Doe")
    assert admin_client.delete(f"/api/admin/students/{student_id}").status_code == 200
    assert admin_client.get("/api/students/jane-doe-1a2b").status_code == 404
    assert admin_client.delete(f"/api/admin/students/{student_id}").status_code == 404


def test_self_edit_rejects_malformed_sub_records(app, client):
    make_student(app, "jane-doe-1a2b", "Jane Doe", is_locked=False)
    for field, value in (
        ("social_links", ["https://github.com/jane"]),
        ("achievements", ["Hackathon winner"]),
        ("courses", "Machine Learning"),
    ):
        resp = client.post("/api/students/jane-doe-1a2b/edit", json={"bio": "changed", field: value})
        assert resp.status_code == 400, field
        assert resp.get_json()["error"]["code"] == "validation_error"

    with app.app_context():
        student = Student.query.filter_by(slug="jane-doe-1a2b").one()
        assert student.bio == ""
        assert student.is_locked is False


def test_lock_taken_after_form_load_wins(app, client, monkeypatch):
    make_student(app, "jane-doe-1a2b", "Jane Doe", is_locked=False)
    real_load = directory_services.load_for_self_edit

    def load_then_lock(slug):
        student = real_load(slug)
        # An operator locks the profile between the form check and the write
        db.session.execute(update(Student).where(Student.id == student.id).values(is_locked=True))
        db.session.commit()
        return student

    monkeypatch.setattr(directory_services, "load_for_self_edit", load_then_lock)
    resp = client.post("/api/students/jane-doe-1a2b/edit", json={"bio": "Too late", "avatar_url": PNG_DATA_URL})
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "profile_locked"

    with app.app_context():
        assert Student.query.filter_by(slug="jane-doe-1a2b").one().bio == ""
    avatars = os.path.join(app.config["UPLOAD_FOLDER"], "avatars")
    assert not os.path.isdir(avatars) or os.listdir(avatars) == []


def test_admin_update_accepts_string_flags(app, admin_client):
    student_id = make_student(app, "jane-doe-1a2b", "Jane Doe", is_locked=True)
    resp = admin_client.put(f"/api/admin/students/{student_id}", json={"is_locked": "false", "is_featured": "true"})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["is_locked"] is False
    assert data["is_featured"] is True

    resp = admin_client.put(
        f"/api/admin/students/{student_id}",
        data={"is_locked": "1", "bio": "From the console form"},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert resp.get_json()["data"]["is_locked"] is True
    assert resp.get_json()["data"]["bio"] == "From the console form"
