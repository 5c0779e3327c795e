import os

from portal_app import db
from portal_app.models import Student, Submission, Resource

from conftest import PNG_DATA_URL, TEXT_DATA_URL, submit_biography, approve


def _stored_files(app):
    root = app.config["UPLOAD_FOLDER"]
    found = []
    for dirpath, _dirs, files in os.walk(root):
        found.extend(os.path.join(dirpath, f) for f in files)
    return found


def test_submission_starts_pending(client):
    sub = submit_biography(client)
    assert sub["status"] == "pending"
    assert sub["type"] == "biography"
    assert sub["content"]["intake"] == "Batch 25"


def test_submission_requires_name_and_department(client):
    resp = client.post("/api/submissions", json={"type": "biography", "student_name": "", "department": "CS"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "validation_error"

    resp = client.post("/api/submissions", json={"type": "poem", "student_name": "A", "department": "CS"})
    assert resp.status_code == 400


def test_resource_submission_requires_file(client):
    resp = client.post("/api/submissions", json={
        "type": "resource", "student_name": "Jane Doe", "department": "CS",
        "content": {"title": "Notes"},
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"]["message"] == "Please upload a file"


def test_approving_biography_creates_locked_student(app, admin_client):
    sub = submit_biography(admin_client)
    resp = approve(admin_client, sub["id"])
    assert resp.status_code == 200
    body = resp.get_json()["data"]
    assert body["submission"]["status"] == "approved"
    student = body["created"]
    assert student["slug"].startswith("jane-doe-")
    assert student["intake"] == "Batch 25"
    assert student["is_locked"] is True
    assert student["is_featured"] is False
    assert student["status"] == "active"
    assert student["views"] == 0

    with app.app_context():
        assert Student.query.count() == 1


def test_approval_without_intake_uses_default(app, admin_client):
    resp = admin_client.post("/api/submissions", json={
        "type": "biography", "student_name": "John Roe", "department": "Physics", "content": {},
    })
    sub_id = resp.get_json()["data"]["id"]
    created = approve(admin_client, sub_id).get_json()["data"]["created"]
    assert created["intake"] == app.config["DEFAULT_INTAKE"]


def test_rejecting_only_changes_status(app, admin_client):
    sub = submit_biography(admin_client)
    resp = admin_client.post(f"/api/admin/submissions/{sub['id']}/review", json={"decision": "rejected"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["created"] is None
    with app.app_context():
        assert Student.query.count() == 0
        assert db.session.get(Submission, sub["id"]).status == "rejected"


def test_second_review_is_refused(app, admin_client):
    sub = submit_biography(admin_client)
    assert approve(admin_client, sub["id"]).status_code == 200
    resp = approve(admin_client, sub["id"])
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "already_reviewed"
    with app.app_context():
        assert Student.query.count() == 1


def test_review_unknown_submission(admin_client):
    assert approve(admin_client, 999).status_code == 404


def test_review_rejects_unknown_decision(admin_client):
    sub = submit_biography(admin_client)
    resp = admin_client.post(f"/api/admin/submissions/{sub['id']}/review", json={"decision": "maybe"})
    assert resp.status_code == 400


def test_review_requires_login(client):
    sub = submit_biography(client)
    resp = approve(client, sub["id"])
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "unauthorized"


def test_nested_files_are_replaced_by_references(client):
    sub = submit_biography(
        client,
        avatar_url=PNG_DATA_URL,
        gallery_images=[PNG_DATA_URL, "https://cdn.example.com/kept.png"],
        courses=[{"name": "ML", "certificate_url": TEXT_DATA_URL}],
        achievements=[{"title": "Hackathon", "attachment_url": TEXT_DATA_URL}],
    )
    content = sub["content"]
    assert "/uploads/avatars/" in content["avatar_url"]
    assert "/uploads/gallery/" in content["gallery_images"][0]
    assert content["gallery_images"][1] == "https://cdn.example.com/kept.png"
    assert "/uploads/certificates/" in content["courses"][0]["certificate_url"]
    assert "/uploads/achievements/" in content["achievements"][0]["attachment_url"]

    resp = client.get(content["courses"][0]["certificate_url"])
    assert resp.status_code == 200
    assert resp.data == b"hello"


def test_failed_upload_leaves_no_row_and_no_files(app, client):
    resp = client.post("/api/submissions", json={
        "type": "biography", "student_name": "Jane Doe", "department": "CS",
        "content": {"avatar_url": PNG_DATA_URL, "gallery_images": ["data:image/png;base64,@@@"]},
    })
    assert resp.status_code == 502
    assert resp.get_json()["error"] == {"code": "upload_failed", "message": "File upload failed"}
    assert _stored_files(app) == []
    with app.app_context():
        assert Submission.query.count() == 0


def test_approving_resource_submission_publishes_it(app, admin_client):
    resp = admin_client.post("/api/submissions", json={
        "type": "resource", "student_name": "Jane Doe", "department": "CS",
        "content": {"title": "Graph Notes", "subject": "Algorithms", "resource_type": "note",
                    "download_url": TEXT_DATA_URL},
    })
    assert resp.status_code == 201
    sub = resp.get_json()["data"]
    assert "/uploads/resources/" in sub["content"]["download_url"]

    created = approve(admin_client, sub["id"]).get_json()["data"]["created"]
    assert created["title"] == "Graph Notes"
    assert created["author_name"] == "Jane Doe"

    listing = admin_client.get("/api/resources?department=CS").get_json()["data"]
    assert [r["title"] for r in listing["items"]] == ["Graph Notes"]
    with app.app_context():
        assert Resource.query.count() == 1
        assert Student.query.count() == 0


def test_review_is_audited(admin_client):
    sub = submit_biography(admin_client)
    approve(admin_client, sub["id"])
    logs = admin_client.get("/api/admin/audit-logs").get_json()["data"]["items"]
    entry = logs[0]
    assert entry["action"] == "Reviewed Submission"
    assert entry["actor"] == "admin"
    assert entry["target"] == str(sub["id"])
    assert entry["details"] == "approved"


def test_audit_failure_does_not_undo_review(app, admin_client, monkeypatch):
    def broken_entry(**kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr("portal_app.audit.AuditLog", broken_entry)
    sub = submit_biography(admin_client)
    resp = approve(admin_client, sub["id"])
    assert resp.status_code == 200
    with app.app_context():
        assert db.session.get(Submission, sub["id"]).status == "approved"
        assert Student.query.count() == 1


def test_submission_list_filters_by_status(admin_client):
    first = submit_biography(admin_client, name="Ann Lee")
    submit_biography(admin_client, name="Bo Chan")
    approve(admin_client, first["id"])

    pending = admin_client.get("/api/admin/submissions?status=pending").get_json()["data"]
    assert [s["student_name"] for s in pending["items"]] == ["Bo Chan"]
    assert admin_client.get("/api/admin/submissions?status=bogus").status_code == 400


def test_malformed_sub_records_are_refused(app, client):
    resp = client.post("/api/submissions", json={
        "type": "biography", "student_name": "Jane Doe", "department": "CS",
        "content": {"avatar_url": PNG_DATA_URL, "achievements": ["Hackathon winner"]},
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "validation_error"

    resp = client.post("/api/submissions", data={
        "type": "biography", "student_name": "Jane Doe", "department": "CS",
        "social_links": "https://github.com/jane",
    }, content_type="multipart/form-data")
    assert resp.status_code == 400

    assert _stored_files(app) == []
    with app.app_context():
        assert Submission.query.count() == 0


def test_non_file_upload_value_is_a_validation_error(app, client):
    resp = client.post("/api/submissions", json={
        "type": "biography", "student_name": "Jane Doe", "department": "CS",
        "content": {"avatar_url": 42},
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "validation_error"
    with app.app_context():
        assert Submission.query.count() == 0
