"""
API tests for students: draft saves, submits, multipart uploads, search
and temp_permission access.
"""

import json

import pytest

from helpers import API, question


@pytest.fixture
def form(make_scholar, make_field):
    """A scholar with one field holding name, surname and a CV upload."""
    scholar = make_scholar()
    field = make_field(scholar["id"], [
        question("first", label="First name", order=0),
        question("last", label="Surname", order=1),
        question("cv", "file_upload", label="CV", order=2),
    ])
    return scholar["id"], str(field["id"])


def temp_headers(client, admin_headers, student_id):
    response = client.post(
        f"{API}/student/temp-permission/generate",
        json={"student_id": student_id, "expires_in": 600},
        headers=admin_headers,
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


class TestCreateAndRead:
    def test_create_derives_name_and_status(self, form, make_student):
        scholar_id, fid = form
        student = make_student(scholar_id, {fid: {"first": "Somchai", "last": "Jaidee"}})
        assert student["fullname"] == "Somchai Jaidee"
        assert student["status"] == "incomplete"
        assert student["scholar"]["id"] == scholar_id

    def test_create_for_missing_scholar(self, client, admin_headers):
        response = client.post(f"{API}/student", json={"scholar_id": 99, "form_data": {}}, headers=admin_headers)
        assert response.status_code == 404

    def test_missing_scholar_stores_no_files(self, client, admin_headers, storage):
        response = client.post(
            f"{API}/student",
            data={"scholar_id": "999", "form_data": "{}"},
            files={"1.cv": ("cv.pdf", b"v1", "application/pdf")},
            headers=admin_headers,
        )
        assert response.status_code == 404
        assert storage.uploaded == []

    def test_invalid_json_body(self, client, admin_headers):
        response = client.post(
            f"{API}/student",
            content=b"{not json",
            headers={**admin_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_listing_filters(self, client, admin_headers, form, make_student):
        scholar_id, fid = form
        make_student(scholar_id, {fid: {"first": "A", "last": "B", "cv": "http://f/storage/file/a.pdf"}})
        make_student(scholar_id, {})

        assert len(client.get(f"{API}/student", headers=admin_headers).json()["data"]) == 2
        assert client.get(f"{API}/student/scholar/{scholar_id}/count", headers=admin_headers).json()["data"] == {"count": 2}
        completed = client.get(f"{API}/student/status/completed", headers=admin_headers).json()["data"]
        assert [s["fullname"] for s in completed] == ["A B"]
        assert client.get(f"{API}/student/status/done", headers=admin_headers).status_code == 400

    def test_search(self, client, admin_headers, form, make_scholar, make_student):
        scholar_id, fid = form
        other = make_scholar("Other")
        make_student(scholar_id, {fid: {"first": "Somchai", "last": "Jaidee"}})
        make_student(scholar_id, {fid: {"first": "Somsri", "last": "Rakdee"}})
        make_student(other["id"], {"1": {"school": "Jaidee Wittaya"}})

        everywhere = client.get(f"{API}/student/search", params={"keyword": "JAIDEE"}, headers=admin_headers).json()["data"]
        assert len(everywhere) == 2

        scoped = client.get(
            f"{API}/student/search",
            params={"keyword": "jaidee", "scholar_id": scholar_id},
            headers=admin_headers,
        ).json()["data"]
        assert [s["fullname"] for s in scoped] == ["Somchai Jaidee"]

        assert client.get(f"{API}/student/search", params={"keyword": "  "}, headers=admin_headers).status_code == 400


class TestUpdateAndSubmit:
    def test_draft_update_merges(self, client, admin_headers, form, make_student):
        scholar_id, fid = form
        student = make_student(scholar_id, {fid: {"first": "Somchai"}})

        response = client.put(
            f"{API}/student/{student['id']}",
            json={"form_data": {fid: {"last": "Jaidee", "cv": "http://f/storage/file/cv.pdf"}}},
            headers=admin_headers,
        )

        data = response.json()["data"]
        assert data["form_data"][fid] == {"first": "Somchai", "last": "Jaidee", "cv": "http://f/storage/file/cv.pdf"}
        assert data["status"] == "completed"
        assert data["submitted_at"] is not None

    def test_explicit_status_without_form_data(self, client, admin_headers, form, make_student):
        scholar_id, _ = form
        student = make_student(scholar_id)
        response = client.put(f"{API}/student/{student['id']}", json={"status": "completed"}, headers=admin_headers)
        assert response.json()["data"]["status"] == "completed"

    def test_multipart_upload_replaces_and_cleans_up(self, client, admin_headers, form, make_student, storage):
        scholar_id, fid = form
        student = make_student(scholar_id, {fid: {"first": "Somchai", "last": "Jaidee"}})
        url = f"{API}/student/{student['id']}"

        first = client.put(
            url,
            data={"form_data": json.dumps({fid: {"first": "Somchai"}})},
            files={f"{fid}.cv": ("cv.pdf", b"v1", "application/pdf")},
            headers=admin_headers,
        ).json()["data"]
        assert first["form_data"][fid]["cv"] == "http://storage.test/storage/file/1-cv.pdf"
        assert first["status"] == "completed"

        client.put(url, files={f"{fid}.cv": ("cv2.pdf", b"v2", "application/pdf")}, headers=admin_headers)

        assert storage.uploaded == ["1-cv.pdf", "2-cv2.pdf"]
        assert storage.deleted == ["1-cv.pdf"]

    def test_failed_upload_discards_stored_siblings(self, client, admin_headers, form, make_student, storage):
        scholar_id, fid = form
        student = make_student(scholar_id, {fid: {"first": "Somchai"}})
        storage.rejected_names = {"photo.png"}

        response = client.put(
            f"{API}/student/{student['id']}",
            files={
                f"{fid}.cv": ("cv.pdf", b"v1", "application/pdf"),
                f"{fid}.photo": ("photo.png", b"img", "image/png"),
            },
            headers=admin_headers,
        )

        assert response.status_code == 502
        assert storage.uploaded == ["1-cv.pdf"]
        assert storage.deleted == ["1-cv.pdf"]
        stored = client.get(f"{API}/student/{student['id']}", headers=admin_headers).json()["data"]
        assert stored["form_data"] == {fid: {"first": "Somchai"}}

    def test_submit(self, client, admin_headers, form, make_student):
        scholar_id, fid = form
        student = make_student(scholar_id)

        partial = client.post(
            f"{API}/student/{student['id']}/submit",
            json={"form_data": {fid: {"first": "Somchai"}}},
            headers=admin_headers,
        ).json()["data"]
        assert partial["status"] == "incomplete"

        full = client.post(
            f"{API}/student/{student['id']}/submit",
            json={"form_data": {fid: {"last": "Jaidee", "cv": "http://f/storage/file/cv.pdf"}}},
            headers=admin_headers,
        ).json()["data"]
        assert full["status"] == "completed"
        assert full["fullname"] == "Somchai Jaidee"

    def test_submit_requires_form_data(self, client, admin_headers, form, make_student):
        scholar_id, _ = form
        student = make_student(scholar_id)
        response = client.post(f"{API}/student/{student['id']}/submit", json={}, headers=admin_headers)
        assert response.status_code == 400

    def test_manual_status_patch(self, client, admin_headers, form, make_student):
        scholar_id, _ = form
        student = make_student(scholar_id)
        patched = client.patch(f"{API}/student/{student['id']}/status/completed", headers=admin_headers).json()["data"]
        assert patched["status"] == "completed"
        assert patched["submitted_at"] is not None

    def test_delete_removes_files(self, client, admin_headers, form, make_student, storage):
        scholar_id, fid = form
        student = make_student(scholar_id, {fid: {"cv": "http://f/storage/file/cv.pdf"}})

        assert client.delete(f"{API}/student/{student['id']}", headers=admin_headers).status_code == 200
        assert storage.deleted == ["cv.pdf"]
        assert client.get(f"{API}/student/{student['id']}", headers=admin_headers).status_code == 404


class TestTempPermission:
    def test_token_grants_access_to_one_student_only(self, client, admin_headers, form, make_student, make_scholar):
        scholar_id, fid = form
        mine = make_student(scholar_id)
        other = make_student(scholar_id)
        headers = temp_headers(client, admin_headers, mine["id"])

        assert client.get(f"{API}/student/{mine['id']}", headers=headers).status_code == 200
        assert client.get(f"{API}/student/{other['id']}", headers=headers).status_code == 403
        assert client.get(f"{API}/student", headers=headers).status_code == 403
        assert client.get(f"{API}/scholar", headers=headers).status_code == 403

        fields = client.get(f"{API}/scholar-field/scholar/{scholar_id}", headers=headers)
        assert fields.status_code == 200
        elsewhere = make_scholar("Elsewhere")
        assert client.get(f"{API}/scholar-field/scholar/{elsewhere['id']}", headers=headers).status_code == 403

        saved = client.put(f"{API}/student/{mine['id']}", json={"form_data": {fid: {"first": "Me"}}}, headers=headers)
        assert saved.status_code == 200
        assert client.put(f"{API}/student/{mine['id']}", json={"status": "completed"}, headers=headers).status_code == 403
        submitted = client.post(f"{API}/student/{mine['id']}/submit", json={"form_data": {}}, headers=headers)
        assert submitted.status_code == 200

    def test_verify(self, client, admin_headers, form, make_student):
        scholar_id, _ = form
        student = make_student(scholar_id)
        token = temp_headers(client, admin_headers, student["id"])["Authorization"].split(" ", 1)[1]

        valid = client.post(f"{API}/student/temp-permission/verify", json={"token": token, "student_id": student["id"]})
        assert valid.status_code == 200
        assert valid.json()["data"]["valid"] is True
        assert valid.json()["data"]["student"]["id"] == student["id"]

        mismatch = client.post(f"{API}/student/temp-permission/verify", json={"token": token, "student_id": student["id"] + 1})
        assert mismatch.status_code == 403

        garbage = client.post(f"{API}/student/temp-permission/verify", json={"token": "x.y.z", "student_id": student["id"]})
        assert garbage.status_code == 401

    def test_generate_for_missing_student(self, client, admin_headers):
        response = client.post(f"{API}/student/temp-permission/generate", json={"student_id": 404}, headers=admin_headers)
        assert response.status_code == 404
