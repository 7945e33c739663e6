"""
API tests for staff authentication and user management.
"""

import pytest

from helpers import ADMIN_PASSWORD, API


@pytest.fixture
def maintainer_headers(client, admin_headers):
    response = client.post(
        f"{API}/auth/maintainer",
        json={"username": "mai", "password": "mai-pass", "firstname": "Mai", "lastname": "Dee"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    login = client.post(f"{API}/auth/login", json={"username": "mai", "password": "mai-pass"})
    return {"Authorization": f"Bearer {login.json()['data']['access_token']}"}


class TestLogin:
    def test_seeded_admin_can_log_in(self, client):
        response = client.post(f"{API}/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["user"]["role"] == "admin"
        assert body["data"]["token_type"] == "bearer"

    def test_wrong_password_is_rejected_with_envelope(self, client):
        response = client.post(f"{API}/auth/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "msg": "Invalid username or password", "data": None}

    def test_missing_fields_are_a_400(self, client):
        response = client.post(f"{API}/auth/login", json={"username": "admin"})
        assert response.status_code == 400
        assert "password" in response.json()["msg"]

    def test_verify_requires_a_token(self, client, admin_headers):
        assert client.get(f"{API}/auth/verify").status_code == 401
        response = client.get(f"{API}/auth/verify", headers=admin_headers)
        assert response.json()["data"]["username"] == "admin"


class TestChangePassword:
    def test_first_change_skips_current_password(self, client, admin_headers):
        response = client.put(f"{API}/auth/change-password", json={"new_password": "brand-new"}, headers=admin_headers)
        assert response.status_code == 200
        assert client.get(f"{API}/auth/verify", headers=admin_headers).json()["data"]["is_first_time"] is False

        again = client.put(f"{API}/auth/change-password", json={"new_password": "another1"}, headers=admin_headers)
        assert again.status_code == 400

        ok = client.put(
            f"{API}/auth/change-password",
            json={"current_password": "brand-new", "new_password": "another1"},
            headers=admin_headers,
        )
        assert ok.status_code == 200
        assert client.post(f"{API}/auth/login", json={"username": "admin", "password": "another1"}).status_code == 200

    def test_short_password_rejected(self, client, admin_headers):
        response = client.put(f"{API}/auth/change-password", json={"new_password": "123"}, headers=admin_headers)
        assert response.status_code == 400


class TestUserManagement:
    def test_duplicate_username(self, client, admin_headers, maintainer_headers):
        response = client.post(
            f"{API}/auth/admin",
            json={"username": "mai", "password": "x", "firstname": "M", "lastname": "D"},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_user_listing_is_admin_only(self, client, admin_headers, maintainer_headers):
        assert client.get(f"{API}/auth/users", headers=maintainer_headers).status_code == 403
        users = client.get(f"{API}/auth/users", headers=admin_headers).json()["data"]
        assert sorted(u["username"] for u in users) == ["admin", "mai"]

    def test_role_change_and_delete(self, client, admin_headers, maintainer_headers):
        users = client.get(f"{API}/auth/users", headers=admin_headers).json()["data"]
        ids = {u["username"]: u["id"] for u in users}

        assert client.patch(f"{API}/auth/users/{ids['admin']}/role", json={"role": "maintainer"}, headers=admin_headers).status_code == 400
        promoted = client.patch(f"{API}/auth/users/{ids['mai']}/role", json={"role": "admin"}, headers=admin_headers)
        assert promoted.json()["data"]["role"] == "admin"

        assert client.delete(f"{API}/auth/users/{ids['admin']}", headers=admin_headers).status_code == 400
        assert client.delete(f"{API}/auth/users/{ids['mai']}", headers=admin_headers).status_code == 200
        assert client.delete(f"{API}/auth/users/{ids['mai']}", headers=admin_headers).status_code == 404
        assert client.get(f"{API}/auth/verify", headers=maintainer_headers).status_code == 401


class TestAppBasics:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_unknown_route_uses_envelope(self, client):
        response = client.get(f"{API}/nothing-here")
        assert response.status_code == 404
        assert response.json()["success"] is False
