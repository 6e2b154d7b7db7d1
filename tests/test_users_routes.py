"""
tests/test_users_routes.py -- Integration tests for the admin-only /api/users routes.

Covers:
  - admin guard: 401 without a session, 403 for a regular user
  - list and stats
  - an admin can never delete or re-role their own account (403, nothing changes)
  - role changes and deletes on other accounts
  - the admin guard reads the live role, so a demoted admin loses access at once
"""

from __future__ import annotations

import pytest


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestAdminGuard:
    @pytest.mark.parametrize(
        "method, path",
        [
            ("GET", "/api/users"),
            ("GET", "/api/users/stats"),
            ("DELETE", "/api/users/u0001"),
            ("PUT", "/api/users/u0001/role"),
        ],
    )
    def test_no_session_is_401(self, api_client, method, path):
        resp = api_client.request(method, path)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_regular_user_is_403(self, api_client, seeded):
        resp = api_client.get("/api/users", headers=_auth(seeded.user_token))
        assert resp.status_code == 403
        assert resp.json() == {"error": "Forbidden: Admin access required"}

    def test_regular_user_cannot_delete_others(self, api_client, backend, seeded):
        resp = api_client.delete(f"/api/users/{seeded.admin_id}", headers=_auth(seeded.user_token))
        assert resp.status_code == 403
        assert seeded.admin_id in backend.users

    def test_demoted_admin_loses_access_immediately(self, api_client, backend, seeded):
        other_id, other_token = backend.seed_user("alice", "alice@example.com", "secret1", role="admin")
        assert api_client.get("/api/users", headers=_auth(other_token)).status_code == 200

        backend.update_user(other_id, {"role": "user"})

        resp = api_client.get("/api/users", headers=_auth(other_token))
        assert resp.status_code == 403


class TestListAndStats:
    def test_list_users_newest_first(self, api_client, seeded):
        resp = api_client.get("/api/users", headers=_auth(seeded.admin_token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 2
        assert [u["username"] for u in data["results"]] == ["bob", "root"]

    def test_stats_counts(self, api_client, backend, seeded):
        backend.update_user(seeded.user_id, {"emailVerified": True})
        resp = api_client.get("/api/users/stats", headers=_auth(seeded.admin_token))
        assert resp.status_code == 200
        assert resp.json() == {"totalUsers": 2, "adminUsers": 1, "verifiedUsers": 1}


class TestSelfProtection:
    def test_admin_cannot_delete_self(self, api_client, backend, seeded):
        resp = api_client.delete(f"/api/users/{seeded.admin_id}", headers=_auth(seeded.admin_token))
        assert resp.status_code == 403
        assert resp.json() == {"error": "Cannot delete your own account"}
        assert seeded.admin_id in backend.users

    def test_admin_cannot_change_own_role(self, api_client, backend, seeded):
        resp = api_client.put(
            f"/api/users/{seeded.admin_id}/role",
            headers=_auth(seeded.admin_token),
            json={"role": "user"},
        )
        assert resp.status_code == 403
        assert resp.json() == {"error": "Cannot change your own role"}
        assert backend.users[seeded.admin_id]["role"] == "admin"


class TestManageOthers:
    def test_promote_user(self, api_client, backend, seeded):
        resp = api_client.put(
            f"/api/users/{seeded.user_id}/role",
            headers=_auth(seeded.admin_token),
            json={"role": "admin"},
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"
        assert backend.users[seeded.user_id]["role"] == "admin"

    def test_unknown_role_is_400(self, api_client, backend, seeded):
        resp = api_client.put(
            f"/api/users/{seeded.user_id}/role",
            headers=_auth(seeded.admin_token),
            json={"role": "superuser"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Role must be 'user' or 'admin'"}
        assert backend.users[seeded.user_id]["role"] == "user"

    def test_delete_other_user(self, api_client, backend, seeded):
        resp = api_client.delete(f"/api/users/{seeded.user_id}", headers=_auth(seeded.admin_token))
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert seeded.user_id not in backend.users

    def test_delete_missing_user_passes_baas_message(self, api_client, seeded):
        resp = api_client.delete("/api/users/nope", headers=_auth(seeded.admin_token))
        assert resp.status_code == 400
        assert resp.json() == {"error": "Object not found."}
