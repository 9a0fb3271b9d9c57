"""
End-to-end tests through the HTTP API.
"""
from app.core import config
from app.features.modules.models import ModuleType
from app.features.users.auth import create_session_token

from tests.conftest import TEST_PASSWORD, create_module_row, create_user, grant_role, login


class TestSessions:

    async def test_signup_creates_guest_and_sets_cookie(self, client):
        response = await client.post("/auth/signup", json={
            "email": "new@example.com",
            "name": "New User",
            "password": "hunter22",
        })

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["user"]["email"] == "new@example.com"
        assert body["user"]["role"]["name"] == config.DEFAULT_SIGNUP_ROLE
        assert body["redirect"] == "/dashboard"
        assert response.cookies.get(config.SESSION_COOKIE_NAME)

        me = await client.get("/users/me")
        assert me.status_code == 200
        assert me.json()["name"] == "New User"

    async def test_signup_duplicate_email(self, client, guest_user):
        response = await client.post("/auth/signup", json={
            "email": guest_user.email,
            "name": "Again",
            "password": "hunter22",
        })
        assert response.status_code == 409

    async def test_signup_short_password(self, client):
        response = await client.post("/auth/signup", json={
            "email": "short@example.com",
            "name": "Short",
            "password": "123",
        })
        assert response.status_code == 400
        assert "password" in response.json()

    async def test_login_and_logout(self, client, guest_user):
        response = await client.post("/auth/login", json={"email": guest_user.email, "password": TEST_PASSWORD})
        assert response.status_code == 200
        assert response.json()["user"]["last_login_at"] is not None

        assert (await client.get("/users/me")).status_code == 200

        response = await client.post("/auth/logout")
        assert response.status_code == 200
        assert (await client.get("/users/me")).status_code == 401

    async def test_wrong_password(self, client, guest_user):
        response = await client.post("/auth/login", json={"email": guest_user.email, "password": "wrong-pass"})
        assert response.status_code == 401

    async def test_deactivated_account(self, client, db, guest_role):
        user = await create_user(db, guest_role, "off@example.com", is_active=False)

        response = await client.post("/auth/login", json={"email": user.email, "password": TEST_PASSWORD})
        assert response.status_code == 403
        assert response.json()["detail"] == "Your account is deactivated."

        token, _ = create_session_token(user.id)
        response = await client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    async def test_missing_and_invalid_token(self, client):
        assert (await client.get("/users/me")).status_code == 401
        response = await client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    async def test_change_password_needs_current(self, client, guest_user):
        headers = await login(client, guest_user.email)

        response = await client.patch("/users/me", headers=headers, json={
            "name": "Guest",
            "current_password": "wrong-pass",
            "new_password": "another1",
        })
        assert response.status_code == 400
        assert "current_password" in response.json()["fields"]

        response = await client.patch("/users/me", headers=headers, json={
            "name": "Renamed",
            "current_password": TEST_PASSWORD,
            "new_password": "another1",
        })
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

        response = await client.post("/auth/login", json={"email": guest_user.email, "password": "another1"})
        assert response.status_code == 200


class TestNavigation:

    async def test_navigation_lists_readable_modules(self, client, db, guest_role, guest_user):
        sales = await create_module_row(db, "Sales", type=ModuleType.FOLDER)
        orders = await create_module_row(db, "Orders", parent=sales)
        await create_module_row(db, "Secret")
        await grant_role(db, guest_role, orders, read=True)
        headers = await login(client, guest_user.email)

        response = await client.get("/modules/navigation", headers=headers)

        assert response.status_code == 200
        forest = response.json()
        assert [node["slug"] for node in forest] == ["sales"]
        assert forest[0]["can_read"] is False
        assert [child["slug"] for child in forest[0]["children"]] == ["orders"]

    async def test_page_access_denied(self, client, db, guest_user):
        await create_module_row(db, "Sales")
        headers = await login(client, guest_user.email)

        response = await client.get("/modules/page/sales", headers=headers)

        assert response.status_code == 403
        assert response.json() == {
            "error": "Access Denied",
            "detail": "You do not have permission to view this module.",
            "redirect": "/dashboard",
        }

    async def test_page_readable(self, client, db, guest_role, guest_user):
        sales = await create_module_row(db, "Sales")
        await grant_role(db, guest_role, sales, read=True)
        headers = await login(client, guest_user.email)

        response = await client.get("/modules/page/sales", headers=headers)
        assert response.status_code == 200
        assert response.json()["title"] == "Sales"

        response = await client.get(f"/modules/{sales.id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["slug"] == "sales"

    async def test_unknown_page(self, client, guest_user):
        headers = await login(client, guest_user.email)
        response = await client.get("/modules/page/nope", headers=headers)
        assert response.status_code == 404

    async def test_permission_check(self, client, db, guest_role, guest_user):
        sales = await create_module_row(db, "Sales")
        await grant_role(db, guest_role, sales, read=True)
        headers = await login(client, guest_user.email)

        response = await client.post("/permissions/check", headers=headers, json={"module_id": sales.id, "action": "read"})
        assert response.json() == {"allowed": True, "reason": None}

        response = await client.post("/permissions/check", headers=headers, json={"module_id": sales.id, "action": "delete"})
        assert response.json()["allowed"] is False


class TestModuleAdmin:

    async def test_create_and_delete(self, client, admin_user):
        headers = await login(client, admin_user.email)

        response = await client.post("/modules/", headers=headers, json={"name": "Key Metrics!!", "type": "FOLDER"})
        assert response.status_code == 201, response.text
        module = response.json()
        assert module["slug"] == "key-metrics"
        assert module["order"] == 1

        response = await client.get("/modules/", headers=headers)
        tree = response.json()
        assert len(tree) == 1
        assert tree[0]["descendant_count"] == 1
        assert tree[0]["children"][0]["slug"] == "key-metrics-dashboard"

        response = await client.post("/modules/", headers=headers, json={"name": "key metrics"})
        assert response.status_code == 409
        assert "key-metrics" in response.json()["error"]

        response = await client.delete(f"/modules/{module['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["deleted_modules"] == 2

        response = await client.get("/modules/", headers=headers)
        assert response.json() == []

    async def test_move_cycle_rejected(self, client, db, admin_user):
        sales = await create_module_row(db, "Sales", type=ModuleType.FOLDER)
        orders = await create_module_row(db, "Orders", parent=sales)
        headers = await login(client, admin_user.email)

        response = await client.patch(f"/modules/{sales.id}", headers=headers, json={"parent_id": orders.id})
        assert response.status_code == 400
        assert "parent_id" in response.json()["fields"]

    async def test_empty_name(self, client, admin_user):
        headers = await login(client, admin_user.email)
        response = await client.post("/modules/", headers=headers, json={"name": ""})
        assert response.status_code == 400
        assert "name" in response.json()

    async def test_non_admin_denied(self, client, guest_user):
        headers = await login(client, guest_user.email)

        response = await client.post("/modules/", headers=headers, json={"name": "Sales"})

        assert response.status_code == 403
        assert response.json()["error"] == "Access Denied"


class TestRoleAdmin:

    async def test_role_lifecycle(self, client, admin_user, guest_user):
        headers = await login(client, admin_user.email)

        response = await client.post("/roles/", headers=headers, json={"name": "  Editors "})
        assert response.status_code == 201
        role = response.json()
        assert role["name"] == "editors"

        response = await client.post("/roles/", headers=headers, json={"name": "EDITORS"})
        assert response.status_code == 409

        response = await client.get("/roles/", headers=headers)
        counts = {row["name"]: row["user_count"] for row in response.json()}
        assert counts == {"editors": 0, "guest": 1}

        response = await client.delete(f"/roles/{guest_user.role_id}", headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot delete role. 1 user(s) have this role assigned."

        response = await client.delete(f"/roles/{role['id']}", headers=headers)
        assert response.status_code == 204

    async def test_toggle_and_list_permissions(self, client, db, admin_user, guest_user):
        sales = await create_module_row(db, "Sales", type=ModuleType.FOLDER)
        await create_module_row(db, "Orders", parent=sales)
        headers = await login(client, admin_user.email)

        response = await client.post(
            f"/roles/{guest_user.role_id}/permissions/toggle",
            headers=headers,
            json={"module_id": sales.id, "action": "read", "value": True},
        )
        assert response.status_code == 200
        assert len(response.json()) == 2

        response = await client.get(f"/roles/{guest_user.role_id}/permissions", headers=headers)
        rows = response.json()
        assert len(rows) == 2
        assert all(row["permissions"]["can_read"] for row in rows)
        assert not any(row["permissions"]["can_update"] for row in rows)

        guest_headers = await login(client, guest_user.email)
        response = await client.get("/modules/navigation", headers=guest_headers)
        assert [node["slug"] for node in response.json()] == ["sales"]


class TestUserAdmin:

    async def test_create_list_and_toggle(self, client, admin_user, guest_user):
        headers = await login(client, admin_user.email)

        response = await client.post("/users/", headers=headers, json={
            "email": "staff@example.com",
            "name": "Staff",
            "password": "hunter22",
            "role_id": guest_user.role_id,
        })
        assert response.status_code == 201, response.text
        staff = response.json()

        response = await client.post("/users/", headers=headers, json={
            "email": "staff@example.com",
            "name": "Staff",
            "password": "hunter22",
            "role_id": guest_user.role_id,
        })
        assert response.status_code == 409

        response = await client.get("/users/", headers=headers)
        emails = {user["email"] for user in response.json()}
        assert emails == {"staff@example.com", guest_user.email}

        response = await client.patch(f"/users/{staff['id']}/toggle-active", headers=headers)
        assert response.json()["is_active"] is False

        response = await client.post("/auth/login", json={"email": "staff@example.com", "password": "hunter22"})
        assert response.status_code == 403

    async def test_cannot_act_on_self(self, client, admin_user):
        headers = await login(client, admin_user.email)

        response = await client.patch(f"/users/{admin_user.id}/toggle-active", headers=headers)
        assert response.status_code == 400

        response = await client.delete(f"/users/{admin_user.id}", headers=headers)
        assert response.status_code == 400

    async def test_delete_user_removes_overrides(self, client, db, admin_user, guest_user):
        module = await create_module_row(db, "Sales")
        headers = await login(client, admin_user.email)

        response = await client.put(
            f"/permissions/users/{guest_user.id}",
            headers=headers,
            json={"permissions": [{"module_id": module.id, "can_read": True}]},
        )
        assert response.status_code == 200
        assert response.json()[0]["can_read"] is True

        response = await client.delete(f"/users/{guest_user.id}", headers=headers)
        assert response.status_code == 200

        response = await client.get(f"/permissions/users/{guest_user.id}", headers=headers)
        assert response.status_code == 404

    async def test_non_admin_denied(self, client, guest_user):
        headers = await login(client, guest_user.email)
        response = await client.get("/users/", headers=headers)
        assert response.status_code == 403
