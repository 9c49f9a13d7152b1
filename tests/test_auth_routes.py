"""
tests/test_auth_routes.py -- Integration tests for /api/v1/auth/*.

Covers:
  - Login success, generic failure message, lockout (401 x5 then 423), inactive accounts
  - Bearer token enforcement on /auth/me
  - Password change: current password rules, revocation of older tokens
  - Self-service profile edits refuse credentials and role changes
  - Account administration: creation with temporary password, listing, actions
"""

from __future__ import annotations

from datetime import datetime, timedelta

from conftest import PASSWORD, auth, make_account

from auth.tokens import create_access_token


def _login(client, email: str, password: str = PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success_returns_token_and_account(self, api_client):
        make_account(api_client.accounts, "login.ok@tabithahome.org")
        resp = _login(api_client.client, "Login.OK@tabithahome.org")
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        body = resp.json()
        assert body["status"] == "success"
        assert body["data"]["token"]
        assert body["data"]["token_type"] == "bearer"
        assert body["data"]["must_change_password"] is False
        account = body["data"]["account"]
        assert account["email"] == "login.ok@tabithahome.org"
        assert account["employee_id"].startswith("THS-")
        assert "hashed_password" not in account
        assert resp.headers["Cache-Control"] == "no-store"

    def test_token_from_login_works(self, api_client):
        make_account(api_client.accounts, "login.token@tabithahome.org")
        token = _login(api_client.client, "login.token@tabithahome.org").json()["data"]["token"]
        resp = api_client.client.get("/api/v1/auth/me", headers=auth(token))
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == "login.token@tabithahome.org"

    def test_unknown_email_and_wrong_password_look_the_same(self, api_client):
        make_account(api_client.accounts, "login.same@tabithahome.org")
        unknown = _login(api_client.client, "nobody@tabithahome.org")
        wrong = _login(api_client.client, "login.same@tabithahome.org", "Wr0ng#Pass")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert wrong.json()["code"] == "bad_credentials"
        assert wrong.headers["Cache-Control"] == "no-store"

    def test_fifth_failure_is_401_then_locked_with_423(self, api_client):
        make_account(api_client.accounts, "login.lock@tabithahome.org")
        for attempt in range(5):
            resp = _login(api_client.client, "login.lock@tabithahome.org", "Wr0ng#Pass")
            assert resp.status_code == 401, f"Attempt {attempt + 1}: expected 401, got {resp.status_code}"
        resp = _login(api_client.client, "login.lock@tabithahome.org")
        assert resp.status_code == 423, f"Expected 423, got {resp.status_code}: {resp.text}"
        assert resp.json()["code"] == "account_locked"
        assert "30 minutes" in resp.json()["message"]

    def test_inactive_account_cannot_log_in(self, api_client):
        account_id, _ = make_account(api_client.accounts, "login.inactive@tabithahome.org")
        api_client.accounts.deactivate(account_id)
        resp = _login(api_client.client, "login.inactive@tabithahome.org")
        assert resp.status_code == 401
        assert resp.json()["code"] == "account_inactive"

    def test_must_change_password_is_flagged(self, api_client):
        make_account(api_client.accounts, "login.temp@tabithahome.org", must_change=True)
        body = _login(api_client.client, "login.temp@tabithahome.org").json()
        assert body["data"]["must_change_password"] is True
        assert body["message"] == "Please change your password."

    def test_missing_password_is_a_validation_error(self, api_client):
        resp = api_client.client.post("/api/v1/auth/login", json={"email": "x@tabithahome.org"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_error"
        assert body["errors"][0]["field"] == "password"


# ---------------------------------------------------------------------------
# Token enforcement
# ---------------------------------------------------------------------------


class TestBearerToken:
    def test_me_requires_token(self, api_client):
        resp = api_client.client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {
            "status": "fail",
            "code": "unauthorized",
            "message": "You are not logged in. Please log in to get access.",
        }

    def test_garbage_token(self, api_client):
        resp = api_client.client.get("/api/v1/auth/me", headers=auth("not.a.jwt"))
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_token"

    def test_me_lists_effective_permissions(self, api_client):
        resp = api_client.client.get("/api/v1/auth/me", headers=auth(api_client.tokens["volunteer"]))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["role"] == "volunteer"
        assert data["effective_permissions"] == ["view_children"]

    def test_logout(self, api_client):
        resp = api_client.client.post("/api/v1/auth/logout", headers=auth(api_client.token))
        assert resp.status_code == 200
        assert resp.json()["status"] == "success"


# ---------------------------------------------------------------------------
# Password change
# ---------------------------------------------------------------------------


class TestUpdatePassword:
    URL = "/api/v1/auth/updatePassword"

    def test_change_returns_new_token_and_revokes_old(self, api_client):
        account_id, token = make_account(api_client.accounts, "pw.change@tabithahome.org")
        resp = api_client.client.patch(
            self.URL,
            headers=auth(token),
            json={"password_current": PASSWORD, "password": "N3w@Password", "password_confirm": "N3w@Password"},
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        new_token = resp.json()["data"]["token"]

        # The token used for the request itself, and one minted a millisecond before the change.
        changed_at = datetime.fromisoformat(api_client.accounts.get_by_id(account_id).password_changed_at)
        just_before = create_access_token(account_id, issued_at=changed_at - timedelta(milliseconds=1))
        for old in (token, just_before):
            stale = api_client.client.get("/api/v1/auth/me", headers=auth(old))
            assert stale.status_code == 401
            assert stale.json()["code"] == "password_changed"
        assert api_client.client.get("/api/v1/auth/me", headers=auth(new_token)).status_code == 200
        assert _login(api_client.client, "pw.change@tabithahome.org", "N3w@Password").status_code == 200

    def test_wrong_current_password(self, api_client):
        _, token = make_account(api_client.accounts, "pw.wrong@tabithahome.org")
        resp = api_client.client.patch(
            self.URL,
            headers=auth(token),
            json={"password_current": "Wr0ng#Pass", "password": "N3w@Password", "password_confirm": "N3w@Password"},
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "wrong_password"

    def test_current_password_required_after_first_change(self, api_client):
        _, token = make_account(api_client.accounts, "pw.required@tabithahome.org")
        resp = api_client.client.patch(
            self.URL, headers=auth(token), json={"password": "N3w@Password", "password_confirm": "N3w@Password"}
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "current_password_required"

    def test_first_change_may_omit_current_password(self, api_client):
        _, token = make_account(api_client.accounts, "pw.first@tabithahome.org", must_change=True)
        resp = api_client.client.patch(
            self.URL, headers=auth(token), json={"password": "N3w@Password", "password_confirm": "N3w@Password"}
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        me = api_client.client.get("/api/v1/auth/me", headers=auth(resp.json()["data"]["token"])).json()
        assert me["data"]["password_must_change"] is False

    def test_reusing_the_current_password(self, api_client):
        _, token = make_account(api_client.accounts, "pw.reuse@tabithahome.org")
        resp = api_client.client.patch(
            self.URL,
            headers=auth(token),
            json={"password_current": PASSWORD, "password": PASSWORD, "password_confirm": PASSWORD},
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "password_reused"

    def test_weak_and_mismatched_passwords(self, api_client):
        _, token = make_account(api_client.accounts, "pw.weak@tabithahome.org")
        weak = api_client.client.patch(
            self.URL,
            headers=auth(token),
            json={"password_current": PASSWORD, "password": "alllowercase", "password_confirm": "alllowercase"},
        )
        assert weak.status_code == 400
        assert weak.json()["errors"][0]["field"] == "password"
        mismatch = api_client.client.patch(
            self.URL,
            headers=auth(token),
            json={"password_current": PASSWORD, "password": "N3w@Password", "password_confirm": "N3w@Passw0rd"},
        )
        assert mismatch.status_code == 400
        assert "Passwords do not match." in mismatch.json()["message"]


# ---------------------------------------------------------------------------
# Profile self-service
# ---------------------------------------------------------------------------


class TestUpdateMe:
    URL = "/api/v1/auth/updateMe"

    def test_update_phone_and_address(self, api_client):
        _, token = make_account(api_client.accounts, "me.update@tabithahome.org")
        resp = api_client.client.patch(
            self.URL,
            headers=auth(token),
            json={"phone": "08031234567", "address": {"city": "Abeokuta", "state": "Ogun"}},
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()["data"]
        assert data["phone"] == "08031234567"
        assert data["address"]["state"] == "Ogun"

    def test_password_fields_are_refused(self, api_client):
        _, token = make_account(api_client.accounts, "me.password@tabithahome.org")
        resp = api_client.client.patch(self.URL, headers=auth(token), json={"password": "N3w@Password"})
        assert resp.status_code == 400
        assert "/auth/updatePassword" in resp.json()["message"]

    def test_role_is_refused(self, api_client):
        account_id, token = make_account(api_client.accounts, "me.role@tabithahome.org")
        resp = api_client.client.patch(self.URL, headers=auth(token), json={"role": "admin"})
        assert resp.status_code == 400
        assert api_client.accounts.get_by_id(account_id).role == "staff"

    def test_invalid_phone(self, api_client):
        _, token = make_account(api_client.accounts, "me.phone@tabithahome.org")
        resp = api_client.client.patch(self.URL, headers=auth(token), json={"phone": "12345"})
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "phone"


# ---------------------------------------------------------------------------
# Account administration
# ---------------------------------------------------------------------------


class TestCreateAccount:
    URL = "/api/v1/auth/accounts"

    def test_admin_creates_account_with_temporary_password(self, api_client):
        resp = api_client.client.post(
            self.URL,
            headers=auth(api_client.tokens["admin"]),
            json={
                "email": "New.Nurse@TabithaHome.org",
                "first_name": "Halima",
                "last_name": "Bello",
                "role": "staff",
                "permissions": ["view_reports"],
                "position": "Nurse",
                "department": "Medical",
            },
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()["data"]
        credentials = data["login_credentials"]
        assert credentials["email"] == "new.nurse@tabithahome.org"
        assert credentials["employee_id"] == data["account"]["employee_id"]
        assert data["account"]["password_must_change"] is True
        assert "view_reports" in data["account"]["permissions"]
        assert "view_children" in data["account"]["permissions"]
        assert data["account"]["created_by"] == api_client.ids["admin"]

        login = _login(api_client.client, "new.nurse@tabithahome.org", credentials["temporary_password"])
        assert login.status_code == 200
        assert login.json()["data"]["must_change_password"] is True

    def test_duplicate_email(self, api_client):
        make_account(api_client.accounts, "dup.email@tabithahome.org")
        resp = api_client.client.post(
            self.URL,
            headers=auth(api_client.token),
            json={"email": "dup.email@tabithahome.org", "first_name": "A", "last_name": "B"},
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "duplicate_email"

    def test_admin_cannot_create_super_admin(self, api_client):
        resp = api_client.client.post(
            self.URL,
            headers=auth(api_client.tokens["admin"]),
            json={"email": "boss@tabithahome.org", "first_name": "A", "last_name": "B", "role": "superadmin"},
        )
        assert resp.status_code == 403

    def test_super_admin_can_create_super_admin(self, api_client):
        resp = api_client.client.post(
            self.URL,
            headers=auth(api_client.token),
            json={"email": "boss2@tabithahome.org", "first_name": "A", "last_name": "B", "role": "super_admin"},
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["account"]["role"] == "super_admin"

    def test_manager_cannot_create_accounts(self, api_client):
        resp = api_client.client.post(
            self.URL,
            headers=auth(api_client.tokens["manager"]),
            json={"email": "x1@tabithahome.org", "first_name": "A", "last_name": "B"},
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"

    def test_invalid_fields_are_listed(self, api_client):
        resp = api_client.client.post(
            self.URL,
            headers=auth(api_client.token),
            json={"email": "not-an-email", "first_name": "A", "last_name": "B", "nin": "123"},
        )
        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json()["errors"]}
        assert fields == {"email", "nin"}


class TestListAccounts:
    URL = "/api/v1/auth/accounts"

    def test_paged_listing(self, api_client):
        resp = api_client.client.get(self.URL, params={"limit": 2}, headers=auth(api_client.token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["results"] == 2
        assert body["pagination"]["limit"] == 2
        assert body["pagination"]["total"] >= 6
        assert body["pagination"]["pages"] >= 3

    def test_role_filter(self, api_client):
        resp = api_client.client.get(self.URL, params={"role": "volunteer"}, headers=auth(api_client.token))
        assert resp.status_code == 200
        assert {a["role"] for a in resp.json()["data"]} == {"volunteer"}

    def test_staff_cannot_list(self, api_client):
        resp = api_client.client.get(self.URL, headers=auth(api_client.tokens["staff"]))
        assert resp.status_code == 403


class TestAccountActions:
    def _act(self, api_client, account_id: int, action: str, token: str | None = None):
        return api_client.client.patch(
            f"/api/v1/auth/accounts/{account_id}",
            headers=auth(token or api_client.token),
            json={"action": action},
        )

    def test_deactivate_then_activate(self, api_client):
        account_id, _ = make_account(api_client.accounts, "act.toggle@tabithahome.org")
        resp = self._act(api_client, account_id, "deactivate")
        assert resp.status_code == 200
        assert resp.json()["data"]["account"]["is_active"] is False
        assert resp.json()["data"]["account"]["employment_status"] == "Terminated"
        resp = self._act(api_client, account_id, "activate")
        assert resp.json()["data"]["account"]["is_active"] is True
        assert resp.json()["data"]["account"]["employment_status"] == "Active"
        assert _login(api_client.client, "act.toggle@tabithahome.org").status_code == 200

    def test_cannot_deactivate_self(self, api_client):
        resp = self._act(api_client, api_client.ids["admin"], "deactivate", api_client.tokens["admin"])
        assert resp.status_code == 400
        assert resp.json()["code"] == "self_deactivation"

    def test_admin_cannot_touch_super_admin(self, api_client):
        resp = self._act(api_client, api_client.uid, "deactivate", api_client.tokens["admin"])
        assert resp.status_code == 403

    def test_unlock(self, api_client):
        make_account(api_client.accounts, "act.unlock@tabithahome.org")
        for _ in range(5):
            _login(api_client.client, "act.unlock@tabithahome.org", "Wr0ng#Pass")
        account_id = api_client.accounts.get_by_email("act.unlock@tabithahome.org").id
        assert _login(api_client.client, "act.unlock@tabithahome.org").status_code == 423
        resp = self._act(api_client, account_id, "unlock")
        assert resp.status_code == 200
        assert resp.json()["data"]["account"]["account_locked"] is False
        assert _login(api_client.client, "act.unlock@tabithahome.org").status_code == 200

    def test_activate_clears_lockout(self, api_client):
        make_account(api_client.accounts, "act.relock@tabithahome.org")
        for _ in range(5):
            _login(api_client.client, "act.relock@tabithahome.org", "Wr0ng#Pass")
        account_id = api_client.accounts.get_by_email("act.relock@tabithahome.org").id
        assert _login(api_client.client, "act.relock@tabithahome.org").status_code == 423

        resp = self._act(api_client, account_id, "activate")
        assert resp.status_code == 200
        assert resp.json()["data"]["account"]["account_locked"] is False
        stored = api_client.accounts.get_by_id(account_id)
        assert stored.login_attempts == 0
        assert stored.account_locked_until is None
        assert _login(api_client.client, "act.relock@tabithahome.org").status_code == 200

    def test_reset_password(self, api_client):
        account_id, _ = make_account(api_client.accounts, "act.reset@tabithahome.org")
        resp = self._act(api_client, account_id, "reset_password")
        assert resp.status_code == 200
        temporary = resp.json()["data"]["login_credentials"]["temporary_password"]
        assert _login(api_client.client, "act.reset@tabithahome.org").status_code == 401
        login = _login(api_client.client, "act.reset@tabithahome.org", temporary)
        assert login.status_code == 200
        assert login.json()["data"]["must_change_password"] is True

    def test_unknown_account(self, api_client):
        assert self._act(api_client, 99999, "unlock").status_code == 404

    def test_unknown_action(self, api_client):
        resp = self._act(api_client, api_client.ids["staff"], "promote")
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "action"
