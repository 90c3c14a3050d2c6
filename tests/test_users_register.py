import pytest

from content_api.core.config import reset_settings_cache
from content_api.services.user_service import reset_user_service

from conftest import ADMIN_EMAIL, PASSWORD


def _login_as(client, email: str, name: str) -> dict:
    r = client.post("/v1/users/register", json={"email": email, "name": name, "password": PASSWORD})
    assert r.status_code == 204, r.text
    r = client.post("/v1/users/login", json={"email": email, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": r.json()["token"]}


def _full_flow(client, email: str, name: str):
    # CORS preflight for user routes should not error (middleware handles it)
    for path, method in [("/v1/users/register", "POST"), ("/v1/users/login", "POST"), ("/v1/users/self", "GET")]:
        pre = client.options(path, headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": method})
        assert pre.status_code in (200, 204)

    # Register answers 204 with an empty body
    r = client.post("/v1/users/register", json={"email": email, "name": name, "password": PASSWORD})
    assert r.status_code == 204, r.text
    assert r.content == b""

    # Duplicate should 409
    r2 = client.post("/v1/users/register", json={"email": email, "name": name, "password": PASSWORD})
    assert r2.status_code == 409, r2.text
    assert r2.json() == {"error": "email already registered"}

    # Login
    r3 = client.post("/v1/users/login", json={"email": email, "password": PASSWORD})
    assert r3.status_code == 200, r3.text
    token = r3.json()["token"]
    assert token.startswith("Bearer ")
    assert r3.json()["expires_at"]
    headers = {"Authorization": token}

    # Self
    r4 = client.get("/v1/users/self", headers=headers)
    assert r4.status_code == 200, r4.text
    me = r4.json()["item"]
    assert me["email"] == email.lower()
    assert me["name"] == name
    assert "password_hash" not in me

    # Update
    r5 = client.put("/v1/users/self", headers=headers, json={"name": "Renamed", "email": email})
    assert r5.status_code == 200, r5.text
    assert r5.json()["item"]["name"] == "Renamed"
    assert r5.json()["item"]["id"] == me["id"]

    # Lookups through the query adapters: own id only, no listing
    r6 = client.get(f"/v1/users/{me['id']}", headers=headers)
    assert r6.status_code == 200, r6.text
    assert r6.json()["name"] == "Renamed"
    r7 = client.get("/v1/users", headers=headers, params={"search": "renamed"})
    assert r7.status_code == 403, r7.text

    # A superuser lists and reads any account
    admin = _login_as(client, ADMIN_EMAIL, "Admin")
    r7 = client.get("/v1/users", headers=admin, params={"search": "renamed"})
    assert r7.status_code == 200, r7.text
    assert r7.json()["total"] == 1
    assert r7.json()["items"][0]["id"] == me["id"]
    r7 = client.get(f"/v1/users/{me['id']}", headers=admin)
    assert r7.status_code == 200, r7.text
    assert r7.json()["email"] == email.lower()

    # Logout revokes the token
    r8 = client.post("/v1/users/logout", headers=headers)
    assert r8.status_code == 204, r8.text
    r9 = client.get("/v1/users/self", headers=headers)
    assert r9.status_code == 401, r9.text


def test_register_login_memory_provider(client):
    _full_flow(client, "User1@example.com", "User One")


def test_register_login_sqlite_provider(monkeypatch, tmp_path, client):
    # Force sqlite provider with temp db
    monkeypatch.setenv("DATA_PROVIDER", "sqlite")
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    reset_settings_cache()
    reset_user_service()
    _full_flow(client, "User2@example.com", "User Two")
    assert (tmp_path / "test.db").exists()


def test_register_malformed_json_is_bad_request(client):
    r = client.post("/v1/users/register", content=b"{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["error"].startswith("invalid json body")


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"name": "A", "email": "not-an-email", "password": PASSWORD}, "email"),
        ({"name": "A", "email": "a@example.com", "password": "short"}, "password"),
        ({"email": "a@example.com", "password": PASSWORD}, "name"),
    ],
)
def test_register_invalid_payload_reports_fields(client, payload, field):
    r = client.post("/v1/users/register", json=payload)
    assert r.status_code == 400, r.text
    assert field in r.json()["fields"]


def test_login_wrong_password_is_unauthorized(client, register_and_login):
    register_and_login("someone@example.com")
    r = client.post("/v1/users/login", json={"email": "someone@example.com", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json() == {"error": "invalid credentials"}


def test_self_requires_token(client):
    assert client.get("/v1/users/self").status_code == 401
    r = client.get("/v1/users/self", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_update_email_conflict(client, register_and_login):
    register_and_login("first@example.com")
    headers = register_and_login("second@example.com", name="Second")
    r = client.put("/v1/users/self", headers=headers, json={"name": "Second", "email": "first@example.com"})
    assert r.status_code == 409


def test_update_password_not_implemented(client, register_and_login):
    headers = register_and_login()
    r = client.put("/v1/users/self/password", headers=headers, json={"current": "x", "new": "y"})
    assert r.status_code == 501
    assert "not implemented" in r.json()["error"]


def test_delete_self_revokes_sessions(client, register_and_login):
    headers = register_and_login()
    r = client.delete("/v1/users/self", headers=headers)
    assert r.status_code == 204
    assert client.get("/v1/users/self", headers=headers).status_code == 401
    r = client.post("/v1/users/login", json={"email": "user@example.com", "password": PASSWORD})
    assert r.status_code == 401


def test_get_user_unknown_and_malformed_ids(client, register_and_login):
    headers = register_and_login(ADMIN_EMAIL, name="Admin")
    r = client.get("/v1/users/00000000-0000-0000-0000-000000000001", headers=headers)
    assert r.status_code == 404
    r = client.get("/v1/users/not-a-uuid", headers=headers)
    assert r.status_code == 400
    assert r.json() == {"error": "invalid route key: id"}


def test_status_endpoint(client):
    r = client.get("/v1/status")
    assert r.status_code == 200
    assert r.json()["healthy"] is True


def test_regular_user_cannot_list_or_read_others(client, register_and_login):
    other = register_and_login("other@example.com", name="Other")
    other_id = client.get("/v1/users/self", headers=other).json()["item"]["id"]
    headers = register_and_login("nosy@example.com", name="Nosy")

    r = client.get("/v1/users", headers=headers)
    assert r.status_code == 403
    assert r.json() == {"error": "listing users requires a superuser"}

    r = client.get(f"/v1/users/{other_id}", headers=headers)
    assert r.status_code == 403
    assert r.json() == {"error": "not allowed to view this user"}
    # unknown ids are refused the same way, so existence is not revealed
    r = client.get("/v1/users/00000000-0000-0000-0000-000000000001", headers=headers)
    assert r.status_code == 403


def test_superuser_flag_comes_from_configured_emails(client, register_and_login):
    admin = register_and_login("Admin@Example.com", name="Admin")
    assert client.get("/v1/users/self", headers=admin).json()["item"]["is_superuser"] is True
    user = register_and_login()
    assert client.get("/v1/users/self", headers=user).json()["item"]["is_superuser"] is False


@pytest.mark.parametrize("provider", ["memory", "sqlite"])
def test_search_folds_non_ascii_case(monkeypatch, tmp_path, client, register_and_login, provider):
    monkeypatch.setenv("DATA_PROVIDER", provider)
    monkeypatch.setenv("DB_PATH", str(tmp_path / "fold.db"))
    reset_settings_cache()
    reset_user_service()
    register_and_login("odon@example.com", name="Ödön Kovács")
    admin = register_and_login(ADMIN_EMAIL, name="Admin")

    for term in ("ödön", "ÖDÖN", "KOVÁCS"):
        r = client.get("/v1/users", headers=admin, params={"search": term})
        assert r.status_code == 200, r.text
        assert [u["name"] for u in r.json()["items"]] == ["Ödön Kovács"], term


def test_method_not_allowed_keeps_allow_header(client):
    r = client.post("/v1/status")
    assert r.status_code == 405
    assert "GET" in r.headers["allow"]
    assert r.json() == {"error": "Method Not Allowed"}
