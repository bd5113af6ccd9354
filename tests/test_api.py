"""Tests for the FastAPI REST endpoints."""
from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app import create_app
from auth import create_token, decode_token
from settings import Settings

TEST_SECRET = "test-secret-key-for-testing-0123456789"
VALID_PASSWORD = "Secret1!"

MILK = {
    "title": "Buy milk",
    "priority": 2,
    "status": 1,
    "due_date": "2026-01-01",
}


def _settings(**overrides) -> Settings:
    values = dict(
        JWT_SECRET=TEST_SECRET,
        DATABASE_URL="sqlite://",
        BCRYPT_ROUNDS=4,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def app(settings):
    return create_app(settings=settings)


@pytest.fixture
def client(app):
    return TestClient(app)


def _register_user(client, name="alice", password=VALID_PASSWORD) -> dict:
    resp = client.post("/register", json={"name": name, "password": password})
    assert resp.status_code == 201, resp.json()
    return resp.json()


def _login_user(client, name="alice", password=VALID_PASSWORD) -> dict:
    resp = client.post("/login", json={"name": name, "password": password})
    assert resp.status_code == 200, resp.json()
    return resp.json()


def _auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice_headers(client) -> dict:
    _register_user(client)
    return _auth_header(_login_user(client)["token"])


@pytest.fixture
def bob_headers(client) -> dict:
    _register_user(client, "bob", "Other2@pass")
    return _auth_header(_login_user(client, "bob", "Other2@pass")["token"])


def _create(client, headers, body=None) -> int:
    resp = client.post("/tasks", json=body or MILK, headers=headers)
    assert resp.status_code == 201, resp.json()
    return resp.json()["id"]


# ---------------------------------------------------------------------------
# POST /register
# ---------------------------------------------------------------------------

class TestRegisterEndpoint:

    def test_register_returns_201(self, client):
        resp = client.post("/register", json={"name": "alice", "password": VALID_PASSWORD})
        assert resp.status_code == 201
        assert resp.json() == {"message": "USER_REGISTERED"}

    def test_register_duplicate(self, client):
        _register_user(client)
        resp = client.post("/register", json={"name": "alice", "password": "Another1!"})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "USER_EXISTS"}

    @pytest.mark.parametrize(
        "body",
        [{}, {"name": "alice"}, {"password": VALID_PASSWORD},
         {"name": "", "password": VALID_PASSWORD}, {"name": None, "password": None}],
    )
    def test_register_missing_data(self, client, body):
        resp = client.post("/register", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "MISSING_DATA"}

    @pytest.mark.parametrize(
        "password,tag",
        [
            ("Sh1!", "PASSWORD_TOO_SHORT"),
            ("ALLUPPER1!", "PASSWORD_NO_LOWER"),
            ("alllower1!", "PASSWORD_NO_UPPER"),
            ("NoDigits!!", "PASSWORD_NO_DIGIT"),
            ("NoSpecial12", "PASSWORD_NO_SPECIAL"),
        ],
    )
    def test_register_policy_violation(self, client, password, tag):
        resp = client.post("/register", json={"name": "alice", "password": password})
        assert resp.status_code == 400
        assert resp.json() == {"detail": tag}

    def test_register_does_not_echo_password(self, client):
        resp = client.post("/register", json={"name": "alice", "password": VALID_PASSWORD})
        assert VALID_PASSWORD not in resp.text

    def test_register_long_name(self, client):
        name = "n" * 300
        _register_user(client, name)
        data = _login_user(client, name)
        assert decode_token(data["token"], TEST_SECRET).name == name


# ---------------------------------------------------------------------------
# POST /login
# ---------------------------------------------------------------------------

class TestLoginEndpoint:

    def test_login_success(self, client):
        _register_user(client)
        data = _login_user(client)
        assert data["message"] == "LOGIN_OK"
        assert data["token_type"] == "bearer"
        claims = decode_token(data["token"], TEST_SECRET)
        assert claims.name == "alice"
        assert claims.exp - claims.iat == 3600

    def test_login_unknown_user(self, client):
        resp = client.post("/login", json={"name": "nobody", "password": VALID_PASSWORD})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "USER_NOT_FOUND"}

    def test_login_wrong_password(self, client):
        _register_user(client)
        resp = client.post("/login", json={"name": "alice", "password": "Secret1?"})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "PASSWORD_INCORRECT"}

    def test_login_missing_data(self, client):
        resp = client.post("/login", json={"name": "alice"})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "MISSING_DATA"}

    def test_login_uses_configured_ttl(self):
        client = TestClient(create_app(settings=_settings(TOKEN_TTL_SECONDS=60)))
        _register_user(client)
        claims = decode_token(_login_user(client)["token"], TEST_SECRET)
        assert claims.exp - claims.iat == 60


# ---------------------------------------------------------------------------
# Auth gate via GET /profile
# ---------------------------------------------------------------------------

class TestAuthGateEndpoint:

    def test_profile_granted(self, client, alice_headers):
        resp = client.get("/profile", headers=alice_headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "ACCESS_GRANTED", "name": "alice"}

    def test_no_header(self, client):
        resp = client.get("/profile")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_REQUIRED"}
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_header_without_token_part(self, client, alice_headers):
        token = alice_headers["Authorization"].split()[1]
        resp = client.get("/profile", headers={"Authorization": token})
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_INVALID"}

    def test_expired_token(self, client):
        _register_user(client)
        token = create_token(1, "alice", TEST_SECRET, ttl=-1)
        resp = client.get("/profile", headers=_auth_header(token))
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_INVALID"}

    def test_token_expires_after_lifetime(self):
        client = TestClient(create_app(settings=_settings(TOKEN_TTL_SECONDS=1)))
        _register_user(client)
        headers = _auth_header(_login_user(client)["token"])
        assert client.get("/tasks", headers=headers).status_code == 200
        time.sleep(2.1)
        resp = client.get("/tasks", headers=headers)
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_INVALID"}

    def test_forged_token(self, client):
        token = create_token(1, "alice", "some-other-secret-0123456789abcdef")
        resp = client.get("/profile", headers=_auth_header(token))
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_INVALID"}

    def test_garbage_token(self, client):
        resp = client.get("/profile", headers=_auth_header("not.a.token"))
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_INVALID"}

    def test_any_scheme_accepted_by_default(self, client, alice_headers):
        token = alice_headers["Authorization"].split()[1]
        resp = client.get("/profile", headers={"Authorization": f"Token {token}"})
        assert resp.status_code == 200

    def test_strict_bearer_rejects_other_scheme(self):
        client = TestClient(create_app(settings=_settings(STRICT_BEARER=True)))
        _register_user(client)
        token = _login_user(client)["token"]
        resp = client.get("/profile", headers={"Authorization": f"Token {token}"})
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_INVALID"}
        resp = client.get("/profile", headers=_auth_header(token))
        assert resp.status_code == 200

    @pytest.mark.parametrize(
        "method,path",
        [("get", "/tasks"), ("post", "/tasks"), ("put", "/tasks/1"),
         ("delete", "/tasks/1")],
    )
    def test_task_routes_require_token(self, client, method, path):
        kwargs = {"json": MILK} if method in ("post", "put") else {}
        resp = getattr(client, method)(path, **kwargs)
        assert resp.status_code == 401
        assert resp.json() == {"detail": "TOKEN_REQUIRED"}


# ---------------------------------------------------------------------------
# /tasks
# ---------------------------------------------------------------------------

class TestTaskEndpoints:

    def test_create_returns_id(self, client, alice_headers):
        resp = client.post("/tasks", json=MILK, headers=alice_headers)
        assert resp.status_code == 201
        data = resp.json()
        assert data["message"] == "TASK_CREATED"
        assert data["id"] >= 1

    def test_list_returns_task_fields(self, client, alice_headers):
        task_id = _create(client, alice_headers, {**MILK, "description": "2 litres"})
        resp = client.get("/tasks", headers=alice_headers)
        assert resp.status_code == 200
        (task,) = resp.json()
        assert task["id"] == task_id
        assert task["title"] == "Buy milk"
        assert task["description"] == "2 litres"
        assert task["priority"] == 2
        assert task["status"] == 1
        assert task["due_date"] == "2026-01-01"

    def test_list_empty(self, client, alice_headers):
        resp = client.get("/tasks", headers=alice_headers)
        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.parametrize("field", ["title", "priority", "status", "due_date"])
    def test_create_missing_field(self, client, alice_headers, field):
        body = {k: v for k, v in MILK.items() if k != field}
        resp = client.post("/tasks", json=body, headers=alice_headers)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "MISSING_DATA"}

    def test_create_empty_title(self, client, alice_headers):
        resp = client.post("/tasks", json={**MILK, "title": ""}, headers=alice_headers)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "MISSING_DATA"}

    def test_create_long_title(self, client, alice_headers):
        title = "t" * 1000
        task_id = _create(client, alice_headers, {**MILK, "title": title})
        (task,) = client.get("/tasks", headers=alice_headers).json()
        assert task["id"] == task_id
        assert task["title"] == title

    @pytest.mark.parametrize(
        "field,value",
        [("priority", 7), ("priority", 0), ("status", 4), ("due_date", "tomorrow")],
    )
    def test_create_invalid_value_is_422(self, client, alice_headers, field, value):
        resp = client.post("/tasks", json={**MILK, field: value}, headers=alice_headers)
        assert resp.status_code == 422

    def test_update(self, client, alice_headers):
        task_id = _create(client, alice_headers)
        resp = client.put(
            f"/tasks/{task_id}",
            json={"title": "Buy bread", "priority": 3, "status": 2,
                  "due_date": "2026-02-01"},
            headers=alice_headers,
        )
        assert resp.status_code == 200
        assert resp.json() == {"message": "TASK_UPDATED"}
        (task,) = client.get("/tasks", headers=alice_headers).json()
        assert task["title"] == "Buy bread"
        assert task["priority"] == 3
        assert task["status"] == 2
        assert task["due_date"] == "2026-02-01"

    def test_update_partial_body_nulls_fields(self, client, alice_headers):
        task_id = _create(client, alice_headers)
        resp = client.put(f"/tasks/{task_id}", json={"status": 3}, headers=alice_headers)
        assert resp.status_code == 200
        (task,) = client.get("/tasks", headers=alice_headers).json()
        assert task["status"] == 3
        assert task["title"] is None
        assert task["priority"] is None
        assert task["due_date"] is None

    def test_update_missing_task(self, client, alice_headers):
        resp = client.put("/tasks/999", json=MILK, headers=alice_headers)
        assert resp.status_code == 404
        assert resp.json() == {"detail": "TASK_NOT_FOUND"}

    def test_update_non_integer_id(self, client, alice_headers):
        resp = client.put("/tasks/abc", json=MILK, headers=alice_headers)
        assert resp.status_code == 422

    def test_delete(self, client, alice_headers):
        task_id = _create(client, alice_headers)
        resp = client.delete(f"/tasks/{task_id}", headers=alice_headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "TASK_DELETED"}

    def test_delete_missing_task(self, client, alice_headers):
        resp = client.delete("/tasks/999", headers=alice_headers)
        assert resp.status_code == 404
        assert resp.json() == {"detail": "TASK_NOT_FOUND"}

    def test_token_for_unknown_user_cannot_create(self, client):
        token = create_token(42, "ghost", TEST_SECRET)
        resp = client.post("/tasks", json=MILK, headers=_auth_header(token))
        assert resp.status_code == 500
        assert resp.json() == {"detail": "SERVER_ERROR"}


class TestOwnershipIsolation:

    def test_other_users_tasks_invisible(self, client, alice_headers, bob_headers):
        _create(client, alice_headers)
        assert client.get("/tasks", headers=bob_headers).json() == []

    def test_cannot_update_other_users_task(self, client, alice_headers, bob_headers):
        task_id = _create(client, alice_headers)
        resp = client.put(f"/tasks/{task_id}", json={**MILK, "title": "mine now"},
                          headers=bob_headers)
        assert resp.status_code == 404
        assert resp.json() == {"detail": "TASK_NOT_FOUND"}
        (task,) = client.get("/tasks", headers=alice_headers).json()
        assert task["title"] == "Buy milk"

    def test_cannot_delete_other_users_task(self, client, alice_headers, bob_headers):
        task_id = _create(client, alice_headers)
        resp = client.delete(f"/tasks/{task_id}", headers=bob_headers)
        assert resp.status_code == 404
        assert len(client.get("/tasks", headers=alice_headers).json()) == 1


# ---------------------------------------------------------------------------
# End-to-end
# ---------------------------------------------------------------------------

class TestScenario:

    def test_full_task_lifecycle(self, client):
        assert client.post(
            "/register", json={"name": "alice", "password": "Secret1!"}
        ).status_code == 201
        token = _login_user(client, "alice", "Secret1!")["token"]
        headers = _auth_header(token)

        resp = client.post("/tasks", json=MILK, headers=headers)
        assert resp.status_code == 201
        task_id = resp.json()["id"]

        tasks = client.get("/tasks", headers=headers).json()
        assert len(tasks) == 1
        assert tasks[0]["title"] == "Buy milk"

        resp = client.delete(f"/tasks/{task_id}", headers=headers)
        assert resp.json() == {"message": "TASK_DELETED"}
        assert client.get("/tasks", headers=headers).json() == []

        resp = client.delete(f"/tasks/{task_id}", headers=headers)
        assert resp.status_code == 404
        assert resp.json() == {"detail": "TASK_NOT_FOUND"}


# ---------------------------------------------------------------------------
# Infrastructure failures
# ---------------------------------------------------------------------------

class TestServerErrors:

    @pytest.fixture
    def broken(self, app, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        db = app.state.database
        monkeypatch.setattr(db, "fetch_one", boom)
        monkeypatch.setattr(db, "fetch_all", boom)
        monkeypatch.setattr(db, "execute", boom)

    def test_register_db_failure(self, client, broken):
        resp = client.post("/register", json={"name": "alice", "password": VALID_PASSWORD})
        assert resp.status_code == 500
        assert resp.json() == {"detail": "SERVER_ERROR"}
        assert "disk" not in resp.text

    def test_login_db_failure(self, client, broken):
        resp = client.post("/login", json={"name": "alice", "password": VALID_PASSWORD})
        assert resp.status_code == 500
        assert resp.json() == {"detail": "SERVER_ERROR"}

    def test_list_db_failure(self, client, broken):
        token = create_token(1, "alice", TEST_SECRET)
        resp = client.get("/tasks", headers=_auth_header(token))
        assert resp.status_code == 500
        assert resp.json() == {"detail": "SERVER_ERROR"}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

class TestStartup:

    def test_admin_seeded_on_startup(self):
        app = create_app(settings=_settings(ADMIN_USER="admin", ADMIN_PASSWORD="admin"))
        with TestClient(app) as client:
            data = _login_user(client, "admin", "admin")
            assert decode_token(data["token"], TEST_SECRET).name == "admin"

    def test_no_admin_without_credentials(self):
        with TestClient(create_app(settings=_settings())) as client:
            resp = client.post("/login", json={"name": "admin", "password": "admin"})
            assert resp.status_code == 400
            assert resp.json() == {"detail": "USER_NOT_FOUND"}

    def test_create_app_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("TASKS_JWT_SECRET", TEST_SECRET)
        monkeypatch.setenv("TASKS_DATABASE_URL", "sqlite://")
        monkeypatch.setenv("TASKS_BCRYPT_ROUNDS", "4")
        app = create_app()
        assert app.state.settings.BCRYPT_ROUNDS == 4
        client = TestClient(app)
        _register_user(client)
        assert _login_user(client)["message"] == "LOGIN_OK"
