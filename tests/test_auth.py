from trustcota.models import ROLE_ADMIN

from conftest import DEFAULT_PASSWORD


def test_seed_admin_only_once(client):
    response = client.post("/api/auth/seed-admin", json={"username": "root", "password": "admin123"})
    assert response.status_code == 201
    assert response.get_json()["role"] == ROLE_ADMIN
    assert "passwordHash" not in response.get_json()

    again = client.post("/api/auth/seed-admin", json={"username": "other", "password": "admin123"})
    assert again.status_code == 409


def test_seed_admin_password_policy(client):
    response = client.post("/api/auth/seed-admin", json={"username": "root", "password": "123"})
    assert response.status_code == 400


def test_login_logout_roundtrip(client, make_user):
    make_user(username="maria")

    response = client.post("/api/auth/login", json={"username": "maria", "password": DEFAULT_PASSWORD})
    assert response.status_code == 200
    assert response.get_json()["username"] == "maria"

    assert client.get("/api/auth/user").get_json()["username"] == "maria"

    client.post("/api/auth/logout")
    assert client.get("/api/auth/user").status_code == 401


def test_wrong_password(client, make_user):
    make_user(username="maria")
    response = client.post("/api/auth/login", json={"username": "maria", "password": "nope"})
    assert response.status_code == 401
    assert response.get_json() == {"message": "Invalid username or password"}


def test_inactive_user_cannot_log_in(client, make_user):
    make_user(username="ex", is_active=False)
    response = client.post("/api/auth/login", json={"username": "ex", "password": DEFAULT_PASSWORD})
    assert response.status_code == 403


def test_login_requires_both_fields(client):
    assert client.post("/api/auth/login", json={"username": "maria"}).status_code == 400
    assert client.post("/api/auth/login", data="not json").status_code == 400


def test_csrf_token_endpoint(client):
    response = client.get("/api/auth/csrf-token")
    assert response.status_code == 200
    assert response.get_json()["csrfToken"]


def test_deactivated_session_loses_access(app, client, storage, make_user, login):
    user_id = make_user(username="temp")
    login("temp")

    with app.app_context():
        storage.update_user(user_id, {"is_active": False})

    response = client.get("/api/quotation-requests")
    assert response.status_code == 403
    assert response.get_json()["message"] == "Account is disabled"
