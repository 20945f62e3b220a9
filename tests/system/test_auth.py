"""认证与用户管理接口的集成测试用例。"""

from fastapi.testclient import TestClient


def test_login_success(client: TestClient):
    """登录流程：正确凭证应返回访问令牌。"""
    response = client.post(
        "/api/v1/auth/login",
        json={"username": "admin", "password": "admin123"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["code"] == 200
    assert payload["data"]["token_type"] == "bearer"
    assert payload["data"]["access_token"]


def test_login_invalid_credentials(client: TestClient):
    """登录流程：错误密码应提示认证失败。"""
    response = client.post(
        "/api/v1/auth/login",
        json={"username": "admin", "password": "wrongpassword"},
    )
    assert response.status_code == 401
    payload = response.json()
    assert payload["code"] == 401
    assert payload["msg"] == "用户名或密码错误"


def test_me_returns_superadmin_profile(client: TestClient, admin_headers):
    response = client.get("/api/v1/auth/me", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["username"] == "admin"
    assert data["role"] == "superadmin"


def test_requests_without_token_are_rejected(client: TestClient):
    response = client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.json()["msg"] == "缺少认证信息"


def test_logout_invalidates_session(client: TestClient, admin_headers):
    """退出登录后原令牌立即失效。"""
    response = client.post("/api/v1/auth/logout", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["msg"] == "退出登录成功"

    again = client.get("/api/v1/auth/me", headers=admin_headers)
    assert again.status_code == 401


def test_superadmin_creates_and_lists_users(client: TestClient, admin_headers, make_department):
    dept = make_department()
    response = client.post(
        "/api/v1/users",
        headers=admin_headers,
        json={"username": "carol_api", "password": "carol123", "role": "Manager", "department_id": dept.id},
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["role"] == "manager"
    assert data["department_id"] == dept.id

    duplicate = client.post(
        "/api/v1/users",
        headers=admin_headers,
        json={"username": "carol_api", "password": "carol123"},
    )
    assert duplicate.status_code == 409

    listing = client.get("/api/v1/users", headers=admin_headers, params={"department_id": dept.id})
    assert [item["username"] for item in listing.json()["data"]] == ["carol_api"]

    login_resp = client.post("/api/v1/auth/login", json={"username": "carol_api", "password": "carol123"})
    assert login_resp.status_code == 200


def test_user_management_requires_superadmin(client: TestClient, make_user, auth_headers):
    employee = make_user()
    response = client.get("/api/v1/users", headers=auth_headers(employee))

    assert response.status_code == 403
    payload = response.json()
    assert payload["data"]["kind"] == "permission_denied"
    assert payload["data"]["category"] == "forbidden"


def test_departments_create_and_deactivate(client: TestClient, admin_headers, make_user, auth_headers):
    response = client.post("/api/v1/departments", headers=admin_headers, json={"name": "Legal-API"})
    assert response.status_code == 200
    department_id = response.json()["data"]["id"]

    duplicate = client.post("/api/v1/departments", headers=admin_headers, json={"name": "Legal-API"})
    assert duplicate.status_code == 409

    employee = make_user()
    listing = client.get("/api/v1/departments", headers=auth_headers(employee))
    assert "Legal-API" in [item["name"] for item in listing.json()["data"]]
    forbidden = client.post("/api/v1/departments", headers=auth_headers(employee), json={"name": "Nope"})
    assert forbidden.status_code == 403

    deactivated = client.post(f"/api/v1/departments/{department_id}/deactivate", headers=admin_headers)
    assert deactivated.status_code == 200
    assert deactivated.json()["data"]["is_active"] is False

    listing = client.get("/api/v1/departments", headers=admin_headers)
    assert "Legal-API" not in [item["name"] for item in listing.json()["data"]]


def test_health_check(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["data"] == {"status": "healthy"}
    assert response.headers.get("X-Request-ID")
