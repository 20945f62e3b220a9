"""数据库异常的统一响应：超时映射为 504，其余错误为不透出细节的 500。"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from app.packages.dms.crud.departments import department_crud


def _failing_with(monkeypatch, exc: Exception) -> None:
    def _raise(*args, **kwargs):
        raise exc

    monkeypatch.setattr(department_crud, "list_all", _raise)


@pytest.mark.parametrize(
    "exc",
    [
        OperationalError("SELECT 1", {}, Exception("canceling statement due to statement timeout")),
        PoolTimeoutError("QueuePool limit of size 5 overflow 10 reached, connection timed out"),
    ],
)
def test_database_timeouts_surface_as_timeout(client: TestClient, admin_headers, monkeypatch, exc):
    _failing_with(monkeypatch, exc)

    response = client.get("/api/v1/departments", headers=admin_headers)

    assert response.status_code == 504
    payload = response.json()
    assert payload["code"] == 504
    assert payload["data"] == {"kind": "timeout", "category": "upstream-failure"}


def test_other_database_errors_are_generic_500(client: TestClient, admin_headers, monkeypatch):
    _failing_with(
        monkeypatch,
        OperationalError("SELECT 1", {}, Exception("could not connect to server db-internal-7:5432")),
    )

    response = client.get("/api/v1/departments", headers=admin_headers)

    assert response.status_code == 500
    payload = response.json()
    assert payload["data"] is None
    assert "db-internal-7" not in response.text
    assert "could not connect" not in response.text
