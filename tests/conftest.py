"""测试夹具：为 pytest 提供数据库、对象存储、会话与客户端的共享配置。"""

import os
import uuid
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from app.packages.dms.core.dependencies import get_db  # noqa: E402
from app.packages.dms.core.security import get_password_hash  # noqa: E402
from app.packages.dms.core.session import InMemorySessionBackend, set_session_backend  # noqa: E402
from app.packages.dms.db import session as db_session  # noqa: E402
from app.packages.dms.db.init_db import init_db  # noqa: E402
from app.packages.dms.models import Department, Folder, FolderPermission, User  # noqa: E402
from app.packages.dms.models.base import Base  # noqa: E402
from app.packages.dms.services.blob_storage import LocalBlobStore, set_blob_store  # noqa: E402
from app.main import app  # noqa: E402

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = db_session.build_engine(TEST_DATABASE_URL)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal
    set_session_backend(InMemorySessionBackend())

    Base.metadata.create_all(bind=engine)
    init_db()
    yield

    set_session_backend(None)
    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
def blob_store(tmp_path) -> Generator[LocalBlobStore, None, None]:
    """每个用例使用独立的本地存储根目录。"""
    store = LocalBlobStore(tmp_path / "blobs", timeout_seconds=5.0)
    set_blob_store(store)
    yield store
    set_blob_store(None)


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session_fixture):
    """构建 FastAPI TestClient，并注入测试专用的数据库依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def make_department(db_session_fixture) -> Callable[..., Department]:
    def _make(name: Optional[str] = None) -> Department:
        department = Department(name=name or f"dept-{uuid.uuid4().hex[:8]}")
        db_session_fixture.add(department)
        db_session_fixture.commit()
        db_session_fixture.refresh(department)
        return department

    return _make


@pytest.fixture()
def make_user(db_session_fixture) -> Callable[..., User]:
    def _make(role: str = "employee", department_id: Optional[int] = None, username: Optional[str] = None) -> User:
        user = User(
            username=username or f"user-{uuid.uuid4().hex[:8]}",
            hashed_password=get_password_hash(DEFAULT_PASSWORD),
            role=role,
            department_id=department_id,
        )
        db_session_fixture.add(user)
        db_session_fixture.commit()
        db_session_fixture.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_folder(db_session_fixture) -> Callable[..., Folder]:
    """直接落库创建文件夹，``grants`` 为 ``{user_id 或角色名: [权限]}``。"""

    def _make(department_id: int, parent_id: Optional[int] = None, name: Optional[str] = None, grants=None) -> Folder:
        folder = Folder(name=name or f"folder-{uuid.uuid4().hex[:6]}", parent_id=parent_id, department_id=department_id)
        for subject, rights in (grants or {}).items():
            if isinstance(subject, int):
                folder.permissions.append(FolderPermission(user_id=subject, rights=list(rights)))
            else:
                folder.permissions.append(FolderPermission(role=subject, rights=list(rights)))
        db_session_fixture.add(folder)
        db_session_fixture.commit()
        db_session_fixture.refresh(folder)
        return folder

    return _make


def login(client: TestClient, username: str, password: str = DEFAULT_PASSWORD) -> dict:
    response = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    token = response.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(client) -> dict:
    return login(client, "admin", "admin123")


@pytest.fixture()
def auth_headers(client) -> Callable[[User], dict]:
    def _headers(user: User) -> dict:
        return login(client, user.username)

    return _headers
