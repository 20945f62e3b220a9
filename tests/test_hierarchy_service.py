"""目录层级解析、移动校验与循环检测的测试。"""

import pytest

from app.packages.dms.core.exceptions import CrossDepartmentError, CycleDetectedError, NotFoundError
from app.packages.dms.models.folder import Folder
from app.packages.dms.services.hierarchy_service import hierarchy_service


def test_breadcrumb_runs_from_root_to_target(db_session_fixture, make_department, make_folder):
    dept = make_department()
    root = make_folder(dept.id, name="Finance")
    reports = make_folder(dept.id, parent_id=root.id, name="Reports")
    q1 = make_folder(dept.id, parent_id=reports.id, name="2024-Q1")

    crumbs = hierarchy_service.resolve_breadcrumb(db_session_fixture, q1.id)

    assert crumbs == [
        {"id": root.id, "name": "Finance"},
        {"id": reports.id, "name": "Reports"},
        {"id": q1.id, "name": "2024-Q1"},
    ]
    assert hierarchy_service.resolve_breadcrumb(db_session_fixture, root.id) == [{"id": root.id, "name": "Finance"}]


def test_breadcrumb_of_missing_folder_raises_not_found(db_session_fixture):
    with pytest.raises(NotFoundError):
        hierarchy_service.resolve_breadcrumb(db_session_fixture, 987654)


def test_breadcrumb_detects_corrupted_cycle(db_session_fixture, make_department, make_folder):
    dept = make_department()
    a = make_folder(dept.id, name="a")
    b = make_folder(dept.id, parent_id=a.id, name="b")
    # 绕过移动校验直接写入坏数据：a -> b -> a
    a.parent_id = b.id
    db_session_fixture.commit()

    with pytest.raises(CycleDetectedError):
        hierarchy_service.resolve_breadcrumb(db_session_fixture, b.id)
    with pytest.raises(CycleDetectedError):
        hierarchy_service.descendant_ids(db_session_fixture, a.id)


def test_breadcrumb_depth_is_bounded(db_session_fixture, make_department, make_folder, monkeypatch):
    from app.packages.dms.core.config import get_settings

    dept = make_department()
    parent = make_folder(dept.id)
    for _ in range(4):
        parent = make_folder(dept.id, parent_id=parent.id)

    monkeypatch.setattr(get_settings(), "hierarchy_max_depth", 3)
    with pytest.raises(CycleDetectedError):
        hierarchy_service.resolve_breadcrumb(db_session_fixture, parent.id)


def test_validate_move_rejects_self_and_descendants(db_session_fixture, make_department, make_folder):
    dept = make_department()
    root = make_folder(dept.id)
    child = make_folder(dept.id, parent_id=root.id)
    grandchild = make_folder(dept.id, parent_id=child.id)

    with pytest.raises(CycleDetectedError):
        hierarchy_service.validate_move(db_session_fixture, root.id, root.id)
    with pytest.raises(CycleDetectedError):
        hierarchy_service.validate_move(db_session_fixture, root.id, grandchild.id)

    folder, parent = hierarchy_service.validate_move(db_session_fixture, grandchild.id, root.id)
    assert folder.id == grandchild.id
    assert parent.id == root.id


def test_validate_move_rejects_other_department(db_session_fixture, make_department, make_folder):
    finance = make_department()
    legal = make_department()
    source = make_folder(finance.id)
    target = make_folder(legal.id)

    with pytest.raises(CrossDepartmentError):
        hierarchy_service.validate_move(db_session_fixture, source.id, target.id)


def test_validate_move_to_root_and_missing_parent(db_session_fixture, make_department, make_folder):
    dept = make_department()
    root = make_folder(dept.id)
    child = make_folder(dept.id, parent_id=root.id)

    folder, parent = hierarchy_service.validate_move(db_session_fixture, child.id, None)
    assert folder.id == child.id and parent is None

    with pytest.raises(NotFoundError):
        hierarchy_service.validate_move(db_session_fixture, child.id, 987654)
    with pytest.raises(NotFoundError):
        hierarchy_service.validate_move(db_session_fixture, 987654, root.id)


def test_move_folder_updates_parent_and_keeps_tree_acyclic(db_session_fixture, make_department, make_folder):
    dept = make_department()
    a = make_folder(dept.id, name="a")
    b = make_folder(dept.id, name="b")
    c = make_folder(dept.id, parent_id=a.id, name="c")

    moved = hierarchy_service.move_folder(db_session_fixture, c.id, b.id)
    assert moved.parent_id == b.id
    assert [item["id"] for item in hierarchy_service.resolve_breadcrumb(db_session_fixture, c.id)] == [b.id, c.id]

    # 反向移动会形成环，应被拒绝且数据保持不变
    with pytest.raises(CycleDetectedError):
        hierarchy_service.move_folder(db_session_fixture, b.id, c.id)
    db_session_fixture.expire_all()
    assert db_session_fixture.get(Folder, b.id).parent_id is None
