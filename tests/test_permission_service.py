"""权限判定规则的测试：超级管理员、用户条目优先、角色条目与单层继承。"""

import pytest

from app.packages.dms.core.enums import AccessRight
from app.packages.dms.core.exceptions import AppException, NotFoundError, PermissionDeniedError
from app.packages.dms.models.document import Document, DocumentPermission
from app.packages.dms.models.folder import Folder, FolderPermission
from app.packages.dms.services.permission_service import PermissionIndex, Principal, permission_service

ALICE = Principal(user_id=1, role="employee")
BOB = Principal(user_id=2, role="manager")
ROOT = Principal(user_id=99, role="superadmin")


def _folder(folder_id, *entries, parent=None):
    return Folder(id=folder_id, name=f"f{folder_id}", department_id=1, parent=parent, permissions=list(entries))


def _document(folder, *entries):
    return Document(id=100, title="doc", folder=folder, permissions=list(entries))


def test_superadmin_is_allowed_everything_without_entries():
    folder = _folder(1)
    for right in AccessRight:
        assert permission_service.can_access(ROOT, folder, right)
        assert permission_service.can_access(ROOT, _document(folder), right)


def test_no_entries_means_deny():
    folder = _folder(1)
    assert not permission_service.can_access(ALICE, folder, AccessRight.VIEW)
    assert not permission_service.can_access(ALICE, _document(folder), AccessRight.VIEW)


def test_user_entry_wins_over_role_entry_even_when_weaker():
    folder = _folder(
        1,
        FolderPermission(user_id=ALICE.user_id, rights=["view"]),
        FolderPermission(role="employee", rights=["view", "edit", "delete"]),
    )
    assert permission_service.can_access(ALICE, folder, AccessRight.VIEW)
    assert not permission_service.can_access(ALICE, folder, AccessRight.EDIT)
    # 同角色的其他用户没有用户条目，按角色条目判定
    other = Principal(user_id=3, role="employee")
    assert permission_service.can_access(other, folder, AccessRight.EDIT)


def test_role_match_is_case_insensitive():
    folder = _folder(1, FolderPermission(role="Manager", rights=["view"]))
    assert permission_service.can_access(Principal(user_id=5, role="MANAGER"), folder, "view")


def test_document_falls_back_to_immediate_folder():
    folder = _folder(1, FolderPermission(role="manager", rights=["view", "download"]))
    document = _document(folder)
    assert permission_service.can_access(BOB, document, AccessRight.DOWNLOAD)
    assert not permission_service.can_access(BOB, document, AccessRight.EDIT)


def test_document_entry_shadows_folder_entry():
    folder = _folder(1, FolderPermission(user_id=ALICE.user_id, rights=["view", "edit"]))
    document = _document(folder, DocumentPermission(user_id=ALICE.user_id, rights=["view"]))
    assert not permission_service.can_access(ALICE, document, AccessRight.EDIT)


def test_grandparent_grants_do_not_reach_grandchild_documents():
    grandparent = _folder(1, FolderPermission(user_id=ALICE.user_id, rights=["view", "edit"]))
    parent = _folder(2, parent=grandparent)
    document = _document(parent)

    assert permission_service.can_access(ALICE, grandparent, AccessRight.VIEW)
    assert not permission_service.can_access(ALICE, parent, AccessRight.VIEW)
    assert not permission_service.can_access(ALICE, document, AccessRight.VIEW)


def test_unknown_right_is_denied():
    folder = _folder(1, FolderPermission(user_id=ALICE.user_id, rights=["view"]))
    assert not permission_service.can_access(ALICE, folder, "share")


def test_require_access_raises_permission_denied():
    folder = _folder(1, FolderPermission(user_id=ALICE.user_id, rights=["view"]))
    permission_service.require_access(ALICE, folder, AccessRight.VIEW)
    permission_service.require_access(ALICE, folder, AccessRight.UPLOAD, AccessRight.VIEW)
    with pytest.raises(PermissionDeniedError) as exc_info:
        permission_service.require_access(ALICE, folder, AccessRight.DELETE)
    assert exc_info.value.status_code == 403
    assert exc_info.value.data["category"] == "forbidden"


def test_effective_rights_and_filter():
    visible = _folder(1, FolderPermission(user_id=ALICE.user_id, rights=["download", "view"]))
    hidden = _folder(2)
    assert permission_service.effective_rights(ALICE, visible) == ["view", "download"]
    assert permission_service.filter_accessible(ALICE, [visible, hidden]) == [visible]


def test_index_is_rebuilt_when_entries_change():
    folder = _folder(1)
    assert not permission_service.can_access(ALICE, folder, AccessRight.VIEW)
    folder.permissions.append(FolderPermission(user_id=ALICE.user_id, rights=["view"]))
    assert permission_service.can_access(ALICE, folder, AccessRight.VIEW)
    assert PermissionIndex.for_resource(folder).by_user == {ALICE.user_id: frozenset({"view"})}


def test_normalize_rights_orders_and_validates():
    assert permission_service.normalize_rights(["download", "view", "view"]) == ["view", "download"]
    with pytest.raises(AppException):
        permission_service.normalize_rights(["view", "share"])


def test_grant_upserts_and_revoke_removes(db_session_fixture, make_department, make_folder, make_user):
    dept = make_department()
    user = make_user(department_id=dept.id)
    folder = make_folder(dept.id)

    permission_service.grant(db_session_fixture, folder, rights=["view"], user_id=user.id)
    entry = permission_service.grant(db_session_fixture, folder, rights=["view", "edit"], user_id=user.id)
    assert entry.rights == ["view", "edit"]
    assert len(folder.permissions) == 1

    principal = Principal.from_user(user)
    assert permission_service.can_access(principal, folder, AccessRight.EDIT)

    assert permission_service.revoke(db_session_fixture, folder, user_id=user.id)
    assert not permission_service.revoke(db_session_fixture, folder, user_id=user.id)
    assert not permission_service.can_access(principal, folder, AccessRight.VIEW)

    with pytest.raises(AppException):
        permission_service.grant(db_session_fixture, folder, rights=["view"], user_id=user.id, role="manager")


def test_grant_to_unknown_user_is_not_found(db_session_fixture, make_department, make_folder):
    folder = make_folder(make_department().id)

    with pytest.raises(NotFoundError):
        permission_service.grant(db_session_fixture, folder, rights=["view"], user_id=987654)

    db_session_fixture.refresh(folder)
    assert folder.permissions == []
