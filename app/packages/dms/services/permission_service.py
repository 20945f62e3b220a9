"""权限判定服务：决定某个主体能否对文件夹或文档执行指定操作。

判定顺序（命中即止）：

1. 超级管理员角色无条件放行；
2. 资源上存在匹配用户 ID 的显式条目时，仅按该条目判定，
   即便权限不足也不会再回退到角色条目；
3. 资源上存在匹配角色的显式条目时，按该条目判定；
4. 资源为文档时，对其所在文件夹重复第 2、3 步（只继承一层，
   祖父级文件夹的授权不会传递到孙级文档）；
5. 其余情况拒绝。

判定过程为纯函数，不访问数据库，也不会抛出异常。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, TypeVar, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.enums import AccessRight
from app.packages.dms.core.exceptions import AppException, NotFoundError, PermissionDeniedError
from app.packages.dms.core.constants import HTTP_STATUS_BAD_REQUEST
from app.packages.dms.crud.users import user_crud
from app.packages.dms.models.document import Document, DocumentPermission
from app.packages.dms.models.folder import Folder, FolderPermission

Resource = Union[Folder, Document]
PermissionEntry = Union[FolderPermission, DocumentPermission]
R = TypeVar("R", Folder, Document)

_INDEX_ATTR = "_permission_index"


@dataclass(frozen=True)
class Principal:
    """权限判定的主体：已认证用户及其角色。"""

    user_id: int
    role: str
    department_id: Optional[int] = None

    def __post_init__(self) -> None:
        # 角色名统一按小写比较
        object.__setattr__(self, "role", (self.role or "").strip().lower())

    @classmethod
    def from_user(cls, user: object) -> "Principal":
        return cls(
            user_id=getattr(user, "id"),
            role=getattr(user, "role", None) or "",
            department_id=getattr(user, "department_id", None),
        )


class PermissionIndex:
    """资源显式权限条目的映射索引，按用户 ID 与角色名查找。"""

    __slots__ = ("by_user", "by_role", "_source")

    def __init__(self, entries: Iterable[PermissionEntry], source: object = None) -> None:
        self.by_user: dict[int, frozenset[str]] = {}
        self.by_role: dict[str, frozenset[str]] = {}
        self._source = source
        for entry in entries:
            if entry.user_id is not None:
                self.by_user[entry.user_id] = entry.rights_set
            elif entry.role:
                self.by_role[entry.role.strip().lower()] = entry.rights_set

    def lookup(self, principal: Principal) -> Optional[frozenset[str]]:
        """返回匹配条目的权限集合；用户条目优先于角色条目，均未命中返回 ``None``。"""
        rights = self.by_user.get(principal.user_id)
        if rights is not None:
            return rights
        return self.by_role.get(principal.role)

    @classmethod
    def for_resource(cls, resource: Resource) -> "PermissionIndex":
        """读取资源上缓存的索引，权限集合被重新加载或增删后自动重建。"""
        entries = resource.permissions
        source = (id(entries), len(entries))
        cached = getattr(resource, _INDEX_ATTR, None)
        if cached is not None and cached._source == source:
            return cached
        index = cls(entries, source=source)
        setattr(resource, _INDEX_ATTR, index)
        return index

    @staticmethod
    def invalidate(resource: Resource) -> None:
        if hasattr(resource, _INDEX_ATTR):
            delattr(resource, _INDEX_ATTR)


def _coerce_right(right: Union[AccessRight, str]) -> Optional[str]:
    try:
        return AccessRight(right).value
    except ValueError:
        return None


def serialize_entries(entries: Iterable[PermissionEntry]) -> list[dict]:
    return [
        {"id": entry.id, "user_id": entry.user_id, "role": entry.role, "rights": list(entry.rights or [])}
        for entry in entries
    ]


class PermissionService:
    """权限判定与显式权限条目的维护。"""

    def is_superadmin(self, principal: Principal) -> bool:
        return principal.role == get_settings().superadmin_role.strip().lower()

    def can_access(self, principal: Principal, resource: Resource, right: Union[AccessRight, str]) -> bool:
        required = _coerce_right(right)
        if required is None:
            return False
        if self.is_superadmin(principal):
            return True

        rights = PermissionIndex.for_resource(resource).lookup(principal)
        if rights is not None:
            return required in rights

        if isinstance(resource, Document):
            folder = resource.folder
            if folder is not None:
                rights = PermissionIndex.for_resource(folder).lookup(principal)
                if rights is not None:
                    return required in rights
        return False

    def can_access_any(self, principal: Principal, resource: Resource, rights: Sequence[Union[AccessRight, str]]) -> bool:
        return any(self.can_access(principal, resource, right) for right in rights)

    def require_access(
        self,
        principal: Principal,
        resource: Resource,
        *rights: Union[AccessRight, str],
    ) -> None:
        """调用层使用：主体不具备任一所需权限时抛出 ``PermissionDenied``。"""
        if not self.can_access_any(principal, resource, rights):
            names = "/".join(AccessRight(r).value for r in rights)
            raise PermissionDeniedError(f"没有执行该操作的权限（需要 {names}）")

    def filter_accessible(
        self,
        principal: Principal,
        resources: Iterable[R],
        right: Union[AccessRight, str] = AccessRight.VIEW,
    ) -> list[R]:
        return [item for item in resources if self.can_access(principal, item, right)]

    def effective_rights(self, principal: Principal, resource: Resource) -> list[str]:
        return [right.value for right in AccessRight if self.can_access(principal, resource, right)]

    # ------------------------------------------------------------------
    # 显式权限条目维护
    # ------------------------------------------------------------------

    def grant(
        self,
        db: Session,
        resource: Resource,
        *,
        rights: Iterable[Union[AccessRight, str]],
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> PermissionEntry:
        """新增或覆盖资源上的显式条目；同一用户或同一角色至多一条。"""
        user_id, role = self._normalize_subject(user_id, role)
        normalized = self.normalize_rights(rights)
        if user_id is not None and user_crud.get(db, user_id) is None:
            raise NotFoundError("被授权用户不存在或已停用")

        entry = self._find_entry(resource, user_id=user_id, role=role)
        if entry is None:
            entry_model = DocumentPermission if isinstance(resource, Document) else FolderPermission
            entry = entry_model(user_id=user_id, role=role, rights=normalized)
            resource.permissions.append(entry)
        else:
            entry.rights = normalized
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise AppException("权限条目已被并发修改，请重试", HTTP_STATUS_BAD_REQUEST) from exc
        PermissionIndex.invalidate(resource)
        db.refresh(entry)
        return entry

    def revoke(
        self,
        db: Session,
        resource: Resource,
        *,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> bool:
        user_id, role = self._normalize_subject(user_id, role)
        entry = self._find_entry(resource, user_id=user_id, role=role)
        if entry is None:
            return False
        resource.permissions.remove(entry)
        db.commit()
        PermissionIndex.invalidate(resource)
        return True

    def copy_entries(self, source: Folder, target: Resource) -> None:
        """把来源文件夹的显式条目复制到目标资源（调用方负责提交）。"""
        entry_model = DocumentPermission if isinstance(target, Document) else FolderPermission
        for entry in source.permissions:
            if self._find_entry(target, user_id=entry.user_id, role=entry.role) is not None:
                continue
            target.permissions.append(
                entry_model(user_id=entry.user_id, role=entry.role, rights=list(entry.rights or []))
            )
        PermissionIndex.invalidate(target)

    @staticmethod
    def normalize_rights(rights: Iterable[Union[AccessRight, str]]) -> list[str]:
        values: set[str] = set()
        for right in rights:
            coerced = _coerce_right(right)
            if coerced is None:
                raise AppException(f"无效的权限类型: {right}", HTTP_STATUS_BAD_REQUEST)
            values.add(coerced)
        return [right.value for right in AccessRight if right.value in values]

    @staticmethod
    def _normalize_subject(user_id: Optional[int], role: Optional[str]) -> tuple[Optional[int], Optional[str]]:
        role = (role or "").strip().lower() or None
        if (user_id is None) == (role is None):
            raise AppException("权限条目必须且只能指定用户或角色之一", HTTP_STATUS_BAD_REQUEST)
        return user_id, role

    @staticmethod
    def _find_entry(resource: Resource, *, user_id: Optional[int], role: Optional[str]) -> Optional[PermissionEntry]:
        for entry in resource.permissions:
            if user_id is not None and entry.user_id == user_id:
                return entry
            if role is not None and entry.role == role:
                return entry
        return None


permission_service = PermissionService()
