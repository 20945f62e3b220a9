"""目录层级服务：面包屑解析、移动校验与移动落库。

- 面包屑：沿 parent_id 向上遍历，记录已访问节点；节点重复出现或跳数超过
  ``HIERARCHY_MAX_DEPTH`` 时视为数据损坏，抛出 ``CycleDetected``；
- 移动校验：新父节点不能是自身或自身的后代（按子节点广度优先遍历，
  遍历规模以文件夹总数为上限），且必须与被移动文件夹属于同一部门；
- 移动落库：在执行更新的同一事务内加锁重新校验，避免校验与写入之间的竞态。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.exceptions import CrossDepartmentError, CycleDetectedError, NotFoundError
from app.packages.dms.core.logger import logger
from app.packages.dms.crud.folders import folder_crud
from app.packages.dms.models.folder import Folder


class HierarchyService:
    """封装文件夹树的只读解析与结构约束校验。"""

    def ancestor_chain(self, db: Session, folder_id: int) -> list[Folder]:
        """返回从根到 ``folder_id`` 的文件夹列表（含自身）。"""
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError("文件夹不存在")

        max_depth = max(get_settings().hierarchy_max_depth, 1)
        chain: list[Folder] = []
        visited: set[int] = set()
        current: Optional[Folder] = folder
        while current is not None:
            if current.id in visited:
                logger.error("Folder hierarchy cycle detected at folder %s (start %s)", current.id, folder_id)
                raise CycleDetectedError("目录层级数据异常：检测到循环引用")
            if len(visited) >= max_depth:
                logger.error("Folder hierarchy exceeds %s levels starting at folder %s", max_depth, folder_id)
                raise CycleDetectedError("目录层级数据异常：层级过深")
            visited.add(current.id)
            chain.append(current)
            if current.parent_id is None:
                break
            parent = folder_crud.get(db, current.parent_id, include_inactive=True)
            if parent is None:
                raise NotFoundError("上级文件夹不存在")
            current = parent

        chain.reverse()
        return chain

    def resolve_breadcrumb(self, db: Session, folder_id: int) -> list[dict]:
        """返回 ``[{id, name}]``，首元素为部门根目录，末元素为目标文件夹。"""
        return [{"id": item.id, "name": item.name} for item in self.ancestor_chain(db, folder_id)]

    def descendant_ids(self, db: Session, folder_id: int) -> set[int]:
        """广度优先收集所有后代文件夹 ID（不含自身，含已停用节点）。"""
        limit = folder_crud.count_all(db)
        found: set[int] = set()
        frontier = [folder_id]
        while frontier:
            children = [cid for cid in folder_crud.child_ids(db, frontier) if cid not in found]
            if folder_id in children:
                raise CycleDetectedError("目录层级数据异常：检测到循环引用")
            found.update(children)
            if len(found) > limit:
                raise CycleDetectedError("目录层级数据异常：后代数量超出文件夹总数")
            frontier = children
        return found

    def validate_move(
        self,
        db: Session,
        folder_id: int,
        new_parent_id: Optional[int],
        *,
        lock: bool = False,
    ) -> tuple[Folder, Optional[Folder]]:
        """校验移动是否合法，返回 (被移动文件夹, 新父文件夹)；新父为空表示移至部门根。"""
        folder = self._load(db, folder_id, lock=lock)
        if folder is None:
            raise NotFoundError("文件夹不存在")
        if new_parent_id is None:
            return folder, None

        if new_parent_id == folder.id:
            raise CycleDetectedError("不能将文件夹移动到自身之下")

        parent = self._load(db, new_parent_id, lock=lock)
        if parent is None:
            raise NotFoundError("目标父文件夹不存在")
        if parent.department_id != folder.department_id:
            raise CrossDepartmentError("目标父文件夹属于其他部门")
        if parent.id in self.descendant_ids(db, folder.id):
            raise CycleDetectedError("不能将文件夹移动到其子文件夹之下")
        return folder, parent

    def move_folder(self, db: Session, folder_id: int, new_parent_id: Optional[int]) -> Folder:
        """加锁重新校验后更新 parent_id 并提交；任何校验失败都会回滚本事务。"""
        try:
            folder, _ = self.validate_move(db, folder_id, new_parent_id, lock=True)
            folder.parent_id = new_parent_id
            db.add(folder)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(folder)
        return folder

    @staticmethod
    def _load(db: Session, folder_id: int, *, lock: bool) -> Optional[Folder]:
        if not lock:
            return folder_crud.get(db, folder_id)
        folder = folder_crud.get_for_update(db, folder_id)
        if folder is None or not folder.is_active:
            return None
        return folder


hierarchy_service = HierarchyService()
