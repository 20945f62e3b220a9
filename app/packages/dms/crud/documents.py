"""文档与文档版本 CRUD。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.packages.dms.crud.base import CRUDBase
from app.packages.dms.models.document import Document, DocumentVersion


class CRUDDocument(CRUDBase[Document]):
    def list_in_folder(self, db: Session, *, folder_id: int) -> List[Document]:
        return (
            self.query(db)
            .filter(Document.folder_id == folder_id)
            .order_by(Document.title, Document.id)
            .all()
        )

    def compare_and_set(self, db: Session, *, document_id: int, expected_version: int, values: Dict[str, Any]) -> bool:
        """仅当文档版本仍等于 ``expected_version`` 时写入，返回是否命中。"""
        result = db.execute(
            update(Document)
            .where(Document.id == document_id, Document.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class CRUDDocumentVersion(CRUDBase[DocumentVersion]):
    def list_for_document(self, db: Session, *, document_id: int) -> List[DocumentVersion]:
        """按版本号倒序返回，最新的历史版本在前。"""
        return (
            db.query(DocumentVersion)
            .filter(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_number.desc())
            .all()
        )

    def get_by_number(self, db: Session, *, document_id: int, version_number: int) -> Optional[DocumentVersion]:
        return (
            db.query(DocumentVersion)
            .filter(
                DocumentVersion.document_id == document_id,
                DocumentVersion.version_number == version_number,
            )
            .first()
        )


document_crud = CRUDDocument(Document)
document_version_crud = CRUDDocumentVersion(DocumentVersion)
