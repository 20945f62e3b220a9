"""文档路由：上传、元数据、下载、版本替换与恢复、授权。"""

from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from app.packages.dms.api.v1.schemas.common import EmptyResponse, PermissionEntryRequest, PermissionListResponse
from app.packages.dms.api.v1.schemas.documents import (
    AccessCheckResponse,
    DocumentResponse,
    DocumentUpdateRequest,
    VersionChangeResponse,
    VersionListResponse,
)
from app.packages.dms.core.constants import HTTP_STATUS_BAD_REQUEST
from app.packages.dms.core.dependencies import get_client_meta, get_current_active_user, get_db
from app.packages.dms.core.exceptions import AppException
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta
from app.packages.dms.services.document_service import document_service

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", response_model=DocumentResponse)
def upload_document(
    folder_id: int = Form(..., ge=1),
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="逗号分隔的标签"),
    metadata: Optional[str] = Form(None, description="JSON 对象"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> DocumentResponse:
    return document_service.upload(
        db,
        actor=current_user,
        folder_id=folder_id,
        filename=file.filename or "",
        content=file.file.read(),
        title=title,
        tags=_split_tags(tags),
        metadata=_parse_metadata(metadata),
        client=client,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> DocumentResponse:
    return document_service.get_document(db, actor=current_user, document_id=document_id)


@router.patch("/{document_id}", response_model=DocumentResponse)
def update_document(
    document_id: int,
    payload: DocumentUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> DocumentResponse:
    return document_service.update_metadata(
        db,
        actor=current_user,
        document_id=document_id,
        title=payload.title,
        tags=payload.tags,
        metadata=payload.metadata,
        client=client,
    )


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    version_id: Optional[int] = Query(None, ge=1, description="下载指定历史版本"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
):
    return document_service.download(
        db,
        actor=current_user,
        document_id=document_id,
        version_id=version_id,
        client=client,
    )


@router.put("/{document_id}/file", response_model=VersionChangeResponse)
def replace_document_file(
    document_id: int,
    file: UploadFile = File(...),
    note: Optional[str] = Form(None, max_length=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> VersionChangeResponse:
    return document_service.replace_file(
        db,
        actor=current_user,
        document_id=document_id,
        filename=file.filename or "",
        content=file.file.read(),
        note=note,
        client=client,
    )


@router.get("/{document_id}/versions", response_model=VersionListResponse)
def list_versions(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> VersionListResponse:
    return document_service.list_versions(db, actor=current_user, document_id=document_id)


@router.post("/{document_id}/versions/{version_id}/restore", response_model=VersionChangeResponse)
def restore_version(
    document_id: int,
    version_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> VersionChangeResponse:
    return document_service.restore_version(
        db,
        actor=current_user,
        document_id=document_id,
        version_id=version_id,
        client=client,
    )


@router.get("/{document_id}/access", response_model=AccessCheckResponse)
def check_access(
    document_id: int,
    right: str = Query(..., description="view/upload/edit/delete/download"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> AccessCheckResponse:
    return document_service.check_access(db, actor=current_user, document_id=document_id, right=right)


@router.put("/{document_id}/permissions", response_model=PermissionListResponse)
def set_document_permission(
    document_id: int,
    payload: PermissionEntryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> PermissionListResponse:
    return document_service.set_permission(
        db,
        actor=current_user,
        document_id=document_id,
        rights=payload.rights,
        user_id=payload.user_id,
        role=payload.role,
        client=client,
    )


@router.delete("/{document_id}/permissions", response_model=PermissionListResponse)
def remove_document_permission(
    document_id: int,
    user_id: Optional[int] = Query(None, ge=1),
    role: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> PermissionListResponse:
    return document_service.remove_permission(
        db,
        actor=current_user,
        document_id=document_id,
        user_id=user_id,
        role=role,
        client=client,
    )


@router.delete("/{document_id}", response_model=EmptyResponse)
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> EmptyResponse:
    return document_service.delete_document(db, actor=current_user, document_id=document_id, client=client)


def _split_tags(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [item for item in raw.split(",") if item.strip()]


def _parse_metadata(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise AppException("metadata 必须是合法的 JSON", HTTP_STATUS_BAD_REQUEST) from exc
    if not isinstance(value, dict):
        raise AppException("metadata 必须是 JSON 对象", HTTP_STATUS_BAD_REQUEST)
    return value
