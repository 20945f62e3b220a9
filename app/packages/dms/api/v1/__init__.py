"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from app.packages.dms.api.v1.endpoints import audit_logs, auth, departments, documents, folders, notifications, users

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(departments.router)
api_router.include_router(folders.router)
api_router.include_router(documents.router)
api_router.include_router(notifications.router)
api_router.include_router(audit_logs.router)
