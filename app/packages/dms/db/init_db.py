"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.constants import (
    DEFAULT_ADMIN_NICKNAME,
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ADMIN_USERNAME,
    DEFAULT_DEPARTMENT_NAME,
)
from app.packages.dms.core.security import get_password_hash
from app.packages.dms.db import session as db_session
from app.packages.dms.models import Department, User
from app.packages.dms.models.base import Base

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables if they do not exist and seed baseline data."""
    Base.metadata.create_all(bind=db_session.engine)

    session = db_session.SessionLocal()
    try:
        _seed_core_entities(session)
        session.commit()
    except Exception:  # pragma: no cover - initialization failures should not crash gracefully
        session.rollback()
        logger.exception("Failed to seed default data during database initialization")
        raise
    finally:
        session.close()


def _seed_core_entities(db: Session) -> None:
    """Ensure the baseline department and the superadmin account exist."""
    department = db.query(Department).filter(Department.name == DEFAULT_DEPARTMENT_NAME).first()
    if department is None:
        department = Department(name=DEFAULT_DEPARTMENT_NAME, description="默认部门")
        db.add(department)
        db.flush()

    superadmin_role = get_settings().superadmin_role.strip().lower()
    admin_user = db.query(User).filter(User.username == DEFAULT_ADMIN_USERNAME).first()
    if admin_user is None:
        admin_user = User(
            username=DEFAULT_ADMIN_USERNAME,
            hashed_password=get_password_hash(DEFAULT_ADMIN_PASSWORD),
            nickname=DEFAULT_ADMIN_NICKNAME,
            role=superadmin_role,
            department_id=department.id,
            is_active=True,
        )
        db.add(admin_user)
        db.flush()
        logger.info("Seeded default superadmin account %s", DEFAULT_ADMIN_USERNAME)
    else:
        admin_user.role = superadmin_role
        admin_user.is_active = True
        if not admin_user.nickname:
            admin_user.nickname = DEFAULT_ADMIN_NICKNAME
        if admin_user.department_id is None:
            admin_user.department_id = department.id
        db.add(admin_user)
