"""Database engine and session factory configuration."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.packages.dms.core.config import get_settings

settings = get_settings()


def build_engine(url: str):
    """Create an engine whose pool waits and statements are bounded by the configured timeouts."""
    options = {"pool_pre_ping": True, "echo": settings.database_echo}
    if url.startswith("postgresql"):
        options["pool_timeout"] = settings.database_pool_timeout
        options["connect_args"] = {
            "connect_timeout": settings.database_pool_timeout,
            "options": f"-c statement_timeout={settings.database_statement_timeout_ms}",
        }
    elif url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False, "timeout": settings.database_pool_timeout}
    return create_engine(url, **options)


engine = build_engine(settings.sql_database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
