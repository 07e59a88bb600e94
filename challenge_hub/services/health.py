"""
Database health for the admin panel.

Reports missing configuration instead of failing, so an unconfigured
deployment still shows what needs to be set.
"""

from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from challenge_hub.db import is_database_configured
from challenge_hub.models import Assignment, Challenge, Client

logger = structlog.get_logger(__name__)

__all__ = ["check_health"]


def _table_ok(db: Session, model) -> bool:
    try:
        db.exec(select(model.id).limit(1)).first()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Health check table probe failed", table=model.__tablename__, error=str(e))
        return False


def check_health(db: Optional[Session]) -> Dict[str, Any]:
    """
    Returns:
        {"database": {"configured", "connected", "error"?, "missing"?},
         "tables": {"clients", "challenges", "assignments"}}
    """
    status: Dict[str, Any] = {
        "database": {"configured": False, "connected": False},
        "tables": {"clients": False, "challenges": False, "assignments": False},
    }

    if db is None:
        _, missing = is_database_configured()
        status["database"]["missing"] = missing
        status["database"]["error"] = f"Missing environment variables: {', '.join(missing)}"
        return status

    status["database"]["configured"] = True

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database health check failed", error=str(e))
        status["database"]["error"] = f"Database error: {e}"
        return status

    status["database"]["connected"] = True
    status["tables"]["clients"] = _table_ok(db, Client)
    status["tables"]["challenges"] = _table_ok(db, Challenge)
    status["tables"]["assignments"] = _table_ok(db, Assignment)
    return status

