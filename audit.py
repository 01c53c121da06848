from typing import Any, Dict, Optional

from fastapi import Request
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, utcnow
from logging_config import get_logger
from schemas import Audit

logger = get_logger("audit")


def record_audit(
    db: Database,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    description: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
    user_role: str = "admin",
) -> Optional[str]:
    """Write an audit entry. A failed write is logged and never fails the caller's request."""
    entry = Audit(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        user_role=user_role,
        details=details or {},
        timestamp=utcnow(),
        description=description,
    )
    if request is not None:
        entry.ip_address = request.client.host if request.client else None
        entry.user_agent = request.headers.get("user-agent")

    try:
        audit_id = create_document(db, "audit", entry)
    except PyMongoError as e:
        logger.log_error_with_context(e, context=f"audit {action} {entity_type}:{entity_id}")
        return None

    logger.info(f"Audit {action} {entity_type}:{entity_id} by {user_role}:{user_id}")
    return audit_id
