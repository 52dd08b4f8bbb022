"""Append-only audit log of catalog mutations."""

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from catalog_ingest.db.models import AdminLogDB

logger = logging.getLogger(__name__)


def log_admin_action(
    session: Session,
    action: str,
    target_type: str,
    target_id: str | None,
    actor_user_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AdminLogDB:
    """
    Append one audit row in the caller's transaction.

    The row commits or rolls back together with the mutation it describes.
    """
    entry = AdminLogDB(
        actor_user_id=actor_user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_json=json.dumps(meta or {}, default=str),
    )
    session.add(entry)
    session.flush()
    logger.info(f"Audit: {action} on {target_type}:{target_id} by {actor_user_id or 'system'}")
    return entry
