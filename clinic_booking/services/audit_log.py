"""Append-only audit trail for appointment, refund and schedule actions"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import SystemLog

logger = logging.getLogger(__name__)


class AuditLog:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        category: str,
        action: str,
        message: str,
        context: Optional[dict] = None,
        user_id: Optional[int] = None,
    ) -> bool:
        """Write one entry. Failures are logged and swallowed so the caller's work stands."""
        try:
            self.db.add(
                SystemLog(
                    user_id=user_id,
                    category=category,
                    action=action,
                    message=message,
                    context=context or {},
                )
            )
            self.db.commit()
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to write audit entry {category}.{action}: {e}")
            return False
