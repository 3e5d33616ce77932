import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel, Field

from timesync.core.config import settings


# Audit status -> loguru level
_STATUS_LEVELS = {
    "failure": "ERROR",
    "partial": "WARNING",
    "rejected": "WARNING",
}


class AuditEntry(BaseModel):
    """Model for structured audit log entries"""
    timestamp: str
    action: str
    session_id: Optional[str] = None
    resource_type: str
    resource_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    status: str


def _is_audit_record(record) -> bool:
    return record["extra"].get("audit", False)


class AuditLogger:
    """
    Append-only trail of what happened to rooms.

    Every entry goes to stderr outside production. When ``AUDIT_LOG_PATH`` is
    set, audit entries (and only those) are also written as JSON lines to a
    rotating file.
    """

    def __init__(self, log_path: Optional[str] = None, environment: Optional[str] = None):
        self.environment = (environment or settings.ENVIRONMENT).lower()
        self.log_path = settings.AUDIT_LOG_PATH if log_path is None else log_path
        self._logger = logger.bind(audit=True)

        logger.remove()
        if self.environment != "production":
            logger.add(sys.stderr, format="{time} | {level} | {message}", level="INFO")
        if self.log_path:
            logger.add(
                self.log_path,
                rotation="100 MB",
                retention=f"{settings.ROOM_RETENTION_DAYS} days",
                compression="zip",
                serialize=True,
                diagnose=False,
                enqueue=True,
                level="INFO",
                filter=_is_audit_record,
            )

    def log(
        self,
        action: str,
        resource_type: str,
        status: str,
        session_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """
        Record one audit entry and return it.

        Args:
            action: What happened (e.g. "slots_extracted", "slots_applied")
            resource_type: What it happened to (e.g. "room", "llm", "session")
            status: "success", "failure", "partial" or "rejected"
            session_id: Sender session that triggered it, if any
            resource_id: Usually the room id
            details: Extra context
        """
        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            session_id=session_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            status=status,
        )
        self._logger.log(_STATUS_LEVELS.get(status, "INFO"), entry.model_dump_json())
        return entry


audit_logger = AuditLogger()
