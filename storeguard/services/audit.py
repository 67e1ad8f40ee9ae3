"""
Audit Logging for StoreGuard.

Records credential events in the audit_logs table and echoes them to the
standard logger. Audit writes never abort the operation being audited.

Usage:
    from storeguard.services.audit import AuditAction, AuditEntry, AuditLogger

    await AuditLogger(db).log(AuditEntry(
        action=AuditAction.PASSWORD_RESET_REQUESTED,
        user_id=user.id,
        record_id=user.id,
        new_values={"reset_requested": True},
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    ))
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.core.logging_middleware import get_client_ip, get_user_agent
from storeguard.models.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Enumeration of auditable actions."""

    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"
    PASSWORD_RESET_ADMIN = "password_reset_admin"
    LOGIN_FAILED = "login_failed"


@dataclass(frozen=True)
class RequestContext:
    """Where a request came from, for the audit trail."""
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        return cls(ip_address=get_client_ip(request), user_agent=get_user_agent(request))


class AuditEntry:
    """Represents a single audit log entry."""

    def __init__(
        self,
        action: AuditAction,
        user_id: Optional[str] = None,
        table_name: str = "users",
        record_id: Optional[str] = None,
        new_values: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ):
        self.timestamp = datetime.utcnow()
        self.action = action
        self.user_id = user_id
        self.table_name = table_name
        self.record_id = record_id
        self.new_values = new_values or {}
        self.ip_address = ip_address
        self.user_agent = user_agent

    @classmethod
    def for_request(
        cls,
        action: AuditAction,
        context: RequestContext,
        user_id: Optional[str] = None,
        record_id: Optional[str] = None,
        new_values: Optional[dict[str, Any]] = None,
    ) -> "AuditEntry":
        return cls(
            action=action,
            user_id=user_id,
            record_id=record_id,
            new_values=new_values,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "user_id": self.user_id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "new_values": self.new_values,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }


class AuditLogger:
    """
    Writes audit entries to the database.

    Each entry is committed on its own so a failed write can be rolled
    back without touching work the caller already committed.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(self, entry: AuditEntry) -> bool:
        """Log an audit entry. Returns False if the database write failed."""
        logger.info(
            "AUDIT: %s | user=%s | record=%s/%s | ip=%s",
            entry.action.value,
            entry.user_id or "anonymous",
            entry.table_name,
            entry.record_id or "-",
            entry.ip_address or "-",
        )

        try:
            self.db.add(AuditLog(
                user_id=entry.user_id,
                action=entry.action.value,
                table_name=entry.table_name,
                record_id=entry.record_id,
                new_values=entry.new_values,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                created_at=entry.timestamp,
            ))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to write audit log: %s", e, extra={"audit": entry.to_dict()})
            return False
        return True
