"""
Best-effort audit trail.

``AuditLogger.emit`` only schedules delivery on the running event loop and
returns immediately. Delivery runs in its own task with its own database
session, so a failing audit write can neither roll back nor delay the
mutation it describes.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from orgchart.core.config import get_settings
from orgchart.core.database import database
from orgchart.models.audit import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    """One audit record as handed to the sink."""
    action: str
    entity_type: str
    entity_id: str
    user_id: Optional[str]
    changes: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


AuditWriter = Callable[[AuditEntry], Awaitable[None]]


async def write_audit_log(entry: AuditEntry) -> None:
    """Persist an audit entry in a session of its own."""
    async with database.session() as session:
        session.add(
            AuditLog(
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                user_id=entry.user_id,
                changes=entry.changes,
                meta=entry.metadata,
            )
        )


class AuditLogger:
    """Fire-and-forget audit sink."""

    def __init__(self, writer: Optional[AuditWriter] = None, enabled: Optional[bool] = None):
        self._writer = writer or write_audit_log
        self.enabled = enabled if enabled is not None else get_settings().AUDIT_LOG_ENABLED
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._pending)

    def emit(self, entry: AuditEntry) -> None:
        """Schedule delivery of an audit entry. Never raises."""
        if not self.enabled:
            return
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(entry))
        except RuntimeError as e:
            logger.warning(f"Audit log failed (non-blocking): {e}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, entry: AuditEntry) -> None:
        try:
            await self._writer(entry)
        except Exception as e:
            logger.warning(
                f"Audit log failed (non-blocking): action={entry.action} "
                f"entity_type={entry.entity_type} entity_id={entry.entity_id} error={e}"
            )

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))


# Global audit sink
audit_logger = AuditLogger()


def get_audit_logger() -> AuditLogger:
    """Dependency for FastAPI to get the audit sink."""
    return audit_logger
