"""
Append-only monitoring log sink.

Every scheduled run, ingestion and collapse writes its audit trail here. The
core never reads it back; reporting endpoints do.
"""

import logging
from typing import Any, Dict, Optional

from .models import LogStatus, SourceType
from .store import ContentStore


logger = logging.getLogger(__name__)


class MonitoringLog:
    """Writes MonitoringLogEntry rows through the content store."""

    def __init__(self, store: ContentStore):
        self.store = store

    async def record(
        self,
        source_type: SourceType,
        action: str,
        status: LogStatus,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Append one entry. A failed write is logged, never raised."""
        try:
            await self.store.append_log(source_type, action, status, message, metadata)
            return True
        except Exception as e:
            logger.error(f"Failed to write monitoring log '{action}' ({status}): {e}")
            return False

    async def info(self, source_type: SourceType, action: str, message: str, **metadata: Any) -> bool:
        return await self.record(source_type, action, LogStatus.INFO, message, metadata)

    async def success(self, source_type: SourceType, action: str, message: str, **metadata: Any) -> bool:
        return await self.record(source_type, action, LogStatus.SUCCESS, message, metadata)

    async def warning(self, source_type: SourceType, action: str, message: str, **metadata: Any) -> bool:
        return await self.record(source_type, action, LogStatus.WARNING, message, metadata)

    async def error(self, source_type: SourceType, action: str, message: str, **metadata: Any) -> bool:
        return await self.record(source_type, action, LogStatus.ERROR, message, metadata)
