"""
Append-only audit trail for integration side effects.

Every persistent change driven by the integration layer gets an entry:
  - Entity type and id (quote, order, credential, webhook)
  - Action (quote_converted, webhook_processed, credential_refreshed, ...)
  - Details (provider, statuses, error text)
  - Timestamp (UTC)

Entries are added to the caller's session and commit with the change they
describe. A rejected webhook is the one case where the audit entry is
committed on its own.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.records import AuditLog

logger = logging.getLogger("backoffice.audit")


async def log_event(
    session: AsyncSession,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit entry to the session.

    Args:
        session: Database session; the caller owns the commit.
        action: What happened (e.g. "quote_converted", "webhook_rejected").
        entity_type: Kind of record the event concerns.
        entity_id: Identifier of that record (id, order number, backend name).
        details: Arbitrary context, serialized to JSON.
    """
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | %s=%s action=%s | %s",
        entity_type or "-",
        entity_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry
