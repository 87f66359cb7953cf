from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PTO_ASSIGNED = "PTO_ASSIGNED"
PTO_UPDATED = "PTO_UPDATED"
PTO_REMOVED = "PTO_REMOVED"
PARTNERSHIP_CREATED = "PARTNERSHIP_CREATED"
PARTNERSHIP_REMOVED = "PARTNERSHIP_REMOVED"
PARTNERSHIP_SUSPENDED = "PARTNERSHIP_SUSPENDED"
PARTNERSHIP_RESTORED = "PARTNERSHIP_RESTORED"
PARTNERSHIP_KEPT_SUSPENDED = "PARTNERSHIP_KEPT_SUSPENDED"
EMERGENCY_PARTNER_ASSIGNED = "EMERGENCY_PARTNER_ASSIGNED"
ORPHANS_REPAIRED = "ORPHANS_REPAIRED"


class AuditSink:
    """Append-only audit trail for PTO and partnership events."""

    def __init__(self, gateway) -> None:
        self.gateway = gateway

    def log(
        self,
        action: str,
        actor: Optional[str],
        description: str,
        *,
        target_type: str = "Officer",
        target_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = dict(details or {})
        payload["timestamp"] = datetime.datetime.now(datetime.timezone.utc).isoformat()
        self.gateway.record_audit(
            user_id=actor or "system",
            action=action,
            target_type=target_type,
            target_id=target_id,
            description=description,
            payload=payload,
        )
        logger.info("%s by %s: %s", action, actor or "system", description)
