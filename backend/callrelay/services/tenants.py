from typing import Dict, Optional
import logging

from ..db import get_db

logger = logging.getLogger(__name__)


def resolve_tenant(org_id: Optional[str]) -> Optional[str]:
    """Map a Vapi organization id to the internal client id, or None."""
    if not org_id:
        return None
    client_id = get_db().get_client_id_by_org(org_id)
    if not client_id:
        logger.info(f"No client registered for Vapi org {org_id}")
    return client_id


class TenantResolver:
    """Request-scoped memo around resolve_tenant so one delivery looks up its org once."""

    def __init__(self) -> None:
        self._cache: Dict[str, Optional[str]] = {}

    def resolve(self, org_id: Optional[str]) -> Optional[str]:
        if not org_id:
            return None
        if org_id not in self._cache:
            self._cache[org_id] = resolve_tenant(org_id)
        return self._cache[org_id]
