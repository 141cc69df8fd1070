import logging
from typing import Any, Optional

logger = logging.getLogger("binwahab.audit")


def audit_log(
    action: str,
    entity: str,
    entity_id: int,
    actor_id: Optional[int],
    metadata: Optional[dict[str, Any]] = None,
):
    """Emit one line per state transition on orders, payments and returns."""
    fields = " ".join(f"{key}={value}" for key, value in sorted((metadata or {}).items()))
    logger.info(
        "AUDIT | %s | %s:%s | actor=%s | %s",
        action,
        entity,
        entity_id,
        actor_id if actor_id is not None else "system",
        fields,
    )
