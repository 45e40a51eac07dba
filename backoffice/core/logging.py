import logging
from typing import Any, Optional

audit_logger = logging.getLogger("backoffice.audit")

def log_audit_event(
    action: str,
    entity: str,
    entity_id: Any = None,
    logger: Optional[logging.Logger] = None,
    **context: Any,
):
    """Log repair and recovery actions for audit trail.

    Context fields travel on the record (``record.event``, ``record.entity``,
    ``record.entity_id``, ``record.context``) so handlers and tests can read
    them without parsing the message.
    """
    (logger or audit_logger).info(
        f"{action} on {entity} {entity_id if entity_id is not None else ''}".rstrip(),
        extra={"event": action, "entity": entity, "entity_id": entity_id, "context": context},
    )
