from sqlalchemy.orm import sessionmaker
from typing import Any, Dict, Optional
from shared.core import get_logger
from app.domain.models import AuditLog

logger = get_logger(__name__)

class AuditActions:
    CREATE_ORDER = "create_order"
    CREATE_PUBLIC_ORDER = "create_public_order"
    UPDATE_ORDER = "update_order"
    MARK_PAID = "mark_paid"
    CHANGE_KITCHEN_STATUS = "change_kitchen_status"

class AuditEntities:
    ORDER = "order"
    KITCHEN_TICKET = "kitchen_ticket"

class AuditLogService:
    """
    Fire-and-forget audit sink.

    Writes through its own session so an audit failure can neither roll back
    nor block the operation that triggered it.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(
        self,
        action: str,
        entity: str,
        entity_id: Optional[str],
        establishment_id: Optional[str],
        user_id: Optional[str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        try:
            with self.session_factory() as session:
                session.add(AuditLog(
                    action=action,
                    entity=entity,
                    entity_id=entity_id,
                    establishment_id=establishment_id,
                    user_id=user_id,
                    payload=payload or {},
                ))
                session.commit()
        except Exception:
            logger.error(
                "Failed to create audit log",
                exc_info=True,
                extra={'extra_fields': {'action': action, 'entity': entity, 'entity_id': entity_id}}
            )
            return False

        logger.debug(
            "Audit log created",
            extra={'extra_fields': {'action': action, 'entity': entity, 'entity_id': entity_id}}
        )
        return True
