import logging
from dataclasses import dataclass
from datetime import datetime

from app.register.db.models import AuditEvent
from app.register.repos.audit import AuditRepository

logger = logging.getLogger(__name__)


@dataclass
class AuditEventPayload:
    action: str
    entity_type: str
    entity_id: str | None
    before: dict | None
    after: dict | None
    metadata: dict | None = None
    result: str = "success"
    trace_id: str | None = None


class AuditService:
    """Writes the sale history trail after the change itself has committed.

    A failed audit write is logged and rolled back; it never turns a saved
    sale into a reported failure.
    """

    def __init__(self, db):
        self.db = db
        self.repo = AuditRepository(db)

    def record_sale_event(
        self,
        action: str,
        sale_id: int | None,
        *,
        before: dict | None = None,
        after: dict | None = None,
    ) -> None:
        self.record_event(
            AuditEventPayload(
                action=action,
                entity_type="sale",
                entity_id=str(sale_id) if sale_id is not None else None,
                before=before,
                after=after,
            )
        )

    def record_event(self, payload: AuditEventPayload) -> None:
        try:
            self.repo.create(
                AuditEvent(
                    trace_id=payload.trace_id,
                    action=payload.action,
                    entity_type=payload.entity_type,
                    entity_id=payload.entity_id,
                    before_payload=payload.before,
                    after_payload=payload.after,
                    event_metadata=dict(payload.metadata or {}),
                    result=payload.result,
                    created_at=datetime.utcnow(),
                )
            )
        except Exception:
            self.db.rollback()
            logger.exception(
                "Failed to write audit event",
                extra={"action": payload.action, "entity_id": payload.entity_id},
            )
