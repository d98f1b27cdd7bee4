from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from app.api.activity_logs import models, schemas
from app.api.base_crud import CRUDBase
from app.core.security import SYSTEM_TOKEN, TokenData
from app.core.utils import current_time


class CRUDActivityLog(
    CRUDBase[models.ActivityLog, schemas.ActivityLogCreate, schemas.ActivityLogCreate]
):
    def record(
        self,
        db: Session,
        action: schemas.ActivityAction,
        visitor_id: int,
        actor: TokenData,
        visit_id: Optional[int] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> models.ActivityLog:
        """Add an entry to the session. Committed together with the transition."""
        entry = models.ActivityLog(
            action=action.value,
            visitor_id=visitor_id,
            visit_id=visit_id,
            performed_by=actor.user_id if actor != SYSTEM_TOKEN else None,
            notes=notes,
            timestamp=timestamp or current_time(),
        )
        db.add(entry)
        return entry

    def recent(
        self,
        db: Session,
        limit: int = 10,
        filters: Optional[schemas.ActivityLogFilter] = None,
    ) -> List[models.ActivityLog]:
        query = db.query(self.model).options(joinedload(self.model.visitor))
        query = self._apply_filters(query, filters)
        return (
            query.order_by(self.model.timestamp.desc(), self.model.id.desc())
            .limit(limit)
            .all()
        )


activity_log = CRUDActivityLog(models.ActivityLog)
