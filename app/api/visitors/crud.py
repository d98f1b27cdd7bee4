from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from app.api.activity_logs.crud import activity_log as activity_log_crud
from app.api.activity_logs.schemas import ActivityAction
from app.api.base_crud import CRUDBase
from app.api.users.crud import user as user_crud
from app.api.visitors import models, schemas
from app.api.visits.crud import visit as visit_crud
from app.api.visits.models import Visit
from app.api.visits.schemas import ScheduleVisit
from app.core.exceptions.visit_exceptions import NotFound
from app.core.logger import logger
from app.core.security import SYSTEM_TOKEN, TokenData


class CRUDVisitor(
    CRUDBase[models.Visitor, schemas.InternalVisitorCreate, schemas.VisitorUpdate]
):
    def _check_permission(self, db_obj: models.Visitor, user: TokenData) -> bool:
        if user == SYSTEM_TOKEN or not user.is_host:
            return True
        if db_obj.host_id == user.user_id:
            return True
        return any(v.host_id == user.user_id for v in db_obj.visits)

    def _apply_filters(
        self, query: Query, filters: Optional[schemas.VisitorFilter] = None
    ) -> Query:
        if not filters:
            return query

        if filters.status is not None:
            query = query.filter(self.model.status == filters.status.value)
        if filters.host_id is not None:
            query = query.filter(self.model.host_id == filters.host_id)
        if filters.company:
            query = query.filter(self.model.company.ilike(f'%{filters.company}%'))
        if filters.q:
            term = f'%{filters.q.strip()}%'
            query = query.filter(
                or_(
                    self.model.first_name.ilike(term),
                    self.model.last_name.ilike(term),
                    self.model.phone.ilike(term),
                    self.model.email.ilike(term),
                    self.model.id_number.ilike(term),
                )
            )
        return query

    def scoped_query(self, db: Session, host_id: Optional[int] = None) -> Query:
        """Visitors registered to the host or with at least one visit hosted by them."""
        query = db.query(self.model)
        if host_id is not None:
            hosted = db.query(Visit.visitor_id).filter(Visit.host_id == host_id)
            query = query.filter(
                or_(self.model.host_id == host_id, self.model.id.in_(hosted))
            )
        return query

    def find_query(
        self,
        db: Session,
        filters: Optional[schemas.VisitorFilter] = None,
        user: Optional[TokenData] = None,
    ) -> Query:
        host_id = user.user_id if user and user.is_host else None
        query = self.scoped_query(db, host_id).options(joinedload(self.model.host))
        return self._apply_filters(query, filters)

    def pending_query(self, db: Session, host_id: Optional[int] = None) -> Query:
        return self.scoped_query(db, host_id).filter(
            self.model.status == schemas.VisitorStatus.PENDING.value
        )

    def get_with_host(self, db: Session, id: int, user: TokenData) -> models.Visitor:
        visitor = (
            db.query(self.model)
            .options(joinedload(self.model.host))
            .filter(self.model.id == id)
            .first()
        )
        if not visitor:
            logger.error('Visitor %s not found', id)
            raise NotFound('Visitor', id)
        if not self._check_permission(visitor, user):
            err_msg = f'Not authorized to access this Visitor: {visitor.id}'
            logger.error(err_msg)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=err_msg)
        return visitor

    def get_with_visits(self, db: Session, id: int, user: TokenData) -> models.Visitor:
        visitor = self.get_with_host(db, id, user)
        db.refresh(visitor, ['visits'])
        return visitor

    def get_by_email_or_phone(self, db: Session, search: str) -> Optional[models.Visitor]:
        search = search.strip()
        return (
            db.query(self.model)
            .options(joinedload(self.model.host), selectinload(self.model.visits))
            .filter(
                or_(
                    self.model.email == search.lower(),
                    self.model.phone == search,
                )
            )
            .order_by(self.model.created_at.desc())
            .first()
        )

    def get_by_badge(
        self, db: Session, badge_number: str, user: TokenData
    ) -> models.Visitor:
        visit = (
            db.query(Visit)
            .filter(Visit.badge_number == badge_number.strip().upper())
            .first()
        )
        if not visit:
            logger.error('Badge %s not found', badge_number)
            raise NotFound('Visitor with badge', badge_number)
        return self.get_with_visits(db, visit.visitor_id, user)

    def register(
        self, db: Session, obj: schemas.VisitorRegister
    ) -> Tuple[models.Visitor, Optional[Visit]]:
        """Self-registration: a pending visitor plus an optional scheduled visit."""
        logger.info('Registering visitor %s %s', obj.first_name, obj.last_name)
        if obj.host_id is not None and not user_crud.get_active_host(db, obj.host_id):
            raise NotFound('Host', obj.host_id)

        data = obj.model_dump(exclude={'visit_date', 'notes'})
        visitor = self.model(**schemas.InternalVisitorCreate(**data).model_dump())
        db.add(visitor)
        self.flush(db)

        visit = None
        if obj.visit_date is not None:
            visit = visit_crud.schedule(
                db,
                visitor,
                visit_date=obj.visit_date,
                purpose=obj.purpose,
                notes=obj.notes,
            )

        activity_log_crud.record(
            db, ActivityAction.REGISTERED, visitor_id=visitor.id, actor=SYSTEM_TOKEN
        )
        self.commit(db)
        db.refresh(visitor)
        if visit is not None:
            db.refresh(visit)
        return visitor, visit

    def schedule_visit(
        self,
        db: Session,
        id: int,
        obj: ScheduleVisit,
        user: TokenData = SYSTEM_TOKEN,
    ) -> Visit:
        visitor = self.get(db, id, user)
        logger.info('Scheduling visit for returning visitor %s', visitor.id)
        visit = visit_crud.schedule(
            db,
            visitor,
            visit_date=obj.visit_date,
            host_id=obj.host_id,
            purpose=obj.purpose,
            notes=obj.notes,
        )
        self.commit(db)
        db.refresh(visit)
        return visit

    def remove(self, db: Session, id: int, user: TokenData) -> models.Visitor:
        if user != SYSTEM_TOKEN and not user.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only admins can remove visitors',
            )
        visitor = self.get(db, id, user)
        photos: List[str] = [p for p in (visitor.photo_url, visitor.id_photo_url) if p]
        if photos:
            # Blob removal belongs to the storage service
            logger.info('Visitor %s photos to discard: %s', visitor.id, photos)
        return self.delete(db, id, user)


visitor = CRUDVisitor(models.Visitor)
