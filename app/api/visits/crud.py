from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.orm import Query, Session, joinedload

from app.api.base_crud import CRUDBase
from app.api.users.crud import user as user_crud
from app.api.visitors.models import Visitor
from app.api.visits import models, schemas
from app.core.exceptions.visit_exceptions import Conflict, NotFound, StoreFailure
from app.core.logger import logger
from app.core.security import SYSTEM_TOKEN, TokenData
from app.core.utils import day_range, generate_badge_number

EMERGENCY_CHECKOUT_NOTE = '[EMERGENCY CHECKOUT]'
BADGE_ATTEMPTS = 5


def _open_visit_filters():
    return (
        models.Visit.check_in_time.isnot(None),
        models.Visit.check_out_time.is_(None),
    )


def _apply_state_filter(query: Query, state: schemas.VisitState) -> Query:
    if state == schemas.VisitState.CHECKED_IN:
        return query.filter(*_open_visit_filters())
    if state == schemas.VisitState.CHECKED_OUT:
        return query.filter(models.Visit.check_out_time.isnot(None))
    return query.filter(models.Visit.check_in_time.is_(None))


class CRUDVisit(CRUDBase[models.Visit, schemas.VisitCreate, schemas.VisitUpdate]):
    def _check_permission(self, db_obj: models.Visit, user: TokenData) -> bool:
        if user == SYSTEM_TOKEN or not user.is_host:
            return True
        return db_obj.host_id == user.user_id

    def _apply_filters(
        self, query: Query, filters: Optional[schemas.VisitFilter] = None
    ) -> Query:
        if not filters:
            return query

        if filters.visitor_id is not None:
            query = query.filter(models.Visit.visitor_id == filters.visitor_id)
        if filters.host_id is not None:
            query = query.filter(models.Visit.host_id == filters.host_id)
        if filters.status is not None:
            query = _apply_state_filter(query, filters.status)
        if filters.from_date is not None:
            query = query.filter(models.Visit.visit_date >= filters.from_date)
        if filters.to_date is not None:
            query = query.filter(models.Visit.visit_date <= filters.to_date)
        return query

    def scoped_query(self, db: Session, host_id: Optional[int] = None) -> Query:
        query = db.query(self.model)
        if host_id is not None:
            query = query.filter(self.model.host_id == host_id)
        return query

    def find_query(
        self,
        db: Session,
        filters: Optional[schemas.VisitFilter] = None,
        user: Optional[TokenData] = None,
    ) -> Query:
        host_id = user.user_id if user and user.is_host else None
        query = self.with_details(self.scoped_query(db, host_id))
        return self._apply_filters(query, filters)

    def with_details(self, query: Query) -> Query:
        return query.options(
            joinedload(self.model.visitor),
            joinedload(self.model.host),
        )

    def get_with_details(self, db: Session, id: int, user: TokenData) -> models.Visit:
        visit = (
            self.with_details(db.query(self.model))
            .filter(self.model.id == id)
            .first()
        )
        if not visit:
            logger.error('Visit %s not found', id)
            raise NotFound('Visit', id)
        # Reuses the permission check from the base get
        return self.get(db, visit.id, user)

    def open_visits_query(self, db: Session, host_id: Optional[int] = None) -> Query:
        return self.scoped_query(db, host_id).filter(*_open_visit_filters())

    def get_open_visit(self, db: Session, visitor_id: int) -> Optional[models.Visit]:
        return (
            self.open_visits_query(db)
            .filter(self.model.visitor_id == visitor_id)
            .with_for_update()
            .first()
        )

    def get_unstarted_visit_for_day(
        self, db: Session, visitor_id: int, day: datetime
    ) -> Optional[models.Visit]:
        start, end = day_range(day)
        return (
            db.query(self.model)
            .filter(
                self.model.visitor_id == visitor_id,
                self.model.check_in_time.is_(None),
                self.model.visit_date >= start,
                self.model.visit_date <= end,
            )
            .order_by(self.model.visit_date, self.model.id)
            .first()
        )

    def visits_between(
        self,
        db: Session,
        start: datetime,
        end: datetime,
        host_id: Optional[int] = None,
        inclusive_end: bool = True,
    ) -> Query:
        column = self.model.visit_date
        upper = column <= end if inclusive_end else column < end
        return self.scoped_query(db, host_id).filter(column >= start, upper)

    def check_ins_between(
        self,
        db: Session,
        start: datetime,
        end: datetime,
        host_id: Optional[int] = None,
    ) -> Query:
        column = self.model.check_in_time
        return self.scoped_query(db, host_id).filter(column >= start, column <= end)

    def badge_in_use(self, db: Session, badge_number: str) -> bool:
        return (
            db.query(self.model.id)
            .filter(self.model.badge_number == badge_number)
            .first()
            is not None
        )

    def generate_unique_badge(self, db: Session) -> str:
        for _ in range(BADGE_ATTEMPTS):
            badge_number = generate_badge_number()
            if not self.badge_in_use(db, badge_number):
                return badge_number
            logger.warning('Badge number collision: %s', badge_number)
        raise StoreFailure('Could not generate a unique badge number')

    def _resolve_host_id(
        self, db: Session, visitor: Visitor, host_id: Optional[int]
    ) -> Optional[int]:
        if host_id is None:
            return visitor.host_id
        if not user_crud.get_active_host(db, host_id):
            raise NotFound('Host', host_id)
        return host_id

    def schedule(
        self,
        db: Session,
        visitor: Visitor,
        visit_date: datetime,
        host_id: Optional[int] = None,
        purpose: Optional[str] = None,
        notes: Optional[str] = None,
        badge_number: Optional[str] = None,
    ) -> models.Visit:
        """Add a visit to the session without committing."""
        if badge_number and self.badge_in_use(db, badge_number):
            raise Conflict(f'Badge number {badge_number} is already in use')

        visit = models.Visit(
            visitor_id=visitor.id,
            host_id=self._resolve_host_id(db, visitor, host_id),
            visit_date=visit_date,
            purpose=purpose or visitor.purpose,
            notes=notes,
            badge_number=badge_number,
        )
        db.add(visit)
        return visit

    def create(
        self,
        db: Session,
        obj: schemas.VisitCreate,
        user: Optional[TokenData] = None,
    ) -> models.Visit:
        visitor = db.query(Visitor).filter(Visitor.id == obj.visitor_id).first()
        if not visitor:
            raise NotFound('Visitor', obj.visitor_id)

        logger.info('Scheduling visit for visitor %s on %s', visitor.id, obj.visit_date)
        visit = self.schedule(
            db,
            visitor,
            visit_date=obj.visit_date,
            host_id=obj.host_id,
            purpose=obj.purpose,
            notes=obj.notes,
            badge_number=obj.badge_number,
        )
        self.commit(db)
        db.refresh(visit)
        return visit

    def update(
        self,
        db: Session,
        id: int,
        obj: schemas.VisitUpdate,
        user: TokenData,
    ) -> models.Visit:
        visit = self.get(db, id, user)
        data = obj.model_dump(exclude_unset=True)
        if data.get('host_id') is not None:
            self._resolve_host_id(db, visit.visitor, data['host_id'])
        if data.get('badge_number') and data['badge_number'] != visit.badge_number:
            if self.badge_in_use(db, data['badge_number']):
                raise Conflict(f'Badge number {data["badge_number"]} is already in use')
        return super().update(db, id, obj, user)

    def close_open_visits(
        self, db: Session, checkout_time: datetime
    ) -> List[Tuple[int, int]]:
        """
        Check out every open visit with a single UPDATE and tag its notes.
        Returns the (visit_id, visitor_id) pairs that were closed. Not committed.
        """
        open_visits = (
            db.query(self.model.id, self.model.visitor_id)
            .filter(*_open_visit_filters())
            .with_for_update()
            .all()
        )
        if not open_visits:
            return []

        ids = [visit_id for visit_id, _ in open_visits]
        tagged_notes = case(
            (
                self.model.notes.is_(None) | (self.model.notes == ''),
                EMERGENCY_CHECKOUT_NOTE,
            ),
            else_=self.model.notes + ' ' + EMERGENCY_CHECKOUT_NOTE,
        )
        updated = (
            db.query(self.model)
            .filter(self.model.id.in_(ids), *_open_visit_filters())
            .update(
                {
                    self.model.check_out_time: checkout_time,
                    self.model.notes: tagged_notes,
                    self.model.updated_at: checkout_time,
                },
                synchronize_session=False,
            )
        )
        if updated != len(ids):
            logger.warning(
                'Emergency checkout closed %s of %s open visits', updated, len(ids)
            )
        return [(visit_id, visitor_id) for visit_id, visitor_id in open_visits]


visit = CRUDVisit(models.Visit)
