"""
Visit lifecycle: the legal state transitions for visitors and their visits,
and the classification queries dashboards are built on.

Visitor: pending -> approved -> rejected, pending -> rejected. Rejected is final.
Visit:   scheduled -> checked_in -> checked_out. Checked out is final.

Every transition runs as one read-check-write and is committed once. The
"one open visit per visitor" rule is also enforced by a partial unique index,
so two concurrent check-ins cannot both succeed.
"""

from datetime import date, datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.api.activity_logs.crud import activity_log as activity_log_crud
from app.api.activity_logs.schemas import ActivityAction
from app.api.users.schemas import HostSummary
from app.api.visitors.crud import visitor as visitor_crud
from app.api.visitors.models import Visitor
from app.api.visitors.schemas import VisitorStatus, VisitorSummary
from app.api.visits import models, schemas
from app.api.visits.crud import visit as visit_crud
from app.core.exceptions.visit_exceptions import Conflict, NotFound, PreconditionFailed
from app.core.logger import log_transition, logger
from app.core.security import TokenData
from app.core.utils import current_time, day_range, format_duration, week_range

VISITOR_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    VisitorStatus.PENDING.value: frozenset(
        {VisitorStatus.APPROVED.value, VisitorStatus.REJECTED.value}
    ),
    VisitorStatus.APPROVED.value: frozenset({VisitorStatus.REJECTED.value}),
    VisitorStatus.REJECTED.value: frozenset(),
}

Day = Union[date, datetime]


class VisitLifecycle:
    def __init__(self, clock: Callable[[], datetime] = current_time):
        self.clock = clock

    # Visitor transitions

    def _transition(
        self,
        db: Session,
        visitor_id: int,
        target: VisitorStatus,
        actor: TokenData,
        notes: Optional[str] = None,
    ) -> Visitor:
        visitor = visitor_crud.get(db, visitor_id, actor)
        if target.value not in VISITOR_TRANSITIONS[visitor.status]:
            logger.error(
                'Invalid transition for visitor %s: %s -> %s',
                visitor.id,
                visitor.status,
                target.value,
            )
            raise PreconditionFailed(
                f'Visitor {visitor.id} cannot be {target.value} '
                f'while {visitor.status}'
            )

        visitor.status = target.value
        if notes is not None:
            visitor.notes = notes

        action = (
            ActivityAction.APPROVED
            if target == VisitorStatus.APPROVED
            else ActivityAction.REJECTED
        )
        activity_log_crud.record(
            db,
            action,
            visitor_id=visitor.id,
            actor=actor,
            notes=notes,
            timestamp=self.clock(),
        )
        visitor_crud.commit(db)
        db.refresh(visitor)
        log_transition(target.value, 'visitor', visitor.id, actor.user_id)
        return visitor

    def approve(self, db: Session, visitor_id: int, actor: TokenData) -> Visitor:
        return self._transition(db, visitor_id, VisitorStatus.APPROVED, actor)

    def reject(
        self, db: Session, visitor_id: int, reason: str, actor: TokenData
    ) -> Visitor:
        return self._transition(
            db, visitor_id, VisitorStatus.REJECTED, actor, notes=reason
        )

    # Visit transitions

    def _visit_for_check_in(
        self,
        db: Session,
        visitor: Visitor,
        actor: TokenData,
        visit_id: Optional[int],
        now: datetime,
    ) -> models.Visit:
        if visit_id is not None:
            visit = visit_crud.get(db, visit_id, actor)
            if visit.visitor_id != visitor.id:
                raise NotFound(f'Visit {visit_id} for visitor', visitor.id)
            if visit.check_out_time is not None:
                raise PreconditionFailed(
                    'Visitor is already checked out for this visit'
                )
            return visit

        visit = visit_crud.get_unstarted_visit_for_day(db, visitor.id, now)
        if visit is None:
            logger.info('No visit scheduled today for visitor %s, creating one', visitor.id)
            visit = visit_crud.schedule(db, visitor, visit_date=now)
        return visit

    def check_in(
        self,
        db: Session,
        visitor_id: int,
        actor: TokenData,
        visit_id: Optional[int] = None,
        badge_number: Optional[str] = None,
    ) -> models.Visit:
        visitor = visitor_crud.get(db, visitor_id, actor)
        if not visitor.is_approved:
            logger.error('Visitor %s is %s, cannot check in', visitor.id, visitor.status)
            raise PreconditionFailed('Visitor must be approved before check-in')

        if visit_crud.get_open_visit(db, visitor.id) is not None:
            logger.error('Visitor %s is already checked in', visitor.id)
            raise Conflict('Visitor is already checked in')

        now = self.clock()
        visit = self._visit_for_check_in(db, visitor, actor, visit_id, now)

        try:
            if badge_number and badge_number != visit.badge_number:
                if visit_crud.badge_in_use(db, badge_number):
                    raise Conflict(f'Badge number {badge_number} is already in use')
                visit.badge_number = badge_number
            elif not visit.badge_number:
                visit.badge_number = visit_crud.generate_unique_badge(db)
        except HTTPException:
            # Drop the visit created for today, if any
            db.rollback()
            raise

        visit.check_in_time = now
        visit.updated_at = now
        visit_crud.flush(db)
        activity_log_crud.record(
            db,
            ActivityAction.CHECK_IN,
            visitor_id=visitor.id,
            visit_id=visit.id,
            actor=actor,
            notes=f'Badge {visit.badge_number}',
            timestamp=now,
        )
        visit_crud.commit(db)
        db.refresh(visit)
        log_transition('check_in', 'visit', visit.id, actor.user_id)
        return visit

    def check_out(
        self,
        db: Session,
        actor: TokenData,
        visitor_id: Optional[int] = None,
        visit_id: Optional[int] = None,
    ) -> models.Visit:
        if visit_id is not None:
            visit = visit_crud.get(db, visit_id, actor)
            if visitor_id is not None and visit.visitor_id != visitor_id:
                raise NotFound(f'Visit {visit_id} for visitor', visitor_id)
            if visit.check_in_time is None:
                raise PreconditionFailed('Visitor must be checked in before check-out')
            if visit.check_out_time is not None:
                raise Conflict('Visitor is already checked out for this visit')
        elif visitor_id is not None:
            visitor = visitor_crud.get(db, visitor_id, actor)
            visit = visit_crud.get_open_visit(db, visitor.id)
            if visit is None:
                logger.error('Visitor %s is not checked in', visitor.id)
                raise PreconditionFailed('Visitor must be checked in before check-out')
        else:
            raise PreconditionFailed('Either visitor_id or visit_id is required')

        now = self.clock()
        visit.check_out_time = now
        visit.updated_at = now
        activity_log_crud.record(
            db,
            ActivityAction.CHECK_OUT,
            visitor_id=visit.visitor_id,
            visit_id=visit.id,
            actor=actor,
            timestamp=now,
        )
        visit_crud.commit(db)
        db.refresh(visit)
        log_transition('check_out', 'visit', visit.id, actor.user_id)
        return visit

    def emergency_checkout_all(self, db: Session, actor: TokenData) -> int:
        now = self.clock()
        closed = visit_crud.close_open_visits(db, now)
        for visit_id, visitor_id in closed:
            activity_log_crud.record(
                db,
                ActivityAction.EMERGENCY_CHECK_OUT,
                visitor_id=visitor_id,
                visit_id=visit_id,
                actor=actor,
                timestamp=now,
            )
        visit_crud.commit(db)
        db.expire_all()
        logger.warning(
            'Emergency checkout by user %s closed %s visits', actor.user_id, len(closed)
        )
        return len(closed)

    # Classification queries

    def currently_checked_in(
        self, db: Session, host_id: Optional[int] = None
    ) -> List[models.Visit]:
        query = visit_crud.with_details(visit_crud.open_visits_query(db, host_id))
        return query.order_by(models.Visit.check_in_time.desc()).all()

    def checked_in_summaries(
        self, db: Session, host_id: Optional[int] = None
    ) -> List[schemas.CheckedInVisit]:
        now = self.clock()
        return [
            schemas.CheckedInVisit(
                id=visit.id,
                visitor=VisitorSummary.model_validate(visit.visitor),
                host=HostSummary.model_validate(visit.host) if visit.host else None,
                checked_in_at=visit.check_in_time,
                badge_number=visit.badge_number,
                duration=format_duration(visit.check_in_time, now=now),
            )
            for visit in self.currently_checked_in(db, host_id)
        ]

    def pending_approvals(
        self, db: Session, host_id: Optional[int] = None
    ) -> List[Visitor]:
        return (
            visitor_crud.pending_query(db, host_id)
            .order_by(Visitor.created_at.desc())
            .all()
        )

    def todays_visits(
        self, db: Session, day: Optional[Day] = None, host_id: Optional[int] = None
    ) -> List[models.Visit]:
        start, end = day_range(day or self.clock())
        query = visit_crud.with_details(
            visit_crud.visits_between(db, start, end, host_id)
        )
        return query.order_by(models.Visit.visit_date).all()

    def weekly_total(
        self, db: Session, day: Optional[Day] = None, host_id: Optional[int] = None
    ) -> int:
        start, end = week_range(day or self.clock())
        return visit_crud.visits_between(
            db, start, end, host_id, inclusive_end=False
        ).count()

    def statistics(
        self, db: Session, host_id: Optional[int] = None
    ) -> schemas.VisitStatistics:
        now = self.clock()
        start, end = day_range(now)
        return schemas.VisitStatistics(
            total_visitors=visitor_crud.scoped_query(db, host_id).count(),
            today_visits=visit_crud.visits_between(db, start, end, host_id).count(),
            today_checkins=visit_crud.check_ins_between(db, start, end, host_id).count(),
            currently_checked_in=visit_crud.open_visits_query(db, host_id).count(),
            weekly_visits=self.weekly_total(db, now, host_id),
            pending_approvals=visitor_crud.pending_query(db, host_id).count(),
        )


lifecycle = VisitLifecycle()
