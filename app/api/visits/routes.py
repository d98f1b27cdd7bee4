from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.common.schemas import PaginatedResponse, PaginationMetadata
from app.api.users.schemas import UserRole
from app.api.visits import schemas
from app.api.visits.crud import visit as visit_crud
from app.api.visits.dependencies import get_lifecycle
from app.api.visits.lifecycle import VisitLifecycle
from app.core.database import get_db
from app.core.security import TokenData, get_current_user, require_roles

router = APIRouter()

staff = require_roles(UserRole.ADMIN, UserRole.RECEPTION, UserRole.HOST)


def _host_scope(user: TokenData, host_id: Optional[int] = None) -> Optional[int]:
    """Hosts only ever see their own visits."""
    return user.user_id if user.is_host else host_id


@router.get('/', response_model=PaginatedResponse[schemas.VisitWithDetails])
def get_visits(
    current_user: TokenData = Depends(get_current_user),
    filters: schemas.VisitFilter = Depends(),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    visits = visit_crud.find(
        db=db, skip=skip, limit=limit, filters=filters, user=current_user
    )
    total = visit_crud.count(db=db, filters=filters, user=current_user)
    return {
        'items': visits,
        'pagination': PaginationMetadata(skip=skip, limit=limit, total=total),
    }


@router.post(
    '/',
    response_model=schemas.VisitWithDetails,
    status_code=status.HTTP_201_CREATED,
)
def create_visit(
    visit: schemas.VisitCreate,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.is_host and visit.host_id is None:
        visit.host_id = current_user.user_id
    return visit_crud.create(db=db, obj=visit, user=current_user)


@router.get('/today', response_model=list[schemas.VisitWithDetails])
def get_todays_visits(
    host_id: Optional[int] = None,
    current_user: TokenData = Depends(get_current_user),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.todays_visits(db=db, host_id=_host_scope(current_user, host_id))


@router.get('/checked-in', response_model=list[schemas.CheckedInVisit])
def get_checked_in(
    host_id: Optional[int] = None,
    current_user: TokenData = Depends(get_current_user),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.checked_in_summaries(
        db=db, host_id=_host_scope(current_user, host_id)
    )


@router.get('/statistics', response_model=schemas.VisitStatistics)
def get_statistics(
    host_id: Optional[int] = None,
    current_user: TokenData = Depends(get_current_user),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.statistics(db=db, host_id=_host_scope(current_user, host_id))


@router.post('/check-in-visitor', response_model=schemas.VisitWithDetails)
def check_in_visitor(
    data: schemas.CheckInVisitor,
    current_user: TokenData = Depends(staff),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.check_in(
        db=db,
        visitor_id=data.visitor_id,
        actor=current_user,
        visit_id=data.visit_id,
        badge_number=data.badge_number,
    )


@router.post('/check-out-visitor', response_model=schemas.VisitWithDetails)
def check_out_visitor(
    data: schemas.CheckOutVisitor,
    current_user: TokenData = Depends(staff),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.check_out(
        db=db,
        actor=current_user,
        visitor_id=data.visitor_id,
        visit_id=data.visit_id,
    )


@router.post(
    '/emergency-checkout-all', response_model=schemas.EmergencyCheckoutResponse
)
def emergency_checkout_all(
    current_user: TokenData = Depends(require_roles(UserRole.ADMIN, UserRole.RECEPTION)),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    count = lifecycle.emergency_checkout_all(db=db, actor=current_user)
    return schemas.EmergencyCheckoutResponse(checkout_count=count)


@router.get('/{visit_id}', response_model=schemas.VisitWithDetails)
def get_visit(
    visit_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return visit_crud.get_with_details(db=db, id=visit_id, user=current_user)


@router.patch('/{visit_id}', response_model=schemas.VisitWithDetails)
def update_visit(
    visit_id: int,
    visit: schemas.VisitUpdate,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return visit_crud.update(db=db, id=visit_id, obj=visit, user=current_user)


@router.delete('/{visit_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_visit(
    visit_id: int,
    current_user: TokenData = Depends(require_roles(UserRole.ADMIN, UserRole.RECEPTION)),
    db: Session = Depends(get_db),
):
    visit_crud.delete(db=db, id=visit_id, user=current_user)


@router.patch('/{visit_id}/check-in', response_model=schemas.VisitWithDetails)
def check_in_visit(
    visit_id: int,
    current_user: TokenData = Depends(staff),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    visit = visit_crud.get(db=db, id=visit_id, user=current_user)
    return lifecycle.check_in(
        db=db, visitor_id=visit.visitor_id, actor=current_user, visit_id=visit.id
    )


@router.patch('/{visit_id}/check-out', response_model=schemas.VisitWithDetails)
def check_out_visit(
    visit_id: int,
    current_user: TokenData = Depends(staff),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.check_out(db=db, actor=current_user, visit_id=visit_id)
