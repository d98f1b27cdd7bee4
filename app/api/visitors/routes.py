from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.users.schemas import UserRole
from app.api.visitors import schemas
from app.api.visitors.crud import visitor as visitor_crud
from app.api.visits import schemas as visits_schemas
from app.api.visits.dependencies import get_lifecycle
from app.api.visits.lifecycle import VisitLifecycle
from app.core.database import get_db
from app.core.exceptions.visit_exceptions import NotFound
from app.core.security import TokenData, get_current_user, require_roles

router = APIRouter()


@router.post(
    '/register',
    response_model=visits_schemas.VisitorRegistration,
    status_code=status.HTTP_201_CREATED,
)
def register_visitor(
    visitor: schemas.VisitorRegister,
    db: Session = Depends(get_db),
):
    new_visitor, visit = visitor_crud.register(db=db, obj=visitor)
    return {'visitor': new_visitor, 'visit': visit}


# Returning visitors look themselves up before scheduling a new visit
@router.post('/find', response_model=visits_schemas.VisitorWithVisits)
def find_visitor(
    data: schemas.FindVisitor,
    db: Session = Depends(get_db),
):
    visitor = visitor_crud.get_by_email_or_phone(db=db, search=data.search)
    if not visitor:
        raise NotFound('Visitor')
    return visitor


@router.post(
    '/{visitor_id}/visits',
    response_model=visits_schemas.Visit,
    status_code=status.HTTP_201_CREATED,
)
def schedule_visit(
    visitor_id: int,
    visit: visits_schemas.ScheduleVisit,
    db: Session = Depends(get_db),
):
    return visitor_crud.schedule_visit(db=db, id=visitor_id, obj=visit)


@router.get('/', response_model=list[schemas.VisitorWithHost])
def get_visitors(
    current_user: TokenData = Depends(get_current_user),
    filters: schemas.VisitorFilter = Depends(),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return visitor_crud.find(
        db=db,
        skip=skip,
        limit=limit,
        filters=filters,
        user=current_user,
    )


@router.get('/pending', response_model=list[schemas.VisitorWithHost])
def get_pending_visitors(
    current_user: TokenData = Depends(get_current_user),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    host_id = current_user.user_id if current_user.is_host else None
    return lifecycle.pending_approvals(db=db, host_id=host_id)


@router.get('/badge/{badge_number}', response_model=visits_schemas.VisitorWithVisits)
def get_visitor_by_badge(
    badge_number: str,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return visitor_crud.get_by_badge(db=db, badge_number=badge_number, user=current_user)


@router.get('/{visitor_id}', response_model=visits_schemas.VisitorWithVisits)
def get_visitor(
    visitor_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return visitor_crud.get_with_visits(db=db, id=visitor_id, user=current_user)


@router.patch('/{visitor_id}', response_model=schemas.VisitorWithHost)
def update_visitor(
    visitor_id: int,
    visitor: schemas.VisitorUpdate,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return visitor_crud.update(db=db, id=visitor_id, obj=visitor, user=current_user)


@router.delete('/{visitor_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_visitor(
    visitor_id: int,
    current_user: TokenData = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    visitor_crud.remove(db=db, id=visitor_id, user=current_user)


@router.post('/{visitor_id}/approve', response_model=schemas.VisitorWithHost)
def approve_visitor(
    visitor_id: int,
    current_user: TokenData = Depends(get_current_user),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.approve(db=db, visitor_id=visitor_id, actor=current_user)


@router.post('/{visitor_id}/reject', response_model=schemas.VisitorWithHost)
def reject_visitor(
    visitor_id: int,
    data: schemas.RejectVisitor,
    current_user: TokenData = Depends(get_current_user),
    lifecycle: VisitLifecycle = Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.reject(
        db=db, visitor_id=visitor_id, reason=data.reason, actor=current_user
    )
