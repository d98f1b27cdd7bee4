from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.users import schemas
from app.api.users.crud import user as user_crud
from app.core.config import settings
from app.core.database import get_db
from app.core.security import SYSTEM_TOKEN, Token

router = APIRouter()


def _check_api_key(x_api_key: str):
    if not settings.ADMIN_API_KEY or x_api_key != settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail='Invalid API key')


@router.post('/', response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def create_user(
    user: schemas.UserCreate,
    x_api_key: str = Header(...),
    db: Session = Depends(get_db),
):
    _check_api_key(x_api_key)
    return user_crud.create(db=db, obj=user, user=SYSTEM_TOKEN)


@router.get('/', response_model=list[schemas.User])
def get_users(
    filters: schemas.UserFilter = Depends(),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=100),
    x_api_key: str = Header(...),
    db: Session = Depends(get_db),
):
    _check_api_key(x_api_key)
    return user_crud.find(db=db, skip=skip, limit=limit, filters=filters)


# Active hosts, used by the registration form to pick who is being visited
@router.get('/hosts', response_model=list[schemas.HostSummary])
def get_hosts(db: Session = Depends(get_db)):
    return user_crud.get_by_role(db=db, role=schemas.UserRole.HOST)


@router.get('/{user_id}', response_model=schemas.User)
def get_user(
    user_id: int,
    x_api_key: str = Header(...),
    db: Session = Depends(get_db),
):
    _check_api_key(x_api_key)
    return user_crud.get(db=db, id=user_id, user=SYSTEM_TOKEN)


@router.patch('/{user_id}/status', response_model=schemas.User)
def update_user_status(
    user_id: int,
    data: schemas.UserStatusUpdate,
    x_api_key: str = Header(...),
    db: Session = Depends(get_db),
):
    _check_api_key(x_api_key)
    return user_crud.set_status(
        db=db, id=user_id, is_active=data.is_active, user=SYSTEM_TOKEN
    )


@router.post('/{user_id}/token', response_model=Token)
def issue_token(
    user_id: int,
    x_api_key: str = Header(...),
    db: Session = Depends(get_db),
):
    _check_api_key(x_api_key)
    db_user = user_crud.get(db=db, id=user_id, user=SYSTEM_TOKEN)
    if not db_user.is_active:
        raise HTTPException(status_code=403, detail='User is not active')
    return db_user.get_authorization()
