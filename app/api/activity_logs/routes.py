from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.activity_logs import schemas
from app.api.activity_logs.crud import activity_log as activity_log_crud
from app.core.database import get_db
from app.core.security import TokenData, get_current_user

router = APIRouter()


@router.get('/', response_model=list[schemas.ActivityLog])
def get_activity_logs(
    current_user: TokenData = Depends(get_current_user),
    filters: schemas.ActivityLogFilter = Depends(),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return activity_log_crud.recent(db=db, limit=limit, filters=filters)
