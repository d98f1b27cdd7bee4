from typing import List, Optional

from sqlalchemy.orm import Session

from app.api.base_crud import CRUDBase
from app.api.users import models, schemas
from app.core.logger import logger
from app.core.security import SYSTEM_TOKEN, TokenData


class CRUDUser(CRUDBase[models.User, schemas.UserCreate, schemas.UserCreate]):
    def _check_permission(self, db_obj: models.User, user: TokenData) -> bool:
        return user == SYSTEM_TOKEN or user.is_admin or db_obj.id == user.user_id

    def get_active_host(self, db: Session, host_id: int) -> Optional[models.User]:
        return (
            db.query(self.model)
            .filter(
                self.model.id == host_id,
                self.model.role == schemas.UserRole.HOST.value,
                self.model.is_active.is_(True),
            )
            .first()
        )

    def get_by_role(self, db: Session, role: schemas.UserRole) -> List[models.User]:
        return (
            db.query(self.model)
            .filter(self.model.role == role.value, self.model.is_active.is_(True))
            .order_by(self.model.first_name)
            .all()
        )

    def set_status(
        self, db: Session, id: int, is_active: bool, user: TokenData
    ) -> models.User:
        db_user = self.get(db, id, user)
        logger.info('Setting user %s active=%s', db_user.id, is_active)
        db_user.is_active = is_active
        self.commit(db)
        db.refresh(db_user)
        return db_user


user = CRUDUser(models.User)
