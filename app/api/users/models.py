from sqlalchemy import Boolean, Column, DateTime, Integer, String, event

from app.api.users.schemas import UserRole
from app.core.database import Base
from app.core.security import Token, create_access_token
from app.core.utils import current_time


class User(Base):
    __tablename__ = 'users'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    email = Column(String, index=True, nullable=False, unique=True)
    first_name = Column(String)
    last_name = Column(String)
    role = Column(String, nullable=False, default=UserRole.HOST.value)
    department = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=current_time)
    updated_at = Column(DateTime, default=current_time, onupdate=current_time)

    @property
    def full_name(self) -> str:
        return ' '.join(p for p in (self.first_name, self.last_name) if p)

    def get_authorization(self) -> Token:
        data = {'user_id': self.id, 'email': self.email, 'role': self.role}
        return Token(
            access_token=create_access_token(data=data),
            token_type='Bearer',
        )


@event.listens_for(User, 'before_insert')
def clean_email(mapper, connection, target):
    if target.email:
        target.email = target.email.lower().strip()
