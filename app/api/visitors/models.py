from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import Mapped, relationship

from app.api.visitors.schemas import VisitorStatus
from app.core.database import Base
from app.core.utils import current_time

if TYPE_CHECKING:
    from app.api.users.models import User
    from app.api.visits.models import Visit


class Visitor(Base):
    __tablename__ = 'visitors'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    first_name = Column(String, index=True, nullable=False)
    last_name = Column(String, index=True, nullable=False)
    phone = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=True, unique=True)
    company = Column(String)
    purpose = Column(String)

    # References to externally stored images
    photo_url = Column(String)
    id_type = Column(String)
    id_number = Column(String, index=True)
    id_photo_url = Column(String)

    status = Column(String, nullable=False, default=VisitorStatus.PENDING.value)
    notes = Column(Text)

    # Legacy direct host reference, kept for display
    host_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    host: Mapped[Optional['User']] = relationship('User')

    visits: Mapped[List['Visit']] = relationship(
        'Visit',
        back_populates='visitor',
        cascade='all, delete-orphan',
        order_by='Visit.created_at.desc()',
    )

    created_at = Column(DateTime, default=current_time)
    updated_at = Column(DateTime, default=current_time, onupdate=current_time)

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()

    @property
    def is_approved(self) -> bool:
        return self.status == VisitorStatus.APPROVED.value


@event.listens_for(Visitor, 'before_insert')
@event.listens_for(Visitor, 'before_update')
def clean_contact(mapper, connection, target):
    if target.email:
        target.email = target.email.lower().strip()
    else:
        target.email = None
    if target.phone:
        target.phone = target.phone.strip()
