from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, relationship

from app.core.database import Base
from app.core.utils import current_time

if TYPE_CHECKING:
    from app.api.visitors.models import Visitor


class ActivityLog(Base):
    __tablename__ = 'activity_logs'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    action = Column(String, nullable=False, index=True)
    visitor_id = Column(
        Integer, ForeignKey('visitors.id', ondelete='CASCADE'), nullable=False
    )
    visitor: Mapped['Visitor'] = relationship('Visitor')
    visit_id = Column(Integer, ForeignKey('visits.id', ondelete='SET NULL'), nullable=True)

    # Staff user id, null for public and system actions
    performed_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    notes = Column(Text)
    timestamp = Column(DateTime, default=current_time, index=True)

    @property
    def visitor_name(self) -> Optional[str]:
        return self.visitor.full_name if self.visitor else None
