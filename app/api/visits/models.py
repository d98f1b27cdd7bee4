from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, relationship

from app.api.visits.schemas import VisitState
from app.core.database import Base
from app.core.utils import current_time, format_duration

if TYPE_CHECKING:
    from app.api.users.models import User
    from app.api.visitors.models import Visitor

OPEN_VISIT_CONDITION = 'check_in_time IS NOT NULL AND check_out_time IS NULL'


class Visit(Base):
    __tablename__ = 'visits'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    visitor_id = Column(
        Integer,
        ForeignKey('visitors.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    visitor: Mapped['Visitor'] = relationship('Visitor', back_populates='visits')

    host_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    host: Mapped[Optional['User']] = relationship('User')

    visit_date = Column(DateTime, nullable=False, index=True)
    check_in_time = Column(DateTime, nullable=True, index=True)
    check_out_time = Column(DateTime, nullable=True)
    badge_number = Column(String(50), nullable=True, unique=True)
    purpose = Column(String)
    notes = Column(Text)

    created_at = Column(DateTime, default=current_time)
    updated_at = Column(DateTime, default=current_time, onupdate=current_time)

    __table_args__ = (
        # A visitor can only have one open visit at a time
        Index(
            'uix_visits_open_visitor',
            'visitor_id',
            unique=True,
            postgresql_where=text(OPEN_VISIT_CONDITION),
            sqlite_where=text(OPEN_VISIT_CONDITION),
        ),
        CheckConstraint(
            'check_out_time IS NULL OR check_in_time IS NOT NULL',
            name='ck_visits_check_out_requires_check_in',
        ),
    )

    @property
    def state(self) -> VisitState:
        if self.check_in_time is None:
            return VisitState.SCHEDULED
        if self.check_out_time is None:
            return VisitState.CHECKED_IN
        return VisitState.CHECKED_OUT

    @property
    def duration(self) -> Optional[str]:
        if self.check_in_time is None:
            return None
        return format_duration(self.check_in_time, self.check_out_time)
