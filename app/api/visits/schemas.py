from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from app.api.users.schemas import HostSummary
from app.api.visitors.schemas import Visitor, VisitorSummary


class VisitState(str, Enum):
    SCHEDULED = 'scheduled'
    CHECKED_IN = 'checked_in'
    CHECKED_OUT = 'checked_out'


class VisitFilter(BaseModel):
    visitor_id: Optional[int] = None
    host_id: Optional[int] = None
    status: Optional[VisitState] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


class ScheduleVisit(BaseModel):
    visit_date: datetime
    host_id: Optional[int] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None


class VisitCreate(ScheduleVisit):
    visitor_id: int
    badge_number: Optional[str] = None

    @field_validator('badge_number')
    @classmethod
    def clean_badge(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else None


class VisitUpdate(BaseModel):
    visit_date: Optional[datetime] = None
    host_id: Optional[int] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None
    badge_number: Optional[str] = None

    @field_validator('badge_number')
    @classmethod
    def clean_badge(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else None

    @field_validator('visit_date')
    @classmethod
    def validate_visit_date(cls, value: Optional[datetime]) -> datetime:
        if value is None:
            raise ValueError('Visit date cannot be empty')
        return value


class CheckInVisitor(BaseModel):
    visitor_id: int
    visit_id: Optional[int] = None
    badge_number: Optional[str] = None

    @field_validator('badge_number')
    @classmethod
    def clean_badge(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else None


class CheckOutVisitor(BaseModel):
    visitor_id: Optional[int] = None
    visit_id: Optional[int] = None

    @model_validator(mode='after')
    def validate_target(self) -> 'CheckOutVisitor':
        if self.visitor_id is None and self.visit_id is None:
            raise ValueError('Either visitor_id or visit_id is required')
        return self


class Visit(BaseModel):
    id: int
    visitor_id: int
    host_id: Optional[int] = None
    visit_date: datetime
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    badge_number: Optional[str] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None
    state: VisitState
    duration: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True,
    )


class VisitWithDetails(Visit):
    visitor: VisitorSummary
    host: Optional[HostSummary] = None


class CheckedInVisit(BaseModel):
    id: int
    visitor: VisitorSummary
    host: Optional[HostSummary] = None
    checked_in_at: datetime
    badge_number: Optional[str] = None
    duration: str


class EmergencyCheckoutResponse(BaseModel):
    checkout_count: int


class VisitStatistics(BaseModel):
    total_visitors: int
    today_visits: int
    today_checkins: int
    currently_checked_in: int
    weekly_visits: int
    pending_approvals: int


class VisitorRegistration(BaseModel):
    visitor: Visitor
    visit: Optional[Visit] = None


class VisitorWithVisits(Visitor):
    host: Optional[HostSummary] = None
    visits: list[Visit] = []
