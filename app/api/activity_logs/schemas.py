from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ActivityAction(str, Enum):
    REGISTERED = 'registered'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CHECK_IN = 'check_in'
    CHECK_OUT = 'check_out'
    EMERGENCY_CHECK_OUT = 'emergency_check_out'


class ActivityLogFilter(BaseModel):
    action: Optional[ActivityAction] = None
    visitor_id: Optional[int] = None
    visit_id: Optional[int] = None
    performed_by: Optional[int] = None

    model_config = ConfigDict(use_enum_values=True)


class ActivityLogCreate(BaseModel):
    action: ActivityAction
    visitor_id: int
    visit_id: Optional[int] = None
    performed_by: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class ActivityLog(BaseModel):
    id: int
    action: ActivityAction
    visitor_id: int
    visit_id: Optional[int] = None
    performed_by: Optional[int] = None
    notes: Optional[str] = None
    visitor_name: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(
        from_attributes=True,
    )
