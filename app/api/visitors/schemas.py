from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from app.api.users.schemas import HostSummary
from app.core.utils import storage_url


class VisitorStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class VisitorFilter(BaseModel):
    status: Optional[VisitorStatus] = None
    host_id: Optional[int] = None
    company: Optional[str] = None
    q: Optional[str] = None


class VisitorBase(BaseModel):
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    company: Optional[str] = None
    purpose: Optional[str] = None
    photo_url: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    id_photo_url: Optional[str] = None
    host_id: Optional[int] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator('email')
    @classmethod
    def clean_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower().strip() if value else None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        if not value:
            raise ValueError('Phone is required')
        return value


class VisitorRegister(VisitorBase):
    """Self-registration payload. A visit is scheduled when visit_date is given."""

    visit_date: Optional[datetime] = None
    notes: Optional[str] = None


class InternalVisitorCreate(VisitorBase):
    status: VisitorStatus = VisitorStatus.PENDING

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class VisitorUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    purpose: Optional[str] = None
    photo_url: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    id_photo_url: Optional[str] = None
    host_id: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator('email')
    @classmethod
    def clean_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower().strip() if value else None


class RejectVisitor(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError('Reason is required')
        return value.strip()


class FindVisitor(BaseModel):
    search: str

    @field_validator('search')
    @classmethod
    def validate_search(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError('Search term is required')
        return value.strip()


class Visitor(VisitorBase):
    id: int
    status: VisitorStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True,
    )

    @field_validator('photo_url', 'id_photo_url')
    @classmethod
    def resolve_photo_url(cls, value: Optional[str]) -> Optional[str]:
        return storage_url(value)


class VisitorWithHost(Visitor):
    host: Optional[HostSummary] = None


class VisitorSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    company: Optional[str] = None
    photo_url: Optional[str] = None

    model_config = ConfigDict(
        from_attributes=True,
    )

    @field_validator('photo_url')
    @classmethod
    def resolve_photo_url(cls, value: Optional[str]) -> Optional[str]:
        return storage_url(value)
