from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class UserRole(str, Enum):
    ADMIN = 'admin'
    HOST = 'host'
    RECEPTION = 'reception'


class UserFilter(BaseModel):
    email: Optional[str] = None
    role: Optional[UserRole] = None
    department: Optional[str] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(use_enum_values=True)


class UserBase(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole = UserRole.HOST
    department: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_validator('email')
    @classmethod
    def clean_email(cls, value: str) -> str:
        return value.lower().strip()


class UserCreate(UserBase):
    pass


class UserStatusUpdate(BaseModel):
    is_active: bool


class User(UserBase):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True,
    )


class HostSummary(BaseModel):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    department: Optional[str] = None

    model_config = ConfigDict(
        from_attributes=True,
    )
