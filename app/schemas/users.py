from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

from app.schemas.common import BigId, CamelModel


class UserRoleEnum(str, Enum):
    ADMIN = "ADMIN"
    GOVERNMENT = "GOVERNMENT"
    PRINCIPAL = "PRINCIPAL"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class UserStatusEnum(str, Enum):
    active = "active"
    blocked = "blocked"


class LoginRequest(BaseModel):
    email: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str
    user_id: str
    role: str


class UserCreate(CamelModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8)
    role: UserRoleEnum
    school_id: Optional[int] = None
    teacher_id: Optional[int] = None
    student_id: Optional[int] = None

    @model_validator(mode="after")
    def check_profile_links(self):
        if self.role == UserRoleEnum.STUDENT and self.student_id is None:
            raise ValueError("studentId is required for STUDENT role")
        if self.role == UserRoleEnum.TEACHER and self.teacher_id is None:
            raise ValueError("teacherId is required for TEACHER role")
        if self.role == UserRoleEnum.PRINCIPAL and self.school_id is None:
            raise ValueError("schoolId is required for PRINCIPAL role")
        return self


class UserStatusUpdate(CamelModel):
    status: UserStatusEnum


class UserInDB(CamelModel):
    id: BigId
    email: str
    full_name: str
    role: str
    status: str
    school_id: Optional[BigId] = None
    teacher_id: Optional[BigId] = None
    student_id: Optional[BigId] = None
    created_at: Optional[datetime] = None
