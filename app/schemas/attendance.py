from datetime import datetime, date
from typing import Optional, List
from pydantic import Field, field_validator
from enum import Enum

from app.schemas.common import BigId, CamelModel


class AttendanceStatusEnum(str, Enum):
    present = "present"
    absent = "absent"
    late = "late"
    excused = "excused"


# Attendance Session schemas
class AttendanceSessionCreate(CamelModel):
    school_id: BigId
    classroom_id: BigId
    subject_id: Optional[BigId] = None
    session_date: date
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class AttendanceSessionInDB(CamelModel):
    id: BigId
    school_id: BigId
    classroom_id: BigId
    subject_id: Optional[BigId] = None
    session_date: date
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


# Attendance recording schemas
class AttendanceEntry(CamelModel):
    student_id: BigId
    status: AttendanceStatusEnum = AttendanceStatusEnum.present


class RecordAttendanceRequest(CamelModel):
    entries: List[AttendanceEntry] = Field(..., min_length=1)

    @field_validator("entries")
    @classmethod
    def unique_students(cls, entries):
        student_ids = [entry.student_id for entry in entries]
        if len(set(student_ids)) != len(student_ids):
            raise ValueError("Each student may appear only once per batch")
        return entries


class RecordAttendanceResponse(CamelModel):
    message: str
    created: int
    updated: int


class StudentAttendanceInDB(CamelModel):
    id: BigId
    attendance_session_id: BigId
    student_id: BigId
    status: AttendanceStatusEnum
    recorded_at: Optional[datetime] = None
    attendance_session: AttendanceSessionInDB
