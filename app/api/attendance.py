import logging
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import and_, desc

from app.database import get_db
from app.schemas.attendance import (
    AttendanceSessionCreate, AttendanceSessionInDB, RecordAttendanceRequest,
    RecordAttendanceResponse, StudentAttendanceInDB
)
from app.models.users import User, Student
from app.models.schools import Classroom, Subject
from app.models.attendance import AttendanceSession, StudentAttendance
from app.middleware.authentication import get_current_user, ensure_school_access, RoleChecker

router = APIRouter()
logger = logging.getLogger(__name__)

# Role-based access control
allow_attendance_management = RoleChecker(["ADMIN", "GOVERNMENT", "TEACHER"])

@router.post("/attendance/sessions", response_model=AttendanceSessionInDB, status_code=status.HTTP_201_CREATED)
async def create_attendance_session(
    session_data: AttendanceSessionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_attendance_management)
):
    """
    Create an attendance session for a classroom on a date.
    """
    ensure_school_access(current_user, session_data.school_id, "Not authorized to create sessions for this school")

    # Verify classroom exists
    class_result = await db.execute(select(Classroom).where(Classroom.id == session_data.classroom_id))
    classroom = class_result.scalars().first()
    if not classroom:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Classroom not found"
        )

    if classroom.school_id != session_data.school_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Classroom does not belong to this school"
        )

    if session_data.subject_id is not None:
        subject_result = await db.execute(select(Subject).where(Subject.id == session_data.subject_id))
        subject = subject_result.scalars().first()
        if not subject or subject.school_id != session_data.school_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Subject not found"
            )

    if session_data.starts_at and session_data.ends_at and session_data.ends_at < session_data.starts_at:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session cannot end before it starts"
        )

    session = AttendanceSession(
        school_id=session_data.school_id,
        classroom_id=session_data.classroom_id,
        subject_id=session_data.subject_id,
        session_date=session_data.session_date,
        starts_at=session_data.starts_at,
        ends_at=session_data.ends_at,
    )

    db.add(session)
    await db.commit()
    await db.refresh(session)

    logger.info(f"Created attendance session {session.id} for classroom {session.classroom_id} on {session.session_date}")
    return session

@router.post("/attendance/sessions/{session_id}/records", response_model=RecordAttendanceResponse)
async def record_attendance(
    payload: RecordAttendanceRequest,
    session_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_attendance_management)
):
    """
    Record statuses for a batch of students in one session.

    Entries for students already recorded in the session overwrite the earlier
    status. The whole batch is committed together or not at all.
    """
    session_result = await db.execute(select(AttendanceSession).where(AttendanceSession.id == session_id))
    session = session_result.scalars().first()
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Attendance session not found"
        )

    ensure_school_access(current_user, session.school_id, "Not authorized to record attendance for this school")

    # Verify all students exist and are enrolled in the session's classroom
    student_ids = [entry.student_id for entry in payload.entries]
    students_result = await db.execute(select(Student).where(Student.id.in_(student_ids)))
    students = {student.id: student for student in students_result.scalars().all()}

    if len(students) != len(student_ids):
        missing_ids = sorted(set(student_ids) - set(students.keys()))
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Some students not found: {missing_ids}"
        )

    for student in students.values():
        if student.school_id != session.school_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Student {student.id} belongs to a different school than the session"
            )
        if student.classroom_id != session.classroom_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Student {student.id} is not enrolled in the session's classroom"
            )

    existing_result = await db.execute(
        select(StudentAttendance).where(
            and_(
                StudentAttendance.attendance_session_id == session_id,
                StudentAttendance.student_id.in_(student_ids)
            )
        )
    )
    existing = {record.student_id: record for record in existing_result.scalars().all()}

    created = 0
    updated = 0
    try:
        for entry in payload.entries:
            record = existing.get(entry.student_id)
            if record:
                record.status = entry.status.value
                updated += 1
            else:
                db.add(StudentAttendance(
                    attendance_session_id=session_id,
                    student_id=entry.student_id,
                    status=entry.status.value
                ))
                created += 1
        await db.commit()
    except Exception:
        await db.rollback()
        logger.error(f"Failed to record attendance for session {session_id}", exc_info=True)
        raise

    logger.info(f"Recorded attendance for session {session_id}: {created} created, {updated} updated")
    return {"message": "Attendance synced", "created": created, "updated": updated}

@router.get("/attendance/students/{student_id}", response_model=List[StudentAttendanceInDB])
async def get_student_attendance(
    student_id: int = Path(..., gt=0),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Attendance history for a student, newest session first.
    """
    student_result = await db.execute(select(Student).where(Student.id == student_id))
    student = student_result.scalars().first()
    if not student:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )

    if current_user.role == "STUDENT":
        if current_user.student_id != student.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Students may only view their own attendance"
            )
    else:
        ensure_school_access(current_user, student.school_id, "Not authorized to view students from another school")

    query = (
        select(StudentAttendance)
        .join(AttendanceSession, AttendanceSession.id == StudentAttendance.attendance_session_id)
        .options(selectinload(StudentAttendance.attendance_session))
        .where(StudentAttendance.student_id == student_id)
    )

    if from_date:
        query = query.where(AttendanceSession.session_date >= from_date)

    if to_date:
        query = query.where(AttendanceSession.session_date <= to_date)

    query = query.order_by(desc(AttendanceSession.session_date), desc(AttendanceSession.id))

    result = await db.execute(query)
    return result.scalars().all()
