import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc

from app.database import get_db
from app.schemas.users import UserCreate, UserInDB, UserRoleEnum, UserStatusUpdate
from app.models.users import User, Teacher, Student
from app.models.schools import School
from app.middleware.authentication import RoleChecker
from app.services.auth import get_password_hash

router = APIRouter()
logger = logging.getLogger(__name__)

allow_user_admin = RoleChecker(["ADMIN"])
allow_user_listing = RoleChecker(["ADMIN", "GOVERNMENT"])

async def _linked_profile_school(db: AsyncSession, model, profile_id: int, label: str) -> int:
    result = await db.execute(select(model).where(model.id == profile_id))
    profile = result.scalars().first()
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found"
        )
    return profile.school_id

@router.post("/users", response_model=UserInDB, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_user_admin)
):
    """
    Create an active user account (ADMIN only).

    TEACHER and STUDENT accounts must link to an existing profile; when a
    school is also given it has to be the profile's school.
    """
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email already exists"
        )

    if user_data.school_id is not None:
        school_result = await db.execute(select(School).where(School.id == user_data.school_id))
        if not school_result.scalars().first():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="School not found"
            )

    linked_schools = []
    if user_data.teacher_id is not None:
        linked_schools.append(await _linked_profile_school(db, Teacher, user_data.teacher_id, "Teacher"))
    if user_data.student_id is not None:
        linked_schools.append(await _linked_profile_school(db, Student, user_data.student_id, "Student"))

    if user_data.school_id is not None and any(school_id != user_data.school_id for school_id in linked_schools):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Linked profile belongs to a different school"
        )

    user = User(
        email=user_data.email,
        full_name=user_data.full_name,
        role=user_data.role.value,
        status="active",
        school_id=user_data.school_id,
        teacher_id=user_data.teacher_id,
        student_id=user_data.student_id,
        hashed_password=get_password_hash(user_data.password),
    )

    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info(f"User {current_user.id} created {user.role} account {user.id}")
    return user

@router.get("/users", response_model=List[UserInDB])
async def get_users(
    role: Optional[UserRoleEnum] = Query(None),
    school_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_user_listing)
):
    """
    List users, newest first, optionally filtered by role and school.
    """
    query = select(User)

    if role:
        query = query.where(User.role == role.value)

    if school_id:
        query = query.where(User.school_id == school_id)

    query = query.order_by(desc(User.created_at), desc(User.id)).offset(skip).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()

@router.patch("/users/{user_id}/status", response_model=UserInDB)
async def update_user_status(
    status_data: UserStatusUpdate,
    user_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_user_admin)
):
    """
    Activate or block a user (ADMIN only). Blocked users are refused at login
    and on every authenticated request.
    """
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    user.status = status_data.status.value
    await db.commit()
    await db.refresh(user)

    logger.info(f"User {current_user.id} set status of user {user.id} to {user.status}")
    return user
