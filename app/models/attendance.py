from sqlalchemy import Column, String, Date, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntId

# Attendance Session model: one check-in event for a classroom on a date
class AttendanceSession(Base):
    __tablename__ = "attendance_sessions"
    
    id = Column(BigIntId, primary_key=True, index=True)
    school_id = Column(BigIntId, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    classroom_id = Column(BigIntId, ForeignKey("classrooms.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id = Column(BigIntId, ForeignKey("subjects.id"))
    session_date = Column(Date, nullable=False, index=True)
    starts_at = Column(DateTime(timezone=True))
    ends_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    classroom = relationship("Classroom", back_populates="attendance_sessions")
    subject = relationship("Subject")
    records = relationship("StudentAttendance", back_populates="attendance_session")

# Student Attendance model: at most one status per (session, student)
class StudentAttendance(Base):
    __tablename__ = "student_attendance"
    
    id = Column(BigIntId, primary_key=True, index=True)
    attendance_session_id = Column(
        BigIntId, ForeignKey("attendance_sessions.id", ondelete="CASCADE"), nullable=False
    )
    student_id = Column(BigIntId, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    __table_args__ = (
        UniqueConstraint("attendance_session_id", "student_id", name="uq_attendance_session_student"),
        CheckConstraint("status IN ('present', 'absent', 'late', 'excused')", name="check_attendance_status"),
    )
    
    # Relationships
    attendance_session = relationship("AttendanceSession", back_populates="records")
    student = relationship("Student", back_populates="attendances")
