# Import all models to ensure they're registered with SQLAlchemy
from app.database import Base
from app.models.schools import School, Grade, Section, Classroom, Subject
from app.models.users import User, Teacher, TeacherSubject, Student
from app.models.attendance import AttendanceSession, StudentAttendance
