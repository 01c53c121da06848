"""
Database Schemas for the School Portal (MongoDB via Pydantic models)
Each Pydantic model represents a collection; collection name is the lowercase of class name.
Request payloads used by more than one router live here as well.
"""

from enum import Enum
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, StringConstraints, model_validator
from typing import Annotated, Optional, List, Literal, Any, Dict
import datetime as dt
from datetime import date, datetime, timezone


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


AttendanceStatus = Literal["Present", "Absent"]
ExamType = Literal["Midterm", "Final", "Class Test", "Assignment", "Quiz"]
CalendarCategory = Literal["Holiday", "Exam", "Event", "Reminder", "Other"]
Weekday = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
AuditAction = Literal["CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT", "SYSTEM"]
AuditEntity = Literal["Teacher", "Student", "Class", "Admin", "System"]

# passwords are hashed exactly as sent
Password = Annotated[str, StringConstraints(strip_whitespace=False)]


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def default_academic_year() -> str:
    year = datetime.now(timezone.utc).year
    return f"{year}-{year + 1}"


class Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


# Core accounts
class Student(BaseModel):
    student_id: str
    first_name: str
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    grade: int
    section: Optional[str] = None
    fathers_name: Optional[str] = None
    mothers_name: Optional[str] = None
    address: Optional[str] = None
    password_hash: str = Field(..., description="bcrypt hash")
    session_expiry: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class Teacher(BaseModel):
    teacher_id: str
    first_name: str
    last_name: Optional[str] = None
    email: EmailStr
    address: str
    phone: Optional[str] = None
    subject: Optional[str] = None
    assigned_classes: List[str] = Field(default_factory=list)
    password_hash: str
    session_expiry: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class Admin(BaseModel):
    admin_id: str
    first_name: str
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    password_hash: str
    session_expiry: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class Session(BaseModel):
    token_id: str
    role: Role
    user_id: str  # _id of the account document
    expires_at: datetime


# School records
class SubjectAssignment(BaseModel):
    subject: str
    teacher_id: Any = None  # ObjectId of the teacher document


class Class(BaseModel):
    name: str = Field(..., description="Class name e.g. 10A")
    grade: int
    section: str
    teacher_id: Any = None
    students: List[Any] = Field(default_factory=list)
    subjects: List[SubjectAssignment] = Field(default_factory=list)
    academic_year: str = Field(default_factory=default_academic_year)


class Attendance(BaseModel):
    date: datetime
    student_id: str
    status: AttendanceStatus


class Homework(BaseModel):
    grade: int
    title: str
    description: str
    assign_date: datetime
    due_date: datetime
    date: datetime  # day the homework was posted


class Marks(BaseModel):
    student_id: str
    subject: str
    marks_obtained: float
    total_marks: float
    exam_type: ExamType
    semester: str
    date: datetime


class Notice(BaseModel):
    teacher_id: str
    class_id: str
    title: str
    description: str
    date: datetime


class Calendar(BaseModel):
    student_id: str = "all"
    title: str
    description: Optional[str] = None
    date: datetime
    category: CalendarCategory
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    target_grade: Optional[int] = None
    is_all_day: bool = False


class Period(BaseModel):
    subject: str
    start_time: str = Field(validation_alias=_alias("start_time", "startTime"))
    end_time: str = Field(validation_alias=_alias("end_time", "endTime"))
    teacher_id: Optional[str] = Field(None, validation_alias=_alias("teacher_id", "teacherID"))


class DaySchedule(BaseModel):
    day: Weekday
    periods: List[Period] = Field(default_factory=list)


class Timetable(BaseModel):
    class_id: str
    timetable: List[DaySchedule] = Field(default_factory=list)


class Audit(BaseModel):
    action: AuditAction
    entity_type: AuditEntity
    entity_id: str
    user_id: str
    user_role: str = "admin"
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime
    description: str


# ----------------------- Login payloads -----------------------
class LoginRequest(Payload):
    password: Password = Field(min_length=1)

    @property
    def account_id(self) -> str:
        raise NotImplementedError


class StudentLogin(LoginRequest):
    student_id: str = Field(min_length=1, validation_alias=_alias("student_id", "studentID"))

    @property
    def account_id(self) -> str:
        return self.student_id


class TeacherLogin(LoginRequest):
    teacher_id: str = Field(min_length=1, validation_alias=_alias("teacher_id", "teacherID"))

    @property
    def account_id(self) -> str:
        return self.teacher_id


class AdminLogin(LoginRequest):
    admin_id: str = Field(min_length=1, validation_alias=_alias("admin_id", "adminID", "AdminID"))

    @property
    def account_id(self) -> str:
        return self.admin_id


# ----------------------- Record payloads -----------------------
class DateRange(Payload):
    from_date: date = Field(validation_alias=_alias("from_date", "fromDate"))
    to_date: date = Field(validation_alias=_alias("to_date", "toDate"))

    @model_validator(mode="after")
    def check_order(self):
        if self.to_date < self.from_date:
            raise ValueError("toDate must not be before fromDate")
        return self


class MarkAttendance(Payload):
    student_id: str = Field(min_length=1, validation_alias=_alias("student_id", "studentID"))
    status: AttendanceStatus


class UpdateAttendance(Payload):
    status: AttendanceStatus


class CreateHomework(Payload):
    grade: int = Field(ge=1, le=12)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    assign_date: date = Field(validation_alias=_alias("assign_date", "assignDate"))
    due_date: date = Field(validation_alias=_alias("due_date", "dueDate"))

    @model_validator(mode="after")
    def check_dates(self):
        if self.due_date < self.assign_date:
            raise ValueError("dueDate must not be before assignDate")
        return self


class UpdateHomework(Payload):
    grade: Optional[int] = Field(None, ge=1, le=12)
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    assign_date: Optional[date] = Field(None, validation_alias=_alias("assign_date", "assignDate"))
    due_date: Optional[date] = Field(None, validation_alias=_alias("due_date", "dueDate"))


class CreateMarks(Payload):
    student_id: str = Field(min_length=1, validation_alias=_alias("student_id", "studentID"))
    subject: str = Field(min_length=1)
    marks_obtained: float = Field(ge=0, validation_alias=_alias("marks_obtained", "marksObtained"))
    total_marks: float = Field(gt=0, validation_alias=_alias("total_marks", "totalMarks"))
    exam_type: ExamType = Field(validation_alias=_alias("exam_type", "examType"))
    semester: str = Field(min_length=1)
    date: date

    @model_validator(mode="after")
    def check_score(self):
        if self.marks_obtained > self.total_marks:
            raise ValueError("marksObtained cannot exceed totalMarks")
        return self


class UpdateMarks(Payload):
    subject: Optional[str] = Field(None, min_length=1)
    marks_obtained: Optional[float] = Field(None, ge=0, validation_alias=_alias("marks_obtained", "marksObtained"))
    total_marks: Optional[float] = Field(None, gt=0, validation_alias=_alias("total_marks", "totalMarks"))
    exam_type: Optional[ExamType] = Field(None, validation_alias=_alias("exam_type", "examType"))
    semester: Optional[str] = Field(None, min_length=1)
    date: Optional[dt.date] = None


class CreateNotice(Payload):
    class_id: str = Field(min_length=1, validation_alias=_alias("class_id", "classID", "classId"))
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    date: date


class NoticeDate(Payload):
    date: date


class CreateCalendarEvent(Payload):
    student_id: str = Field("all", validation_alias=_alias("student_id", "studentID"))
    title: str = Field(min_length=1)
    description: Optional[str] = None
    date: date
    category: CalendarCategory
    start_time: Optional[str] = Field(None, validation_alias=_alias("start_time", "startTime"))
    end_time: Optional[str] = Field(None, validation_alias=_alias("end_time", "endTime"))
    location: Optional[str] = None
    target_grade: Optional[int] = Field(None, validation_alias=_alias("target_grade", "targetGrade"))
    is_all_day: bool = Field(False, validation_alias=_alias("is_all_day", "isAllDay"))


class PutTimetable(Payload):
    timetable: List[DaySchedule]


class CreateStudent(Payload):
    student_id: str = Field(min_length=1, validation_alias=_alias("student_id", "studentID"))
    first_name: str = Field(min_length=1, validation_alias=_alias("first_name", "firstName"))
    last_name: Optional[str] = Field(None, validation_alias=_alias("last_name", "lastName"))
    email: Optional[EmailStr] = None
    grade: int = Field(ge=1, le=12)
    section: Optional[str] = None
    fathers_name: Optional[str] = Field(None, validation_alias=_alias("fathers_name", "fathersName"))
    mothers_name: Optional[str] = Field(None, validation_alias=_alias("mothers_name", "mothersName"))
    address: Optional[str] = None
    password: Password = Field(min_length=6)


class UpdateStudent(Payload):
    first_name: Optional[str] = Field(None, min_length=1, validation_alias=_alias("first_name", "firstName"))
    last_name: Optional[str] = Field(None, validation_alias=_alias("last_name", "lastName"))
    email: Optional[EmailStr] = None
    grade: Optional[int] = Field(None, ge=1, le=12)
    section: Optional[str] = None
    fathers_name: Optional[str] = Field(None, validation_alias=_alias("fathers_name", "fathersName"))
    mothers_name: Optional[str] = Field(None, validation_alias=_alias("mothers_name", "mothersName"))
    address: Optional[str] = None
    password: Optional[Password] = Field(None, min_length=6)


class CreateTeacher(Payload):
    teacher_id: str = Field(min_length=1, validation_alias=_alias("teacher_id", "teacherID"))
    first_name: str = Field(min_length=1, validation_alias=_alias("first_name", "firstName"))
    last_name: Optional[str] = Field(None, validation_alias=_alias("last_name", "lastName"))
    email: EmailStr
    address: str = Field(min_length=1, validation_alias=_alias("address", "Address"))
    phone: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    assigned_classes: List[str] = Field(default_factory=list, validation_alias=_alias("assigned_classes", "assignedClasses"))
    password: Password = Field(min_length=6)


class UpdateTeacher(Payload):
    first_name: Optional[str] = Field(None, min_length=1, validation_alias=_alias("first_name", "firstName"))
    last_name: Optional[str] = Field(None, validation_alias=_alias("last_name", "lastName"))
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, validation_alias=_alias("address", "Address"))
    phone: Optional[str] = None
    subject: Optional[str] = None
    assigned_classes: Optional[List[str]] = Field(None, validation_alias=_alias("assigned_classes", "assignedClasses"))
    password: Optional[Password] = Field(None, min_length=6)


class CreateClass(Payload):
    name: str = Field(min_length=1, validation_alias=_alias("name", "className"))
    grade: int = Field(ge=1, le=12)
    section: str = Field(min_length=1)
    teacher_id: Optional[str] = Field(None, validation_alias=_alias("teacher_id", "teacherID", "teacherId"))
    academic_year: Optional[str] = Field(None, validation_alias=_alias("academic_year", "academicYear"))


class UpdateClass(Payload):
    name: Optional[str] = Field(None, min_length=1, validation_alias=_alias("name", "className"))
    grade: Optional[int] = Field(None, ge=1, le=12)
    section: Optional[str] = Field(None, min_length=1)
    academic_year: Optional[str] = Field(None, validation_alias=_alias("academic_year", "academicYear"))


class ClassTeacher(Payload):
    class_id: str = Field(validation_alias=_alias("class_id", "classId"))
    teacher_id: str = Field(min_length=1, validation_alias=_alias("teacher_id", "teacherID", "teacherId"))


class ClassStudent(Payload):
    class_id: str = Field(validation_alias=_alias("class_id", "classId"))
    student_id: str = Field(min_length=1, validation_alias=_alias("student_id", "studentID", "studentId"))


class ClassSubject(Payload):
    class_id: str = Field(validation_alias=_alias("class_id", "classId"))
    subject: str = Field(min_length=1)
    teacher_id: str = Field(min_length=1, validation_alias=_alias("teacher_id", "teacherID", "teacherId"))
