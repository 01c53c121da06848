from fastapi import APIRouter, Depends, Query, status
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import (
    as_utc,
    ci_contains,
    ci_exact,
    create_document,
    day_range,
    day_start,
    get_db,
    get_documents,
    oid,
    serialize,
    to_document,
    utcnow,
)
from errors import Conflict, Forbidden, NotFound, ValidationError
from logging_config import get_logger
from routers.auth import build_auth_router
from routers.students import group_by_exam
from schemas import (
    Attendance,
    CreateHomework,
    CreateMarks,
    CreateNotice,
    DateRange,
    Homework,
    MarkAttendance,
    Marks,
    Notice,
    NoticeDate,
    Role,
    TeacherLogin,
    UpdateAttendance,
    UpdateHomework,
    UpdateMarks,
)
from security import Identity, require_teacher

logger = get_logger("teachers")

router = APIRouter(prefix="/api/teachers", tags=["teachers"])
router.include_router(build_auth_router(Role.TEACHER, TeacherLogin, require_teacher))

DUPLICATE_MARKS = "Marks already exist for this student, subject, exam type and semester"


def changes(payload) -> dict:
    """Fields actually sent in a PATCH body"""
    return to_document({k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None})


# ----------------------- Attendance -----------------------
@router.get("/Attendance")
def get_all_attendance(me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    return get_documents(db, "attendance", sort=[("date", -1)])


@router.post("/Attendance", status_code=status.HTTP_201_CREATED)
def mark_attendance(payload: MarkAttendance, me: Identity = Depends(require_teacher),
                    db: Database = Depends(get_db)):
    if db["student"].find_one({"student_id": payload.student_id}) is None:
        raise NotFound("Student not found")

    today = day_start()
    if db["attendance"].find_one({"student_id": payload.student_id, "date": today}):
        raise Conflict("Attendance is already marked for today")

    record = Attendance(date=today, student_id=payload.student_id, status=payload.status)
    try:
        inserted_id = create_document(db, "attendance", record)
    except DuplicateKeyError:
        raise Conflict("Attendance is already marked for today")
    logger.info(f"Attendance {payload.status} marked for {payload.student_id} by {me.id}")
    return {
        "message": "The attendance has been marked successfully",
        "data": serialize(db["attendance"].find_one({"_id": oid(inserted_id)})),
    }


@router.get("/Attendance/{student_id}")
def get_student_attendance(student_id: str, me: Identity = Depends(require_teacher),
                           db: Database = Depends(get_db)):
    records = get_documents(db, "attendance", {"student_id": student_id}, sort=[("date", -1)])
    if not records:
        raise NotFound("No attendance records found for this student")
    return records


@router.patch("/Attendance/{student_id}")
def update_attendance(student_id: str, payload: UpdateAttendance, me: Identity = Depends(require_teacher),
                      db: Database = Depends(get_db)):
    query = {"student_id": student_id, "date": day_start()}
    res = db["attendance"].update_one(query, {"$set": {"status": payload.status, "updated_at": utcnow()}})
    if res.matched_count == 0:
        raise NotFound("No attendance record found for this student today")
    return {"message": "Today's attendance updated", "data": serialize(db["attendance"].find_one(query))}


@router.delete("/Attendance/{student_id}")
def delete_attendance(student_id: str, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    res = db["attendance"].delete_one({"student_id": student_id, "date": day_start()})
    if res.deleted_count == 0:
        raise NotFound("No attendance record found for this student today")
    return {"message": "Today's attendance deleted successfully"}


# ----------------------- Homework -----------------------
def todays_homework(db: Database, homework_id: str, action: str) -> dict:
    homework = db["homework"].find_one({"_id": oid(homework_id)})
    if homework is None:
        raise NotFound("Homework not found")
    if day_start(as_utc(homework["date"])) != day_start():
        raise ValidationError(f"You can only {action} today's homework")
    return homework


@router.get("/Homework")
def get_all_homework(me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    return get_documents(db, "homework", sort=[("date", -1)])


@router.post("/Homework", status_code=status.HTTP_201_CREATED)
def create_homework(payload: CreateHomework, me: Identity = Depends(require_teacher),
                    db: Database = Depends(get_db)):
    homework = Homework(
        grade=payload.grade,
        title=payload.title,
        description=payload.description,
        assign_date=day_start(payload.assign_date),
        due_date=day_start(payload.due_date),
        date=day_start(),
    )
    inserted_id = create_document(db, "homework", {**homework.model_dump(), "teacher_id": me.id})
    return {
        "message": "Homework created successfully",
        "homework": serialize(db["homework"].find_one({"_id": oid(inserted_id)})),
    }


@router.post("/Homework/range")
def get_homework_by_range(payload: DateRange, me: Identity = Depends(require_teacher),
                          db: Database = Depends(get_db)):
    return get_documents(db, "homework", {"date": day_range(payload.from_date, payload.to_date)},
                         sort=[("date", -1)])


@router.patch("/Homework/{homework_id}")
def edit_homework(homework_id: str, payload: UpdateHomework, me: Identity = Depends(require_teacher),
                  db: Database = Depends(get_db)):
    homework = todays_homework(db, homework_id, "edit")
    updates = changes(payload)
    assign_date = as_utc(updates.get("assign_date", homework["assign_date"]))
    due_date = as_utc(updates.get("due_date", homework["due_date"]))
    if due_date < assign_date:
        raise ValidationError("dueDate must not be before assignDate", field="due_date")

    updates["updated_at"] = utcnow()
    db["homework"].update_one({"_id": homework["_id"]}, {"$set": updates})
    return {
        "message": "Homework updated successfully",
        "homework": serialize(db["homework"].find_one({"_id": homework["_id"]})),
    }


@router.delete("/Homework/{homework_id}")
def delete_homework(homework_id: str, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    homework = todays_homework(db, homework_id, "delete")
    db["homework"].delete_one({"_id": homework["_id"]})
    return {"message": "Homework deleted successfully", "homework": serialize(homework)}


# ----------------------- Marks -----------------------
@router.get("/Marks/{student_id}")
def get_all_marks(student_id: str, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    marks = get_documents(db, "marks", {"student_id": student_id}, sort=[("date", -1)])
    if not marks:
        raise NotFound("No marks found")
    return group_by_exam(marks)


@router.post("/Marks", status_code=status.HTTP_201_CREATED)
def create_marks(payload: CreateMarks, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    marks = Marks(**payload.model_dump(exclude={"date"}), date=day_start(payload.date))
    key = {"student_id": marks.student_id, "subject": marks.subject,
           "exam_type": marks.exam_type, "semester": marks.semester}
    if db["marks"].find_one(key):
        raise Conflict(DUPLICATE_MARKS)
    try:
        inserted_id = create_document(db, "marks", {**marks.model_dump(), "teacher_id": me.id})
    except DuplicateKeyError:
        raise Conflict(DUPLICATE_MARKS)
    return {"message": "Marks created successfully", "data": serialize(db["marks"].find_one({"_id": oid(inserted_id)}))}


@router.patch("/Marks/{marks_id}")
def edit_marks(marks_id: str, payload: UpdateMarks, me: Identity = Depends(require_teacher),
               db: Database = Depends(get_db)):
    _id = oid(marks_id)
    current = db["marks"].find_one({"_id": _id})
    if current is None:
        raise NotFound("Marks not found")

    updates = changes(payload)
    obtained = updates.get("marks_obtained", current["marks_obtained"])
    total = updates.get("total_marks", current["total_marks"])
    if total is not None and obtained > total:
        raise ValidationError("marksObtained cannot exceed totalMarks", field="marks_obtained")

    updates["updated_at"] = utcnow()
    try:
        db["marks"].update_one({"_id": _id}, {"$set": updates})
    except DuplicateKeyError:
        raise Conflict(DUPLICATE_MARKS)
    return {"message": "Marks updated successfully", "data": serialize(db["marks"].find_one({"_id": _id}))}


@router.delete("/Marks/{marks_id}")
def delete_marks(marks_id: str, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    deleted = db["marks"].find_one_and_delete({"_id": oid(marks_id)})
    if deleted is None:
        raise NotFound("Marks not found")
    return {"message": "Marks deleted successfully", "data": serialize(deleted)}


# ----------------------- Notices -----------------------
@router.get("/Notice")
def get_all_notices(me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    return get_documents(db, "notice", {"teacher_id": me.id}, sort=[("date", -1)])


@router.post("/Notice/date")
def get_notices_by_date(payload: NoticeDate, me: Identity = Depends(require_teacher),
                        db: Database = Depends(get_db)):
    return get_documents(db, "notice", {"teacher_id": me.id, "date": day_range(payload.date)},
                         sort=[("date", -1)])


@router.post("/Notice", status_code=status.HTTP_201_CREATED)
def create_notice(payload: CreateNotice, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    notice = Notice(
        teacher_id=me.id,
        class_id=payload.class_id,
        title=payload.title,
        description=payload.description,
        date=day_start(payload.date),
    )
    inserted_id = create_document(db, "notice", notice)
    return {"message": "Notice created successfully", "notice": serialize(db["notice"].find_one({"_id": oid(inserted_id)}))}


@router.delete("/Notice/{notice_id}")
def delete_notice(notice_id: str, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    _id = oid(notice_id)
    notice = db["notice"].find_one({"_id": _id})
    if notice is None:
        raise NotFound("Notice not found")
    if notice.get("teacher_id") != me.id:
        raise Forbidden("You are not authorized to delete this notice")
    db["notice"].delete_one({"_id": _id})
    return {"message": "Notice deleted successfully"}


# ----------------------- Calendar -----------------------
@router.get("/Calendar")
def get_all_calendar_events(me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    return get_documents(db, "calendar", sort=[("date", 1)])


# ----------------------- Timetable -----------------------
@router.get("/Timetable")
def get_my_class_timetable(me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    klass = db["class"].find_one({"teacher_id": me.object_id})
    if klass is None:
        raise NotFound("You are not assigned to a class")
    timetable = db["timetable"].find_one({"class_id": ci_exact(klass["name"])})
    if timetable is None:
        raise NotFound(f"No timetable found for class {klass['name']}")
    return serialize(timetable)


# ----------------------- Students -----------------------
@router.get("/Students")
def get_students_in_class(
    grade: int = Query(...),
    section: str = Query(..., min_length=1),
    me: Identity = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    students = get_documents(db, "student", {"grade": grade, "section": ci_exact(section)},
                             sort=[("student_id", 1)])
    if not students:
        raise NotFound("No students found in this class")
    return students


@router.get("/Students/search")
def get_students_by_name(name: str = Query(..., min_length=1), me: Identity = Depends(require_teacher),
                         db: Database = Depends(get_db)):
    students = get_documents(db, "student", {"first_name": ci_contains(name)}, sort=[("first_name", 1)])
    if not students:
        raise NotFound("No students found with this name")
    return students


@router.get("/Students/{student_id}")
def get_student_by_id(student_id: str, me: Identity = Depends(require_teacher), db: Database = Depends(get_db)):
    student = db["student"].find_one({"student_id": student_id})
    if student is None:
        raise NotFound("Student not found")
    return serialize(student)
