from datetime import date

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from database import ci_exact, day_range, get_db, get_documents
from errors import Forbidden, NotFound
from logging_config import get_logger
from routers.auth import build_auth_router
from schemas import Role, StudentLogin
from security import Identity, require_student

logger = get_logger("students")

router = APIRouter(prefix="/api/students", tags=["students"])
router.include_router(build_auth_router(Role.STUDENT, StudentLogin, require_student))


def own_records(me: Identity, student_id: str) -> str:
    """Students only read their own records"""
    if student_id.lower() != me.id.lower():
        raise Forbidden("You can only view your own records")
    return me.id


def group_by_exam(marks: list) -> dict:
    grouped: dict = {}
    for mark in marks:
        grouped.setdefault(mark["exam_type"], []).append(mark)
    return grouped


# ----------------------- Attendance -----------------------
@router.get("/Attendance/{student_id}")
def get_attendance(student_id: str, me: Identity = Depends(require_student), db: Database = Depends(get_db)):
    records = get_documents(db, "attendance", {"student_id": own_records(me, student_id)}, sort=[("date", -1)])
    if not records:
        raise NotFound("No attendance records found for this student")
    return records


# ----------------------- Homework -----------------------
@router.get("/Homework")
def get_homework(me: Identity = Depends(require_student), db: Database = Depends(get_db)):
    items = get_documents(db, "homework", {"grade": me.record.get("grade")}, sort=[("date", -1)])
    if not items:
        raise NotFound("No homework found for your grade")
    return items


@router.get("/Homework/range")
def get_homework_by_range(
    from_date: date = Query(..., alias="fromDate"),
    to_date: date = Query(..., alias="toDate"),
    me: Identity = Depends(require_student),
    db: Database = Depends(get_db),
):
    query = {"grade": me.record.get("grade"), "date": day_range(from_date, to_date)}
    items = get_documents(db, "homework", query, sort=[("date", -1)])
    if not items:
        raise NotFound("No homework found for this date range")
    return items


# ----------------------- Marks -----------------------
@router.get("/Marks/{student_id}")
def get_marks(student_id: str, me: Identity = Depends(require_student), db: Database = Depends(get_db)):
    marks = get_documents(db, "marks", {"student_id": own_records(me, student_id)}, sort=[("date", -1)])
    if not marks:
        raise NotFound("No marks found")
    return group_by_exam(marks)


# ----------------------- Notices -----------------------
@router.get("/Notice/class/{class_id}")
def get_notices_by_class(class_id: str, me: Identity = Depends(require_student), db: Database = Depends(get_db)):
    notices = get_documents(db, "notice", {"class_id": ci_exact(class_id)}, sort=[("date", -1)])
    logger.info(f"Found {len(notices)} notices for class {class_id}")
    if not notices:
        raise NotFound("No notices found for this class")
    return notices


@router.get("/Notice/class/{class_id}/range")
def get_notices_by_class_and_date(
    class_id: str,
    from_date: date = Query(..., alias="fromDate"),
    to_date: date = Query(..., alias="toDate"),
    me: Identity = Depends(require_student),
    db: Database = Depends(get_db),
):
    query = {"class_id": ci_exact(class_id), "date": day_range(from_date, to_date)}
    notices = get_documents(db, "notice", query, sort=[("date", -1)])
    if not notices:
        raise NotFound("No notices found for this class and date range")
    return notices


# ----------------------- Calendar -----------------------
def calendar_filter(me: Identity, student_id: str) -> dict:
    return {"student_id": {"$in": [own_records(me, student_id), "all"]}}


@router.get("/Calendar/{student_id}")
def get_calendar(student_id: str, me: Identity = Depends(require_student), db: Database = Depends(get_db)):
    events = get_documents(db, "calendar", calendar_filter(me, student_id), sort=[("date", 1)])
    if not events:
        raise NotFound("No calendar events found")
    return events


@router.get("/Calendar/{student_id}/date/{day}")
def get_calendar_by_date(student_id: str, day: date, me: Identity = Depends(require_student),
                         db: Database = Depends(get_db)):
    query = {**calendar_filter(me, student_id), "date": day_range(day)}
    events = get_documents(db, "calendar", query, sort=[("date", 1)])
    if not events:
        raise NotFound("No calendar events found for this date")
    return events


@router.get("/Calendar/{student_id}/range")
def get_calendar_by_range(
    student_id: str,
    from_date: date = Query(..., alias="fromDate"),
    to_date: date = Query(..., alias="toDate"),
    me: Identity = Depends(require_student),
    db: Database = Depends(get_db),
):
    query = {**calendar_filter(me, student_id), "date": day_range(from_date, to_date)}
    events = get_documents(db, "calendar", query, sort=[("date", 1)])
    if not events:
        raise NotFound("No calendar events found for this date range")
    return events


# ----------------------- Timetable -----------------------
@router.get("/Timetable/{class_id}")
def get_timetable(class_id: str, me: Identity = Depends(require_student), db: Database = Depends(get_db)):
    entries = get_documents(db, "timetable", {"class_id": ci_exact(class_id)})
    if not entries:
        raise NotFound("No timetable found for this class")
    return entries
