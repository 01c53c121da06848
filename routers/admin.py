from datetime import date, timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from audit import record_audit
from database import (
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
from errors import Conflict, NotFound, ValidationError
from logging_config import get_logger
from routers.auth import build_auth_router
from schemas import (
    AdminLogin,
    Calendar,
    Class,
    ClassStudent,
    ClassSubject,
    ClassTeacher,
    CreateCalendarEvent,
    CreateClass,
    CreateStudent,
    CreateTeacher,
    PutTimetable,
    Role,
    Student,
    SubjectAssignment,
    Teacher,
    Timetable,
    UpdateClass,
    UpdateStudent,
    UpdateTeacher,
)
from security import Identity, get_password_hash, require_admin

logger = get_logger("admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])
router.include_router(build_auth_router(Role.ADMIN, AdminLogin, require_admin))

AUDIT_PERIODS = {"1d": timedelta(days=1), "7d": timedelta(days=7), "30d": timedelta(days=30)}


def account_changes(payload) -> dict:
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    password = updates.pop("password", None)
    if password:
        updates["password_hash"] = get_password_hash(password)
    return to_document(updates)


def find_teacher(db: Database, teacher_id: str) -> dict:
    teacher = db["teacher"].find_one({"teacher_id": teacher_id})
    if teacher is None:
        raise NotFound("Teacher not found")
    return teacher


def find_student(db: Database, student_id: str) -> dict:
    student = db["student"].find_one({"student_id": student_id})
    if student is None:
        raise NotFound("Student not found")
    return student


# ----------------------- Teachers -----------------------
@router.post("/teachers", status_code=status.HTTP_201_CREATED)
def create_teacher(payload: CreateTeacher, request: Request, me: Identity = Depends(require_admin),
                   db: Database = Depends(get_db)):
    existing = db["teacher"].find_one({"$or": [{"teacher_id": payload.teacher_id}, {"email": str(payload.email)}]})
    if existing:
        if existing.get("teacher_id") == payload.teacher_id:
            raise Conflict("Teacher ID already exists")
        raise Conflict("Email already exists")

    teacher = Teacher(**payload.model_dump(exclude={"password"}), password_hash=get_password_hash(payload.password))
    create_document(db, "teacher", {**teacher.model_dump(), "email": str(teacher.email)})
    record_audit(db, "CREATE", "Teacher", payload.teacher_id, me.id,
                 f"Created teacher {payload.first_name} ({payload.teacher_id})", request=request)
    return {
        "message": "Teacher added successfully",
        "teacher": {"teacher_id": payload.teacher_id, "first_name": payload.first_name, "email": str(payload.email)},
    }


@router.get("/teachers")
def get_all_teachers(me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return get_documents(db, "teacher", sort=[("teacher_id", 1)])


@router.get("/teachers/{teacher_id}")
def get_teacher_by_id(teacher_id: str, me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return serialize(find_teacher(db, teacher_id))


@router.patch("/teachers/{teacher_id}")
def update_teacher(teacher_id: str, payload: UpdateTeacher, request: Request,
                   me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    updates = account_changes(payload)
    if "email" in updates:
        updates["email"] = str(updates["email"])
    updates["updated_at"] = utcnow()
    res = db["teacher"].update_one({"teacher_id": teacher_id}, {"$set": updates})
    if res.matched_count == 0:
        raise NotFound("Teacher not found")
    record_audit(db, "UPDATE", "Teacher", teacher_id, me.id, f"Updated teacher {teacher_id}",
                 details={"fields": sorted(k for k in updates if k not in ("updated_at", "password_hash"))},
                 request=request)
    return {"message": "Teacher updated successfully", "teacher": serialize(find_teacher(db, teacher_id))}


@router.delete("/teachers/{teacher_id}")
def delete_teacher(teacher_id: str, request: Request, me: Identity = Depends(require_admin),
                   db: Database = Depends(get_db)):
    teacher = find_teacher(db, teacher_id)

    cascade = {"classes_updated": 0, "subjects_removed": 0, "sessions_closed": 0}
    cascade["classes_updated"] = db["class"].update_many(
        {"teacher_id": teacher["_id"]}, {"$set": {"teacher_id": None}}
    ).modified_count
    cascade["subjects_removed"] = db["class"].update_many(
        {"subjects.teacher_id": teacher["_id"]}, {"$pull": {"subjects": {"teacher_id": teacher["_id"]}}}
    ).modified_count
    cascade["sessions_closed"] = db["session"].delete_many(
        {"role": Role.TEACHER.value, "user_id": str(teacher["_id"])}
    ).deleted_count
    db["teacher"].delete_one({"_id": teacher["_id"]})

    name = " ".join(p for p in (teacher.get("first_name"), teacher.get("last_name")) if p)
    record_audit(
        db, "DELETE", "Teacher", teacher_id, me.id,
        f"Deleted teacher {name} ({teacher_id}) with cascading deletions",
        details={
            "teacher": {"teacher_id": teacher_id, "first_name": teacher.get("first_name"),
                        "last_name": teacher.get("last_name"), "email": teacher.get("email"),
                        "subject": teacher.get("subject")},
            "cascade": cascade,
        },
        request=request,
    )
    logger.info(f"Teacher {teacher_id} deleted: {cascade}")
    return {"message": "Teacher deleted successfully with cascading deletions", "cascade_results": cascade}


# ----------------------- Students -----------------------
@router.post("/students", status_code=status.HTTP_201_CREATED)
def create_student(payload: CreateStudent, request: Request, me: Identity = Depends(require_admin),
                   db: Database = Depends(get_db)):
    clauses = [{"student_id": payload.student_id}]
    if payload.email:
        clauses.append({"email": str(payload.email)})
    existing = db["student"].find_one({"$or": clauses})
    if existing:
        if existing.get("student_id") == payload.student_id:
            raise Conflict("Student ID already exists")
        raise Conflict("Email already exists")

    student = Student(**payload.model_dump(exclude={"password"}), password_hash=get_password_hash(payload.password))
    doc = student.model_dump()
    if student.email is None:
        doc.pop("email")
    else:
        doc["email"] = str(student.email)
    create_document(db, "student", doc)
    record_audit(db, "CREATE", "Student", payload.student_id, me.id,
                 f"Created student {payload.first_name} ({payload.student_id})", request=request)
    return {
        "message": "Student added successfully",
        "student": {"student_id": payload.student_id, "first_name": payload.first_name, "grade": payload.grade},
    }


@router.get("/students")
def get_all_students(grade: Optional[int] = None, me: Identity = Depends(require_admin),
                     db: Database = Depends(get_db)):
    query = {"grade": grade} if grade is not None else {}
    return get_documents(db, "student", query, sort=[("student_id", 1)])


@router.get("/students/{student_id}")
def get_student_by_id(student_id: str, me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return serialize(find_student(db, student_id))


@router.patch("/students/{student_id}")
def update_student(student_id: str, payload: UpdateStudent, request: Request,
                   me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    updates = account_changes(payload)
    if "email" in updates:
        updates["email"] = str(updates["email"])
    updates["updated_at"] = utcnow()
    res = db["student"].update_one({"student_id": student_id}, {"$set": updates})
    if res.matched_count == 0:
        raise NotFound("Student not found")
    record_audit(db, "UPDATE", "Student", student_id, me.id, f"Updated student {student_id}",
                 details={"fields": sorted(k for k in updates if k not in ("updated_at", "password_hash"))},
                 request=request)
    return {"message": "Student updated successfully", "student": serialize(find_student(db, student_id))}


@router.delete("/students/{student_id}")
def delete_student(student_id: str, request: Request, me: Identity = Depends(require_admin),
                   db: Database = Depends(get_db)):
    student = find_student(db, student_id)
    classes_updated = db["class"].update_many(
        {"students": student["_id"]}, {"$pull": {"students": student["_id"]}}
    ).modified_count
    db["session"].delete_many({"role": Role.STUDENT.value, "user_id": str(student["_id"])})
    db["student"].delete_one({"_id": student["_id"]})
    record_audit(db, "DELETE", "Student", student_id, me.id, f"Deleted student {student_id}",
                 details={"classes_updated": classes_updated}, request=request)
    return {"message": "Student deleted successfully", "classes_updated": classes_updated}


# ----------------------- Classes -----------------------
def populate_class(db: Database, klass: dict) -> dict:
    """Replace teacher/student references with short summaries"""
    out = serialize(klass)
    if klass.get("teacher_id") is not None:
        teacher = db["teacher"].find_one({"_id": klass["teacher_id"]},
                                         {"first_name": 1, "last_name": 1, "teacher_id": 1, "subject": 1})
        out["teacher"] = serialize(teacher)
    students = db["student"].find({"_id": {"$in": klass.get("students", [])}},
                                  {"first_name": 1, "last_name": 1, "student_id": 1, "grade": 1})
    out["students"] = [serialize(s) for s in students]
    return out


def find_class(db: Database, class_id: str) -> dict:
    klass = db["class"].find_one({"_id": oid(class_id)})
    if klass is None:
        raise NotFound("Class not found")
    return klass


@router.post("/classes", status_code=status.HTTP_201_CREATED)
def create_class(payload: CreateClass, request: Request, me: Identity = Depends(require_admin),
                 db: Database = Depends(get_db)):
    if db["class"].find_one({"name": payload.name}):
        raise Conflict("Class name already exists")

    fields = payload.model_dump(exclude={"teacher_id", "academic_year"})
    if payload.academic_year:
        fields["academic_year"] = payload.academic_year
    if payload.teacher_id:
        fields["teacher_id"] = find_teacher(db, payload.teacher_id)["_id"]
    klass = Class(**fields)
    inserted_id = create_document(db, "class", klass.model_dump())
    record_audit(db, "CREATE", "Class", payload.name, me.id, f"Created class {payload.name}", request=request)
    return {"message": "Class created successfully", "class": populate_class(db, find_class(db, inserted_id))}


@router.get("/classes")
def get_all_classes(me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    classes = db["class"].find({}).sort([("grade", 1), ("section", 1)])
    return [populate_class(db, c) for c in classes]


@router.get("/classes/{class_id}")
def get_class_by_id(class_id: str, me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return populate_class(db, find_class(db, class_id))


@router.patch("/classes/{class_id}")
def update_class(class_id: str, payload: UpdateClass, request: Request, me: Identity = Depends(require_admin),
                 db: Database = Depends(get_db)):
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not updates:
        raise ValidationError("No fields to update")
    updates["updated_at"] = utcnow()
    _id = oid(class_id)
    try:
        res = db["class"].update_one({"_id": _id}, {"$set": updates})
    except DuplicateKeyError:
        raise Conflict("Class name already exists")
    if res.matched_count == 0:
        raise NotFound("Class not found")
    record_audit(db, "UPDATE", "Class", class_id, me.id, f"Updated class {class_id}",
                 details={"fields": sorted(k for k in updates if k != "updated_at")}, request=request)
    return {"message": "Class updated successfully", "class": populate_class(db, find_class(db, class_id))}


@router.delete("/classes/{class_id}")
def delete_class(class_id: str, request: Request, me: Identity = Depends(require_admin),
                 db: Database = Depends(get_db)):
    deleted = db["class"].find_one_and_delete({"_id": oid(class_id)})
    if deleted is None:
        raise NotFound("Class not found")
    record_audit(db, "DELETE", "Class", class_id, me.id, f"Deleted class {deleted['name']}", request=request)
    return {"message": "Class deleted successfully"}


@router.post("/classes/assign-teacher")
def assign_teacher_to_class(payload: ClassTeacher, request: Request, me: Identity = Depends(require_admin),
                            db: Database = Depends(get_db)):
    teacher = find_teacher(db, payload.teacher_id)
    klass = find_class(db, payload.class_id)
    db["class"].update_one({"_id": klass["_id"]}, {"$set": {"teacher_id": teacher["_id"], "updated_at": utcnow()}})
    record_audit(db, "UPDATE", "Class", payload.class_id, me.id,
                 f"Assigned teacher {payload.teacher_id} to class {klass['name']}", request=request)
    return {"message": "Teacher assigned to class successfully", "class": populate_class(db, find_class(db, payload.class_id))}


@router.post("/classes/add-student")
def add_student_to_class(payload: ClassStudent, request: Request, me: Identity = Depends(require_admin),
                         db: Database = Depends(get_db)):
    student = find_student(db, payload.student_id)
    klass = find_class(db, payload.class_id)
    if student["_id"] in klass.get("students", []):
        raise ValidationError("Student is already in this class")
    db["class"].update_one({"_id": klass["_id"]}, {"$push": {"students": student["_id"]}, "$set": {"updated_at": utcnow()}})
    record_audit(db, "UPDATE", "Class", payload.class_id, me.id,
                 f"Added student {payload.student_id} to class {klass['name']}", request=request)
    return {"message": "Student added to class successfully", "class": populate_class(db, find_class(db, payload.class_id))}


@router.post("/classes/remove-student")
def remove_student_from_class(payload: ClassStudent, request: Request, me: Identity = Depends(require_admin),
                              db: Database = Depends(get_db)):
    student = find_student(db, payload.student_id)
    klass = find_class(db, payload.class_id)
    db["class"].update_one({"_id": klass["_id"]}, {"$pull": {"students": student["_id"]}, "$set": {"updated_at": utcnow()}})
    record_audit(db, "UPDATE", "Class", payload.class_id, me.id,
                 f"Removed student {payload.student_id} from class {klass['name']}", request=request)
    return {"message": "Student removed from class successfully", "class": populate_class(db, find_class(db, payload.class_id))}


@router.post("/classes/assign-subject")
def assign_subject_teacher(payload: ClassSubject, request: Request, me: Identity = Depends(require_admin),
                           db: Database = Depends(get_db)):
    teacher = find_teacher(db, payload.teacher_id)
    klass = find_class(db, payload.class_id)
    assignment = SubjectAssignment(subject=payload.subject, teacher_id=teacher["_id"])
    db["class"].update_one({"_id": klass["_id"]}, {"$pull": {"subjects": {"subject": payload.subject}}})
    db["class"].update_one({"_id": klass["_id"]},
                           {"$push": {"subjects": assignment.model_dump()}, "$set": {"updated_at": utcnow()}})
    record_audit(db, "UPDATE", "Class", payload.class_id, me.id,
                 f"Assigned {payload.subject} in class {klass['name']} to {payload.teacher_id}", request=request)
    return {"message": "Subject teacher assigned successfully", "class": populate_class(db, find_class(db, payload.class_id))}


# ----------------------- Calendar -----------------------
@router.get("/calendar")
def get_calendar(me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return get_documents(db, "calendar", sort=[("date", 1)])


@router.post("/calendar", status_code=status.HTTP_201_CREATED)
def create_calendar_event(payload: CreateCalendarEvent, me: Identity = Depends(require_admin),
                          db: Database = Depends(get_db)):
    event = Calendar(**payload.model_dump(exclude={"date"}), date=day_start(payload.date))
    inserted_id = create_document(db, "calendar", event)
    return {"message": "Calendar event created successfully",
            "event": serialize(db["calendar"].find_one({"_id": oid(inserted_id)}))}


@router.delete("/calendar/{event_id}")
def delete_calendar_event(event_id: str, me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    res = db["calendar"].delete_one({"_id": oid(event_id)})
    if res.deleted_count == 0:
        raise NotFound("Calendar event not found")
    return {"message": "Calendar event deleted successfully"}


# ----------------------- Timetable -----------------------
@router.get("/timetable")
def get_all_timetables(me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return get_documents(db, "timetable", sort=[("class_id", 1)])


@router.put("/timetable/{class_id}")
def put_timetable(class_id: str, payload: PutTimetable, me: Identity = Depends(require_admin),
                  db: Database = Depends(get_db)):
    timetable = Timetable(class_id=class_id, timetable=payload.timetable)
    now = utcnow()
    # one timetable per class whatever the case of the id
    existing = db["timetable"].find_one({"class_id": ci_exact(class_id)})
    db["timetable"].update_one(
        {"_id": existing["_id"]} if existing else {"class_id": class_id},
        {"$set": {**timetable.model_dump(), "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    return {"message": "Timetable saved successfully",
            "timetable": serialize(db["timetable"].find_one({"class_id": ci_exact(class_id)}))}


@router.delete("/timetable/{class_id}")
def delete_timetable(class_id: str, me: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    res = db["timetable"].delete_many({"class_id": ci_exact(class_id)})
    if res.deleted_count == 0:
        raise NotFound("No timetable found for this class")
    return {"message": "Timetable deleted successfully"}


# ----------------------- Audit -----------------------
@router.get("/audit")
def get_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    action: Optional[str] = None,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    user_id: Optional[str] = Query(None, alias="userId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    sort_by: Literal["timestamp", "action", "entity_type", "user_id"] = Query("timestamp", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    me: Identity = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query: dict = {}
    if action:
        query["action"] = action
    if entity_type:
        query["entity_type"] = entity_type
    if user_id:
        query["user_id"] = user_id
    if start_date or end_date:
        bounds = {}
        if start_date:
            bounds["$gte"] = day_start(start_date)
        if end_date:
            bounds["$lt"] = day_range(end_date)["$lt"]
        query["timestamp"] = bounds

    total = db["audit"].count_documents(query)
    cursor = (
        db["audit"].find(query)
        .sort(sort_by, -1 if sort_order == "desc" else 1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "logs": [serialize(doc) for doc in cursor],
        "pagination": {
            "current_page": page,
            "total_pages": (total + limit - 1) // limit,
            "total_logs": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        },
    }


@router.get("/audit/stats")
def get_audit_stats(period: Literal["1d", "7d", "30d"] = "7d", me: Identity = Depends(require_admin),
                    db: Database = Depends(get_db)):
    end = utcnow()
    start = end - AUDIT_PERIODS[period]
    pipeline = [
        {"$match": {"timestamp": {"$gte": start}}},
        {"$group": {"_id": {"action": "$action", "entity_type": "$entity_type"}, "count": {"$sum": 1}}},
        {"$group": {
            "_id": "$_id.action",
            "entities": {"$push": {"type": "$_id.entity_type", "count": "$count"}},
            "total": {"$sum": "$count"},
        }},
        {"$sort": {"_id": 1}},
    ]
    stats = [{"action": row["_id"], "entities": row["entities"], "total": row["total"]}
             for row in db["audit"].aggregate(pipeline)]
    return {"period": period, "start_date": start.isoformat(), "end_date": end.isoformat(), "stats": stats}
