from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from database import create_document, day_start


MARKS = {
    "studentID": "S100",
    "subject": "Maths",
    "marksObtained": 42,
    "totalMarks": 50,
    "examType": "Midterm",
    "semester": "1",
    "date": "2024-03-10",
}


# ----------------------- Attendance -----------------------
@pytest.mark.asyncio
async def test_mark_attendance(client: AsyncClient, db, student, teacher_headers):
    response = await client.post("/api/teachers/Attendance", json={"studentID": "S100", "status": "Present"},
                                 headers=teacher_headers)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "Present"
    assert data["date"] == day_start().isoformat()
    assert db["attendance"].count_documents({"student_id": "S100"}) == 1


@pytest.mark.asyncio
async def test_mark_attendance_twice_same_day(client: AsyncClient, student, teacher_headers):
    body = {"studentID": "S100", "status": "Present"}
    await client.post("/api/teachers/Attendance", json=body, headers=teacher_headers)

    response = await client.post("/api/teachers/Attendance", json=body, headers=teacher_headers)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_mark_attendance_unknown_student(client: AsyncClient, teacher_headers):
    response = await client.post("/api/teachers/Attendance", json={"studentID": "S404", "status": "Absent"},
                                 headers=teacher_headers)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_mark_attendance_invalid_status(client: AsyncClient, student, teacher_headers):
    response = await client.post("/api/teachers/Attendance", json={"studentID": "S100", "status": "Late"},
                                 headers=teacher_headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_and_delete_todays_attendance(client: AsyncClient, db, student, teacher_headers):
    await client.post("/api/teachers/Attendance", json={"studentID": "S100", "status": "Present"},
                      headers=teacher_headers)

    response = await client.patch("/api/teachers/Attendance/S100", json={"status": "Absent"},
                                  headers=teacher_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "Absent"

    response = await client.get("/api/teachers/Attendance/S100", headers=teacher_headers)
    assert [r["status"] for r in response.json()] == ["Absent"]

    response = await client.delete("/api/teachers/Attendance/S100", headers=teacher_headers)
    assert response.status_code == 200
    assert db["attendance"].count_documents({}) == 0

    response = await client.delete("/api/teachers/Attendance/S100", headers=teacher_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_attendance_without_record(client: AsyncClient, student, teacher_headers):
    response = await client.patch("/api/teachers/Attendance/S100", json={"status": "Absent"},
                                  headers=teacher_headers)

    assert response.status_code == 404


# ----------------------- Homework -----------------------
@pytest.mark.asyncio
async def test_homework_lifecycle(client: AsyncClient, db, teacher_headers):
    today = date.today().isoformat()
    response = await client.post(
        "/api/teachers/Homework",
        json={"grade": 7, "title": "Fractions", "description": "Exercise 4.1",
              "assignDate": today, "dueDate": today},
        headers=teacher_headers,
    )
    assert response.status_code == 201
    homework = response.json()["homework"]
    assert homework["teacher_id"] == "T100"

    response = await client.patch(f"/api/teachers/Homework/{homework['id']}", json={"title": "Decimals"},
                                  headers=teacher_headers)
    assert response.status_code == 200
    assert response.json()["homework"]["title"] == "Decimals"

    response = await client.delete(f"/api/teachers/Homework/{homework['id']}", headers=teacher_headers)
    assert response.status_code == 200
    assert db["homework"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_homework_due_before_assign(client: AsyncClient, teacher_headers):
    response = await client.post(
        "/api/teachers/Homework",
        json={"grade": 7, "title": "Fractions", "description": "Exercise 4.1",
              "assignDate": "2024-05-10", "dueDate": "2024-05-01"},
        headers=teacher_headers,
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_only_todays_homework_can_change(client: AsyncClient, db, teacher_headers):
    yesterday = day_start() - timedelta(days=1)
    homework_id = create_document(db, "homework", {
        "grade": 7, "title": "Old", "description": "-", "assign_date": yesterday,
        "due_date": yesterday, "date": yesterday, "teacher_id": "T100",
    })

    response = await client.patch(f"/api/teachers/Homework/{homework_id}", json={"title": "New"},
                                  headers=teacher_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "You can only edit today's homework"

    response = await client.delete(f"/api/teachers/Homework/{homework_id}", headers=teacher_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_homework_invalid_id(client: AsyncClient, teacher_headers):
    response = await client.delete("/api/teachers/Homework/not-an-id", headers=teacher_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid ID"


@pytest.mark.asyncio
async def test_homework_by_range(client: AsyncClient, db, teacher_headers):
    day = day_start(date(2024, 5, 2))
    create_document(db, "homework", {"grade": 7, "title": "In range", "description": "-",
                                     "assign_date": day, "due_date": day, "date": day})

    response = await client.post("/api/teachers/Homework/range",
                                 json={"fromDate": "2024-05-01", "toDate": "2024-05-02"},
                                 headers=teacher_headers)

    assert response.status_code == 200
    assert [h["title"] for h in response.json()] == ["In range"]


# ----------------------- Marks -----------------------
@pytest.mark.asyncio
async def test_create_marks(client: AsyncClient, teacher_headers):
    response = await client.post("/api/teachers/Marks", json=MARKS, headers=teacher_headers)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["marks_obtained"] == 42
    assert data["teacher_id"] == "T100"


@pytest.mark.asyncio
async def test_duplicate_marks(client: AsyncClient, teacher_headers):
    """Same student, subject, exam type and semester twice"""
    await client.post("/api/teachers/Marks", json=MARKS, headers=teacher_headers)

    response = await client.post("/api/teachers/Marks", json={**MARKS, "marksObtained": 30},
                                 headers=teacher_headers)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_marks_over_total(client: AsyncClient, teacher_headers):
    response = await client.post("/api/teachers/Marks", json={**MARKS, "marksObtained": 60},
                                 headers=teacher_headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_edit_and_delete_marks(client: AsyncClient, teacher_headers):
    created = await client.post("/api/teachers/Marks", json=MARKS, headers=teacher_headers)
    marks_id = created.json()["data"]["id"]

    response = await client.patch(f"/api/teachers/Marks/{marks_id}", json={"marksObtained": 45},
                                  headers=teacher_headers)
    assert response.status_code == 200
    assert response.json()["data"]["marks_obtained"] == 45

    response = await client.patch(f"/api/teachers/Marks/{marks_id}", json={"marksObtained": 55},
                                  headers=teacher_headers)
    assert response.status_code == 400

    response = await client.get("/api/teachers/Marks/S100", headers=teacher_headers)
    assert list(response.json()) == ["Midterm"]

    response = await client.delete(f"/api/teachers/Marks/{marks_id}", headers=teacher_headers)
    assert response.status_code == 200

    response = await client.get("/api/teachers/Marks/S100", headers=teacher_headers)
    assert response.status_code == 404


# ----------------------- Notices -----------------------
@pytest.mark.asyncio
async def test_notice_lifecycle(client: AsyncClient, db, teacher_headers):
    response = await client.post(
        "/api/teachers/Notice",
        json={"classID": "7A", "title": "Trip", "description": "Zoo visit", "date": "2024-03-01"},
        headers=teacher_headers,
    )
    assert response.status_code == 201
    notice_id = response.json()["notice"]["id"]

    response = await client.get("/api/teachers/Notice", headers=teacher_headers)
    assert [n["title"] for n in response.json()] == ["Trip"]

    response = await client.post("/api/teachers/Notice/date", json={"date": "2024-03-01"},
                                 headers=teacher_headers)
    assert len(response.json()) == 1

    response = await client.delete(f"/api/teachers/Notice/{notice_id}", headers=teacher_headers)
    assert response.status_code == 200
    assert db["notice"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_cannot_delete_another_teachers_notice(client: AsyncClient, db, teacher_headers):
    notice_id = create_document(db, "notice", {"teacher_id": "T200", "class_id": "7A", "title": "Other",
                                               "description": "-", "date": day_start()})

    response = await client.delete(f"/api/teachers/Notice/{notice_id}", headers=teacher_headers)

    assert response.status_code == 403
    assert db["notice"].count_documents({}) == 1


# ----------------------- Timetable -----------------------
@pytest.mark.asyncio
async def test_timetable_of_assigned_class(client: AsyncClient, db, teacher, teacher_headers):
    create_document(db, "class", {"name": "7A", "grade": 7, "section": "A", "teacher_id": teacher["_id"],
                                  "students": [], "subjects": []})
    create_document(db, "timetable", {"class_id": "7A", "timetable": [{"day": "Monday", "periods": []}]})

    response = await client.get("/api/teachers/Timetable", headers=teacher_headers)

    assert response.status_code == 200
    assert response.json()["class_id"] == "7A"


@pytest.mark.asyncio
async def test_timetable_without_class(client: AsyncClient, teacher_headers):
    response = await client.get("/api/teachers/Timetable", headers=teacher_headers)

    assert response.status_code == 404


# ----------------------- Students -----------------------
@pytest.mark.asyncio
async def test_students_in_class_and_search(client: AsyncClient, db, make_student, teacher_headers):
    make_student("S100", grade=7, section="A")
    make_student("S101", grade=7, section="B")
    db["student"].update_one({"student_id": "S100"}, {"$set": {"first_name": "Aarav"}})
    db["student"].update_one({"student_id": "S101"}, {"$set": {"first_name": "Zoe"}})

    response = await client.get("/api/teachers/Students", params={"grade": 7, "section": "a"},
                                headers=teacher_headers)
    assert response.status_code == 200
    assert [s["student_id"] for s in response.json()] == ["S100"]
    assert "password_hash" not in response.json()[0]

    response = await client.get("/api/teachers/Students/search", params={"name": "aar"},
                                headers=teacher_headers)
    assert [s["student_id"] for s in response.json()] == ["S100"]

    response = await client.get("/api/teachers/Students/S101", headers=teacher_headers)
    assert response.json()["section"] == "B"

    response = await client.get("/api/teachers/Students/S999", headers=teacher_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_marks_without_unique_index(client: AsyncClient, db, teacher_headers):
    """The duplicate check holds even when the unique index is missing"""
    db["marks"].drop_indexes()

    first = await client.post("/api/teachers/Marks", json=MARKS, headers=teacher_headers)
    second = await client.post("/api/teachers/Marks", json=MARKS, headers=teacher_headers)

    assert [first.status_code, second.status_code] == [201, 409]
    assert db["marks"].count_documents({}) == 1
