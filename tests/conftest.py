"""
School Portal - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator

# Set testing environment before the settings module is imported
os.environ['ENVIRONMENT'] = 'testing'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ.pop('DATABASE_URL', None)

import mongomock
import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient

import database
from database import create_document
from main import app
from schemas import Admin, Student, Teacher
from security import get_password_hash

fake = Faker()

STUDENT_PASSWORD = 'correct'
TEACHER_PASSWORD = 'teacherpass123'
ADMIN_PASSWORD = 'adminpass123'


@pytest.fixture
def db():
    """Fresh in-memory database for each test"""
    client = mongomock.MongoClient(tz_aware=True)
    test_db = client['school_portal_test']
    database.ensure_indexes(test_db)
    yield test_db
    client.close()


@pytest.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database dependency overridden"""
    app.dependency_overrides[database.get_db] = lambda: db
    app.dependency_overrides[database.get_optional_db] = lambda: db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_student(db):
    def _make(student_id: str, grade: int = 7, section: str = 'A', password: str = STUDENT_PASSWORD) -> dict:
        student = Student(
            student_id=student_id,
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            grade=grade,
            section=section,
            password_hash=get_password_hash(password),
        )
        doc = student.model_dump()
        doc.pop('email')
        create_document(db, 'student', doc)
        return db['student'].find_one({'student_id': student_id})
    return _make


@pytest.fixture
def student(make_student) -> dict:
    return make_student('S100')


@pytest.fixture
def teacher(db) -> dict:
    teacher = Teacher(
        teacher_id='T100',
        first_name=fake.first_name(),
        last_name=fake.last_name(),
        email=fake.email(),
        address=fake.address(),
        subject='Mathematics',
        password_hash=get_password_hash(TEACHER_PASSWORD),
    )
    create_document(db, 'teacher', teacher)
    return db['teacher'].find_one({'teacher_id': 'T100'})


@pytest.fixture
def admin(db) -> dict:
    admin = Admin(admin_id='A100', first_name=fake.first_name(), password_hash=get_password_hash(ADMIN_PASSWORD))
    create_document(db, 'admin', admin)
    return db['admin'].find_one({'admin_id': 'A100'})


async def login(client: AsyncClient, role: str, id_field: str, account_id: str, password: str) -> str:
    response = await client.post(f'/api/{role}/login', json={id_field: account_id, 'password': password})
    assert response.status_code == 200, response.text
    # keep tests explicit about which token they send
    client.cookies.clear()
    return response.json()['token']


def bearer(token: str) -> dict:
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
async def student_headers(client, student) -> dict:
    return bearer(await login(client, 'students', 'studentID', 'S100', STUDENT_PASSWORD))


@pytest.fixture
async def teacher_headers(client, teacher) -> dict:
    return bearer(await login(client, 'teachers', 'teacherID', 'T100', TEACHER_PASSWORD))


@pytest.fixture
async def admin_headers(client, admin) -> dict:
    return bearer(await login(client, 'admin', 'adminID', 'A100', ADMIN_PASSWORD))
