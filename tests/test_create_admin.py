import pytest
from httpx import AsyncClient

import create_admin
from conftest import login


def test_upsert_admin_creates_then_resets(db):
    assert create_admin.upsert_admin(db, "A900", "Root", "first-pass") is True
    first_hash = db["admin"].find_one({"admin_id": "A900"})["password_hash"]

    assert create_admin.upsert_admin(db, "A900", "Root", "second-pass") is False
    admin = db["admin"].find_one({"admin_id": "A900"})
    assert admin["password_hash"] != first_hash
    assert db["admin"].count_documents({}) == 1


@pytest.mark.asyncio
async def test_created_admin_can_log_in(client: AsyncClient, db):
    create_admin.upsert_admin(db, "A900", "Root", "first-pass")

    assert await login(client, "admin", "adminID", "A900", "first-pass")


def test_main_without_database(capsys):
    assert create_admin.main(["--admin-id", "A900", "--password", "x"]) == 1
    assert "DATABASE_URL" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_password_with_surrounding_spaces(client: AsyncClient, db):
    create_admin.upsert_admin(db, "A901", "Root", " secret1 ")

    response = await client.post("/api/admin/login", json={"adminID": "A901", "password": "secret1"})
    assert response.status_code == 401

    assert await login(client, "admin", "adminID", "A901", " secret1 ")
