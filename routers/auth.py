from typing import Type

from fastapi import APIRouter, Body, Depends, Request, Response
from pymongo.database import Database

from audit import record_audit
from database import get_db, serialize
from errors import Unauthenticated
from logging_config import get_logger
from schemas import LoginRequest, Role
from security import (
    GuestOnly,
    Identity,
    SessionAuth,
    account_store,
    clear_session_cookie,
    issue_session,
    revoke_session,
    set_session_cookie,
    verify_password,
)

logger = get_logger("auth")


def public_user(record: dict, role: Role) -> dict:
    user = serialize(record)
    user.pop("session_expiry", None)
    user["role"] = role.value
    return user


def build_auth_router(role: Role, login_model: Type[LoginRequest], auth: SessionAuth) -> APIRouter:
    """login / logout / profile for one role"""
    router = APIRouter(tags=[f"{role.value} auth"])
    guest_only = GuestOnly(role)
    entity = role.value.capitalize()

    @router.post("/login")
    def login(
        request: Request,
        response: Response,
        payload: login_model = Body(...),
        guest: GuestOnly = Depends(guest_only),
        db: Database = Depends(get_db),
    ):
        collection, id_field = account_store(db, role)
        record = collection.find_one({id_field: payload.account_id})
        if record is None or not verify_password(payload.password, record.get("password_hash")):
            logger.log_auth_event("login", False, role=role.value, account=payload.account_id,
                                  reason="invalid credentials")
            raise Unauthenticated("Invalid credentials")

        guest.ensure_no_active_session(record)

        token, expires_at = issue_session(db, role, record)
        set_session_cookie(response, role, token, expires_at)
        record_audit(db, "LOGIN", entity, payload.account_id, payload.account_id,
                     f"{entity} {payload.account_id} logged in", request=request, user_role=role.value)
        logger.log_auth_event("login", True, role=role.value, account=payload.account_id)

        return {
            "message": f"Welcome {' '.join(p for p in (record.get('first_name'), record.get('last_name')) if p)}",
            "token": token,
            "token_type": "bearer",
            "expires_at": expires_at.isoformat(),
            "user": public_user(record, role),
        }

    @router.post("/logout")
    def logout(
        request: Request,
        response: Response,
        me: Identity = Depends(auth),
        db: Database = Depends(get_db),
    ):
        revoke_session(db, me.session)
        clear_session_cookie(response, role)
        record_audit(db, "LOGOUT", entity, me.id, me.id, f"{entity} {me.id} logged out",
                     request=request, user_role=role.value)
        logger.log_auth_event("logout", True, role=role.value, account=me.id)
        return {"message": f"{entity} logged out successfully"}

    @router.get("/profile")
    def profile(me: Identity = Depends(auth)):
        return public_user(me.record, role)

    return router
