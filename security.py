"""
Password hashing, session issuing and the auth dependencies guarding every route.

A request is authenticated in four steps:

1. extraction  - bearer token from the Authorization header, falling back to
                 the ``<role>_token`` cookie
2. resolution  - the token's session id must match a stored session
3. freshness   - an expired session is removed and the account's
                 ``session_expiry`` cleared, forcing a new login
4. role match  - the session must belong to the role the route requires

``SessionAuth`` implements the chain once and is instantiated per role.
``GuestOnly`` guards the login routes and refuses to open a second session.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from bson import ObjectId
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from database import as_utc, get_db, utcnow
from errors import AlreadyAuthenticated, Forbidden, SessionExpired, Unauthenticated
from logging_config import get_logger, set_user_id
from schemas import Role, Session
from settings import settings

logger = get_logger("auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)
bearer_scheme = HTTPBearer(auto_error=False)

# role -> (collection, account id field)
ACCOUNT_STORES: Dict[Role, Tuple[str, str]] = {
    Role.STUDENT: ("student", "student_id"),
    Role.TEACHER: ("teacher", "teacher_id"),
    Role.ADMIN: ("admin", "admin_id"),
}


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # unrecognised or corrupt hash
        return False


def create_access_token(data: dict, expires_at: datetime) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": expires_at})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Signature check only. Expiry is decided by the stored session."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM],
                          options={"verify_exp": False})
    except JWTError:
        return None


def cookie_name(role: Role) -> str:
    return f"{role.value}_token"


@dataclass
class Identity:
    id: str
    role: Role
    record: dict
    session: dict

    @property
    def object_id(self) -> ObjectId:
        return self.record["_id"]

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.record.get("first_name"), self.record.get("last_name")) if p)


def account_store(db: Database, role: Role):
    collection, id_field = ACCOUNT_STORES[role]
    return db[collection], id_field


def issue_session(db: Database, role: Role, record: dict) -> Tuple[str, datetime]:
    """Open a session for ``record`` and return the bearer token and its expiry"""
    now = utcnow()
    expires_at = now + timedelta(minutes=settings.SESSION_EXPIRE_MINUTES)
    session = Session(token_id=secrets.token_urlsafe(24), role=role,
                      user_id=str(record["_id"]), expires_at=expires_at)
    db["session"].insert_one({**session.model_dump(mode="python"), "role": role.value, "created_at": now})

    collection, _ = account_store(db, role)
    collection.update_one(
        {"_id": record["_id"]},
        {"$set": {"session_expiry": expires_at, "last_login_at": now}},
    )

    _, id_field = ACCOUNT_STORES[role]
    token = create_access_token(
        {"sub": record[id_field], "role": role.value, "sid": session.token_id},
        expires_at,
    )
    return token, expires_at


def revoke_session(db: Database, session: dict) -> None:
    """Drop the session, clearing the account's expiry marker once no live session is left"""
    db["session"].delete_one({"_id": session["_id"]})
    live = db["session"].find_one({
        "user_id": session["user_id"],
        "role": session["role"],
        "expires_at": {"$gt": utcnow()},
    })
    if live is not None:
        return
    collection, _ = account_store(db, Role(session["role"]))
    collection.update_one({"_id": ObjectId(session["user_id"])}, {"$set": {"session_expiry": None}})


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials],
                  role: Optional[Role] = None) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    roles = [role] if role else list(Role)
    for r in roles:
        token = request.cookies.get(cookie_name(r))
        if token:
            return token
    return None


def resolve_session(db: Database, token: str) -> Optional[dict]:
    payload = decode_token(token)
    if not payload or not payload.get("sid"):
        return None
    return db["session"].find_one({"token_id": payload["sid"]})


def is_expired(session: dict) -> bool:
    expires_at = as_utc(session.get("expires_at"))
    return expires_at is None or expires_at <= utcnow()


class SessionAuth:
    """Dependency authenticating the caller as ``role``"""

    def __init__(self, role: Role):
        self.role = role

    def __call__(
        self,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Database = Depends(get_db),
    ) -> Identity:
        token = extract_token(request, credentials, self.role)
        if not token:
            raise Unauthenticated(f"Access denied. No {self.role.value} token provided.")

        session = resolve_session(db, token)
        if session is None:
            raise Unauthenticated(f"Invalid {self.role.value} token.")

        if is_expired(session):
            revoke_session(db, session)
            logger.log_auth_event("session", False, role=session.get("role"), reason="expired")
            raise SessionExpired()

        if session.get("role") != self.role.value:
            raise Forbidden(f"{self.role.value.capitalize()} access required")

        collection, id_field = account_store(db, self.role)
        record = collection.find_one({"_id": ObjectId(session["user_id"])})
        if record is None:
            db["session"].delete_one({"_id": session["_id"]})
            raise Unauthenticated(f"{self.role.value.capitalize()} not found.")

        identity = Identity(id=record[id_field], role=self.role, record=record, session=session)
        request.state.identity = identity
        set_user_id(f"{self.role.value}:{identity.id}")
        return identity


class GuestOnly:
    """Dependency for login routes: the caller must not hold a live session"""

    def __init__(self, role: Role):
        self.role = role

    def __call__(
        self,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Database = Depends(get_db),
    ) -> "GuestOnly":
        token = extract_token(request, credentials)
        if token:
            session = resolve_session(db, token)
            if session is not None:
                if is_expired(session):
                    revoke_session(db, session)
                else:
                    raise AlreadyAuthenticated()
        return self

    def ensure_no_active_session(self, record: dict) -> None:
        """Reject logging into an account whose last session has not expired"""
        expiry = as_utc(record.get("session_expiry"))
        if expiry is not None and expiry > utcnow():
            raise AlreadyAuthenticated(f"{self.role.value.capitalize()} is already logged in")


def set_session_cookie(response: Response, role: Role, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        cookie_name(role),
        token,
        expires=expires_at,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )


def clear_session_cookie(response: Response, role: Role) -> None:
    response.delete_cookie(cookie_name(role))


require_student = SessionAuth(Role.STUDENT)
require_teacher = SessionAuth(Role.TEACHER)
require_admin = SessionAuth(Role.ADMIN)
