import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from passlib.hash import bcrypt

from config import Config
from schemas import Admin as AdminSchema
from database import create_document

logger = logging.getLogger(__name__)

ADMIN = "Admin"
FACULTY = "Faculty"
STUDENT = "Student"
ROLES = {r.lower(): r for r in (ADMIN, FACULTY, STUDENT)}

hasher = bcrypt.using(rounds=Config.BCRYPT_ROUNDS)


def normalize_role(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return ROLES.get(str(value).strip().lower())


@dataclass(frozen=True)
class Principal:
    role: str
    id: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    @property
    def is_faculty(self) -> bool:
        return self.role == FACULTY

    @property
    def is_student(self) -> bool:
        return self.role == STUDENT


# ----------------------
# Passwords
# ----------------------

def hash_password(password: str) -> str:
    return hasher.hash(password)


def verify_password(password: Optional[str], password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return hasher.verify(password, password_hash)
    except ValueError:
        return False


# ----------------------
# Tokens
# ----------------------

def create_token(principal_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(principal_id),
        "role": role,
        "iat": now,
        "exp": now + (expires_delta if expires_delta is not None else timedelta(minutes=Config.JWT_EXP_MIN)),
    }
    return jwt.encode(payload, Config.SECRET_KEY, algorithm=Config.JWT_ALGORITHM)


def decode_token(token: str) -> Principal:
    payload = jwt.decode(token, Config.SECRET_KEY, algorithms=[Config.JWT_ALGORITHM])
    role = normalize_role(payload.get("role"))
    principal_id = payload.get("id")
    if not role or not principal_id:
        raise jwt.InvalidTokenError("Token is missing id or role")
    return Principal(role=role, id=str(principal_id))


def get_current_principal(authorization: Optional[str] = Header(None)) -> Principal:
    if not authorization:
        raise HTTPException(status_code=401, detail="Please authenticate. No Authorization header.")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Please authenticate. Invalid Authorization format.")
    try:
        return decode_token(token.strip())
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected token: {e}")
        raise HTTPException(status_code=401, detail="Please authenticate. Invalid token.")


def require_roles(*roles: str):
    allowed = {normalize_role(r) for r in roles}

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden: You do not have the right permissions.")
        return principal

    return dependency


# ----------------------
# Admin account
# ----------------------

def seed_admin(database) -> None:
    """Create the administrator record from configuration if it does not exist yet."""
    existing = database["admin"].find_one({"adminId": Config.ADMIN_ID})
    if existing:
        return
    create_document(database, "admin", AdminSchema(
        admin_id=Config.ADMIN_ID,
        password_hash=hash_password(Config.ADMIN_PASSWORD),
    ))
    logger.info(f"Seeded administrator account '{Config.ADMIN_ID}'")
