from fastapi import APIRouter, HTTPException, Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import Optional
from quiz_server.db import get_session
from quiz_server.models import Admin
import bcrypt
import os
from quiz_server.utils.token import create_token, verify_token
from sqlmodel import select
import re

router = APIRouter(prefix="/auth", tags=["auth"])

_bearer_scheme = HTTPBearer()

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> Admin:
    """Shared admin dependency. Use via Depends(get_current_admin)."""
    payload = verify_token(credentials.credentials)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")
    with get_session() as db:
        admin = db.get(Admin, payload["admin_id"])
        if not admin:
            raise HTTPException(status_code=401, detail="Admin not found")
        db.expunge(admin)
        return admin


class RegisterIn(BaseModel):
    email: str
    password: str
    role: Optional[str] = "admin"


class RegisterOut(BaseModel):
    ok: bool = True
    admin_id: int


class LoginIn(BaseModel):
    email: str
    password: str


class LoginOut(BaseModel):
    ok: bool = True
    token: str
    admin_id: int
    role: str


@router.post("/register", response_model=RegisterOut, status_code=201, summary="Register an admin",
             description="Create an admin account. Requires the X-Admin-Token header when ADMIN_TOKEN is set.")
def register(data: RegisterIn, x_admin_token: Optional[str] = Header(None)):
    expected = os.getenv("ADMIN_TOKEN")
    if expected and x_admin_token != expected:
        raise HTTPException(status_code=401, detail="unauthorized")
    if not _EMAIL_RE.match(data.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if len(data.password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    if data.role not in ("admin", "superadmin"):
        raise HTTPException(status_code=400, detail="role must be 'admin' or 'superadmin'")
    with get_session() as db:
        existing = db.exec(select(Admin).where(Admin.email == data.email)).first()
        if existing:
            raise HTTPException(status_code=400, detail="Email already registered")
        hashed = bcrypt.hashpw(data.password.encode(), bcrypt.gensalt())
        admin = Admin(email=data.email, password_hash=hashed.decode(), role=data.role or "admin")
        db.add(admin)
        db.commit()
        db.refresh(admin)
        return {"admin_id": admin.id}


@router.post("/login", response_model=LoginOut, summary="Admin login")
def login(data: LoginIn):
    with get_session() as db:
        admin = db.exec(select(Admin).where(Admin.email == data.email)).first()
        if not admin or not bcrypt.checkpw(data.password.encode(), admin.password_hash.encode()):
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return {"token": create_token(admin.id, admin.role), "admin_id": admin.id, "role": admin.role}
