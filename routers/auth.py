"""
Staff authentication router and the access dependencies used by the
other routers.

Staff authenticate with a bearer JWT. A student editing their own form
may instead present a temp_permission token, which only grants access
to that one student (see get_principal / require_student_access).
"""

from dataclasses import dataclass
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from auth.security import (
    TEMP_PERMISSION_TYPE,
    create_access_token, decode_token, hash_password, verify_password,
)
from database import crud, schemas
from database.database import get_db
from database.models import User, UserRole
from services.responses import envelope
from settings import Settings

router = APIRouter(prefix="/auth", tags=["auth"])

security_scheme = HTTPBearer(auto_error=False)


# ─── Dependencies ──────────────────────────────────────────────────────────────

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _bearer_payload(credentials: Optional[HTTPAuthorizationCredentials], settings: Settings) -> dict:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    payload = decode_token(credentials.credentials, settings)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return payload


def _user_from_payload(payload: dict, db: Session) -> User:
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> User:
    payload = _bearer_payload(credentials, settings)
    if payload.get("type") == TEMP_PERMISSION_TYPE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return _user_from_payload(payload, db)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


@dataclass
class Principal:
    """Either a staff user or the holder of a temp_permission for one student."""
    user: Optional[User] = None
    student_id: Optional[int] = None

    def can_access_student(self, student_id: int) -> bool:
        return self.user is not None or self.student_id == student_id


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> Principal:
    payload = _bearer_payload(credentials, settings)
    if payload.get("type") == TEMP_PERMISSION_TYPE:
        try:
            return Principal(student_id=int(payload["student_id"]))
        except (KeyError, TypeError, ValueError):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return Principal(user=_user_from_payload(payload, db))


def require_student_access(principal: Principal, student_id: int) -> None:
    if not principal.can_access_student(student_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token does not grant access to this student")


# ─── Routes ────────────────────────────────────────────────────────────────────

@router.post("/login")
def login(request: schemas.LoginRequest, settings: Settings = Depends(get_settings), db: Session = Depends(get_db)):
    """Authenticate a staff user and return a bearer token."""
    user = crud.get_user_by_username(db, request.username)
    if not user or not verify_password(request.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    token = create_access_token({"sub": str(user.id), "role": user.role}, settings)
    return envelope("Login successful", schemas.TokenResponse(
        access_token=token,
        user=schemas.UserResponse.model_validate(user),
    ))


@router.get("/verify")
def verify(user: User = Depends(get_current_user)):
    return envelope("User verified", schemas.UserResponse.model_validate(user))


@router.put("/change-password")
def change_password(
    request: schemas.ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change own password. The current password is only checked once the
    seeded first-time password has been replaced.
    """
    if not user.is_first_time and not verify_password(request.current_password or "", user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    crud.set_user_password(db, user, hash_password(request.new_password))
    return envelope("Password changed")


def _create_user(db: Session, data: schemas.UserCreate, role: str) -> User:
    if crud.get_user_by_username(db, data.username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User with username '{data.username}' already exists"
        )
    return crud.create_user(db, data, hash_password(data.password), role)


@router.post("/admin", status_code=status.HTTP_201_CREATED)
def create_admin(data: schemas.UserCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    created = _create_user(db, data, UserRole.ADMIN.value)
    return envelope("Admin created", schemas.UserResponse.model_validate(created))


@router.post("/maintainer", status_code=status.HTTP_201_CREATED)
def create_maintainer(data: schemas.UserCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    created = _create_user(db, data, UserRole.MAINTAINER.value)
    return envelope("Maintainer created", schemas.UserResponse.model_validate(created))


@router.get("/users")
def list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    users: List[schemas.UserResponse] = [schemas.UserResponse.model_validate(u) for u in crud.get_users(db)]
    return envelope("Users fetched", users)


@router.delete("/users/{user_id}")
def delete_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")
    if not crud.delete_user(db, user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User with ID {user_id} not found"
        )
    return envelope("User deleted", {"id": user_id})


@router.patch("/users/{user_id}/role")
def change_user_role(
    user_id: int,
    request: schemas.ChangeRoleRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change your own role")
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User with ID {user_id} not found"
        )
    updated = crud.set_user_role(db, user, request.role)
    return envelope("User role changed", schemas.UserResponse.model_validate(updated))
