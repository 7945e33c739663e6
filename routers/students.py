"""
Student API endpoints
Applicant records, draft saves and final submits of form_data, keyword
search, and temp_permission tokens that let one student edit their own
form without a staff login.

Create, update and submit accept JSON or multipart (see services.payload).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from auth.security import create_temp_permission_token, decode_temp_permission
from database import crud, schemas
from database.database import get_db
from database.models import Student, StudentStatus, utcnow
from forms.answers import extract_file_urls, merge_values
from forms.search import filter_students
from forms.submission import new_student_form, save_form_data, set_student_status
from routers.auth import Principal, get_current_user, get_principal, get_settings, require_student_access
from services.payload import discard_uploads_on_error, read_form_payload, store_uploads
from services.responses import envelope
from services.storage import StorageClient, get_storage
from settings import Settings

log = logging.getLogger(__name__)

router = APIRouter(prefix="/student", tags=["student"])


def _get_student_or_404(db: Session, student_id: int) -> Student:
    student = crud.get_student(db, student_id)
    if not student:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Student with ID {student_id} not found"
        )
    return student


def _response(student: Student) -> schemas.StudentResponse:
    return schemas.StudentResponse.model_validate(student)


def _responses(students):
    return [_response(s) for s in students]


# ─── Listing and search ────────────────────────────────────────────────────────

@router.get("")
def list_students(user=Depends(get_current_user), db: Session = Depends(get_db)):
    return envelope("Students fetched", _responses(crud.get_students(db)))


@router.get("/scholar/{scholar_id}")
def list_students_by_scholar(scholar_id: int, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return envelope("Students fetched", _responses(crud.get_students_by_scholar(db, scholar_id)))


@router.get("/scholar/{scholar_id}/count")
def count_students_by_scholar(scholar_id: int, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return envelope("Student count fetched", {"count": crud.count_students_by_scholar(db, scholar_id)})


@router.get("/status/{student_status}")
def list_students_by_status(student_status: StudentStatus, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return envelope("Students fetched", _responses(crud.get_students_by_status(db, student_status.value)))


@router.get("/search")
def search_students(
    keyword: str = Query(..., min_length=1, description="Matched against fullname and form_data"),
    scholar_id: Optional[int] = Query(None),
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Case-insensitive keyword search, optionally within one scholar"""
    keyword = keyword.strip()
    if not keyword:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Keyword must not be blank")
    students = crud.get_students_by_scholar(db, scholar_id) if scholar_id else crud.get_students(db)
    return envelope("Students fetched", _responses(filter_students(students, keyword)))


# ─── Temp permission ───────────────────────────────────────────────────────────

@router.post("/temp-permission/generate")
def generate_temp_permission(
    request: schemas.TempPermissionGenerate,
    user=Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    _get_student_or_404(db, request.student_id)
    token = create_temp_permission_token(request.student_id, settings, request.expires_in)
    expires_at = utcnow() + timedelta(seconds=request.expires_in)
    return envelope("Temporary edit token created", {
        "token": token,
        "expires_at": expires_at,
        "student_id": request.student_id,
    })


@router.post("/temp-permission/verify")
def verify_temp_permission(
    request: schemas.TempPermissionVerify,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    """The token itself is the credential here, so no bearer header is needed."""
    payload = decode_temp_permission(request.token, settings)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    if payload["student_id"] != request.student_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token does not match student ID")

    student = _get_student_or_404(db, request.student_id)
    return envelope("Token valid", {
        "valid": True,
        "student_id": request.student_id,
        "expires_at": datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        "student": _response(student),
    })


# ─── Single student ────────────────────────────────────────────────────────────

@router.get("/{student_id}")
def get_student(student_id: int, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    require_student_access(principal, student_id)
    return envelope("Student fetched", _response(_get_student_or_404(db, student_id)))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_student(
    request: Request,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    payload, uploads = await read_form_payload(request, schemas.StudentCreate)
    if not crud.get_scholar(db, payload.scholar_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scholar with ID {payload.scholar_id} not found"
        )

    file_values = await store_uploads(storage, uploads)
    async with discard_uploads_on_error(storage, extract_file_urls(file_values)):
        student = new_student_form(db, payload.scholar_id, merge_values(payload.form_data, file_values))
    log.info("Created student %s for scholar %s (%s)", student.id, student.scholar_id, student.status)
    return envelope("Student created", _response(student))


@router.put("/{student_id}")
async def update_student(
    student_id: int,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    """
    Draft save. Supplied form_data is merged over the stored copy and the
    status recomputed; an explicit status is only honoured without form_data.
    """
    require_student_access(principal, student_id)
    student = _get_student_or_404(db, student_id)
    payload, uploads = await read_form_payload(request, schemas.StudentUpdate)

    if payload.form_data is not None or uploads:
        file_values = await store_uploads(storage, uploads)
        async with discard_uploads_on_error(storage, extract_file_urls(file_values)):
            incoming = merge_values(payload.form_data or {}, file_values)
            student = await save_form_data(db, student, incoming, storage)
    elif payload.status is not None:
        if principal.user is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required to set status")
        student = set_student_status(db, student, payload.status)
    return envelope("Student updated", _response(student))


@router.post("/{student_id}/submit")
async def submit_student(
    student_id: int,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    require_student_access(principal, student_id)
    student = _get_student_or_404(db, student_id)
    payload, uploads = await read_form_payload(request, schemas.StudentSubmit)

    file_values = await store_uploads(storage, uploads)
    async with discard_uploads_on_error(storage, extract_file_urls(file_values)):
        incoming = merge_values(payload.form_data, file_values)
        student = await save_form_data(db, student, incoming, storage, final=True)
    return envelope("Form submitted", _response(student))


@router.patch("/{student_id}/status/{new_status}")
def set_status(
    student_id: int,
    new_status: StudentStatus,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    student = set_student_status(db, _get_student_or_404(db, student_id), new_status.value)
    return envelope(f"Student set to {new_status.value}", _response(student))


@router.delete("/{student_id}")
async def delete_student(
    student_id: int,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    student = _get_student_or_404(db, student_id)
    snapshot = _response(student)
    files = extract_file_urls(student.form_data)

    crud.delete_student(db, student)
    await storage.delete_urls(files)
    return envelope("Student deleted", snapshot)
