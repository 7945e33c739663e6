"""
Scholar API endpoints
CRUD for scholarship programs, their reference documents, and the
read-only CSV and analytics derivations over their students.
"""

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from database import crud, schemas
from database.database import get_db
from database.models import Scholar, ScholarStatus, utcnow
from forms.analytics import generate_analytics
from forms.answers import extract_file_urls
from forms.export import csv_filename, generate_csv_data, to_csv_string
from routers.auth import get_current_user
from services.payload import discard_uploads_on_error
from services.responses import envelope
from services.storage import StorageClient, get_storage

log = logging.getLogger(__name__)

router = APIRouter(prefix="/scholar", tags=["scholar"], dependencies=[Depends(get_current_user)])


def _get_scholar_or_404(db: Session, scholar_id: int) -> Scholar:
    scholar = crud.get_scholar(db, scholar_id)
    if not scholar:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scholar with ID {scholar_id} not found"
        )
    return scholar


def _response(scholar: Scholar) -> schemas.ScholarResponse:
    return schemas.ScholarResponse.model_validate(scholar)


@router.get("")
def list_scholars(db: Session = Depends(get_db)):
    return envelope("Scholars fetched", [_response(s) for s in crud.get_scholars(db)])


@router.get("/active")
def list_active_scholars(db: Session = Depends(get_db)):
    scholars = crud.get_scholars(db, status=ScholarStatus.ACTIVE.value)
    return envelope("Active scholars fetched", [_response(s) for s in scholars])


@router.get("/csv/{scholar_id}")
def export_csv(scholar_id: int, db: Session = Depends(get_db)):
    """
    All students of a scholar as CSV.
    The filename is sent both ASCII-only and RFC 5987 encoded so Thai names survive.
    """
    scholar = _get_scholar_or_404(db, scholar_id)
    headers, rows = generate_csv_data(db, scholar_id)
    ascii_name, encoded_name = csv_filename(scholar.name)
    return Response(
        content=to_csv_string(headers, rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{encoded_name}"},
    )


@router.get("/analytics/{scholar_id}")
def scholar_analytics(scholar_id: int, db: Session = Depends(get_db)):
    _get_scholar_or_404(db, scholar_id)
    return envelope("Analytics generated", generate_analytics(db, scholar_id))


@router.get("/{scholar_id}")
def get_scholar(scholar_id: int, db: Session = Depends(get_db)):
    return envelope("Scholar fetched", _response(_get_scholar_or_404(db, scholar_id)))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_scholar(scholar: schemas.ScholarCreate, db: Session = Depends(get_db)):
    return envelope("Scholar created", _response(crud.create_scholar(db, scholar)))


@router.put("/{scholar_id}")
def update_scholar(scholar_id: int, scholar_update: schemas.ScholarUpdate, db: Session = Depends(get_db)):
    """
    Update a scholar
    Only provided fields will be updated
    """
    scholar = crud.update_scholar(db, scholar_id, scholar_update)
    if not scholar:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scholar with ID {scholar_id} not found"
        )
    return envelope("Scholar updated", _response(scholar))


@router.patch("/{scholar_id}/status/{new_status}")
def set_scholar_status(scholar_id: int, new_status: ScholarStatus, db: Session = Depends(get_db)):
    scholar = crud.update_scholar(db, scholar_id, schemas.ScholarUpdate(status=new_status.value))
    if not scholar:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scholar with ID {scholar_id} not found"
        )
    return envelope(f"Scholar set to {new_status.value}", _response(scholar))


@router.delete("/{scholar_id}")
async def delete_scholar(
    scholar_id: int,
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    """
    Delete a scholar with everything hanging off it.
    Rows go in one transaction; stored files are removed best-effort.
    """
    scholar = _get_scholar_or_404(db, scholar_id)
    snapshot = _response(scholar)

    student_files: List[str] = []
    for student in crud.get_students_by_scholar(db, scholar_id):
        student_files.extend(extract_file_urls(student.form_data))
    document_files = [d.get("file_url") for d in (scholar.documents or []) if d.get("file_url")]

    await storage.delete_urls(student_files)
    crud.delete_scholar_cascade(db, scholar_id)
    await storage.delete_urls(document_files)

    log.info("Deleted scholar %s (%d student files, %d documents)", scholar_id, len(student_files), len(document_files))
    return envelope("Scholar and related data deleted", snapshot)


# ─── Reference documents ───────────────────────────────────────────────────────

@router.get("/{scholar_id}/documents")
def list_documents(scholar_id: int, db: Session = Depends(get_db)):
    scholar = _get_scholar_or_404(db, scholar_id)
    return envelope("Documents fetched", _response(scholar).documents)


@router.post("/{scholar_id}/documents", status_code=status.HTTP_201_CREATED)
async def upload_document(
    scholar_id: int,
    file: UploadFile = File(..., description="Reference document"),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    scholar = _get_scholar_or_404(db, scholar_id)
    stored = await storage.upload(file)

    document = schemas.DocumentFile(
        document_id=uuid.uuid4().hex,
        file_name=file.filename or stored.filename,
        file_url=stored.url,
        file_type=file.content_type or stored.content_type or "application/octet-stream",
        uploaded_at=utcnow(),
    )
    documents = list(scholar.documents or [])
    documents.append(document.model_dump(mode="json"))
    async with discard_uploads_on_error(storage, [stored.url]):
        crud.set_scholar_documents(db, scholar, documents)
    return envelope("Document uploaded", document)


@router.delete("/{scholar_id}/documents/{document_id}")
async def delete_document(
    scholar_id: int,
    document_id: str,
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    scholar = _get_scholar_or_404(db, scholar_id)
    documents = list(scholar.documents or [])
    removed = next((d for d in documents if d.get("document_id") == document_id), None)
    if removed is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document with ID {document_id} not found"
        )

    crud.set_scholar_documents(db, scholar, [d for d in documents if d is not removed])
    await storage.delete_urls([removed.get("file_url", "")])
    return envelope("Document deleted", removed)
