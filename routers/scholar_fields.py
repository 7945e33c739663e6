"""
Scholar-field API endpoints
Form sections and their nested questions. Every mutation schedules a
background status resync for the owning scholar's students.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from database import crud, schemas
from database.database import get_db
from database.models import ScholarField
from routers.auth import Principal, get_current_user, get_principal
from services.responses import envelope
from services.tasks import schedule_resync

router = APIRouter(prefix="/scholar-field", tags=["scholar-field"])


def _get_field_or_404(db: Session, field_id: int) -> ScholarField:
    field = crud.get_field(db, field_id)
    if not field:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Field with ID {field_id} not found"
        )
    return field


def _require_scholar(db: Session, scholar_id: int) -> None:
    if not crud.get_scholar(db, scholar_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scholar with ID {scholar_id} not found"
        )


def _response(field: ScholarField) -> schemas.ScholarFieldResponse:
    return schemas.ScholarFieldResponse.model_validate(field)


def _question_ids(field: ScholarField):
    return {q.get("question_id") for q in (field.questions or [])}


@router.get("/scholar/{scholar_id}")
def list_fields(
    scholar_id: int,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """
    Fields of a scholar in display order.
    A temp_permission holder may read the fields of their own scholar only.
    """
    if principal.user is None:
        student = crud.get_student(db, principal.student_id)
        if not student or student.scholar_id != scholar_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token does not grant access to this scholar")
    fields = crud.get_fields_by_scholar(db, scholar_id)
    return envelope("Fields fetched", [_response(f) for f in fields])


@router.post("/reorder")
def reorder_fields(
    request: schemas.FieldReorderRequest,
    http_request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_scholar(db, request.scholar_id)
    matched = crud.reorder_fields(db, request.scholar_id, request.field_orders)
    schedule_resync(background_tasks, http_request, request.scholar_id)
    fields = crud.get_fields_by_scholar(db, request.scholar_id)
    return envelope(f"Reordered {matched} fields", [_response(f) for f in fields])


@router.post("/question/reorder")
def reorder_questions(
    request: schemas.QuestionReorderRequest,
    http_request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    field = _get_field_or_404(db, request.field_id)
    field = crud.reorder_questions(db, field, request.question_orders)
    schedule_resync(background_tasks, http_request, field.scholar_id)
    return envelope("Questions reordered", _response(field))


@router.get("/{field_id}")
def get_field(field_id: int, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return envelope("Field fetched", _response(_get_field_or_404(db, field_id)))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_field(
    field: schemas.ScholarFieldCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_scholar(db, field.scholar_id)
    db_field = crud.create_field(db, field)
    schedule_resync(background_tasks, request, db_field.scholar_id)
    return envelope("Field created", _response(db_field))


@router.put("/{field_id}")
def update_field(
    field_id: int,
    field_update: schemas.ScholarFieldUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update a field
    Only provided attributes change; a supplied questions list replaces the old one
    """
    db_field = crud.update_field(db, field_id, field_update)
    if not db_field:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Field with ID {field_id} not found"
        )
    schedule_resync(background_tasks, request, db_field.scholar_id)
    return envelope("Field updated", _response(db_field))


@router.delete("/{field_id}")
def delete_field(
    field_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_field = _get_field_or_404(db, field_id)
    snapshot = _response(db_field)
    crud.delete_field(db, db_field)
    schedule_resync(background_tasks, request, snapshot.scholar_id)
    return envelope("Field deleted", snapshot)


# ─── Questions ─────────────────────────────────────────────────────────────────

@router.post("/{field_id}/question", status_code=status.HTTP_201_CREATED)
def add_question(
    field_id: int,
    question: schemas.QuestionSchema,
    request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_field = _get_field_or_404(db, field_id)
    if question.question_id in _question_ids(db_field):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Question with ID '{question.question_id}' already exists in field {field_id}"
        )
    db_field = crud.add_question(db, db_field, question)
    schedule_resync(background_tasks, request, db_field.scholar_id)
    return envelope("Question added", _response(db_field))


@router.put("/{field_id}/question/{question_id}")
def update_question(
    field_id: int,
    question_id: str,
    patch: schemas.QuestionUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_field = _get_field_or_404(db, field_id)
    new_id = patch.question_id
    if new_id and new_id != question_id and new_id in _question_ids(db_field):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Question with ID '{new_id}' already exists in field {field_id}"
        )

    updated = crud.update_question(db, db_field, question_id, patch)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Question with ID '{question_id}' not found in field {field_id}"
        )
    schedule_resync(background_tasks, request, updated.scholar_id)
    return envelope("Question updated", _response(updated))


@router.delete("/{field_id}/question/{question_id}")
def remove_question(
    field_id: int,
    question_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_field = _get_field_or_404(db, field_id)
    updated = crud.remove_question(db, db_field, question_id)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Question with ID '{question_id}' not found in field {field_id}"
        )
    schedule_resync(background_tasks, request, updated.scholar_id)
    return envelope("Question removed", _response(updated))
