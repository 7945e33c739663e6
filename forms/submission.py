"""
Submission pipeline: merge incoming form_data over the stored copy,
derive the display name, recompute status, and persist it all in one
commit. File URLs that drop out of the merged form are handed to the
storage client for deletion afterwards.

Draft saves fail closed (status left as-is if the completion check
raises); final submits fail open (status forced to completed).
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import Session

from database import crud, models
from database.models import StudentStatus, utcnow
from forms.answers import merge_form_data, section_of
from forms.completion import apply_status, completion_status
from forms.schema import FormSection, as_sections

log = logging.getLogger(__name__)


class FileJanitor(Protocol):
    async def cleanup_removed_files(self, old_form_data: Any, new_form_data: Any) -> int: ...


def derive_fullname(form_data: Any, sections: Iterable[FormSection]) -> str:
    """
    "{name} {surname}" taken from the first question whose label contains
    "name" (but not "surname") and the first whose label contains "surname".
    """
    name: Optional[str] = None
    surname: Optional[str] = None

    for section in sections:
        values = section_of(form_data, section.field_id)
        for question in section.questions:
            label = question.question_label.lower()
            if surname is None and "surname" in label:
                surname = _as_text(values.get(question.question_id))
            elif name is None and "name" in label and "surname" not in label:
                name = _as_text(values.get(question.question_id))
            if name is not None and surname is not None:
                return f"{name} {surname}".strip()

    return f"{name or ''} {surname or ''}".strip()


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return str(value)


async def save_form_data(
    db: Session,
    student: models.Student,
    incoming: Dict[str, Any],
    janitor: FileJanitor,
    final: bool = False,
    now: Optional[datetime] = None,
) -> models.Student:
    """
    Merge a (possibly partial) form_data update into the student and persist
    form_data, fullname and status together.
    """
    now = now or utcnow()
    old_form_data = student.form_data or {}
    merged = merge_form_data(old_form_data, incoming)

    new_status: Optional[str] = None
    sections: Optional[List[FormSection]] = None
    try:
        sections = as_sections(crud.get_fields_by_scholar(db, student.scholar_id))
        new_status = completion_status(merged, sections)
    except Exception:
        log.exception("Completion check failed for student %s (final=%s)", student.id, final)
        # A failed field query leaves the transaction unusable.
        db.rollback()
        if final:
            new_status = StudentStatus.COMPLETED.value

    student.form_data = merged
    if sections is not None:
        fullname = derive_fullname(merged, sections)
        if fullname:
            student.fullname = fullname
    if new_status is not None:
        apply_status(student, new_status, now)
    student.updated_at = now

    db.commit()
    db.refresh(student)

    await janitor.cleanup_removed_files(old_form_data, merged)
    return student


def new_student_form(
    db: Session,
    scholar_id: int,
    form_data: Dict[str, Any],
    now: Optional[datetime] = None,
) -> models.Student:
    """Create a student, with fullname and status derived from its initial form_data"""
    now = now or utcnow()
    sections = as_sections(crud.get_fields_by_scholar(db, scholar_id))
    return crud.create_student(
        db,
        scholar_id=scholar_id,
        form_data=form_data,
        fullname=derive_fullname(form_data, sections),
        status=completion_status(form_data, sections),
        now=now,
    )


def set_student_status(
    db: Session,
    student: models.Student,
    new_status: str,
    now: Optional[datetime] = None,
) -> models.Student:
    """Manual status override; submitted_at keeps its first value."""
    now = now or utcnow()
    if apply_status(student, new_status, now):
        db.commit()
        db.refresh(student)
    return student
