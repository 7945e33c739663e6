"""
Cascade re-evaluator: after any schema change, recompute every student's
completion status against the new field set and persist the changes in
one batched write.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from database import crud, models
from database.models import utcnow
from forms.completion import completion_status, status_transition
from forms.schema import as_sections

log = logging.getLogger(__name__)


def plan_status_updates(
    students: Iterable[models.Student],
    fields: Iterable,
    now: datetime,
) -> List[Dict[str, Any]]:
    """
    One update mapping per student whose computed status differs from the
    stored one. Students are independent: each mapping is keyed by its id.
    """
    sections = as_sections(fields)
    updates: List[Dict[str, Any]] = []
    for student in students:
        new_status = completion_status(student.form_data, sections)
        changes = status_transition(student, new_status, now)
        if changes:
            updates.append({"id": student.id, **changes})
    return updates


def resync_scholar(
    db: Session,
    scholar_id: int,
    fields: Optional[Iterable] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Re-evaluate all students of a scholar. Uses the scholar's current fields
    unless a field set is given. Returns the number of students updated.
    Errors propagate; callers decide whether to log or retry.
    """
    if fields is None:
        fields = crud.get_fields_by_scholar(db, scholar_id)
    students = db.query(models.Student).filter(models.Student.scholar_id == scholar_id).all()

    updates = plan_status_updates(students, fields, now or utcnow())
    if not updates:
        return 0

    db.bulk_update_mappings(models.Student, updates)
    db.commit()
    log.info("Resynced %d/%d student statuses for scholar %s", len(updates), len(students), scholar_id)
    return len(updates)
