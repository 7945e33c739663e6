"""
Completion evaluator.

Every question of every field is mandatory. The question's own `required`
flag is deliberately NOT consulted; the UI exposes it but completion has
always treated all questions as required.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, NamedTuple, Optional

from database.models import Student, StudentStatus
from database.schemas import QuestionSchema
from forms.answers import (
    AnswerValue, Blank, StringList, TableCells,
    other_text, parse_answer, section_of, selects_other,
)
from forms.schema import as_sections


class Unanswered(NamedTuple):
    field_id: str
    question_id: str
    reason: str


def _blank_text(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _table_gap(question: QuestionSchema, answer: AnswerValue) -> bool:
    config = question.table_config
    if config is None:
        return False
    cells = answer.cells if isinstance(answer, TableCells) else {}
    # Row 0 and column 0 hold the header labels, never data.
    for row in range(1, config.rows):
        for col in range(1, config.columns):
            if _blank_text(cells.get(f"{row}_{col}")):
                return True
    return False


def question_gap(section: Dict[str, Any], question: QuestionSchema) -> Optional[str]:
    """Why a question is unanswered within its field's section, or None if it is answered."""
    answer = parse_answer(section.get(question.question_id))

    if isinstance(answer, Blank):
        return "missing"
    if isinstance(answer, StringList) and not answer.items:
        return "empty_selection"
    if question.allow_other and selects_other(answer) and other_text(section, question.question_id) is None:
        return "other_text_missing"
    if question.question_type == "table" and _table_gap(question, answer):
        return "table_cell_missing"
    return None


def iter_unanswered(form_data: Any, fields: Iterable) -> Iterator[Unanswered]:
    """Yield unanswered questions in field order, then question order."""
    for section in as_sections(fields):
        values = section_of(form_data, section.field_id)
        for question in section.questions:
            reason = question_gap(values, question)
            if reason:
                yield Unanswered(section.field_id, question.question_id, reason)


def is_complete(form_data: Any, fields: Iterable) -> bool:
    """True when every question across the fields has a rule-satisfying answer. Pure."""
    return next(iter_unanswered(form_data, fields), None) is None


def completion_status(form_data: Any, fields: Iterable) -> str:
    if is_complete(form_data, fields):
        return StudentStatus.COMPLETED.value
    return StudentStatus.INCOMPLETE.value


def status_transition(student: Student, new_status: str, now: datetime) -> Dict[str, Any]:
    """
    Column changes needed to move a student to new_status; {} when unchanged.
    submitted_at records the first completion and is never overwritten.
    """
    if student.status == new_status:
        return {}
    changes: Dict[str, Any] = {"status": new_status, "updated_at": now}
    if new_status == StudentStatus.COMPLETED.value and student.submitted_at is None:
        changes["submitted_at"] = now
    return changes


def apply_status(student: Student, new_status: str, now: datetime) -> bool:
    """Apply status_transition in place. Returns whether anything changed."""
    changes = status_transition(student, new_status, now)
    for key, value in changes.items():
        setattr(student, key, value)
    return bool(changes)
