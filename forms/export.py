"""
CSV projection of all students of a scholar.

Columns are the fixed student columns followed by every question id seen
in any student's form_data (file answers, "_other" companions and the
"initialized" marker excluded), sorted by id and headed by the question's
current label.
"""

import csv
import io
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

from sqlalchemy.orm import Session

from database import crud, models
from forms.answers import (
    INITIALIZED_KEY, OTHER_SUFFIX, OTHER_VALUE,
    Blank, FileRef, Scalar, StringList, TableCells,
    is_file_value, other_text, parse_answer, substitute_other,
)
from forms.schema import FormSection, as_sections

FIXED_HEADERS = [
    "ID",
    "Full Name",
    "Status",
    "Created At",
    "Updated At",
    "Submitted At",
    "Scholar Name",
]


def _is_question_key(key: str, value: Any) -> bool:
    if key == INITIALIZED_KEY or key.endswith(OTHER_SUFFIX):
        return False
    return not is_file_value(value)


def _sections_of(student: models.Student) -> List[Dict[str, Any]]:
    form_data = student.form_data or {}
    if not isinstance(form_data, dict):
        return []
    return [s for s in form_data.values() if isinstance(s, dict)]


def collect_question_keys(students: Iterable[models.Student]) -> List[str]:
    keys = set()
    for student in students:
        for section in _sections_of(student):
            for key, value in section.items():
                if _is_question_key(key, value):
                    keys.add(key)
    return sorted(keys)


def question_labels(sections: Iterable[FormSection]) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for section in sections:
        for question in section.questions:
            labels.setdefault(question.question_id, question.question_label)
    return labels


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_answer(section: Dict[str, Any], key: str) -> Optional[str]:
    """Cell text for one answer; None when there is nothing exportable under this key."""
    answer = parse_answer(section.get(key))

    if isinstance(answer, (Blank, FileRef)):
        return None
    if isinstance(answer, StringList):
        kept = StringList(items=tuple(item for item in answer.items if not is_file_value(item)))
        kept = substitute_other(kept, other_text(section, key))
        return ", ".join(_text(item) for item in kept.items)
    if isinstance(answer, TableCells):
        return "; ".join(
            f"{cell}: {_text(value)}"
            for cell, value in sorted(answer.cells.items())
            if value is not None and str(value).strip()
        )
    if isinstance(answer, Scalar) and answer.value == OTHER_VALUE:
        return other_text(section, key) or OTHER_VALUE
    return _text(answer.value)


def _timestamp(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def project_students(
    students: Sequence[models.Student],
    fields: Iterable,
    scholar_name: str = "",
) -> Tuple[List[str], List[List[str]]]:
    """Headers and rows for the CSV export. No students means no columns at all."""
    if not students:
        return [], []

    keys = collect_question_keys(students)
    labels = question_labels(as_sections(fields))
    headers = FIXED_HEADERS + [labels.get(key, key) for key in keys]

    rows: List[List[str]] = []
    for student in students:
        row = [
            str(student.id),
            student.fullname or "",
            student.status,
            _timestamp(student.created_at),
            _timestamp(student.updated_at),
            _timestamp(student.submitted_at),
            scholar_name,
        ]
        sections = _sections_of(student)
        for key in keys:
            value = ""
            # The same question id may exist in several sections; the last non-empty one wins.
            for section in sections:
                if key in section:
                    rendered = render_answer(section, key)
                    if rendered is not None:
                        value = rendered
            row.append(value)
        rows.append(row)

    return headers, rows


def generate_csv_data(db: Session, scholar_id: int) -> Tuple[List[str], List[List[str]]]:
    scholar = crud.get_scholar(db, scholar_id)
    students = crud.get_students_by_scholar(db, scholar_id)
    fields = crud.get_fields_by_scholar(db, scholar_id)
    return project_students(students, fields, scholar.name if scholar else "")


def to_csv_string(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """
    Fields holding a comma, quote, CR or LF are quoted, embedded quotes doubled.
    Rows end in CRLF; the writer quotes any character of its line terminator.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def csv_filename(scholar_name: str) -> Tuple[str, str]:
    """(ascii filename, RFC 5987 encoded filename) for Content-Disposition."""
    readable = re.sub(r'[\\/:*?"<>|\r\n\t]+', "_", scholar_name or "").strip(" ._") or "scholar"
    ascii_name = re.sub(r"[^A-Za-z0-9_.-]+", "_", readable).strip("_") or "scholar"
    return f"{ascii_name}_students.csv", quote(f"{readable}_students.csv")
