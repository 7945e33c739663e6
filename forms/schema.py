"""
Schema view used by the form engine: a scholar's fields as ordered
FormSection objects with validated QuestionSchema entries.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Union

from database.models import ScholarField
from database.schemas import QuestionSchema


@dataclass
class FormSection:
    field_id: str
    label: str = ""
    order: int = 0
    questions: List[QuestionSchema] = field(default_factory=list)


def section_from_field(row: ScholarField) -> FormSection:
    questions = [
        q if isinstance(q, QuestionSchema) else QuestionSchema.model_validate(q)
        for q in (row.questions or [])
    ]
    questions.sort(key=lambda q: q.order)
    return FormSection(
        field_id=str(row.id),
        label=row.field_label or "",
        order=row.order or 0,
        questions=questions,
    )


def as_sections(fields: Iterable[Union[ScholarField, FormSection]]) -> List[FormSection]:
    """Normalize ORM rows (or already-built sections) into display order."""
    sections = [f if isinstance(f, FormSection) else section_from_field(f) for f in fields]
    sections.sort(key=lambda s: s.order)
    return sections
