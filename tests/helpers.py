"""Small builders shared by the test modules."""

from database.schemas import QuestionSchema
from forms.schema import FormSection

API = "/api/v1"
ADMIN_PASSWORD = "admin-pass"


def question(question_id, question_type="short_answer", label=None, order=0, **extra):
    """Question payload as the API accepts it."""
    data = {
        "question_id": question_id,
        "question_type": question_type,
        "question_label": label or question_id,
        "order": order,
    }
    data.update(extra)
    return data


def section(field_id, *questions, order=0, label=""):
    """FormSection built from question payloads, for testing without a database."""
    return FormSection(
        field_id=str(field_id),
        label=label,
        order=order,
        questions=[QuestionSchema.model_validate(q) for q in questions],
    )
