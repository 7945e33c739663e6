"""
Per-question aggregate analytics for a scholar.

Bucketing depends on the question type: choice questions get frequency
counts, free text either a numeric histogram (when every response parses
as a number) or its ten most common answers, dates are grouped by month
and times by hour. Name-like questions and file uploads are skipped.
"""

import math
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import crud, models
from database.models import StudentStatus
from database.schemas import QuestionSchema
from forms.answers import (
    AnswerValue, Blank, Scalar, StringList,
    other_text, parse_answer, section_of, substitute_other,
)
from forms.schema import as_sections

EXCLUDED_LABEL_TERMS = ("name", "surname", "ชื่อ", "นามสกุล")
TOP_TEXT_RESPONSES = 10
MIN_BINS = 5
MAX_BINS = 10


class NumericStatistics(BaseModel):
    min: float
    max: float
    average: float
    count: int


class QuestionAnalytics(BaseModel):
    question_id: str
    question_label: str
    question_type: str
    total_responses: int = 0
    chart_type: str = "bar"
    labels: List[str] = []
    data: List[int] = []
    is_numeric: Optional[bool] = None
    statistics: Optional[NumericStatistics] = None
    note: Optional[str] = None


class ScholarAnalytics(BaseModel):
    total_students: int = 0
    completed_students: int = 0
    incomplete_students: int = 0
    questions: List[QuestionAnalytics] = []


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _as_number(text: str) -> Optional[float]:
    try:
        number = float(text)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _sort_keys(keys: Iterable[str]) -> List[str]:
    """Numeric order when every key is a number, lexicographic otherwise."""
    keys = list(keys)
    if keys and all(_as_number(k) is not None for k in keys):
        return sorted(keys, key=lambda k: (_as_number(k), k))
    return sorted(keys)


def _chart(counts: Counter) -> Tuple[List[str], List[int]]:
    labels = _sort_keys(counts)
    return labels, [counts[label] for label in labels]


def _texts(answer: AnswerValue) -> List[str]:
    if isinstance(answer, StringList):
        return [str(item) for item in answer.items if item is not None and str(item) != ""]
    if isinstance(answer, Scalar):
        return [str(answer.value)]
    return []


def _single_text(answer: AnswerValue) -> str:
    if isinstance(answer, StringList):
        return ", ".join(_texts(answer))
    return str(answer.value) if isinstance(answer, Scalar) else ""


def is_excluded(question: QuestionSchema) -> bool:
    label = question.question_label.lower()
    return question.question_type == "file_upload" or any(term in label for term in EXCLUDED_LABEL_TERMS)


def collect_responses(students: Sequence[models.Student], field_id: str, question_id: str) -> List[AnswerValue]:
    """Each respondent's answer with any "other" token replaced by its free text."""
    responses: List[AnswerValue] = []
    for student in students:
        section = section_of(student.form_data, field_id)
        answer = parse_answer(section.get(question_id))
        if isinstance(answer, Blank) or (isinstance(answer, StringList) and not answer.items):
            continue
        responses.append(substitute_other(answer, other_text(section, question_id)))
    return responses


# ─── Bucketing strategies ──────────────────────────────────────────────────────

def _choice_counts(result: QuestionAnalytics, responses: List[AnswerValue]) -> None:
    result.chart_type = "doughnut"
    counts = Counter(text for text in (_single_text(r) for r in responses) if text)
    result.labels, result.data = _chart(counts)


def _checkbox_counts(result: QuestionAnalytics, responses: List[AnswerValue]) -> None:
    counts: Counter = Counter()
    for response in responses:
        counts.update(_texts(response))
    result.labels, result.data = _chart(counts)


def numeric_bins(values: Sequence[float]) -> Tuple[List[str], List[int]]:
    """
    Equal-width histogram with clamp(round(sqrt(n)), 5, 10) bins.
    Edges and positions are computed from halved values so that spans wider
    than the float range (-1e308 to 1e308) stay finite.
    """
    low, high = min(values), max(values)
    bin_count = min(MAX_BINS, max(MIN_BINS, round(math.sqrt(len(values)))))
    half_span = high / 2 - low / 2

    def edge(i: int) -> float:
        t = i / bin_count
        return low * (1 - t) + high * t

    labels = [f"{edge(i):.1f}-{edge(i + 1):.1f}" for i in range(bin_count)]
    counts = [0] * bin_count
    for value in values:
        if half_span == 0:
            index = 0
        else:
            position = (value / 2 - low / 2) / half_span
            index = min(int(position * bin_count), bin_count - 1)
        counts[index] += 1
    return labels, counts


def _mean(values: Sequence[float]) -> float:
    # Dividing first keeps the running sum inside the float range.
    return sum(v / len(values) for v in values)


def _text_answers(result: QuestionAnalytics, responses: List[AnswerValue]) -> None:
    texts = [t for t in (_single_text(r) for r in responses) if t]
    numbers = [_as_number(t) for t in texts]

    if texts and all(n is not None for n in numbers):
        result.is_numeric = True
        result.labels, result.data = numeric_bins(numbers)
        result.statistics = NumericStatistics(
            min=min(numbers),
            max=max(numbers),
            average=_mean(numbers),
            count=len(numbers),
        )
        return

    result.is_numeric = False
    counts = Counter(texts)
    rank = {key: i for i, key in enumerate(_sort_keys(counts))}
    top = sorted(counts, key=lambda k: (-counts[k], rank[k]))[:TOP_TEXT_RESPONSES]
    result.labels = top
    result.data = [counts[k] for k in top]


def _month_of(text: str) -> Optional[str]:
    try:
        parsed = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def _date_counts(result: QuestionAnalytics, responses: List[AnswerValue]) -> None:
    result.chart_type = "line"
    counts = Counter(m for m in (_month_of(_single_text(r)) for r in responses) if m)
    result.labels = sorted(counts)
    result.data = [counts[label] for label in result.labels]


def _time_counts(result: QuestionAnalytics, responses: List[AnswerValue]) -> None:
    counts: Counter = Counter()
    for response in responses:
        hour = _single_text(response).split(":")[0].strip()
        if hour:
            counts[f"{hour.zfill(2)}:00"] += 1
    result.labels = sorted(counts)
    result.data = [counts[label] for label in result.labels]


def _table_count(result: QuestionAnalytics, responses: List[AnswerValue]) -> None:
    result.labels = ["Table Responses"]
    result.data = [len(responses)]
    result.note = "Table data requires custom analysis"


STRATEGIES = {
    "radio": _choice_counts,
    "dropdown": _choice_counts,
    "checkbox": _checkbox_counts,
    "short_answer": _text_answers,
    "long_answer": _text_answers,
    "date": _date_counts,
    "time": _time_counts,
    "table": _table_count,
}


def analyze_question(
    students: Sequence[models.Student],
    field_id: str,
    question: QuestionSchema,
) -> QuestionAnalytics:
    responses = collect_responses(students, field_id, question.question_id)
    result = QuestionAnalytics(
        question_id=question.question_id,
        question_label=question.question_label,
        question_type=question.question_type,
        total_responses=len(responses),
    )
    strategy = STRATEGIES.get(question.question_type)
    if strategy is None:
        result.labels = ["Responses"]
        result.data = [len(responses)]
    else:
        strategy(result, responses)
    return result


def analyze(students: Sequence[models.Student], fields: Iterable) -> ScholarAnalytics:
    if not students:
        return ScholarAnalytics()

    questions: List[QuestionAnalytics] = []
    for section in as_sections(fields):
        for question in section.questions:
            if not is_excluded(question):
                questions.append(analyze_question(students, section.field_id, question))

    completed = sum(1 for s in students if s.status == StudentStatus.COMPLETED.value)
    return ScholarAnalytics(
        total_students=len(students),
        completed_students=completed,
        incomplete_students=sum(1 for s in students if s.status == StudentStatus.INCOMPLETE.value),
        questions=questions,
    )


def generate_analytics(db: Session, scholar_id: int) -> ScholarAnalytics:
    students = crud.get_students_by_scholar(db, scholar_id)
    fields = crud.get_fields_by_scholar(db, scholar_id)
    return analyze(students, fields)
