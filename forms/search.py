"""Case-insensitive keyword search over students' fullname and form_data."""

from typing import Any, Iterable, List

from database import models


def search_form_data(obj: Any, keyword: str) -> bool:
    """True when keyword occurs in any key or leaf value, at any depth."""
    needle = keyword.lower()
    if isinstance(obj, dict):
        return any(needle in str(key).lower() or search_form_data(value, keyword) for key, value in obj.items())
    if isinstance(obj, list):
        return any(search_form_data(item, keyword) for item in obj)
    if obj is None:
        return False
    if isinstance(obj, bool):
        return needle in ("true" if obj else "false")
    return needle in str(obj).lower()


def matches_keyword(student: models.Student, keyword: str) -> bool:
    if student.fullname and keyword.lower() in student.fullname.lower():
        return True
    return bool(student.form_data) and search_form_data(student.form_data, keyword)


def filter_students(students: Iterable[models.Student], keyword: str) -> List[models.Student]:
    return [student for student in students if matches_keyword(student, keyword)]
