"""
Typed view over the untyped form_data bag.

At rest form_data is plain JSON: {field_id: {question_id: value}}.
parse_answer() classifies a stored value into one AnswerValue variant so
the evaluator, merge and export code can branch on shape instead of
re-sniffing raw JSON everywhere.
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

# Substring that marks a stored value as pointing into the storage service.
STORAGE_MARKER = "/storage/"
FILE_URL_PATTERN = re.compile(r"/storage/file/(.+)$")

OTHER_VALUE = "other"
OTHER_SUFFIX = "_other"
INITIALIZED_KEY = "initialized"


@dataclass(frozen=True)
class Blank:
    """No answer: missing key, null or empty string."""


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class StringList:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class TableCells:
    """Table answer keyed "{row}_{col}"; row 0 and column 0 are headers."""
    cells: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FileRef:
    url: Optional[str]
    filename: Optional[str] = None


AnswerValue = Union[Blank, Scalar, StringList, TableCells, FileRef]

BLANK = Blank()


def is_file_value(raw: Any) -> bool:
    """A storage URL string or an uploaded-file object carrying a filename."""
    if isinstance(raw, str):
        return STORAGE_MARKER in raw
    if isinstance(raw, dict):
        return bool(raw.get("filename"))
    return False


def parse_answer(raw: Any) -> AnswerValue:
    if raw is None or raw == "":
        return BLANK
    if is_file_value(raw):
        if isinstance(raw, dict):
            return FileRef(url=raw.get("url"), filename=raw.get("filename"))
        match = FILE_URL_PATTERN.search(raw)
        return FileRef(url=raw, filename=match.group(1) if match else None)
    if isinstance(raw, list):
        return StringList(items=tuple(raw))
    if isinstance(raw, dict):
        return TableCells(cells=dict(raw))
    return Scalar(value=raw)


def section_of(form_data: Any, field_id: Any) -> Dict[str, Any]:
    """The {question_id: value} map stored for one field, or {} when absent or malformed."""
    if not isinstance(form_data, dict):
        return {}
    section = form_data.get(str(field_id))
    return section if isinstance(section, dict) else {}


def other_key(question_id: str) -> str:
    return f"{question_id}{OTHER_SUFFIX}"


def other_text(section: Dict[str, Any], question_id: str) -> Optional[str]:
    """Free text typed next to an "other" choice, None if blank."""
    value = section.get(other_key(question_id))
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def selects_other(answer: AnswerValue) -> bool:
    if isinstance(answer, Scalar):
        return answer.value == OTHER_VALUE
    if isinstance(answer, StringList):
        return OTHER_VALUE in answer.items
    return False


def substitute_other(answer: AnswerValue, text: Optional[str]) -> AnswerValue:
    """Replace the "other" token with its free text; unchanged when no text was given."""
    if not text or not selects_other(answer):
        return answer
    if isinstance(answer, Scalar):
        return Scalar(value=text)
    return StringList(items=tuple(text if item == OTHER_VALUE else item for item in answer.items))


# ─── Merge ─────────────────────────────────────────────────────────────────────

def _mergeable(raw: Any) -> bool:
    # Field sections and table cell maps merge key-wise; file objects do not.
    return isinstance(raw, dict) and not is_file_value(raw)


def merge_values(existing: Any, incoming: Any) -> Any:
    """
    Merge one incoming value over the stored one.
    Objects merge key-wise (recursively); lists, scalars and file references
    replace wholesale.
    """
    if _mergeable(existing) and _mergeable(incoming):
        merged = copy.deepcopy(existing)
        for key, value in incoming.items():
            merged[key] = merge_values(merged[key], value) if key in merged else copy.deepcopy(value)
        return merged
    return copy.deepcopy(incoming)


def merge_form_data(existing: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Deep-merge a partial form_data update into stored form_data, returning a new dict."""
    return merge_values(existing or {}, incoming or {})


# ─── File references ───────────────────────────────────────────────────────────

def _file_urls_in(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if FILE_URL_PATTERN.search(value) else []
    if isinstance(value, list):
        urls: List[str] = []
        for item in value:
            urls.extend(_file_urls_in(item))
        return urls
    if isinstance(value, dict) and value.get("filename") and isinstance(value.get("url"), str):
        return _file_urls_in(value["url"])
    return []


def extract_file_urls(form_data: Any) -> List[str]:
    """Every storage file URL referenced at question level, in first-seen order."""
    urls: List[str] = []
    if not isinstance(form_data, dict):
        return urls
    for section in form_data.values():
        if not isinstance(section, dict):
            continue
        for value in section.values():
            for url in _file_urls_in(value):
                if url not in urls:
                    urls.append(url)
    return urls


def removed_file_urls(old_form_data: Any, new_form_data: Any) -> List[str]:
    """URLs referenced by the old form_data and no longer referenced by the new one."""
    still_used = set(extract_file_urls(new_form_data))
    return [url for url in extract_file_urls(old_form_data) if url not in still_used]


def extract_filename(url: str) -> Optional[str]:
    match = FILE_URL_PATTERN.search(url or "")
    return match.group(1) if match else None
