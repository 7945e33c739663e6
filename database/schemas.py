"""
Pydantic schemas for request/response validation
Separate from SQLAlchemy models for clean API contracts
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

QuestionType = Literal[
    "short_answer",
    "long_answer",
    "radio",
    "checkbox",
    "dropdown",
    "table",
    "date",
    "time",
    "file_upload",
]


# ==========================================
# QUESTION SCHEMAS
# ==========================================

class ValidationRule(BaseModel):
    """Declared per-question constraints. Stored and returned, not enforced."""
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    required_files: Optional[int] = None
    max_file_size: Optional[int] = None
    allowed_extensions: Optional[List[str]] = None
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None


class TableConfig(BaseModel):
    """Grid size including the header row and header column."""
    rows: int = Field(..., ge=1, description="Number of rows, header row included")
    columns: int = Field(..., ge=1, description="Number of columns, header column included")
    row_labels: Optional[List[str]] = None
    column_labels: Optional[List[str]] = None


class QuestionSchema(BaseModel):
    """One typed prompt inside a field"""
    question_id: str = Field(..., min_length=1, description="Caller-assigned id, unique within the field")
    question_type: QuestionType
    question_label: str = Field(..., min_length=1)
    required: bool = False
    options: Optional[List[str]] = None
    allow_other: bool = False
    validation: Optional[ValidationRule] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    table_config: Optional[TableConfig] = None
    file_types: Optional[List[str]] = None
    allow_multiple: bool = False
    order: int = Field(..., ge=0, description="Display order within the field")


class QuestionUpdate(BaseModel):
    """Patch for a question - only supplied attributes change"""
    question_id: Optional[str] = Field(None, min_length=1)
    question_type: Optional[QuestionType] = None
    question_label: Optional[str] = Field(None, min_length=1)
    required: Optional[bool] = None
    options: Optional[List[str]] = None
    allow_other: Optional[bool] = None
    validation: Optional[ValidationRule] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    table_config: Optional[TableConfig] = None
    file_types: Optional[List[str]] = None
    allow_multiple: Optional[bool] = None
    order: Optional[int] = Field(None, ge=0)


def _unique_question_ids(questions: Optional[List[QuestionSchema]]) -> Optional[List[QuestionSchema]]:
    if questions is None:
        return questions
    seen = set()
    for question in questions:
        if question.question_id in seen:
            raise ValueError(f"Duplicate question_id '{question.question_id}'")
        seen.add(question.question_id)
    return questions


# ==========================================
# SCHOLAR FIELD SCHEMAS
# ==========================================

class ScholarFieldCreate(BaseModel):
    """Schema for creating a field with its initial questions"""
    scholar_id: int = Field(..., gt=0, description="Owning scholar ID")
    field_name: str = Field(..., min_length=1, max_length=255)
    field_label: str = Field(..., min_length=1, max_length=255)
    field_description: Optional[str] = None
    order: int = Field(..., ge=0, description="Display order within scholar")
    questions: List[QuestionSchema] = Field(..., min_length=1)

    @field_validator("questions")
    @classmethod
    def check_unique_question_ids(cls, questions):
        return _unique_question_ids(questions)


class ScholarFieldUpdate(BaseModel):
    """Schema for updating a field - all fields optional"""
    field_name: Optional[str] = Field(None, min_length=1, max_length=255)
    field_label: Optional[str] = Field(None, min_length=1, max_length=255)
    field_description: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)
    questions: Optional[List[QuestionSchema]] = Field(None, min_length=1)

    @field_validator("questions")
    @classmethod
    def check_unique_question_ids(cls, questions):
        return _unique_question_ids(questions)


class FieldOrder(BaseModel):
    id: int = Field(..., gt=0)
    order: int = Field(..., ge=0)


class FieldReorderRequest(BaseModel):
    scholar_id: int = Field(..., gt=0)
    field_orders: List[FieldOrder]


class QuestionOrder(BaseModel):
    question_id: str = Field(..., min_length=1)
    order: int = Field(..., ge=0)


class QuestionReorderRequest(BaseModel):
    field_id: int = Field(..., gt=0)
    question_orders: List[QuestionOrder]


class ScholarFieldResponse(BaseModel):
    id: int
    scholar_id: int
    field_name: str
    field_label: str
    field_description: Optional[str] = None
    order: int
    questions: List[QuestionSchema] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==========================================
# SCHOLAR SCHEMAS
# ==========================================

class DocumentFile(BaseModel):
    document_id: str
    file_name: str
    file_url: str
    file_type: str
    uploaded_at: datetime


class ScholarCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Scholar name")
    description: str = Field(..., min_length=1, description="Scholar description")


class ScholarUpdate(BaseModel):
    """Schema for updating a scholar - all fields optional"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    status: Optional[Literal["active", "inactive"]] = None


class ScholarResponse(BaseModel):
    id: int
    name: str
    description: str
    status: str
    documents: List[DocumentFile] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScholarSummary(BaseModel):
    id: int
    name: str
    status: str

    model_config = ConfigDict(from_attributes=True)


# ==========================================
# STUDENT SCHEMAS
# ==========================================

class StudentCreate(BaseModel):
    scholar_id: int = Field(..., gt=0, description="Owning scholar ID")
    form_data: Dict[str, Any] = Field(default_factory=dict)


class StudentUpdate(BaseModel):
    form_data: Optional[Dict[str, Any]] = None
    status: Optional[Literal["incomplete", "completed"]] = None


class StudentSubmit(BaseModel):
    form_data: Dict[str, Any]


class StudentResponse(BaseModel):
    id: int
    scholar_id: int
    scholar: Optional[ScholarSummary] = None
    form_data: Dict[str, Any] = {}
    fullname: Optional[str] = None
    profile_image: Optional[str] = None
    status: str
    submitted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TempPermissionGenerate(BaseModel):
    student_id: int = Field(..., gt=0)
    expires_in: int = Field(3600, gt=0, description="Lifetime in seconds")


class TempPermissionVerify(BaseModel):
    token: str = Field(..., min_length=1)
    student_id: int = Field(..., gt=0)


# ==========================================
# AUTH SCHEMAS
# ==========================================

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    firstname: str = Field(..., min_length=1)
    lastname: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = Field(None, description="Not checked while is_first_time is set")
    new_password: str = Field(..., min_length=6, description="At least 6 characters")


class ChangeRoleRequest(BaseModel):
    role: Literal["admin", "maintainer"]


class UserResponse(BaseModel):
    id: int
    username: str
    firstname: str
    lastname: str
    role: str
    is_first_time: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
