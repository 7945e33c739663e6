"""
SQLAlchemy models for the scholarship database
Scholar → ScholarField (questions) and Scholar → Student (form_data)

Document-shaped parts (a field's question list, a student's form_data,
a scholar's reference documents) are stored as JSON columns and always
replaced wholesale, never mutated in place.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from database.database import Base

JSONDocument = JSON().with_variant(JSONB, "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MAINTAINER = "maintainer"


class ScholarStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class StudentStatus(str, enum.Enum):
    INCOMPLETE = "incomplete"
    COMPLETED = "completed"


# ==========================================
# AUTH: STAFF USERS
# ==========================================

class User(Base):
    """
    Staff account. Admins manage other accounts; maintainers only manage data.
    is_first_time stays True until the user changes the seeded password.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    firstname = Column(String(255), nullable=False)
    lastname = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.MAINTAINER.value)
    is_first_time = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


# ==========================================
# SCHOLAR
# ==========================================

class Scholar(Base):
    """
    A scholarship program. Owns the form schema (fields) and the roster (students).
    documents: list of {document_id, file_name, file_url, file_type, uploaded_at}
    """
    __tablename__ = "scholars"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ScholarStatus.ACTIVE.value, index=True)
    documents = Column(JSONDocument, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    fields = relationship("ScholarField", back_populates="scholar", order_by="ScholarField.order")
    students = relationship("Student", back_populates="scholar")

    def __repr__(self):
        return f"<Scholar(id={self.id}, name='{self.name}', status='{self.status}')>"


class ScholarField(Base):
    """
    A form section. questions is the ordered list of question dicts
    (see database.schemas.QuestionSchema for the shape).
    """
    __tablename__ = "scholar_fields"

    id = Column(Integer, primary_key=True, index=True)
    scholar_id = Column(Integer, ForeignKey("scholars.id"), nullable=False, index=True)
    field_name = Column(String(255), nullable=False)
    field_label = Column(String(255), nullable=False)
    field_description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False, default=0)
    questions = Column(JSONDocument, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    scholar = relationship("Scholar", back_populates="fields")

    def __repr__(self):
        return f"<ScholarField(id={self.id}, scholar_id={self.scholar_id}, order={self.order})>"


class Student(Base):
    """
    One applicant of a scholar.
    form_data: {field_id: {question_id: value}}, untyped at rest.
    status is derived from form_data against the scholar's current fields.
    """
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    scholar_id = Column(Integer, ForeignKey("scholars.id"), nullable=False, index=True)
    form_data = Column(JSONDocument, nullable=False, default=dict)
    fullname = Column(String(512), nullable=True)
    profile_image = Column(String(1024), nullable=True)
    status = Column(String(20), nullable=False, default=StudentStatus.INCOMPLETE.value, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    scholar = relationship("Scholar", back_populates="students")

    def __repr__(self):
        return f"<Student(id={self.id}, scholar_id={self.scholar_id}, status='{self.status}')>"
