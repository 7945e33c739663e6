"""
CRUD operations for scholars, fields, students and users
All database operations go through these functions
"""

import copy
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from database import models, schemas
from database.models import utcnow


# ==========================================
# USER CRUD
# ==========================================

def create_user(db: Session, data: schemas.UserCreate, hashed_password: str, role: str) -> models.User:
    db_user = models.User(
        username=data.username,
        hashed_password=hashed_password,
        firstname=data.firstname,
        lastname=data.lastname,
        role=role,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.username == username).first()


def get_users(db: Session) -> List[models.User]:
    return db.query(models.User).order_by(models.User.id).all()


def set_user_password(db: Session, db_user: models.User, hashed_password: str) -> models.User:
    db_user.hashed_password = hashed_password
    db_user.is_first_time = False
    db.commit()
    db.refresh(db_user)
    return db_user


def set_user_role(db: Session, db_user: models.User, role: str) -> models.User:
    db_user.role = role
    db.commit()
    db.refresh(db_user)
    return db_user


def delete_user(db: Session, user_id: int) -> bool:
    db_user = get_user(db, user_id)
    if not db_user:
        return False
    db.delete(db_user)
    db.commit()
    return True


# ==========================================
# SCHOLAR CRUD
# ==========================================

def create_scholar(db: Session, scholar: schemas.ScholarCreate) -> models.Scholar:
    db_scholar = models.Scholar(
        name=scholar.name,
        description=scholar.description,
        documents=[],
    )
    db.add(db_scholar)
    db.commit()
    db.refresh(db_scholar)
    return db_scholar


def get_scholar(db: Session, scholar_id: int) -> Optional[models.Scholar]:
    return db.query(models.Scholar).filter(models.Scholar.id == scholar_id).first()


def get_scholars(db: Session, status: Optional[str] = None) -> List[models.Scholar]:
    query = db.query(models.Scholar)
    if status:
        query = query.filter(models.Scholar.status == status)
    return query.order_by(models.Scholar.id).all()


def update_scholar(db: Session, scholar_id: int, scholar_update: schemas.ScholarUpdate) -> Optional[models.Scholar]:
    """Update an existing scholar - only provided fields are changed"""
    db_scholar = get_scholar(db, scholar_id)
    if not db_scholar:
        return None

    update_data = scholar_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_scholar, field, value)
    db_scholar.updated_at = utcnow()

    db.commit()
    db.refresh(db_scholar)
    return db_scholar


def set_scholar_documents(db: Session, db_scholar: models.Scholar, documents: List[Dict[str, Any]]) -> models.Scholar:
    db_scholar.documents = documents
    db_scholar.updated_at = utcnow()
    db.commit()
    db.refresh(db_scholar)
    return db_scholar


def delete_scholar_cascade(db: Session, scholar_id: int) -> None:
    """Delete students, then fields, then the scholar, in one transaction"""
    db.query(models.Student).filter(models.Student.scholar_id == scholar_id).delete(synchronize_session=False)
    db.query(models.ScholarField).filter(models.ScholarField.scholar_id == scholar_id).delete(synchronize_session=False)
    db.query(models.Scholar).filter(models.Scholar.id == scholar_id).delete(synchronize_session=False)
    db.commit()


# ==========================================
# SCHOLAR FIELD CRUD
# ==========================================

def _dump_questions(questions: Sequence[schemas.QuestionSchema]) -> List[Dict[str, Any]]:
    return [q.model_dump(mode="json", exclude_none=True) for q in questions]


def create_field(db: Session, field: schemas.ScholarFieldCreate) -> models.ScholarField:
    db_field = models.ScholarField(
        scholar_id=field.scholar_id,
        field_name=field.field_name,
        field_label=field.field_label,
        field_description=field.field_description,
        order=field.order,
        questions=_dump_questions(field.questions),
    )
    db.add(db_field)
    db.commit()
    db.refresh(db_field)
    return db_field


def get_field(db: Session, field_id: int) -> Optional[models.ScholarField]:
    return db.query(models.ScholarField).filter(models.ScholarField.id == field_id).first()


def get_fields_by_scholar(db: Session, scholar_id: int) -> List[models.ScholarField]:
    """Get all fields for a scholar, ordered by order field"""
    return db.query(models.ScholarField).filter(
        models.ScholarField.scholar_id == scholar_id
    ).order_by(models.ScholarField.order, models.ScholarField.id).all()


def update_field(db: Session, field_id: int, field_update: schemas.ScholarFieldUpdate) -> Optional[models.ScholarField]:
    db_field = get_field(db, field_id)
    if not db_field:
        return None

    update_data = field_update.model_dump(exclude_unset=True)
    if "questions" in update_data:
        update_data["questions"] = _dump_questions(field_update.questions or [])
    for field, value in update_data.items():
        setattr(db_field, field, value)
    db_field.updated_at = utcnow()

    db.commit()
    db.refresh(db_field)
    return db_field


def delete_field(db: Session, db_field: models.ScholarField) -> None:
    db.delete(db_field)
    db.commit()


def reorder_fields(db: Session, scholar_id: int, field_orders: Sequence[schemas.FieldOrder]) -> int:
    """
    Apply all (field_id, order) pairs of one scholar as a single batch.
    Orders are not checked for gaps or duplicates. Returns matched row count.
    """
    now = utcnow()
    matched = 0
    for item in field_orders:
        matched += db.query(models.ScholarField).filter(
            models.ScholarField.id == item.id,
            models.ScholarField.scholar_id == scholar_id,
        ).update({"order": item.order, "updated_at": now}, synchronize_session=False)
    db.commit()
    return matched


def _question_index(db_field: models.ScholarField, question_id: str) -> Optional[int]:
    for index, question in enumerate(db_field.questions or []):
        if question.get("question_id") == question_id:
            return index
    return None


def add_question(db: Session, db_field: models.ScholarField, question: schemas.QuestionSchema) -> models.ScholarField:
    questions = copy.deepcopy(db_field.questions or [])
    questions.extend(_dump_questions([question]))
    db_field.questions = questions
    db_field.updated_at = utcnow()
    db.commit()
    db.refresh(db_field)
    return db_field


def update_question(
    db: Session,
    db_field: models.ScholarField,
    question_id: str,
    patch: schemas.QuestionUpdate,
) -> Optional[models.ScholarField]:
    """Patch one question in place; None when the question id is unknown"""
    index = _question_index(db_field, question_id)
    if index is None:
        return None

    questions = copy.deepcopy(db_field.questions)
    merged = dict(questions[index])
    merged.update(patch.model_dump(mode="json", exclude_unset=True))
    # Re-validate the whole question so a patch cannot leave it malformed.
    questions[index] = _dump_questions([schemas.QuestionSchema.model_validate(merged)])[0]

    db_field.questions = questions
    db_field.updated_at = utcnow()
    db.commit()
    db.refresh(db_field)
    return db_field


def remove_question(db: Session, db_field: models.ScholarField, question_id: str) -> Optional[models.ScholarField]:
    index = _question_index(db_field, question_id)
    if index is None:
        return None

    questions = copy.deepcopy(db_field.questions)
    del questions[index]
    db_field.questions = questions
    db_field.updated_at = utcnow()
    db.commit()
    db.refresh(db_field)
    return db_field


def reorder_questions(
    db: Session,
    db_field: models.ScholarField,
    question_orders: Sequence[schemas.QuestionOrder],
) -> models.ScholarField:
    """Renumber questions, re-sort the list by order and persist the whole field"""
    new_orders = {item.question_id: item.order for item in question_orders}
    questions = copy.deepcopy(db_field.questions or [])
    for question in questions:
        if question.get("question_id") in new_orders:
            question["order"] = new_orders[question["question_id"]]
    questions.sort(key=lambda q: q.get("order", 0))

    db_field.questions = questions
    db_field.updated_at = utcnow()
    db.commit()
    db.refresh(db_field)
    return db_field


# ==========================================
# STUDENT CRUD
# ==========================================

def _student_query(db: Session):
    return db.query(models.Student).options(joinedload(models.Student.scholar))


def create_student(
    db: Session,
    scholar_id: int,
    form_data: Dict[str, Any],
    fullname: Optional[str],
    status: str,
    now: datetime,
) -> models.Student:
    db_student = models.Student(
        scholar_id=scholar_id,
        form_data=form_data,
        fullname=fullname or None,
        status=status,
        submitted_at=now if status == models.StudentStatus.COMPLETED.value else None,
        created_at=now,
        updated_at=now,
    )
    db.add(db_student)
    db.commit()
    db.refresh(db_student)
    return db_student


def get_student(db: Session, student_id: int) -> Optional[models.Student]:
    return _student_query(db).filter(models.Student.id == student_id).first()


def get_students(db: Session) -> List[models.Student]:
    return _student_query(db).order_by(models.Student.id).all()


def get_students_by_scholar(db: Session, scholar_id: int) -> List[models.Student]:
    return _student_query(db).filter(
        models.Student.scholar_id == scholar_id
    ).order_by(models.Student.id).all()


def get_students_by_status(db: Session, status: str) -> List[models.Student]:
    return _student_query(db).filter(models.Student.status == status).order_by(models.Student.id).all()


def count_students_by_scholar(db: Session, scholar_id: int) -> int:
    return db.query(func.count(models.Student.id)).filter(
        models.Student.scholar_id == scholar_id
    ).scalar() or 0


def delete_student(db: Session, db_student: models.Student) -> None:
    db.delete(db_student)
    db.commit()
