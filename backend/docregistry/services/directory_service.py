# Overview: Service-layer access to the parish/department/user directory.

"""
Directory collaborator.

The registry consumes two questions from the organization directory: who a
user is, and whether that user belongs to a department. Creation helpers are
used by the CLI bootstrap and tests.
"""

from __future__ import annotations

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import Department, DepartmentMember, Parish, User


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def get_active_user(user_id: int) -> User | None:
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return user


def get_parish(parish_id: int) -> Parish | None:
    return db.session.get(Parish, parish_id)


def get_department(department_id: int) -> Department | None:
    return db.session.get(Department, department_id)


def is_member_of_department(user_id: int, department_id: int) -> bool:
    return db.session.query(DepartmentMember.id).filter_by(
        user_id=user_id,
        department_id=department_id,
    ).first() is not None


def get_user_department_ids(user_id: int) -> list[int]:
    rows = db.session.query(DepartmentMember.department_id).filter_by(user_id=user_id).all()
    return [row[0] for row in rows]


def create_parish(name: str, code: str | None = None) -> Parish:
    if not name:
        raise ValidationFailed.for_field("name", "is required")
    parish = Parish(name=name, code=code, is_active=True)
    db.session.add(parish)
    db.session.commit()
    return parish


def list_parishes() -> list[Parish]:
    return db.session.query(Parish).order_by(Parish.name).all()


def create_department(parish_id: int, name: str, code: str | None = None) -> Department:
    if not get_parish(parish_id):
        raise NotFound(f"Parish {parish_id} not found")
    if not name:
        raise ValidationFailed.for_field("name", "is required")
    department = Department(parish_id=parish_id, name=name, code=code, is_active=True)
    db.session.add(department)
    db.session.commit()
    return department


def add_department_member(department_id: int, user_id: int) -> DepartmentMember:
    if not get_department(department_id):
        raise NotFound(f"Department {department_id} not found")
    if not get_user(user_id):
        raise NotFound(f"User {user_id} not found")

    existing = db.session.query(DepartmentMember).filter_by(
        department_id=department_id, user_id=user_id
    ).first()
    if existing:
        return existing

    member = DepartmentMember(department_id=department_id, user_id=user_id)
    db.session.add(member)
    db.session.commit()
    return member
