"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Courses reference their instructor and students through plain foreign
keys; the many-to-many sides (enrollment, prerequisites) live in link
tables so that set membership is enforced by their primary keys.
"""

from enum import Enum
from typing import List, Optional
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    student = "student"
    instructor = "instructor"
    staff = "staff"
    admin = "admin"


class Department(str, Enum):
    computer_science = "computer_science"
    mathematics = "mathematics"
    physics = "physics"
    biology = "biology"
    chemistry = "chemistry"
    engineering = "engineering"


class Difficulty(str, Enum):
    introductory = "introductory"
    intermediate = "intermediate"
    advanced = "advanced"


class Weekday(str, Enum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: one of the `Role` values, checked by route dependencies
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: str = Field(default=Role.student.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class Course(SQLModel, table=True):
    """A catalog course owned by the instructor who created it.

    `slug` is derived from `title` by the service on every save and
    `is_active` is the soft-delete marker.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(index=True, nullable=False, unique=True)
    slug: str = Field(index=True)
    description: str
    instructor_id: int = Field(foreign_key='user.id', index=True)
    department: str = Field(index=True)
    credits: int
    difficulty: str = Field(default=Difficulty.intermediate.value)
    schedule_days: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    schedule_time: Optional[str] = None
    schedule_classroom: Optional[str] = None
    capacity: int = 30
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CoursePrerequisite(SQLModel, table=True):
    """Ordered prerequisite link; `position` keeps the submitted order."""
    course_id: int = Field(foreign_key='course.id', primary_key=True)
    prerequisite_id: int = Field(foreign_key='course.id', primary_key=True)
    position: int = 0


class CourseEnrollment(SQLModel, table=True):
    """Membership of a student in a course's enrolled set."""
    course_id: int = Field(foreign_key='course.id', primary_key=True)
    student_id: int = Field(foreign_key='user.id', primary_key=True)
    enrolled_at: datetime = Field(default_factory=utcnow)


class Paper(SQLModel, table=True):
    """An academic paper record with an optional stored file."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str
    file: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    is_deleted: bool = Field(default=False, index=True)
