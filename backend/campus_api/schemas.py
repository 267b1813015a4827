"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and do the first round of type
checking for controller handlers and tests; domain rules (required
fields on the merged record, uniqueness, references) are enforced again
by the services. Unknown keys such as a client-supplied `instructor` are
ignored.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from .models import Department, Difficulty, Role, Weekday


class RegisterIn(BaseModel):
    """Payload for user self-registration."""
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)
    role: Role = Role.student


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    email: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class ScheduleIn(BaseModel):
    """Weekly meeting pattern of a course."""
    days: Optional[List[Weekday]] = None
    time: Optional[str] = None
    classroom: Optional[str] = None


class CourseCreate(BaseModel):
    """Request format for creating a course.

    Required fields are optional here so that the service reports every
    missing one in a single validation message.
    """
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    department: Optional[Department] = None
    credits: Optional[int] = None
    difficulty: Optional[Difficulty] = None
    schedule: Optional[ScheduleIn] = None
    prerequisites: Optional[List[int]] = None
    capacity: Optional[int] = Field(default=None, ge=1)


class CourseUpdate(CourseCreate):
    """Partial course update; only fields present in the body are applied."""
    is_active: Optional[bool] = Field(default=None, alias="isActive")


def course_input(payload: CourseCreate) -> dict:
    """Convert a course schema into the plain dict the service expects.

    Fields left out of the request body are omitted, and for creation an
    explicit null is treated the same as an omitted field.
    """
    data = payload.model_dump(exclude_unset=True)
    if not isinstance(payload, CourseUpdate):
        data = {k: v for k, v in data.items() if v is not None}
    if isinstance(data.get('schedule'), dict):
        data['schedule'] = {k: v for k, v in data['schedule'].items() if k in payload.schedule.model_fields_set}
    return data
