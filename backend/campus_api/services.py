"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and auxiliary logic. Services perform validation, apply the domain rules
(ownership-filtered updates, soft deletes, set-based enrollment, file
replacement) and persist aggregates via repositories. They raise the
typed errors from `errors.py` and return plain JSON-ready dicts.
"""

import logging
from enum import Enum
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional
from passlib.context import CryptContext
import jwt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session
from . import models, repositories
from .config import settings
from .errors import ConflictError, NotFoundError, NotFoundOrUnauthorizedError, ValidationError
from .utils.file_store import FileStore
from .utils.slugs import slugify

logger = logging.getLogger("campus_api.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _next_timestamp(previous: Optional[datetime] = None) -> datetime:
    """Return the current UTC time, nudged past `previous` if needed.

    Guarantees a strictly increasing `updated_at` even when two writes
    land within the clock's resolution.
    """
    now = datetime.now(timezone.utc)
    if previous is not None:
        if previous.tzinfo is None:
            previous = previous.replace(tzinfo=timezone.utc)
        if now <= previous:
            now = previous + timedelta(microseconds=1)
    return now


def _iso(value: Optional[datetime]) -> Optional[str]:
    # SQLite hands back naive datetimes; they were stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _clean_text(value):
    return value.strip() if isinstance(value, str) else value


def _enum_value(value):
    return value.value if isinstance(value, Enum) else value


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, name: str, email: str, password: str, role: str = models.Role.student.value) -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        if role not in {r.value for r in models.Role}:
            raise ValidationError(f"unknown role: {role}")
        hashed = PWD_CTX.hash(password)
        u = models.User(name=name, email=email.strip().lower(), password_hash=hashed, role=role)
        return self.user_repo.create(u)

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_email(email.strip().lower())
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return self.issue_token(user)

    @staticmethod
    def issue_token(user: models.User) -> str:
        """Sign a token carrying the user's id and role."""
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "role": user.role, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class CourseService:
    """Course catalog: CRUD, soft delete and enrollment.

    Updates are ownership-filtered: a course is only found for mutation
    when its id AND its instructor match the caller, so "does not exist"
    and "not yours" surface as the same `NotFoundOrUnauthorizedError`.
    """

    UPDATABLE_FIELDS = (
        'title', 'description', 'department', 'credits', 'difficulty',
        'schedule', 'prerequisites', 'capacity', 'is_active',
    )

    def __init__(self, session: Session):
        self.session = session
        self.course_repo = repositories.CourseRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def list_active(self) -> List[dict]:
        """Active courses with instructor (name, email) and prerequisite titles resolved."""
        courses = self.course_repo.list_active()
        course_ids = [c.id for c in courses]
        instructors = self.user_repo.get_many(sorted({c.instructor_id for c in courses}))
        prereqs = self.course_repo.prerequisite_ids_for(course_ids)
        enrolled = self.course_repo.enrolled_ids_for(course_ids)
        titles = self.course_repo.get_many(sorted({pid for ids in prereqs.values() for pid in ids}))
        out = []
        for c in courses:
            out.append(self._serialize(
                c,
                instructor=self._user_ref(instructors.get(c.instructor_id), c.instructor_id),
                prerequisites=[{'id': pid, 'title': titles[pid].title} for pid in prereqs[c.id] if pid in titles],
                enrolled=enrolled[c.id],
            ))
        return out

    def get_by_id(self, course_id: int) -> dict:
        """Full course, including enrolled students, whether active or not."""
        course = self.course_repo.get(course_id)
        if not course:
            raise NotFoundError('No course found with that ID')
        student_ids = self.course_repo.list_enrolled_ids(course.id)
        students = self.user_repo.get_many(student_ids)
        return self._serialize(
            course,
            instructor=self._user_ref(self.user_repo.get(course.instructor_id), course.instructor_id),
            prerequisites=self._prerequisite_refs(self.course_repo.list_prerequisite_ids(course.id)),
            enrolled=[self._user_ref(students.get(sid), sid) for sid in student_ids],
        )

    def create(self, data: dict, caller_id: int) -> dict:
        """Create a course owned by `caller_id`.

        Any `instructor` supplied in `data` is ignored.
        """
        data = {k: v for k, v in data.items() if k not in ('instructor', 'instructor_id')}
        state = {
            'difficulty': models.Difficulty.intermediate.value,
            'schedule': {'days': [], 'time': None, 'classroom': None},
            'capacity': 30,
            'is_active': True,
        }
        state.update({k: v for k, v in data.items() if k in self.UPDATABLE_FIELDS and k != 'prerequisites'})
        state['instructor_id'] = caller_id
        prereq_ids = self._validate_prerequisites(data.get('prerequisites') or [], None)
        state = self._validate(state)
        if self.course_repo.exists_by_title(state['title']):
            raise self._duplicate_title(state['title'])
        course = models.Course(slug='', **self._columns(state))
        course.slug = slugify(course.title)
        now = _next_timestamp()
        course.created_at = now
        course.updated_at = now
        course = self._save(course)
        self.course_repo.set_prerequisites(course.id, prereq_ids)
        logger.info("course_created id=%s slug=%s instructor=%s", course.id, course.slug, caller_id)
        return self._serialize(course, instructor=course.instructor_id, prerequisites=prereq_ids, enrolled=[])

    def update(self, course_id: int, data: dict, caller_id: int, is_admin: bool = False) -> dict:
        """Apply `data` to a course the caller owns (admins may update any course)."""
        if is_admin:
            course = self.course_repo.get(course_id)
        else:
            course = self.course_repo.find_owned(course_id, caller_id)
        if not course:
            raise NotFoundOrUnauthorizedError()
        state = self._state(course)
        # a partial schedule only replaces the keys it carries
        changes = {k: v for k, v in data.items() if k in self.UPDATABLE_FIELDS and k != 'prerequisites'}
        if isinstance(changes.get('schedule'), dict):
            changes['schedule'] = {**state['schedule'], **changes['schedule']}
        state.update(changes)
        prereq_ids = None
        if 'prerequisites' in data:
            prereq_ids = self._validate_prerequisites(data.get('prerequisites') or [], course.id)
        state = self._validate(state)
        if self.course_repo.exists_by_title(state['title'], exclude_id=course.id):
            raise self._duplicate_title(state['title'])
        for key, value in self._columns(state).items():
            setattr(course, key, value)
        course.slug = slugify(course.title)
        course.updated_at = _next_timestamp(course.updated_at)
        course = self._save(course)
        if prereq_ids is not None:
            self.course_repo.set_prerequisites(course.id, prereq_ids)
        fields = sorted(changes) + (['prerequisites'] if prereq_ids is not None else [])
        logger.info("course_updated id=%s by=%s fields=%s", course.id, caller_id, fields)
        return self._serialize(
            course,
            instructor=course.instructor_id,
            prerequisites=self.course_repo.list_prerequisite_ids(course.id),
            enrolled=self.course_repo.list_enrolled_ids(course.id),
        )

    def soft_delete(self, course_id: int) -> None:
        """Mark a course inactive; it stays fetchable by id."""
        course = self.course_repo.get(course_id)
        if not course:
            raise NotFoundError('No course found with that ID')
        course.is_active = False
        course.updated_at = _next_timestamp(course.updated_at)
        self.course_repo.save(course)
        logger.info("course_deactivated id=%s", course_id)

    def enroll(self, course_id: int, student_id: int) -> dict:
        """Add `student_id` to the course's enrolled set.

        Enrolling twice is a no-op. A new student is refused with
        `ConflictError` once the enrolled count has reached `capacity`.
        """
        course = self.course_repo.get(course_id)
        if not course:
            raise NotFoundError('No course found with that ID')
        if not self.course_repo.is_enrolled(course.id, student_id):
            if self.course_repo.count_enrolled(course.id) >= course.capacity:
                raise ConflictError('This course is full')
            if self.course_repo.add_student(course.id, student_id):
                logger.info("course_enrolled id=%s student=%s", course.id, student_id)
        return self._serialize(
            course,
            instructor=course.instructor_id,
            prerequisites=self.course_repo.list_prerequisite_ids(course.id),
            enrolled=self.course_repo.list_enrolled_ids(course.id),
        )

    def _save(self, course: models.Course) -> models.Course:
        try:
            return self.course_repo.save(course)
        except IntegrityError:
            raise self._duplicate_title(course.title)

    @staticmethod
    def _duplicate_title(title: str) -> ConflictError:
        return ConflictError(f'Duplicate field value: "{title}". Please use another value')

    @staticmethod
    def _state(course: models.Course) -> dict:
        return {
            'title': course.title,
            'description': course.description,
            'instructor_id': course.instructor_id,
            'department': course.department,
            'credits': course.credits,
            'difficulty': course.difficulty,
            'schedule': {
                'days': list(course.schedule_days or []),
                'time': course.schedule_time,
                'classroom': course.schedule_classroom,
            },
            'capacity': course.capacity,
            'is_active': course.is_active,
        }

    @staticmethod
    def _columns(state: dict) -> dict:
        return {
            'title': state['title'],
            'description': state['description'],
            'instructor_id': state['instructor_id'],
            'department': state['department'],
            'credits': state['credits'],
            'difficulty': state['difficulty'],
            'schedule_days': state['schedule']['days'],
            'schedule_time': state['schedule']['time'],
            'schedule_classroom': state['schedule']['classroom'],
            'capacity': state['capacity'],
            'is_active': state['is_active'],
        }

    def _validate(self, state: dict) -> dict:
        """Check required fields, enums and ranges; return a normalized copy.

        All problems are collected and reported in one `ValidationError`.
        """
        s = dict(state)
        errors = []
        s['title'] = _clean_text(s.get('title'))
        if not s['title'] or not isinstance(s['title'], str):
            errors.append('A course must have a title')
        s['description'] = _clean_text(s.get('description'))
        if not s['description'] or not isinstance(s['description'], str):
            errors.append('A course must have a description')
        if not s.get('instructor_id'):
            errors.append('A course must have an instructor')
        department = _enum_value(s.get('department'))
        if department is None:
            errors.append('A course must belong to a department')
        elif department not in {d.value for d in models.Department}:
            errors.append(f'Invalid department: {department}')
        s['department'] = department
        credits = s.get('credits')
        if credits is None:
            errors.append('A course must have credit hours')
        elif isinstance(credits, bool) or not isinstance(credits, int) or not 1 <= credits <= 5:
            errors.append('Credits must be an integer between 1 and 5')
        difficulty = _enum_value(s.get('difficulty')) or models.Difficulty.intermediate.value
        if difficulty not in {d.value for d in models.Difficulty}:
            errors.append(f'Invalid difficulty: {difficulty}')
        s['difficulty'] = difficulty
        capacity = s.get('capacity')
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            errors.append('Capacity must be a positive integer')
        if s.get('is_active') is None:
            s['is_active'] = True
        schedule = s.get('schedule') or {}
        days = []
        for day in schedule.get('days') or []:
            day = _enum_value(day)
            if day not in {d.value for d in models.Weekday}:
                errors.append(f'Invalid schedule day: {day}')
            elif day not in days:
                days.append(day)
        s['schedule'] = {
            'days': days,
            'time': _clean_text(schedule.get('time')),
            'classroom': _clean_text(schedule.get('classroom')),
        }
        if errors:
            raise ValidationError('Invalid input data. ' + '. '.join(errors))
        return s

    def _validate_prerequisites(self, prerequisite_ids: Iterable[int], course_id: Optional[int]) -> List[int]:
        """De-duplicate `prerequisite_ids` keeping order and check they exist."""
        ordered: List[int] = []
        for pid in prerequisite_ids:
            if pid not in ordered:
                ordered.append(pid)
        if course_id is not None and course_id in ordered:
            raise ValidationError('Invalid input data. A course cannot be its own prerequisite')
        found = self.course_repo.get_many(ordered)
        missing = [pid for pid in ordered if pid not in found]
        if missing:
            raise ValidationError(f'Invalid input data. Unknown prerequisite course(s): {", ".join(map(str, missing))}')
        return ordered

    def _prerequisite_refs(self, prerequisite_ids: List[int]) -> List[dict]:
        found = self.course_repo.get_many(prerequisite_ids)
        return [{'id': pid, 'title': found[pid].title} for pid in prerequisite_ids if pid in found]

    @staticmethod
    def _user_ref(user: Optional[models.User], user_id: int) -> dict:
        if user is None:
            return {'id': user_id, 'name': None, 'email': None}
        return {'id': user.id, 'name': user.name, 'email': user.email}

    @staticmethod
    def _serialize(course: models.Course, instructor, prerequisites: list, enrolled: list) -> dict:
        return {
            'id': course.id,
            'title': course.title,
            'slug': course.slug,
            'description': course.description,
            'instructor': instructor,
            'department': course.department,
            'credits': course.credits,
            'difficulty': course.difficulty,
            'schedule': {
                'days': list(course.schedule_days or []),
                'time': course.schedule_time,
                'classroom': course.schedule_classroom,
            },
            'prerequisites': prerequisites,
            'capacity': course.capacity,
            'enrolledStudents': enrolled,
            'isActive': course.is_active,
            'createdAt': _iso(course.created_at),
            'updatedAt': _iso(course.updated_at),
        }


class PaperService:
    """Paper records with an optional stored file and soft delete."""
    def __init__(self, session: Session, file_store: FileStore):
        self.session = session
        self.paper_repo = repositories.PaperRepository(session)
        self.file_store = file_store

    def list_active(self) -> List[dict]:
        """Every paper not marked deleted."""
        return [self.to_dict(p) for p in self.paper_repo.list_active()]

    def get_by_id(self, paper_id: int) -> dict:
        return self.to_dict(self._get_live(paper_id))

    def create(self, data: Dict[str, Optional[str]], uploaded_file_path: Optional[str] = None) -> dict:
        """Create a paper; title and description are required.

        On rejection or a failed save nothing is persisted and the already
        stored upload is removed again.
        """
        title = _clean_text(data.get('title'))
        description = _clean_text(data.get('description'))
        if not title or not description:
            self.file_store.remove(uploaded_file_path)
            raise ValidationError('Title and description are required')
        now = _next_timestamp()
        paper = models.Paper(title=title, description=description, file=uploaded_file_path, created_at=now, updated_at=now)
        try:
            paper = self.paper_repo.save(paper)
        except SQLAlchemyError:
            self.file_store.remove(uploaded_file_path)
            raise
        logger.info("paper_created id=%s file=%s", paper.id, bool(paper.file))
        return self.to_dict(paper)

    def update(self, paper_id: int, data: Dict[str, Optional[str]], uploaded_file_path: Optional[str] = None) -> dict:
        """Partially update a paper, replacing its file when a new one is supplied.

        The previous file is removed before the new reference is saved;
        removal is best effort and not rolled back if the save fails, in
        which case the new upload is removed instead.
        """
        try:
            paper = self._get_live(paper_id)
        except NotFoundError:
            self.file_store.remove(uploaded_file_path)
            raise
        if uploaded_file_path and paper.file:
            if not self.file_store.remove(paper.file):
                logger.warning("paper_file_not_removed id=%s path=%s", paper.id, paper.file)
        paper.title = _clean_text(data.get('title')) or paper.title
        paper.description = _clean_text(data.get('description')) or paper.description
        if uploaded_file_path:
            paper.file = uploaded_file_path
        paper.updated_at = _next_timestamp(paper.updated_at)
        try:
            paper = self.paper_repo.save(paper)
        except SQLAlchemyError:
            self.file_store.remove(uploaded_file_path)
            raise
        logger.info("paper_updated id=%s file_replaced=%s", paper.id, bool(uploaded_file_path))
        return self.to_dict(paper)

    def soft_delete(self, paper_id: int) -> None:
        paper = self._get_live(paper_id)
        paper.is_deleted = True
        paper.updated_at = _next_timestamp(paper.updated_at)
        self.paper_repo.save(paper)
        logger.info("paper_deleted id=%s", paper_id)

    def _get_live(self, paper_id: int) -> models.Paper:
        paper = self.paper_repo.get(paper_id)
        if not paper or paper.is_deleted:
            raise NotFoundError('Paper not found')
        return paper

    @staticmethod
    def to_dict(paper: models.Paper) -> dict:
        return {
            'id': paper.id,
            'title': paper.title,
            'description': paper.description,
            'file': paper.file,
            'createdAt': _iso(paper.created_at),
            'updatedAt': _iso(paper.updated_at),
            'is_deleted': paper.is_deleted,
        }
