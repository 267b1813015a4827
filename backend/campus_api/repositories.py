"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
courses, papers). Repositories return SQLModel objects and perform
commits/refreshes where appropriate; business rules live in services.
"""

from typing import Dict, List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_many(self, user_ids: List[int]) -> Dict[int, models.User]:
        """Return users keyed by id; unknown ids are simply absent."""
        if not user_ids:
            return {}
        stmt = select(models.User).where(models.User.id.in_(user_ids))
        return {u.id: u for u in self.session.exec(stmt).all()}


class CourseRepository:
    """Course rows plus their prerequisite and enrollment link tables."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, course: models.Course) -> models.Course:
        """Insert or update `course` and return the refreshed instance.

        The session is rolled back before an `IntegrityError` propagates
        so the caller can keep using it.
        """
        self.session.add(course)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise
        self.session.refresh(course)
        return course

    def get(self, course_id: int) -> Optional[models.Course]:
        """Fetch a course by id, active or not."""
        return self.session.get(models.Course, course_id)

    def get_many(self, course_ids: List[int]) -> Dict[int, models.Course]:
        if not course_ids:
            return {}
        stmt = select(models.Course).where(models.Course.id.in_(course_ids))
        return {c.id: c for c in self.session.exec(stmt).all()}

    def list_active(self) -> List[models.Course]:
        """Return every course with `is_active` set, oldest first."""
        stmt = select(models.Course).where(models.Course.is_active == True).order_by(models.Course.id)  # noqa: E712
        return self.session.exec(stmt).all()

    def find_owned(self, course_id: int, instructor_id: int) -> Optional[models.Course]:
        """Return the course only when it exists AND belongs to `instructor_id`."""
        stmt = select(models.Course).where(
            models.Course.id == course_id,
            models.Course.instructor_id == instructor_id
        )
        return self.session.exec(stmt).first()

    def exists_by_title(self, title: str, exclude_id: Optional[int] = None) -> bool:
        """Return True if another course already uses `title`."""
        stmt = select(models.Course.id).where(models.Course.title == title)
        if exclude_id is not None:
            stmt = stmt.where(models.Course.id != exclude_id)
        return self.session.exec(stmt).first() is not None

    def list_prerequisite_ids(self, course_id: int) -> List[int]:
        """Prerequisite ids in their stored order."""
        stmt = select(models.CoursePrerequisite.prerequisite_id).where(
            models.CoursePrerequisite.course_id == course_id
        ).order_by(models.CoursePrerequisite.position)
        return list(self.session.exec(stmt).all())

    def prerequisite_ids_for(self, course_ids: List[int]) -> Dict[int, List[int]]:
        """Ordered prerequisite ids for several courses in one query."""
        out: Dict[int, List[int]] = {cid: [] for cid in course_ids}
        if not course_ids:
            return out
        stmt = select(models.CoursePrerequisite).where(
            models.CoursePrerequisite.course_id.in_(course_ids)
        ).order_by(models.CoursePrerequisite.course_id, models.CoursePrerequisite.position)
        for link in self.session.exec(stmt).all():
            out[link.course_id].append(link.prerequisite_id)
        return out

    def set_prerequisites(self, course_id: int, prerequisite_ids: List[int]) -> None:
        """Replace the prerequisite list of `course_id` with `prerequisite_ids`."""
        existing = self.session.exec(
            select(models.CoursePrerequisite).where(models.CoursePrerequisite.course_id == course_id)
        ).all()
        for link in existing:
            self.session.delete(link)
        self.session.flush()
        for position, prereq_id in enumerate(prerequisite_ids):
            self.session.add(models.CoursePrerequisite(
                course_id=course_id, prerequisite_id=prereq_id, position=position
            ))
        self.session.commit()

    def list_enrolled_ids(self, course_id: int) -> List[int]:
        """Student ids enrolled in `course_id`, in enrollment order."""
        stmt = select(models.CourseEnrollment.student_id).where(
            models.CourseEnrollment.course_id == course_id
        ).order_by(models.CourseEnrollment.enrolled_at, models.CourseEnrollment.student_id)
        return list(self.session.exec(stmt).all())

    def enrolled_ids_for(self, course_ids: List[int]) -> Dict[int, List[int]]:
        """Enrolled student ids for several courses in one query."""
        out: Dict[int, List[int]] = {cid: [] for cid in course_ids}
        if not course_ids:
            return out
        stmt = select(models.CourseEnrollment).where(
            models.CourseEnrollment.course_id.in_(course_ids)
        ).order_by(models.CourseEnrollment.enrolled_at, models.CourseEnrollment.student_id)
        for link in self.session.exec(stmt).all():
            out[link.course_id].append(link.student_id)
        return out

    def count_enrolled(self, course_id: int) -> int:
        stmt = select(func.count()).select_from(models.CourseEnrollment).where(
            models.CourseEnrollment.course_id == course_id
        )
        return self.session.exec(stmt).one()

    def is_enrolled(self, course_id: int, student_id: int) -> bool:
        return self.session.get(models.CourseEnrollment, (course_id, student_id)) is not None

    def add_student(self, course_id: int, student_id: int) -> bool:
        """Add `student_id` to the enrolled set of `course_id`.

        Returns False when the student was already a member; the link
        table's primary key makes a concurrent duplicate insert fail, which
        is treated the same way.
        """
        if self.is_enrolled(course_id, student_id):
            return False
        self.session.add(models.CourseEnrollment(course_id=course_id, student_id=student_id))
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True


class PaperRepository:
    """Persistence for `Paper` records; deleted papers stay in the table."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, paper: models.Paper) -> models.Paper:
        """Insert or update a paper and return the refreshed instance."""
        self.session.add(paper)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self.session.refresh(paper)
        return paper

    def get(self, paper_id: int) -> Optional[models.Paper]:
        """Fetch a paper by id, including soft-deleted ones."""
        return self.session.get(models.Paper, paper_id)

    def list_active(self) -> List[models.Paper]:
        """Return papers not marked `is_deleted`, oldest first."""
        stmt = select(models.Paper).where(models.Paper.is_deleted == False).order_by(models.Paper.id)  # noqa: E712
        return self.session.exec(stmt).all()
