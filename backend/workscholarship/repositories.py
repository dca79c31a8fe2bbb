"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
locations, cycles and the rows hanging off a cycle). Child repositories
only stage changes with `add`/`delete`; `CycleRepository.save` checks the
cycle's standing invariants and commits the whole unit of work.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, inspect
from sqlmodel import Session, select

from . import models
from .enums import CycleStatus, UserRole


class CycleInvariantError(RuntimeError):
    """A cycle about to be written breaks one of its standing invariants."""


class ClosedCycleModifiedError(CycleInvariantError):
    """Something tried to change a cycle that is already closed."""


class UserRepository:
    """Lookups for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get(self, user_id: uuid.UUID) -> Optional[models.User]:
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def count_active_by_role(self, role: UserRole) -> int:
        stmt = select(func.count(models.User.id)).where(
            models.User.role == role,
            models.User.is_active == True,  # noqa: E712
        )
        return self.session.exec(stmt).one()


class LocationRepository:
    """CRUD operations for `Location` objects."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, location: models.Location) -> models.Location:
        self.session.add(location)
        self.session.commit()
        self.session.refresh(location)
        return location

    def get(self, location_id: uuid.UUID) -> Optional[models.Location]:
        return self.session.get(models.Location, location_id)

    def list(self, department: Optional[str] = None, active_only: bool = False) -> List[models.Location]:
        """List locations ordered by name, optionally filtered (department is case-insensitive)."""
        stmt = select(models.Location)
        if department:
            stmt = stmt.where(func.lower(models.Location.department) == department.strip().lower())
        if active_only:
            stmt = stmt.where(models.Location.is_active == True)  # noqa: E712
        return self.session.exec(stmt.order_by(models.Location.name)).all()

    def count_active_for_department(self, department: str) -> int:
        stmt = select(func.count(models.Location.id)).where(
            func.lower(models.Location.department) == department.strip().lower(),
            models.Location.is_active == True,  # noqa: E712
        )
        return self.session.exec(stmt).one()


class CycleRepository:
    """Load, query and persist `Cycle` aggregates."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, cycle_id: uuid.UUID) -> Optional[models.Cycle]:
        return self.session.get(models.Cycle, cycle_id)

    def add(self, cycle: models.Cycle) -> None:
        """Stage a new cycle; it is written by the next `save`."""
        self.session.add(cycle)

    def save(self, cycle: models.Cycle) -> models.Cycle:
        """Check invariants, then commit the unit of work and refresh `cycle`.

        Raises `ClosedCycleModifiedError` when a cycle stored as Closed has
        pending changes and `CycleInvariantError` for any other broken
        invariant. Both indicate a programming error; the session is rolled
        back before raising.
        """
        try:
            self._guard(cycle)
        except CycleInvariantError:
            self.session.rollback()
            raise
        self.session.add(cycle)
        self.session.commit()
        self.session.refresh(cycle)
        return cycle

    def has_open_cycle(self, department: str) -> bool:
        stmt = select(models.Cycle.id).where(
            models.Cycle.department == department,
            models.Cycle.status != CycleStatus.CLOSED,
        )
        return self.session.exec(stmt).first() is not None

    def any_for_department(self, department: str) -> bool:
        stmt = select(models.Cycle.id).where(models.Cycle.department == department)
        return self.session.exec(stmt).first() is not None

    def latest_open_for_department(self, department: str) -> Optional[models.Cycle]:
        stmt = select(models.Cycle).where(
            func.lower(models.Cycle.department) == department.strip().lower(),
            models.Cycle.status != CycleStatus.CLOSED,
        ).order_by(models.Cycle.created_at.desc())
        return self.session.exec(stmt).first()

    def recent_for_department(self, department: str, limit: int = 10) -> List[models.Cycle]:
        stmt = select(models.Cycle).where(
            func.lower(models.Cycle.department) == department.strip().lower()
        ).order_by(models.Cycle.created_at.desc()).limit(limit)
        return self.session.exec(stmt).all()

    def list(self, department: Optional[str] = None, year: Optional[int] = None,
             status: Optional[CycleStatus] = None, page: int = 1,
             page_size: int = 10) -> Tuple[List[models.Cycle], int]:
        """Return one page of cycles (newest first) and the total match count."""
        conditions = []
        if department and department.strip():
            conditions.append(func.lower(models.Cycle.department) == department.strip().lower())
        if year is not None:
            conditions.append(models.Cycle.start_date >= datetime(year, 1, 1))
            conditions.append(models.Cycle.start_date < datetime(year + 1, 1, 1))
        if status is not None:
            conditions.append(models.Cycle.status == status)
        total = self.session.exec(select(func.count(models.Cycle.id)).where(*conditions)).one()
        stmt = (
            select(models.Cycle)
            .where(*conditions)
            .order_by(models.Cycle.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return self.session.exec(stmt).all(), total

    def _guard(self, cycle: models.Cycle) -> None:
        problems = cycle.invariant_violations()
        state = inspect(cycle)
        if state.persistent:
            history = state.attrs.status.history
            stored = history.deleted or history.unchanged
            if stored and stored[0] == CycleStatus.CLOSED:
                if any(attr.history.has_changes() for attr in state.attrs):
                    raise ClosedCycleModifiedError(f"cycle {cycle.id} is closed and cannot be modified")
        if problems:
            raise CycleInvariantError(f"cycle {cycle.id}: " + " ".join(problems))


class CycleLocationRepository:
    """Query helpers for `CycleLocation` rows of a cycle."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, cycle_location: models.CycleLocation) -> None:
        self.session.add(cycle_location)

    def get(self, cycle_location_id: uuid.UUID) -> Optional[models.CycleLocation]:
        return self.session.get(models.CycleLocation, cycle_location_id)

    def list_for_cycle(self, cycle_id: uuid.UUID) -> List[models.CycleLocation]:
        stmt = select(models.CycleLocation).where(models.CycleLocation.cycle_id == cycle_id)
        return self.session.exec(stmt).all()

    def count_active_for_cycle(self, cycle_id: uuid.UUID) -> int:
        stmt = select(func.count(models.CycleLocation.id)).where(
            models.CycleLocation.cycle_id == cycle_id,
            models.CycleLocation.is_active == True,  # noqa: E712
        )
        return self.session.exec(stmt).one()

    def sum_active_available(self, cycle_id: uuid.UUID) -> int:
        stmt = select(func.coalesce(func.sum(models.CycleLocation.scholarships_available), 0)).where(
            models.CycleLocation.cycle_id == cycle_id,
            models.CycleLocation.is_active == True,  # noqa: E712
        )
        return int(self.session.exec(stmt).one())


class ScheduleSlotRepository:
    """Staging helpers for `ScheduleSlot` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, slot: models.ScheduleSlot) -> None:
        self.session.add(slot)

    def list_for_cycle_location(self, cycle_location_id: uuid.UUID) -> List[models.ScheduleSlot]:
        stmt = select(models.ScheduleSlot).where(models.ScheduleSlot.cycle_location_id == cycle_location_id)
        return self.session.exec(stmt).all()

    def delete_for_cycle_location(self, cycle_location_id: uuid.UUID) -> int:
        slots = self.list_for_cycle_location(cycle_location_id)
        for slot in slots:
            self.session.delete(slot)
        return len(slots)


class SupervisorAssignmentRepository:
    """Staging and counting helpers for `SupervisorAssignment` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, assignment: models.SupervisorAssignment) -> None:
        self.session.add(assignment)

    def list_for_cycle(self, cycle_id: uuid.UUID) -> List[models.SupervisorAssignment]:
        stmt = select(models.SupervisorAssignment).where(models.SupervisorAssignment.cycle_id == cycle_id)
        return self.session.exec(stmt).all()

    def count_for_cycle(self, cycle_id: uuid.UUID) -> int:
        stmt = select(func.count(models.SupervisorAssignment.id)).where(
            models.SupervisorAssignment.cycle_id == cycle_id
        )
        return self.session.exec(stmt).one()

    def delete_for_cycle(self, cycle_id: uuid.UUID) -> int:
        assignments = self.list_for_cycle(cycle_id)
        for assignment in assignments:
            self.session.delete(assignment)
        return len(assignments)
