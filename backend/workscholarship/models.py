"""SQLModel data models.

This module defines the application's database tables using SQLModel.
`Cycle` takes its behaviour from `lifecycle.CycleLifecycle`; the other
tables carry their own small argument checks.
Factory and mutator methods raise ValueError for arguments a validated
request cannot produce.
Timestamps are naive UTC (see `clock`) and live in plain `DateTime` columns.
"""

import uuid
from datetime import time
from typing import List, Optional

from pydantic import NaiveDatetime
from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel

from . import clock
from .enums import CycleStatus, UserRole
from .lifecycle import CycleLifecycle

_DAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    7: "Sunday",
}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def _require_text(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{label} is required")
    return value.strip()


class User(SQLModel, table=True):
    """A person known to the system.

    Users are provisioned out of band (see `scripts/create_user.py`); the API
    only reads them to identify the current actor and to validate
    supervisor assignments.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    full_name: str
    role: UserRole = Field(default=UserRole.NONE, index=True)
    is_active: bool = True
    created_at: NaiveDatetime = Field(default_factory=clock.utcnow, sa_type=DateTime)


class Location(SQLModel, table=True):
    """A physical place where scholars can work (library, lab, office)."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    department: str = Field(index=True)
    description: Optional[str] = None
    address: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    created_at: NaiveDatetime = Field(default_factory=clock.utcnow, sa_type=DateTime)
    created_by: str
    updated_at: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)
    updated_by: Optional[str] = None

    @classmethod
    def create(cls, name: str, department: str, description: Optional[str], address: Optional[str],
               image_url: Optional[str], created_by: str) -> "Location":
        return cls(
            name=_require_text(name, "location name"),
            department=_require_text(department, "department"),
            description=_clean(description),
            address=_clean(address),
            image_url=_clean(image_url),
            is_active=True,
            created_by=_require_text(created_by, "created_by"),
        )

    def update(self, name: str, department: str, description: Optional[str], address: Optional[str],
               image_url: Optional[str], updated_by: str) -> None:
        self.name = _require_text(name, "location name")
        self.department = _require_text(department, "department")
        self.description = _clean(description)
        self.address = _clean(address)
        self.image_url = _clean(image_url)
        self.updated_by = updated_by
        self.updated_at = clock.utcnow()

    def set_active(self, active: bool, updated_by: str) -> None:
        self.is_active = active
        self.updated_by = updated_by
        self.updated_at = clock.utcnow()


class Cycle(SQLModel, CycleLifecycle, table=True):
    """One department's scholarship program for a semester.

    Create instances with `Cycle.create(...)` and change them only through
    the lifecycle operations.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    department: str = Field(index=True)
    status: CycleStatus = Field(default=CycleStatus.CONFIGURATION, index=True)
    start_date: NaiveDatetime = Field(sa_type=DateTime)
    end_date: NaiveDatetime = Field(sa_type=DateTime)
    application_deadline: NaiveDatetime = Field(sa_type=DateTime)
    interview_date: NaiveDatetime = Field(sa_type=DateTime)
    selection_date: NaiveDatetime = Field(sa_type=DateTime)
    total_scholarships_available: int = 0
    total_scholarships_assigned: int = 0
    renewal_process_completed: bool = False
    cloned_from_cycle_id: Optional[uuid.UUID] = Field(default=None, foreign_key="cycle.id")
    closed_at: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)
    closed_by: Optional[str] = None
    created_at: NaiveDatetime = Field(default_factory=clock.utcnow, index=True, sa_type=DateTime)
    created_by: str
    updated_at: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)
    updated_by: Optional[str] = None


class CycleLocation(SQLModel, table=True):
    """A location taking part in a cycle, with its scholarship quota."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    cycle_id: uuid.UUID = Field(foreign_key="cycle.id", index=True)
    location_id: uuid.UUID = Field(foreign_key="location.id", index=True)
    scholarships_available: int
    scholarships_assigned: int = 0
    is_active: bool = True
    created_at: NaiveDatetime = Field(default_factory=clock.utcnow, sa_type=DateTime)
    created_by: str
    updated_at: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)
    updated_by: Optional[str] = None
    schedule_slots: List["ScheduleSlot"] = Relationship(back_populates="cycle_location")

    @classmethod
    def create(cls, cycle_id: uuid.UUID, location_id: uuid.UUID, scholarships_available: int,
               created_by: str) -> "CycleLocation":
        if scholarships_available is None or scholarships_available <= 0:
            raise ValueError("scholarships_available must be greater than 0")
        return cls(
            cycle_id=cycle_id,
            location_id=location_id,
            scholarships_available=scholarships_available,
            scholarships_assigned=0,
            is_active=True,
            created_by=_require_text(created_by, "created_by"),
        )

    def update_scholarships_available(self, scholarships_available: int, updated_by: str) -> None:
        if scholarships_available is None or scholarships_available <= 0:
            raise ValueError("scholarships_available must be greater than 0")
        if scholarships_available < self.scholarships_assigned:
            raise ValueError("scholarships_available cannot drop below the scholarships already assigned")
        self.scholarships_available = scholarships_available
        self.updated_by = updated_by
        self.updated_at = clock.utcnow()

    def set_active(self, active: bool, updated_by: str) -> None:
        self.is_active = active
        self.updated_by = updated_by
        self.updated_at = clock.utcnow()

    @property
    def has_available_slots(self) -> bool:
        return self.scholarships_available > self.scholarships_assigned

    @property
    def remaining_slots(self) -> int:
        return max(0, self.scholarships_available - self.scholarships_assigned)


class ScheduleSlot(SQLModel, table=True):
    """A weekly time window at a cycle location. `day_of_week` 1 is Monday."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    cycle_location_id: uuid.UUID = Field(foreign_key="cyclelocation.id", index=True)
    day_of_week: int
    start_time: time
    end_time: time
    required_scholars: int
    created_at: NaiveDatetime = Field(default_factory=clock.utcnow, sa_type=DateTime)
    created_by: str
    updated_at: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)
    updated_by: Optional[str] = None
    cycle_location: Optional[CycleLocation] = Relationship(back_populates="schedule_slots")

    @classmethod
    def create(cls, cycle_location_id: uuid.UUID, day_of_week: int, start_time: time, end_time: time,
               required_scholars: int, created_by: str) -> "ScheduleSlot":
        _check_slot(day_of_week, start_time, end_time, required_scholars)
        return cls(
            cycle_location_id=cycle_location_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            required_scholars=required_scholars,
            created_by=_require_text(created_by, "created_by"),
        )

    def update(self, start_time: time, end_time: time, required_scholars: int, updated_by: str) -> None:
        _check_slot(self.day_of_week, start_time, end_time, required_scholars)
        self.start_time = start_time
        self.end_time = end_time
        self.required_scholars = required_scholars
        self.updated_by = updated_by
        self.updated_at = clock.utcnow()

    @property
    def duration_hours(self) -> float:
        start = self.start_time.hour * 3600 + self.start_time.minute * 60 + self.start_time.second
        end = self.end_time.hour * 3600 + self.end_time.minute * 60 + self.end_time.second
        return (end - start) / 3600.0

    @property
    def day_of_week_name(self) -> str:
        return _DAY_NAMES.get(self.day_of_week, "Unknown")


def _check_slot(day_of_week: int, start_time: time, end_time: time, required_scholars: int) -> None:
    if day_of_week not in _DAY_NAMES:
        raise ValueError("day_of_week must be between 1 (Monday) and 7 (Sunday)")
    if start_time >= end_time:
        raise ValueError("start_time must be before end_time")
    if required_scholars is None or required_scholars <= 0:
        raise ValueError("required_scholars must be greater than 0")


class SupervisorAssignment(SQLModel, table=True):
    """A supervisor responsible for one cycle location."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    cycle_id: uuid.UUID = Field(foreign_key="cycle.id", index=True)
    cycle_location_id: uuid.UUID = Field(foreign_key="cyclelocation.id")
    supervisor_id: uuid.UUID = Field(foreign_key="user.id")
    assigned_at: NaiveDatetime = Field(default_factory=clock.utcnow, sa_type=DateTime)
    created_by: str

    @classmethod
    def create(cls, cycle_id: uuid.UUID, cycle_location_id: uuid.UUID, supervisor_id: uuid.UUID,
               created_by: str) -> "SupervisorAssignment":
        return cls(
            cycle_id=cycle_id,
            cycle_location_id=cycle_location_id,
            supervisor_id=supervisor_id,
            created_by=_require_text(created_by, "created_by"),
        )
