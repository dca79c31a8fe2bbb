"""Pydantic request/response schemas used by the API.

Request schemas carry the format checks a handler can rely on (required
text, positive counts, date order); business rules that need the database
or the cycle's state stay in the services. Incoming datetimes are
normalised to naive UTC. Response schemas are flat projections built with
`from_entity`.
"""

import uuid
from datetime import datetime, time
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from . import clock
from .enums import CycleStatus

T = TypeVar("T")


def _required_text(value: str, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return clock.as_naive_utc(value) if value is not None else None


class CreateCycleIn(BaseModel):
    """Payload for `POST /api/cycles`.

    Fields are validated in declaration order so each date is compared with
    the ones before it; a field that already failed is skipped by the later
    comparisons.
    """
    name: str = Field(max_length=100)
    department: str = Field(max_length=100)
    start_date: datetime
    end_date: datetime
    application_deadline: datetime
    interview_date: datetime
    selection_date: datetime
    total_scholarships_available: int = Field(gt=0)
    clone_from_cycle_id: Optional[uuid.UUID] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_text(v, "name")

    @field_validator("department")
    @classmethod
    def _department(cls, v: str) -> str:
        return _required_text(v, "department")

    @field_validator("start_date")
    @classmethod
    def _start(cls, v: datetime) -> datetime:
        v = _naive(v)
        if v <= clock.utcnow():
            raise ValueError("start_date must be in the future")
        return v

    @field_validator("end_date")
    @classmethod
    def _end(cls, v: datetime, info: ValidationInfo) -> datetime:
        v = _naive(v)
        start = info.data.get("start_date")
        if start is not None and v <= start:
            raise ValueError("end_date must be after start_date")
        return v

    @field_validator("application_deadline")
    @classmethod
    def _deadline(cls, v: datetime) -> datetime:
        v = _naive(v)
        if v <= clock.utcnow():
            raise ValueError("application_deadline must be in the future")
        return v

    @field_validator("interview_date")
    @classmethod
    def _interview(cls, v: datetime, info: ValidationInfo) -> datetime:
        v = _naive(v)
        deadline = info.data.get("application_deadline")
        if deadline is not None and v <= deadline:
            raise ValueError("interview_date must be after application_deadline")
        return v

    @field_validator("selection_date")
    @classmethod
    def _selection(cls, v: datetime, info: ValidationInfo) -> datetime:
        v = _naive(v)
        interview = info.data.get("interview_date")
        end = info.data.get("end_date")
        if interview is not None and v <= interview:
            raise ValueError("selection_date must be after interview_date")
        if end is not None and v >= end:
            raise ValueError("selection_date must be before end_date")
        return v


class ScheduleSlotIn(BaseModel):
    day_of_week: int = Field(ge=1, le=7)
    start_time: time
    end_time: time
    required_scholars: int = Field(gt=0)

    @field_validator("end_time")
    @classmethod
    def _end_after_start(cls, v: time, info: ValidationInfo) -> time:
        start = info.data.get("start_time")
        if start is not None and start >= v:
            raise ValueError("start_time must be before end_time")
        return v


class CycleLocationIn(BaseModel):
    location_id: uuid.UUID
    scholarships_available: int = Field(gt=0)
    is_active: bool = True
    schedule_slots: List[ScheduleSlotIn] = Field(default_factory=list)


class SupervisorAssignmentIn(BaseModel):
    supervisor_id: uuid.UUID
    cycle_location_id: uuid.UUID


class ConfigureCycleIn(BaseModel):
    """Full desired configuration of a cycle in Configuration."""
    locations: List[CycleLocationIn] = Field(default_factory=list)
    supervisor_assignments: List[SupervisorAssignmentIn] = Field(default_factory=list)

    @field_validator("locations")
    @classmethod
    def _unique_locations(cls, v: List[CycleLocationIn]) -> List[CycleLocationIn]:
        ids = [item.location_id for item in v]
        if len(ids) != len(set(ids)):
            raise ValueError("each location can appear only once")
        return v


class ExtendDatesIn(BaseModel):
    new_application_deadline: Optional[datetime] = None
    new_interview_date: Optional[datetime] = None
    new_selection_date: Optional[datetime] = None
    new_end_date: Optional[datetime] = None

    @field_validator("new_application_deadline", "new_interview_date", "new_selection_date", "new_end_date")
    @classmethod
    def _normalise(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive(v)

    @model_validator(mode="after")
    def _at_least_one(self) -> "ExtendDatesIn":
        if not any((self.new_application_deadline, self.new_interview_date,
                    self.new_selection_date, self.new_end_date)):
            raise ValueError("at least one date must be provided")
        return self


class LocationIn(BaseModel):
    name: str = Field(max_length=200)
    department: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    address: Optional[str] = Field(default=None, max_length=500)
    image_url: Optional[str] = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _required_text(v, "name")

    @field_validator("department")
    @classmethod
    def _department(cls, v: str) -> str:
        return _required_text(v, "department")


# Responses


class CycleOut(BaseModel):
    """Cycle projection returned by commands and the dashboard."""
    id: uuid.UUID
    name: str
    department: str
    status: CycleStatus
    start_date: datetime
    end_date: datetime
    application_deadline: datetime
    interview_date: datetime
    selection_date: datetime
    total_scholarships_available: int
    total_scholarships_assigned: int
    renewal_process_completed: bool
    cloned_from_cycle_id: Optional[uuid.UUID] = None
    closed_at: Optional[datetime] = None
    locations_count: int = 0
    supervisors_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, cycle, locations_count: int = 0, supervisors_count: int = 0) -> "CycleOut":
        return cls(
            id=cycle.id,
            name=cycle.name,
            department=cycle.department,
            status=cycle.status,
            start_date=cycle.start_date,
            end_date=cycle.end_date,
            application_deadline=cycle.application_deadline,
            interview_date=cycle.interview_date,
            selection_date=cycle.selection_date,
            total_scholarships_available=cycle.total_scholarships_available,
            total_scholarships_assigned=cycle.total_scholarships_assigned,
            renewal_process_completed=cycle.renewal_process_completed,
            cloned_from_cycle_id=cycle.cloned_from_cycle_id,
            closed_at=cycle.closed_at,
            locations_count=locations_count,
            supervisors_count=supervisors_count,
            created_at=cycle.created_at,
            updated_at=cycle.updated_at,
        )


class ScheduleSlotOut(BaseModel):
    id: uuid.UUID
    day_of_week: int
    day_of_week_name: str
    start_time: time
    end_time: time
    required_scholars: int
    duration_hours: float

    @classmethod
    def from_entity(cls, slot) -> "ScheduleSlotOut":
        return cls(
            id=slot.id,
            day_of_week=slot.day_of_week,
            day_of_week_name=slot.day_of_week_name,
            start_time=slot.start_time,
            end_time=slot.end_time,
            required_scholars=slot.required_scholars,
            duration_hours=slot.duration_hours,
        )


class CycleLocationOut(BaseModel):
    """A location as configured for one cycle; `id` is what supervisor assignments reference."""
    id: uuid.UUID
    location_id: uuid.UUID
    scholarships_available: int
    scholarships_assigned: int
    is_active: bool
    schedule_slots: List[ScheduleSlotOut] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, cycle_location, slots) -> "CycleLocationOut":
        return cls(
            id=cycle_location.id,
            location_id=cycle_location.location_id,
            scholarships_available=cycle_location.scholarships_available,
            scholarships_assigned=cycle_location.scholarships_assigned,
            is_active=cycle_location.is_active,
            schedule_slots=[ScheduleSlotOut.from_entity(s) for s in slots],
        )


class CycleDetailOut(CycleOut):
    closed_by: Optional[str] = None
    created_by: str
    scholars_count: int = 0
    locations: List[CycleLocationOut] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, cycle, locations_count: int = 0, supervisors_count: int = 0,
                    scholars_count: int = 0, locations: Optional[List[CycleLocationOut]] = None) -> "CycleDetailOut":
        base = CycleOut.from_entity(cycle, locations_count, supervisors_count)
        return cls(
            **base.model_dump(),
            closed_by=cycle.closed_by,
            created_by=cycle.created_by,
            scholars_count=scholars_count,
            locations=locations or [],
        )


class CycleListItemOut(BaseModel):
    id: uuid.UUID
    name: str
    department: str
    status: CycleStatus
    start_date: datetime
    end_date: datetime
    total_scholarships_available: int
    total_scholarships_assigned: int
    created_at: datetime
    closed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, cycle) -> "CycleListItemOut":
        return cls(
            id=cycle.id,
            name=cycle.name,
            department=cycle.department,
            status=cycle.status,
            start_date=cycle.start_date,
            end_date=cycle.end_date,
            total_scholarships_available=cycle.total_scholarships_available,
            total_scholarships_assigned=cycle.total_scholarships_assigned,
            created_at=cycle.created_at,
            closed_at=cycle.closed_at,
        )


class Page(BaseModel, Generic[T]):
    items: List[T]
    total_count: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def build(cls, items: List[T], total_count: int, page: int, page_size: int) -> "Page[T]":
        return cls(
            items=items,
            total_count=total_count,
            page=page,
            page_size=page_size,
            total_pages=(total_count + page_size - 1) // page_size,
        )


class LocationOut(BaseModel):
    id: uuid.UUID
    name: str
    department: str
    description: Optional[str] = None
    address: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, location) -> "LocationOut":
        return cls(
            id=location.id,
            name=location.name,
            department=location.department,
            description=location.description,
            address=location.address,
            image_url=location.image_url,
            is_active=location.is_active,
            created_at=location.created_at,
            updated_at=location.updated_at,
        )


class PendingActionOut(BaseModel):
    code: str


class DashboardStateOut(BaseModel):
    """What the admin home page needs to decide the next setup step."""
    has_locations: bool
    locations_count: int
    has_supervisors: bool
    supervisors_count: int
    active_cycle: Optional[CycleOut] = None
    last_closed_cycle: Optional[CycleOut] = None
    cycle_in_configuration: Optional[CycleOut] = None
    pending_actions: List[PendingActionOut] = Field(default_factory=list)
