"""Lifecycle rules for the cycle aggregate.

`CycleLifecycle` is mixed into the `Cycle` table model. It owns the only
code paths that change a cycle's status, dates and scholarship counters:

    Configuration -> ApplicationsOpen <-> ApplicationsClosed -> Active -> Closed

Every operation checks its preconditions against the current state and the
counts supplied by the caller, mutates the entity only when all of them
hold, and returns a `DomainResult[CycleErrorCode]`. Business-rule
violations are never raised. Counting related rows (active locations,
pending shifts, missing logbooks) is the caller's job, so nothing here
touches the database.

A successful transition carries one event in `DomainResult.events`; the
service publishes it after the commit.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from . import clock, events
from .enums import CycleErrorCode, CycleStatus
from .results import DomainResult

CycleResult = DomainResult[CycleErrorCode]


def _fail(code: CycleErrorCode, message: str) -> CycleResult:
    return DomainResult.failure(code, message)


def date_order_problem(start_date: datetime, end_date: datetime, application_deadline: datetime,
                       interview_date: datetime, selection_date: datetime) -> Optional[str]:
    """Return a message describing the first incoherent date pair, or None."""
    if start_date >= end_date:
        return "The start date must be before the end date."
    if application_deadline >= interview_date:
        return "The application deadline must be before the interview date."
    if interview_date >= selection_date:
        return "The interview date must be before the selection date."
    if selection_date >= end_date:
        return "The selection date must be before the cycle end date."
    return None


def _require_count(name: str, value: int) -> None:
    if value is None or value < 0:
        raise ValueError(f"{name} must be a non-negative integer")


class CycleLifecycle:
    """State machine and invariants of a work-scholarship cycle.

    The host class provides the persisted attributes (`id`, `status`, the
    five schedule dates, the scholarship counters, `renewal_process_completed`,
    `cloned_from_cycle_id`, `closed_at`, `closed_by` and the audit fields).
    """

    # Factory

    @classmethod
    def create(cls, name: str, department: str, start_date: datetime, end_date: datetime,
               application_deadline: datetime, interview_date: datetime, selection_date: datetime,
               total_scholarships_available: int, created_by: str):
        """Build a new cycle in Configuration.

        Raises ValueError for arguments a validated request can never
        produce (blank names, non-positive scholarships, incoherent dates).
        """
        if not name or not name.strip():
            raise ValueError("cycle name is required")
        if not department or not department.strip():
            raise ValueError("department is required")
        if not created_by or not created_by.strip():
            raise ValueError("created_by is required")
        if total_scholarships_available is None or total_scholarships_available <= 0:
            raise ValueError("total_scholarships_available must be greater than 0")
        problem = date_order_problem(start_date, end_date, application_deadline, interview_date, selection_date)
        if problem:
            raise ValueError(problem)
        return cls(
            id=uuid.uuid4(),
            name=name.strip(),
            department=department.strip(),
            status=CycleStatus.CONFIGURATION,
            start_date=start_date,
            end_date=end_date,
            application_deadline=application_deadline,
            interview_date=interview_date,
            selection_date=selection_date,
            total_scholarships_available=total_scholarships_available,
            total_scholarships_assigned=0,
            renewal_process_completed=False,
            created_by=created_by,
            created_at=clock.utcnow(),
        )

    # Queries

    @property
    def is_modifiable(self) -> bool:
        return self.status != CycleStatus.CLOSED

    @property
    def accepts_applications(self) -> bool:
        return self.status == CycleStatus.APPLICATIONS_OPEN

    @property
    def is_operational(self) -> bool:
        return self.status == CycleStatus.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.status == CycleStatus.CLOSED

    def invariant_violations(self) -> List[str]:
        """List every broken standing invariant; empty when the entity is sound."""
        problems = []
        problem = date_order_problem(self.start_date, self.end_date, self.application_deadline,
                                     self.interview_date, self.selection_date)
        if problem:
            problems.append(problem)
        if self.total_scholarships_available < 0 or self.total_scholarships_assigned < 0:
            problems.append("Scholarship counters cannot be negative.")
        if self.total_scholarships_assigned > self.total_scholarships_available:
            problems.append("Assigned scholarships cannot exceed available scholarships.")
        if self.status == CycleStatus.CLOSED and (self.closed_at is None or not self.closed_by):
            problems.append("A closed cycle must record when and by whom it was closed.")
        return problems

    # Transitions

    def open_applications(self, active_locations_count: int) -> CycleResult:
        _require_count("active_locations_count", active_locations_count)
        if self.status != CycleStatus.CONFIGURATION:
            return _fail(CycleErrorCode.INVALID_TRANSITION,
                         "Applications can only be opened from the Configuration status.")
        if active_locations_count == 0:
            return _fail(CycleErrorCode.NO_LOCATIONS,
                         "At least one active location must be configured before opening applications.")
        if self.total_scholarships_available <= 0:
            return _fail(CycleErrorCode.NO_SCHOLARSHIPS,
                         "The total of available scholarships must be greater than 0.")
        if not self.renewal_process_completed:
            return _fail(CycleErrorCode.RENEWALS_PENDING,
                         "The renewal process must be completed or skipped before opening applications.")
        return self._move_to(CycleStatus.APPLICATIONS_OPEN, events.ApplicationsOpened)

    def close_applications(self) -> CycleResult:
        if self.status != CycleStatus.APPLICATIONS_OPEN:
            return _fail(CycleErrorCode.INVALID_TRANSITION,
                         "Applications can only be closed from the ApplicationsOpen status.")
        return self._move_to(CycleStatus.APPLICATIONS_CLOSED, events.ApplicationsClosed)

    def reopen_applications(self) -> CycleResult:
        if self.status != CycleStatus.APPLICATIONS_CLOSED:
            return _fail(CycleErrorCode.INVALID_TRANSITION,
                         "Applications can only be reopened from the ApplicationsClosed status.")
        return self._move_to(CycleStatus.APPLICATIONS_OPEN, events.ApplicationsReopened)

    def activate(self) -> CycleResult:
        if self.status != CycleStatus.APPLICATIONS_CLOSED:
            return _fail(CycleErrorCode.INVALID_TRANSITION,
                         "A cycle can only be activated from the ApplicationsClosed status.")
        return self._move_to(CycleStatus.ACTIVE, events.CycleActivated)

    def extend_dates(self, new_application_deadline: Optional[datetime] = None,
                     new_interview_date: Optional[datetime] = None,
                     new_selection_date: Optional[datetime] = None,
                     new_end_date: Optional[datetime] = None) -> CycleResult:
        """Push any of the schedule dates later.

        Allowed in Configuration, ApplicationsOpen and Active. Each supplied
        date must be strictly later than the current one and the resulting
        schedule must stay in order. Nothing changes unless every check
        passes.
        """
        if self.status in (CycleStatus.CLOSED, CycleStatus.APPLICATIONS_CLOSED):
            return _fail(CycleErrorCode.INVALID_TRANSITION,
                         "Dates cannot be extended while applications are closed or after the cycle is closed.")
        proposed = (
            (new_application_deadline, self.application_deadline, "application deadline"),
            (new_interview_date, self.interview_date, "interview date"),
            (new_selection_date, self.selection_date, "selection date"),
            (new_end_date, self.end_date, "end date"),
        )
        for new_value, current, label in proposed:
            if new_value is not None and new_value <= current:
                return _fail(CycleErrorCode.INVALID_DATE,
                             f"The new {label} must be later than the current one.")
        deadline = new_application_deadline or self.application_deadline
        interview = new_interview_date or self.interview_date
        selection = new_selection_date or self.selection_date
        end = new_end_date or self.end_date
        problem = date_order_problem(self.start_date, end, deadline, interview, selection)
        if problem:
            return _fail(CycleErrorCode.INVALID_DATE, problem)

        now = clock.utcnow()
        self.application_deadline = deadline
        self.interview_date = interview
        self.selection_date = selection
        self.end_date = end
        self.updated_at = now
        return DomainResult.success(events.CycleDatesExtended(self.id, now))

    def close(self, pending_shifts_count: int, missing_logbooks_count: int, closed_by: str,
              now: Optional[datetime] = None) -> CycleResult:
        """Close an Active cycle whose end date has passed.

        `now` defaults to the current UTC time. A closed cycle is a frozen
        historical record.
        """
        _require_count("pending_shifts_count", pending_shifts_count)
        _require_count("missing_logbooks_count", missing_logbooks_count)
        if not closed_by or not closed_by.strip():
            raise ValueError("closed_by is required")
        now = now or clock.utcnow()
        if self.status != CycleStatus.ACTIVE:
            return _fail(CycleErrorCode.INVALID_TRANSITION,
                         "A cycle can only be closed from the Active status.")
        if now <= self.end_date:
            return _fail(CycleErrorCode.CYCLE_NOT_ENDED,
                         "The cycle cannot be closed before its end date.")
        if pending_shifts_count > 0:
            return _fail(CycleErrorCode.PENDING_SHIFTS,
                         f"There are {pending_shifts_count} shifts pending approval. "
                         "They must be approved before closing the cycle.")
        if missing_logbooks_count > 0:
            return _fail(CycleErrorCode.MISSING_LOGBOOKS,
                         f"Logbooks are missing for {missing_logbooks_count} scholars. "
                         "They must be generated before closing the cycle.")
        self.closed_at = now
        self.closed_by = closed_by
        self.updated_by = closed_by
        return self._move_to(CycleStatus.CLOSED, events.CycleClosed, now)

    # Configuration mutators

    def mark_renewal_process_completed(self, updated_by: Optional[str] = None) -> CycleResult:
        if self.is_closed:
            return self._closed_failure()
        self.renewal_process_completed = True
        self._touch(updated_by)
        return DomainResult.success()

    def set_cloned_from(self, source_cycle_id: uuid.UUID, updated_by: Optional[str] = None) -> CycleResult:
        if self.is_closed:
            return self._closed_failure()
        self.cloned_from_cycle_id = source_cycle_id
        self._touch(updated_by)
        return DomainResult.success()

    def recalculate_scholarships_available(self, total: int, updated_by: Optional[str] = None) -> CycleResult:
        _require_count("total", total)
        if self.is_closed:
            return self._closed_failure()
        if total < self.total_scholarships_assigned:
            return _fail(CycleErrorCode.NO_SCHOLARSHIPS,
                         f"Available scholarships ({total}) cannot drop below the "
                         f"{self.total_scholarships_assigned} already assigned.")
        self.total_scholarships_available = total
        self._touch(updated_by)
        return DomainResult.success()

    def assign_scholarships(self, count: int = 1, updated_by: Optional[str] = None) -> CycleResult:
        if count is None or count <= 0:
            raise ValueError("count must be a positive integer")
        if self.is_closed:
            return self._closed_failure()
        if self.total_scholarships_assigned + count > self.total_scholarships_available:
            return _fail(CycleErrorCode.NO_SCHOLARSHIPS,
                         "Not enough scholarships left to assign.")
        self.total_scholarships_assigned += count
        self._touch(updated_by)
        return DomainResult.success()

    # Helpers

    def _move_to(self, status: CycleStatus, event_cls, now: Optional[datetime] = None) -> CycleResult:
        now = now or clock.utcnow()
        self.updated_at = now
        self.status = status
        return DomainResult.success(event_cls(self.id, now))

    def _touch(self, updated_by: Optional[str]) -> None:
        self.updated_at = clock.utcnow()
        if updated_by:
            self.updated_by = updated_by

    @staticmethod
    def _closed_failure() -> CycleResult:
        return _fail(CycleErrorCode.CYCLE_CLOSED, "A closed cycle cannot be modified.")
