"""Business logic services used by HTTP controllers.

Services coordinate repositories and the cycle lifecycle. They return
`Result[...]` for every expected failure, commit through the cycle
repository and publish the domain events of a successful transition only
after the commit.
"""

import json
import logging
import uuid
from typing import Callable, List, Optional

from sqlmodel import Session

from . import events, models, repositories, schemas
from .enums import CycleAppError, CycleStatus, PendingActionCode, UserRole
from .lifecycle import CycleResult
from .results import Result, code_string

_LOGGER = logging.getLogger("workscholarship.services")


def _log(event: str, **fields) -> None:
    _LOGGER.info("%s %s", event, json.dumps(fields, ensure_ascii=True, default=str))


def _actor(user: models.User) -> str:
    return user.email


class TrackingGateway:
    """Read side of shift tracking and logbook generation.

    Those subsystems do not exist yet, so both counts are zero and closing a
    cycle only depends on its own state.
    """

    def pending_shifts_count(self, cycle_id: uuid.UUID) -> int:
        return 0

    def missing_logbooks_count(self, cycle_id: uuid.UUID) -> int:
        return 0


class CycleService:
    """Commands and queries on cycles."""
    def __init__(self, session: Session, dispatcher: events.EventDispatcher = None,
                 tracking: TrackingGateway = None):
        self.session = session
        self.dispatcher = dispatcher or events.dispatcher
        self.tracking = tracking or TrackingGateway()
        self.cycles = repositories.CycleRepository(session)
        self.cycle_locations = repositories.CycleLocationRepository(session)
        self.slots = repositories.ScheduleSlotRepository(session)
        self.assignments = repositories.SupervisorAssignmentRepository(session)
        self.locations = repositories.LocationRepository(session)
        self.users = repositories.UserRepository(session)

    # Commands

    def create_cycle(self, data: schemas.CreateCycleIn, actor: models.User) -> Result[schemas.CycleOut]:
        """Create a cycle in Configuration, optionally cloning a closed one.

        Only one non-closed cycle may exist per department. The first cycle of
        a department has no scholars to renew, so its renewal step starts
        completed.
        """
        department = data.department.strip()
        if self.cycles.has_open_cycle(department):
            return Result.fail(
                CycleAppError.DUPLICATE_CYCLE,
                f"Department '{department}' already has a cycle that is not closed. Close it before creating a new one.",
            )
        is_first_cycle = not self.cycles.any_for_department(department)
        created_by = _actor(actor)
        cycle = models.Cycle.create(
            name=data.name,
            department=department,
            start_date=data.start_date,
            end_date=data.end_date,
            application_deadline=data.application_deadline,
            interview_date=data.interview_date,
            selection_date=data.selection_date,
            total_scholarships_available=data.total_scholarships_available,
            created_by=created_by,
        )
        if is_first_cycle:
            cycle.mark_renewal_process_completed()

        source = None
        if data.clone_from_cycle_id is not None:
            source = self.cycles.get(data.clone_from_cycle_id)
            if source is None:
                return Result.fail(CycleAppError.CYCLE_NOT_FOUND, "The cycle to clone from was not found.")
            if not source.is_closed:
                return Result.fail(CycleAppError.INVALID_CLONE_SOURCE,
                                   "Only a closed cycle can be used as a clone source.")
            cycle.set_cloned_from(source.id)

        self.cycles.add(cycle)
        if source is not None:
            self._copy_configuration(source, cycle, created_by)
        self.cycles.save(cycle)

        _log("cycle_created", cycle_id=cycle.id, department=department,
             cloned_from=data.clone_from_cycle_id, first_cycle=is_first_cycle)
        self.dispatcher.publish([events.CycleCreated(cycle.id, cycle.created_at)])
        return Result.ok(self._cycle_out(cycle))

    def configure_cycle(self, cycle_id: uuid.UUID, data: schemas.ConfigureCycleIn,
                        actor: models.User) -> Result[schemas.CycleOut]:
        """Replace a cycle's locations, schedule slots and supervisor assignments.

        Cycle locations missing from `data` are deactivated rather than
        deleted. Every reference is checked before anything changes.
        """
        cycle = self.cycles.get(cycle_id)
        if cycle is None:
            return self._not_found(cycle_id)
        if cycle.status != CycleStatus.CONFIGURATION:
            return Result.fail(CycleAppError.NOT_IN_CONFIGURATION,
                               "Only a cycle in Configuration can be configured.")

        for item in data.locations:
            if self.locations.get(item.location_id) is None:
                return Result.fail(CycleAppError.LOCATION_NOT_FOUND,
                                   f"Location {item.location_id} was not found.")
        # active flag of each location once this request is applied
        stays_active = {item.location_id: item.is_active for item in data.locations}
        for item in data.supervisor_assignments:
            supervisor = self.users.get(item.supervisor_id)
            if supervisor is None or supervisor.role != UserRole.SUPERVISOR or not supervisor.is_active:
                return Result.fail(CycleAppError.SUPERVISOR_NOT_FOUND,
                                   f"Supervisor {item.supervisor_id} was not found.")
            cycle_location = self.cycle_locations.get(item.cycle_location_id)
            if cycle_location is None or cycle_location.cycle_id != cycle.id:
                return Result.fail(CycleAppError.CYCLE_LOCATION_NOT_FOUND,
                                   f"Cycle location {item.cycle_location_id} does not belong to this cycle.")
            if not stays_active.get(cycle_location.location_id, False):
                return Result.fail(CycleAppError.INACTIVE_CYCLE_LOCATION,
                                   f"Cycle location {item.cycle_location_id} is inactive after this change; "
                                   "supervisors can only be assigned to active locations.")

        updated_by = _actor(actor)
        existing = {cl.location_id: cl for cl in self.cycle_locations.list_for_cycle(cycle.id)}
        requested = {item.location_id for item in data.locations}
        for location_id, cycle_location in existing.items():
            if location_id not in requested:
                cycle_location.set_active(False, updated_by)
                self.cycle_locations.add(cycle_location)

        for item in data.locations:
            cycle_location = existing.get(item.location_id)
            if cycle_location is None:
                cycle_location = models.CycleLocation.create(cycle.id, item.location_id,
                                                             item.scholarships_available, updated_by)
            else:
                cycle_location.update_scholarships_available(item.scholarships_available, updated_by)
                cycle_location.set_active(item.is_active, updated_by)
                self.slots.delete_for_cycle_location(cycle_location.id)
            self.cycle_locations.add(cycle_location)
            for slot in item.schedule_slots:
                self.slots.add(models.ScheduleSlot.create(cycle_location.id, slot.day_of_week, slot.start_time,
                                                          slot.end_time, slot.required_scholars, updated_by))

        self.assignments.delete_for_cycle(cycle.id)
        for item in data.supervisor_assignments:
            self.assignments.add(models.SupervisorAssignment.create(cycle.id, item.cycle_location_id,
                                                                    item.supervisor_id, updated_by))

        outcome = cycle.recalculate_scholarships_available(self.cycle_locations.sum_active_available(cycle.id),
                                                           updated_by)
        if outcome.is_failure:
            self.session.rollback()
            return self._rejected(cycle_id, "configure", outcome)
        self.cycles.save(cycle)
        _log("cycle_configured", cycle_id=cycle.id, locations=len(data.locations),
             supervisor_assignments=len(data.supervisor_assignments))
        return Result.ok(self._cycle_out(cycle))

    def open_applications(self, cycle_id: uuid.UUID, actor: models.User) -> Result[schemas.CycleOut]:
        return self._transition(
            cycle_id, "open_applications", actor,
            lambda cycle: cycle.open_applications(self.cycle_locations.count_active_for_cycle(cycle.id)),
        )

    def close_applications(self, cycle_id: uuid.UUID, actor: models.User) -> Result[schemas.CycleOut]:
        return self._transition(cycle_id, "close_applications", actor, lambda cycle: cycle.close_applications())

    def reopen_applications(self, cycle_id: uuid.UUID, actor: models.User) -> Result[schemas.CycleOut]:
        return self._transition(cycle_id, "reopen_applications", actor, lambda cycle: cycle.reopen_applications())

    def activate_cycle(self, cycle_id: uuid.UUID, actor: models.User) -> Result[schemas.CycleOut]:
        return self._transition(cycle_id, "activate", actor, lambda cycle: cycle.activate())

    def extend_dates(self, cycle_id: uuid.UUID, data: schemas.ExtendDatesIn,
                     actor: models.User) -> Result[schemas.CycleOut]:
        return self._transition(
            cycle_id, "extend_dates", actor,
            lambda cycle: cycle.extend_dates(
                new_application_deadline=data.new_application_deadline,
                new_interview_date=data.new_interview_date,
                new_selection_date=data.new_selection_date,
                new_end_date=data.new_end_date,
            ),
        )

    def close_cycle(self, cycle_id: uuid.UUID, actor: models.User) -> Result[schemas.CycleOut]:
        return self._transition(
            cycle_id, "close", actor,
            lambda cycle: cycle.close(
                self.tracking.pending_shifts_count(cycle.id),
                self.tracking.missing_logbooks_count(cycle.id),
                _actor(actor),
            ),
        )

    # Queries

    def get_cycle(self, cycle_id: uuid.UUID) -> Result[schemas.CycleDetailOut]:
        cycle = self.cycles.get(cycle_id)
        if cycle is None:
            return self._not_found(cycle_id)
        locations = [
            schemas.CycleLocationOut.from_entity(cl, self.slots.list_for_cycle_location(cl.id))
            for cl in self.cycle_locations.list_for_cycle(cycle.id)
        ]
        return Result.ok(schemas.CycleDetailOut.from_entity(
            cycle,
            self.cycle_locations.count_active_for_cycle(cycle.id),
            self.assignments.count_for_cycle(cycle.id),
            scholars_count=0,
            locations=locations,
        ))

    def get_active_cycle(self, department: str) -> Result[Optional[schemas.CycleOut]]:
        """Latest non-closed cycle of `department` (case-insensitive), or None."""
        cycle = self.cycles.latest_open_for_department(department)
        return Result.ok(self._cycle_out(cycle) if cycle is not None else None)

    def list_cycles(self, department: Optional[str] = None, year: Optional[int] = None,
                    status: Optional[CycleStatus] = None, page: int = 1,
                    page_size: int = 10) -> Result[schemas.Page[schemas.CycleListItemOut]]:
        items, total = self.cycles.list(department, year, status, page, page_size)
        return Result.ok(schemas.Page[schemas.CycleListItemOut].build(
            [schemas.CycleListItemOut.from_entity(c) for c in items], total, page, page_size,
        ))

    # Helpers

    def _transition(self, cycle_id: uuid.UUID, operation: str, actor: models.User,
                    apply: Callable[[models.Cycle], CycleResult]) -> Result[schemas.CycleOut]:
        cycle = self.cycles.get(cycle_id)
        if cycle is None:
            return self._not_found(cycle_id)
        previous = cycle.status
        outcome = apply(cycle)
        if outcome.is_failure:
            return self._rejected(cycle_id, operation, outcome)
        cycle.updated_by = _actor(actor)
        self.cycles.save(cycle)
        _log("transition_applied", cycle_id=cycle.id, operation=operation,
             from_status=previous.name, to_status=cycle.status.name)
        self.dispatcher.publish(outcome.events)
        return Result.ok(self._cycle_out(cycle))

    def _rejected(self, cycle_id: uuid.UUID, operation: str, outcome: CycleResult) -> Result:
        _log("transition_rejected", cycle_id=cycle_id, operation=operation, code=outcome.error_code_string)
        return Result.from_domain(outcome)

    @staticmethod
    def _not_found(cycle_id: uuid.UUID) -> Result:
        return Result.fail(CycleAppError.CYCLE_NOT_FOUND, f"Cycle {cycle_id} was not found.")

    def _cycle_out(self, cycle: models.Cycle) -> schemas.CycleOut:
        return schemas.CycleOut.from_entity(
            cycle,
            self.cycle_locations.count_active_for_cycle(cycle.id),
            self.assignments.count_for_cycle(cycle.id),
        )

    def _copy_configuration(self, source: models.Cycle, target: models.Cycle, created_by: str) -> None:
        for source_location in self.cycle_locations.list_for_cycle(source.id):
            copy = models.CycleLocation.create(target.id, source_location.location_id,
                                               source_location.scholarships_available, created_by)
            self.cycle_locations.add(copy)
            for slot in self.slots.list_for_cycle_location(source_location.id):
                self.slots.add(models.ScheduleSlot.create(copy.id, slot.day_of_week, slot.start_time,
                                                          slot.end_time, slot.required_scholars, created_by))


class LocationService:
    """Maintain the catalogue of physical locations."""
    def __init__(self, session: Session):
        self.session = session
        self.locations = repositories.LocationRepository(session)

    def create(self, data: schemas.LocationIn, actor: models.User) -> Result[schemas.LocationOut]:
        location = models.Location.create(data.name, data.department, data.description, data.address,
                                          data.image_url, _actor(actor))
        self.locations.save(location)
        _log("location_created", location_id=location.id, department=location.department)
        return Result.ok(schemas.LocationOut.from_entity(location))

    def update(self, location_id: uuid.UUID, data: schemas.LocationIn,
               actor: models.User) -> Result[schemas.LocationOut]:
        location = self.locations.get(location_id)
        if location is None:
            return self._not_found(location_id)
        location.update(data.name, data.department, data.description, data.address, data.image_url,
                        _actor(actor))
        self.locations.save(location)
        return Result.ok(schemas.LocationOut.from_entity(location))

    def set_active(self, location_id: uuid.UUID, active: bool, actor: models.User) -> Result[schemas.LocationOut]:
        location = self.locations.get(location_id)
        if location is None:
            return self._not_found(location_id)
        location.set_active(active, _actor(actor))
        self.locations.save(location)
        _log("location_activation_changed", location_id=location.id, is_active=active)
        return Result.ok(schemas.LocationOut.from_entity(location))

    def list(self, department: Optional[str] = None, active_only: bool = False) -> Result[List[schemas.LocationOut]]:
        return Result.ok([schemas.LocationOut.from_entity(l) for l in self.locations.list(department, active_only)])

    @staticmethod
    def _not_found(location_id: uuid.UUID) -> Result:
        return Result.fail(CycleAppError.LOCATION_NOT_FOUND, f"Location {location_id} was not found.")


class DashboardService:
    """Summarise a department's setup progress for the admin home page."""
    RECENT_CYCLES = 10
    _IN_CONFIGURATION = (CycleStatus.CONFIGURATION, CycleStatus.APPLICATIONS_OPEN, CycleStatus.APPLICATIONS_CLOSED)

    def __init__(self, session: Session):
        self.session = session
        self.cycles = repositories.CycleRepository(session)
        self.cycle_locations = repositories.CycleLocationRepository(session)
        self.assignments = repositories.SupervisorAssignmentRepository(session)
        self.locations = repositories.LocationRepository(session)
        self.users = repositories.UserRepository(session)

    def get_state(self, department: str) -> Result[schemas.DashboardStateOut]:
        """Counts, current cycles and outstanding setup steps for `department`.

        Locations are counted per department (case-insensitive); supervisors
        are counted across the whole system. Only the most recent cycles are
        inspected.
        """
        locations_count = self.locations.count_active_for_department(department)
        supervisors_count = self.users.count_active_by_role(UserRole.SUPERVISOR)
        recent = self.cycles.recent_for_department(department, self.RECENT_CYCLES)

        active = next((c for c in recent if c.status == CycleStatus.ACTIVE), None)
        in_configuration = next((c for c in recent if c.status in self._IN_CONFIGURATION), None)
        last_closed = next((c for c in recent if c.status == CycleStatus.CLOSED), None)

        active_out = self._project(active)
        configuring_out = self._project(in_configuration)
        state = schemas.DashboardStateOut(
            has_locations=locations_count > 0,
            locations_count=locations_count,
            has_supervisors=supervisors_count > 0,
            supervisors_count=supervisors_count,
            active_cycle=active_out,
            last_closed_cycle=self._project(last_closed),
            cycle_in_configuration=configuring_out,
            pending_actions=[
                schemas.PendingActionOut(code=code_string(code))
                for code in self._pending_actions(locations_count, supervisors_count, active_out, configuring_out)
            ],
        )
        return Result.ok(state)

    def _project(self, cycle: Optional[models.Cycle]) -> Optional[schemas.CycleOut]:
        if cycle is None:
            return None
        return schemas.CycleOut.from_entity(
            cycle,
            self.cycle_locations.count_active_for_cycle(cycle.id),
            self.assignments.count_for_cycle(cycle.id),
        )

    @staticmethod
    def _pending_actions(locations_count: int, supervisors_count: int, active: Optional[schemas.CycleOut],
                         configuring: Optional[schemas.CycleOut]) -> List[PendingActionCode]:
        actions = []
        if locations_count == 0:
            actions.append(PendingActionCode.NO_LOCATIONS)
        if supervisors_count == 0:
            actions.append(PendingActionCode.NO_SUPERVISORS)
        if active is None and configuring is None:
            actions.append(PendingActionCode.NO_ACTIVE_CYCLE)
        if configuring is not None:
            if configuring.locations_count == 0:
                actions.append(PendingActionCode.CYCLE_NEEDS_LOCATIONS)
            if configuring.supervisors_count == 0:
                actions.append(PendingActionCode.CYCLE_NEEDS_SUPERVISORS)
            if not configuring.renewal_process_completed:
                actions.append(PendingActionCode.RENEWALS_PENDING)
        return actions
