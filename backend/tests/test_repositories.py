import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import DateTime

from conftest import new_cycle
from workscholarship import models, repositories
from workscholarship.enums import CycleStatus


def test_save_rejects_broken_invariants(session, department):
    repo = repositories.CycleRepository(session)
    cycle = new_cycle(department=department, total_scholarships_available=2)
    cycle.total_scholarships_assigned = 3
    repo.add(cycle)
    with pytest.raises(repositories.CycleInvariantError):
        repo.save(cycle)
    assert not repo.any_for_department(department)


def test_closed_cycle_cannot_be_modified(session, department):
    repo = repositories.CycleRepository(session)
    cycle = new_cycle(department=department)
    cycle.status = CycleStatus.ACTIVE
    repo.add(cycle)
    repo.save(cycle)
    assert cycle.close(0, 0, "admin@uni.test", now=cycle.end_date + timedelta(days=1)).is_success
    repo.save(cycle)

    cycle.name = "rewritten"
    with pytest.raises(repositories.ClosedCycleModifiedError):
        repo.save(cycle)
    assert repo.get(cycle.id).name == "2026-2"


def test_saving_an_unchanged_closed_cycle_is_allowed(session, department):
    repo = repositories.CycleRepository(session)
    cycle = new_cycle(department=department)
    cycle.status = CycleStatus.CLOSED
    cycle.closed_at = cycle.end_date + timedelta(days=1)
    cycle.closed_by = "admin@uni.test"
    repo.add(cycle)
    repo.save(cycle)
    loaded = repo.get(cycle.id)
    repo.save(loaded)
    assert loaded.is_closed


def test_department_lookups(session, department):
    repo = repositories.CycleRepository(session)
    assert repo.latest_open_for_department(department) is None
    closed = new_cycle(department=department)
    closed.status = CycleStatus.CLOSED
    closed.closed_at = closed.end_date + timedelta(days=1)
    closed.closed_by = "admin@uni.test"
    repo.add(closed)
    repo.save(closed)
    assert repo.any_for_department(department)
    assert not repo.has_open_cycle(department)

    current = new_cycle(department=department, name="next")
    repo.add(current)
    repo.save(current)
    assert repo.has_open_cycle(department)
    assert repo.latest_open_for_department(department.upper()).id == current.id
    assert [c.id for c in repo.recent_for_department(department.lower())] == [current.id, closed.id]


def test_list_filters_and_pages(session, department):
    repo = repositories.CycleRepository(session)
    created = []
    for i in range(3):
        cycle = new_cycle(department=department, name=f"c{i}")
        cycle.created_at = datetime(2030, 1, 1) + timedelta(minutes=i)
        if i < 2:
            cycle.status = CycleStatus.CLOSED
            cycle.closed_at = cycle.end_date + timedelta(days=1)
            cycle.closed_by = "admin@uni.test"
        repo.add(cycle)
        repo.save(cycle)
        created.append(cycle)

    items, total = repo.list(department=department, page=1, page_size=2)
    assert total == 3
    assert [c.name for c in items] == ["c2", "c1"]
    items, total = repo.list(department=department.upper(), page=2, page_size=2)
    assert [c.name for c in items] == ["c0"]
    items, total = repo.list(department=department, status=CycleStatus.CLOSED)
    assert total == 2
    year = created[0].start_date.year
    _, total = repo.list(department=department, year=year)
    assert total == 3
    _, total = repo.list(department=department, year=year + 5)
    assert total == 0


def test_cycle_location_aggregates(session, department):
    cycles = repositories.CycleRepository(session)
    cycle_locations = repositories.CycleLocationRepository(session)
    locations = repositories.LocationRepository(session)
    cycle = new_cycle(department=department)
    cycles.add(cycle)
    cycles.save(cycle)

    a = locations.save(models.Location.create("Library", department, None, None, None, "admin@uni.test"))
    b = locations.save(models.Location.create("Lab", department, None, None, None, "admin@uni.test"))
    first = models.CycleLocation.create(cycle.id, a.id, 3, "admin@uni.test")
    second = models.CycleLocation.create(cycle.id, b.id, 4, "admin@uni.test")
    second.set_active(False, "admin@uni.test")
    cycle_locations.add(first)
    cycle_locations.add(second)
    cycles.save(cycle)

    assert cycle_locations.count_active_for_cycle(cycle.id) == 1
    assert cycle_locations.sum_active_available(cycle.id) == 3
    assert cycle_locations.sum_active_available(uuid.uuid4()) == 0
    assert locations.count_active_for_department(department.lower()) == 2


def test_timestamps_are_stored_as_naive_utc(session, department):
    repo = repositories.CycleRepository(session)
    cycle = new_cycle(department=department)
    start_date = cycle.start_date
    repo.add(cycle)
    repo.save(cycle)
    location = repositories.LocationRepository(session).save(
        models.Location.create("Library", department, None, None, None, "admin@uni.test"))

    session.expire_all()
    stored = repo.get(cycle.id)
    assert stored.start_date == start_date
    assert stored.start_date.tzinfo is None
    assert stored.created_at.tzinfo is None
    assert location.created_at.tzinfo is None
    for column in ("start_date", "end_date", "closed_at", "created_at", "updated_at"):
        column_type = models.Cycle.__table__.c[column].type
        assert isinstance(column_type, DateTime)
        assert not column_type.timezone
