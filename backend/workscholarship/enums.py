"""Enumerations shared by the models, lifecycle and services.

Error-code enumerations keep their PascalCase symbolic name as the member
value; callers only ever see the UPPER_SNAKE_CASE rendering produced by
`results.code_string`.
"""

from enum import Enum, IntEnum


class CycleStatus(IntEnum):
    """Lifecycle status of a cycle. Ordinal order is the happy path."""
    CONFIGURATION = 0
    APPLICATIONS_OPEN = 1
    APPLICATIONS_CLOSED = 2
    ACTIVE = 3
    CLOSED = 4


class CycleErrorCode(Enum):
    """Reasons a cycle transition or mutation can be rejected."""
    INVALID_TRANSITION = "InvalidTransition"
    NO_LOCATIONS = "NoLocations"
    NO_SCHOLARSHIPS = "NoScholarships"
    RENEWALS_PENDING = "RenewalsPending"
    CYCLE_NOT_ENDED = "CycleNotEnded"
    PENDING_SHIFTS = "PendingShifts"
    MISSING_LOGBOOKS = "MissingLogbooks"
    CYCLE_CLOSED = "CycleClosed"
    INVALID_DATE = "InvalidDate"


class CycleAppError(str, Enum):
    """Application-level failures raised by the cycle services."""
    DUPLICATE_CYCLE = "DUPLICATE_CYCLE"
    CYCLE_NOT_FOUND = "CYCLE_NOT_FOUND"
    INVALID_CLONE_SOURCE = "INVALID_CLONE_SOURCE"
    NOT_IN_CONFIGURATION = "NOT_IN_CONFIGURATION"
    LOCATION_NOT_FOUND = "LOCATION_NOT_FOUND"
    SUPERVISOR_NOT_FOUND = "SUPERVISOR_NOT_FOUND"
    CYCLE_LOCATION_NOT_FOUND = "CYCLE_LOCATION_NOT_FOUND"
    INACTIVE_CYCLE_LOCATION = "INACTIVE_CYCLE_LOCATION"


class PendingActionCode(Enum):
    """Setup steps the admin dashboard reports as outstanding."""
    NO_LOCATIONS = "NoLocations"
    NO_SUPERVISORS = "NoSupervisors"
    NO_ACTIVE_CYCLE = "NoActiveCycle"
    CYCLE_NEEDS_LOCATIONS = "CycleNeedsLocations"
    CYCLE_NEEDS_SUPERVISORS = "CycleNeedsSupervisors"
    RENEWALS_PENDING = "RenewalsPending"


class UserRole(str, Enum):
    NONE = "none"
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    BECA = "beca"
