"""Appointment status lifecycle."""

from clinic_scheduling.core.exceptions import BadRequestException
from clinic_scheduling.schemas.appointments import AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.WAITING}
    ),
    AppointmentStatus.WAITING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.IN_PROGRESS: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.RESCHEDULED: frozenset(
        {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

# States from which an appointment can be moved to a new time
RESCHEDULABLE_STATUSES = frozenset(
    {
        AppointmentStatus.PENDING,
        AppointmentStatus.WAITING,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
    }
)

# Statuses an appointment may be created in
INITIAL_STATUSES = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.WAITING}
)


class StatusStateMachine:
    """Validates status changes against ``TRANSITIONS``."""

    @staticmethod
    def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
        return target in TRANSITIONS.get(current, frozenset())

    @classmethod
    def validate(cls, current: AppointmentStatus, target: AppointmentStatus) -> None:
        """
        Raise unless ``current -> target`` is an allowed transition.

        Staying in the same state is not a transition.

        Raises:
            BadRequestException: If the transition is not allowed
        """
        if not cls.can_transition(current, target):
            raise BadRequestException(
                f"Invalid status transition from {current.value} to {target.value}"
            )

    @staticmethod
    def ensure_reschedulable(current: AppointmentStatus) -> None:
        """
        Raise unless an appointment in ``current`` can be moved in time.

        Raises:
            BadRequestException: If the appointment has started or is finished
        """
        if current not in RESCHEDULABLE_STATUSES:
            raise BadRequestException(
                f"Cannot reschedule an appointment with status {current.value}"
            )
