"""Caller identity and the appointment capability check."""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from clinic_scheduling.schemas.appointments import Appointment, AppointmentStatus


class Role(str, Enum):
    """User roles as issued by the identity service."""

    ADMIN = "admin"
    CLINIC_ADMIN = "clinic_admin"
    VETERINARIAN = "veterinarian"
    STAFF = "staff"
    PATIENT = "patient"


PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.CLINIC_ADMIN, Role.VETERINARIAN, Role.STAFF})

# Clinical states only clinic personnel may move an appointment into
CLINICAL_STATUSES = frozenset(
    {AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW}
)


class AppointmentAction(str, Enum):
    """Operations that require a capability check on a single appointment."""

    VIEW = "view"
    UPDATE = "update"
    TRANSITION = "transition"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller."""

    id: UUID
    role: Role
    clinic_id: UUID | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def scoped_clinic_id(self) -> UUID | None:
        """Clinic a privileged non-admin caller is restricted to, if any."""
        if self.is_privileged and not self.is_admin:
            return self.clinic_id
        return None


def authorize(
    actor: Actor,
    appointment: Appointment,
    action: AppointmentAction,
    target_status: AppointmentStatus | None = None,
) -> bool:
    """
    Decide whether ``actor`` may perform ``action`` on ``appointment``.

    Owners may act on their own appointments but never move them into a
    clinical state. Clinic personnel may act on any appointment of the clinic
    they belong to; admins on every appointment.

    Args:
        actor: Authenticated caller
        appointment: Appointment being acted on
        action: Requested operation
        target_status: New status for ``AppointmentAction.TRANSITION``

    Returns:
        True if the action is allowed
    """
    if actor.is_privileged:
        clinic_id = actor.scoped_clinic_id
        return clinic_id is None or clinic_id == appointment.clinic_id

    if appointment.owner_id != actor.id:
        return False

    if action == AppointmentAction.TRANSITION and target_status in CLINICAL_STATUSES:
        return False

    return True
