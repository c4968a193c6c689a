"""Appointment schemas for request/response validation."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import (
    BaseModel,
    Field,
    computed_field,
    field_serializer,
    field_validator,
)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 12 * 60


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    CONSULTATION = "consultation"
    VACCINATION = "vaccination"
    SURGERY = "surgery"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    WELLNESS_EXAM = "wellness_exam"
    DENTAL_CLEANING = "dental_cleaning"
    LABORATORY_TEST = "laboratory_test"
    IMAGING = "imaging"
    THERAPY = "therapy"
    GROOMING = "grooming"
    BEHAVIORAL_TRAINING = "behavioral_training"
    NUTRITION_CONSULTATION = "nutrition_consultation"
    PHYSICAL_THERAPY = "physical_therapy"
    SPECIALIST_CONSULTATION = "specialist_consultation"


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"
    WAITING = "waiting"


class AppointmentPriority(str, Enum):
    """Appointment priority enumeration."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"
    FAILED = "failed"


# Statuses that occupy the pet's time and count toward conflict detection
ACTIVE_BLOCKING_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


class ReminderSettings(BaseModel):
    """Reminder preferences stored with the appointment."""

    email_reminder: bool | None = None
    sms_reminder: bool | None = None
    push_reminder: bool | None = None
    reminder_hours_before: int | None = Field(None, ge=0, le=24 * 14)


class AppointmentDetails(BaseModel):
    """Narrative and modality fields shared by create and update payloads."""

    notes: str | None = Field(None, max_length=1000)
    reason: str | None = Field(None, max_length=1000)
    symptoms: str | None = Field(None, max_length=2000)
    diagnosis: str | None = None
    treatment_plan: str | None = None
    prescriptions: list[str] | None = None
    follow_up_instructions: str | None = None
    cost: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    payment_status: PaymentStatus | None = None
    is_telemedicine: bool | None = None
    telemedicine_link: str | None = Field(None, max_length=500)
    is_home_visit: bool | None = None
    home_visit_address: str | None = None
    pet_anxiety_mode: bool | None = None
    reminder_settings: ReminderSettings | None = None


class AppointmentCreate(AppointmentDetails):
    """Schema for booking a new appointment."""

    pet_id: UUID
    clinic_id: UUID
    staff_id: UUID | None = None
    service_id: UUID | None = None
    appointment_type: AppointmentType
    status: AppointmentStatus | None = None
    priority: AppointmentPriority | None = None
    scheduled_date: datetime
    duration_minutes: int | None = Field(
        None, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES
    )

    @field_validator("scheduled_date")
    @classmethod
    def normalize_scheduled_date(cls, v: datetime) -> datetime:
        """Store all instants in UTC."""
        return as_utc(v)


class AppointmentUpdate(AppointmentDetails):
    """Schema for updating an existing appointment. Status is not patchable here."""

    staff_id: UUID | None = None
    service_id: UUID | None = None
    appointment_type: AppointmentType | None = None
    priority: AppointmentPriority | None = None
    scheduled_date: datetime | None = None
    duration_minutes: int | None = Field(
        None, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES
    )

    @field_validator("scheduled_date")
    @classmethod
    def normalize_scheduled_date(cls, v: datetime | None) -> datetime | None:
        """Store all instants in UTC."""
        return as_utc(v) if v else v


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status."""

    status: AppointmentStatus
    notes: str | None = Field(None, max_length=1000)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new start time."""

    new_date: datetime

    @field_validator("new_date")
    @classmethod
    def normalize_new_date(cls, v: datetime) -> datetime:
        return as_utc(v)


class Appointment(BaseModel):
    """An appointment record as stored."""

    id: UUID
    pet_id: UUID
    owner_id: UUID
    clinic_id: UUID
    staff_id: UUID | None = None
    service_id: UUID | None = None
    appointment_type: AppointmentType
    status: AppointmentStatus = AppointmentStatus.PENDING
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    scheduled_date: datetime
    duration_minutes: int = Field(30, ge=MIN_DURATION_MINUTES)
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    cancelled_at: datetime | None = None
    notes: str | None = None
    reason: str | None = None
    symptoms: str | None = None
    diagnosis: str | None = None
    treatment_plan: str | None = None
    prescriptions: list[str] = Field(default_factory=list)
    follow_up_instructions: str | None = None
    cost: Decimal | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    is_telemedicine: bool = False
    telemedicine_link: str | None = None
    is_home_visit: bool = False
    home_visit_address: str | None = None
    pet_anxiety_mode: bool = False
    reminder_settings: dict = Field(default_factory=dict)
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator(
        "scheduled_date",
        "actual_start_time",
        "actual_end_time",
        "cancelled_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def normalize_timestamps(cls, v: datetime | None) -> datetime | None:
        """Some drivers hand back naive UTC timestamps; make them aware."""
        return as_utc(v) if v else v

    @field_validator("prescriptions", "reminder_settings", mode="before")
    @classmethod
    def default_empty_json(cls, v, info):
        if v is None:
            return [] if info.field_name == "prescriptions" else {}
        return v

    @field_serializer("cost")
    def serialize_cost(self, cost: Decimal | None) -> float | None:
        return float(cost) if cost is not None else None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def end(self) -> datetime:
        """End of the occupied interval, ``scheduled_date + duration_minutes``."""
        return self.scheduled_date + timedelta(minutes=self.duration_minutes)

    @property
    def is_blocking(self) -> bool:
        return self.is_active and self.status in ACTIVE_BLOCKING_STATUSES


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    appointments: list[Appointment]
    total: int
    page: int
    limit: int
    total_pages: int


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    appointment_type: AppointmentType | None = None
    priority: AppointmentPriority | None = None
    clinic_id: UUID | None = None
    staff_id: UUID | None = None
    pet_id: UUID | None = None
    owner_id: UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    is_telemedicine: bool | None = None
    is_home_visit: bool | None = None
    search: str | None = Field(None, max_length=200)

    @field_validator("date_from", "date_to")
    @classmethod
    def normalize_range(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v else v


class CancellationResponse(BaseModel):
    """Response body for a successful cancellation."""

    message: str


class TimeSlot(BaseModel):
    """A candidate booking interval inside the clinic working window."""

    start: datetime
    end: datetime
    available: bool
    appointment_id: UUID | None = None


class AppointmentStats(BaseModel):
    """Aggregate counts over active appointments."""

    total: int
    by_status: dict[AppointmentStatus, int]
    by_type: dict[AppointmentType, int]
    by_priority: dict[AppointmentPriority, int]
    today: int
    upcoming: int
    overdue: int
    telemedicine: int
    home_visits: int
    average_duration: int


class CalendarStaffGroup(BaseModel):
    """Appointments of one staff member (or unassigned) on one day."""

    staff_id: UUID | None
    staff_name: str | None = None
    appointments: list[Appointment]


class CalendarDay(BaseModel):
    """One calendar day, ``YYYY-MM-DD`` in the clinic timezone."""

    date: str
    staff: list[CalendarStaffGroup]


class CalendarViewResponse(BaseModel):
    """Calendar view grouped by day then staff."""

    days: list[CalendarDay]
