"""Appointment and reminder models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from taxpilot.models.taxpro import ComplexityLevel


class AppointmentType(str, Enum):
    """How the client meets their tax professional."""

    VIRTUAL = "virtual"
    IN_PERSON = "in_person"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Appointment(BaseModel):
    """A booked meeting between a client and a tax professional."""

    id: str = Field(description="Unique appointment identifier")
    client_id: str
    tax_pro_id: str
    scheduled_at: datetime
    duration: int = Field(description="Length in minutes, derived from complexity")
    type: AppointmentType = Field(default=AppointmentType.VIRTUAL)
    estimated_complexity: ComplexityLevel
    status: AppointmentStatus = Field(default=AppointmentStatus.SCHEDULED)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(use_enum_values=True)


class ReminderType(str, Enum):
    """Kinds of reminders the system schedules."""

    DOCUMENT_REMINDER = "document_reminder"
    APPOINTMENT_REMINDER_24H = "appointment_reminder_24h"
    APPOINTMENT_REMINDER_1H = "appointment_reminder_1h"


class Reminder(BaseModel):
    """A message scheduled for a client."""

    id: str
    client_id: str
    appointment_id: str | None = Field(default=None)
    reminder_type: ReminderType
    message: str
    scheduled_for: datetime
    document_id: str | None = Field(default=None, description="Document this reminder is about")
    sent: bool = Field(default=False)
    sent_at: datetime | None = Field(default=None)

    model_config = ConfigDict(use_enum_values=True)
