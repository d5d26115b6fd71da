"""Data models for clients, tax professionals, appointments and the conversation flow."""

from taxpilot.models.appointment import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    Reminder,
    ReminderType,
)
from taxpilot.models.client import (
    ClientProfile,
    DeductionType,
    EmploymentType,
    FilingStatus,
    IncomeType,
    SpecialSituation,
)
from taxpilot.models.documents import DocumentCategory, DocumentChecklist, DocumentItem
from taxpilot.models.flow import (
    FLOW_SEQUENCE,
    ConversationFlowState,
    ConversationStage,
    FlowActionResult,
    FlowProgress,
    PreferredSchedule,
)
from taxpilot.models.intake import INTAKE_STEPS, IntakeSession, IntakeStep
from taxpilot.models.taxpro import (
    COMPLEXITY_ORDER,
    ComplexityLevel,
    Specialization,
    TaxProfessional,
)

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "Reminder",
    "ReminderType",
    "ClientProfile",
    "DeductionType",
    "EmploymentType",
    "FilingStatus",
    "IncomeType",
    "SpecialSituation",
    "DocumentCategory",
    "DocumentChecklist",
    "DocumentItem",
    "FLOW_SEQUENCE",
    "ConversationFlowState",
    "ConversationStage",
    "FlowActionResult",
    "FlowProgress",
    "PreferredSchedule",
    "INTAKE_STEPS",
    "IntakeSession",
    "IntakeStep",
    "COMPLEXITY_ORDER",
    "ComplexityLevel",
    "Specialization",
    "TaxProfessional",
]
