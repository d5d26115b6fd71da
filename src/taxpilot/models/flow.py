"""Conversation flow models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from taxpilot.models.appointment import AppointmentType


class ConversationStage(str, Enum):
    """The ten stages every client conversation passes through, in order."""

    WELCOME = "welcome"
    INTAKE_QUESTIONS = "intake_questions"
    SUMMARY_REVIEW = "summary_review"
    SUMMARY_CONFIRMATION = "summary_confirmation"
    DOCUMENT_CHECKLIST = "document_checklist"
    AVAILABILITY_INQUIRY = "availability_inquiry"
    TAXPRO_ROUTING = "taxpro_routing"
    APPOINTMENT_SCHEDULING = "appointment_scheduling"
    REMINDERS_SETUP = "reminders_setup"
    COMPLETE = "complete"


FLOW_SEQUENCE: list[ConversationStage] = list(ConversationStage)


class PreferredSchedule(BaseModel):
    """Scheduling preferences collected during the availability inquiry."""

    preferred_dates: list[str] = Field(default_factory=list)
    preferred_times: list[str] = Field(default_factory=list)
    appointment_type: AppointmentType = Field(default=AppointmentType.VIRTUAL)


class ConversationFlowState(BaseModel):
    """Progress of one client through the conversation flow.

    ``completed_stages`` always equals the stages strictly before
    ``current_stage`` in ``FLOW_SEQUENCE``.
    """

    client_id: str
    session_id: str = Field(default="")
    current_stage: ConversationStage = Field(default=ConversationStage.WELCOME)
    completed_stages: list[ConversationStage] = Field(default_factory=list)
    stage_data: dict[ConversationStage, dict[str, Any]] = Field(default_factory=dict)
    summary_confirmed: bool = Field(default=False)
    selected_tax_pro_id: str | None = Field(default=None)
    preferred_schedule: PreferredSchedule | None = Field(default=None)
    started_at: datetime = Field(default_factory=datetime.now)
    last_activity_at: datetime = Field(default_factory=datetime.now)

    @property
    def stage_index(self) -> int:
        return FLOW_SEQUENCE.index(self.current_stage)

    @property
    def is_complete(self) -> bool:
        return self.current_stage == ConversationStage.COMPLETE

    def data_for(self, stage: ConversationStage) -> dict[str, Any]:
        """Stage data recorded so far for ``stage`` (empty if none)."""
        return self.stage_data.get(stage, {})

    def merge_stage_data(self, stage: ConversationStage, data: dict[str, Any]) -> None:
        self.stage_data[stage] = {**self.stage_data.get(stage, {}), **data}

    def touch(self) -> None:
        self.last_activity_at = datetime.now()


class FlowProgress(BaseModel):
    """Position within the flow."""

    current: int
    total: int
    percentage: int

    @property
    def fraction(self) -> float:
        return self.current / self.total if self.total else 0.0


class FlowActionResult(BaseModel):
    """Status snapshot returned after every flow interaction."""

    current_stage: ConversationStage
    completed_stages: list[ConversationStage] = Field(default_factory=list)
    next_action: str
    instructions: str
    can_proceed: bool
    blockers: list[str] = Field(default_factory=list)
    suggested_tools: list[str] = Field(default_factory=list)
    progress: FlowProgress
