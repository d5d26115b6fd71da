"""Intake session models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class IntakeStep(str, Enum):
    """Steps of the intake script, asked in this order."""

    PERSONAL_INFO = "personal_info"
    FILING_STATUS = "filing_status"
    DEPENDENTS = "dependents"
    EMPLOYMENT = "employment"
    INCOME_TYPES = "income_types"
    DEDUCTIONS = "deductions"
    SPECIAL_SITUATIONS = "special_situations"


INTAKE_STEPS: list[IntakeStep] = list(IntakeStep)


class IntakeSession(BaseModel):
    """One pass through the intake script for a client."""

    id: str
    client_id: str
    current_step: IntakeStep = Field(default=IntakeStep.PERSONAL_INFO)
    completed_steps: list[IntakeStep] = Field(default_factory=list)
    responses: dict[IntakeStep, str] = Field(
        default_factory=dict, description="Raw answers keyed by step"
    )
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = Field(default=None)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None
