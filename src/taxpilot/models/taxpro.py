"""Tax professional models."""

from enum import Enum

from pydantic import BaseModel, Field


class Specialization(str, Enum):
    """Skill areas a tax professional can handle."""

    INDIVIDUAL = "individual"
    SELF_EMPLOYMENT = "self_employment"
    SMALL_BUSINESS = "small_business"
    INVESTMENTS = "investments"
    REAL_ESTATE = "real_estate"
    CRYPTO = "crypto"
    FOREIGN_INCOME = "foreign_income"
    ESTATE_PLANNING = "estate_planning"
    AUDIT_REPRESENTATION = "audit_representation"


class ComplexityLevel(str, Enum):
    """Ordered complexity tiers, simple < moderate < complex < expert."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        """Ordinal position of this level."""
        return COMPLEXITY_ORDER.index(self)


COMPLEXITY_ORDER = [
    ComplexityLevel.SIMPLE,
    ComplexityLevel.MODERATE,
    ComplexityLevel.COMPLEX,
    ComplexityLevel.EXPERT,
]


class TaxProfessional(BaseModel):
    """A tax professional in the routing pool."""

    id: str = Field(description="Roster identifier, e.g. tp-001")
    name: str
    email: str | None = Field(default=None)
    specializations: list[Specialization] = Field(default_factory=list)
    max_complexity: ComplexityLevel = Field(default=ComplexityLevel.SIMPLE)
    current_load: int = Field(default=0, ge=0, description="Active appointments today")
    max_daily_appointments: int = Field(default=8, ge=0)
    available: bool = Field(default=True)
    rating: float = Field(default=4.5, ge=0.0, le=5.0)

    @property
    def remaining_slots(self) -> int:
        return max(0, self.max_daily_appointments - self.current_load)

    @property
    def has_capacity(self) -> bool:
        """Whether another appointment can be booked today."""
        return self.available and self.current_load < self.max_daily_appointments

    def can_handle(self, level: ComplexityLevel) -> bool:
        return ComplexityLevel(self.max_complexity).rank >= ComplexityLevel(level).rank

    def covers(self, required: set[Specialization]) -> bool:
        """Whether every required specialization is in this professional's set."""
        return set(required) <= set(self.specializations)
