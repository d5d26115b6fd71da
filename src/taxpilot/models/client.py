"""Client profile models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class FilingStatus(str, Enum):
    """IRS filing status options."""

    SINGLE = "single"
    MARRIED_FILING_JOINTLY = "married_filing_jointly"
    MARRIED_FILING_SEPARATELY = "married_filing_separately"
    HEAD_OF_HOUSEHOLD = "head_of_household"
    QUALIFYING_SURVIVING_SPOUSE = "qualifying_surviving_spouse"


class EmploymentType(str, Enum):
    """How the client earns a living."""

    EMPLOYED = "employed"
    SELF_EMPLOYED = "self_employed"
    BOTH = "both"  # W-2 job plus side business
    RETIRED = "retired"
    UNEMPLOYED = "unemployed"
    STUDENT = "student"


class IncomeType(str, Enum):
    """Sources of income reported during intake."""

    W2 = "w2"
    SELF_EMPLOYMENT = "self_employment"
    GIG_ECONOMY = "gig_economy"
    INVESTMENTS = "investments"
    RENTAL = "rental"
    RETIREMENT = "retirement"
    SOCIAL_SECURITY = "social_security"
    UNEMPLOYMENT = "unemployment"
    OTHER = "other"


class DeductionType(str, Enum):
    """Deductions and credits the client expects to claim."""

    STANDARD = "standard"
    MORTGAGE_INTEREST = "mortgage_interest"
    CHARITABLE = "charitable"
    MEDICAL = "medical"
    STUDENT_LOAN = "student_loan"
    EDUCATION = "education"
    RETIREMENT_CONTRIBUTIONS = "retirement_contributions"
    HSA = "hsa"
    HOME_OFFICE = "home_office"
    BUSINESS_EXPENSES = "business_expenses"
    CHILDCARE = "childcare"
    STATE_LOCAL_TAXES = "state_local_taxes"


class SpecialSituation(str, Enum):
    """Situations that call for a specialist."""

    CRYPTO = "crypto"
    FOREIGN_ACCOUNTS = "foreign_accounts"
    RENTAL_PROPERTY = "rental_property"
    SELF_EMPLOYMENT = "self_employment"
    SMALL_BUSINESS = "small_business"
    INVESTMENT_SALES = "investment_sales"
    AUDIT_HISTORY = "audit_history"
    ESTATE_OR_TRUST = "estate_or_trust"


class ClientProfile(BaseModel):
    """Everything known about a client going into their appointment."""

    id: str = Field(description="Unique client identifier")
    name: str | None = Field(default=None)
    email: str | None = Field(default=None)
    phone: str | None = Field(default=None)

    filing_status: FilingStatus | None = Field(default=None)
    dependents: int = Field(default=0, ge=0, description="Number of dependents claimed")
    employment_type: EmploymentType | None = Field(default=None)
    employers: list[str] = Field(
        default_factory=list, description="Employers and gig platforms named during intake"
    )

    income_types: list[IncomeType] = Field(default_factory=list)
    deductions: list[DeductionType] = Field(default_factory=list)
    special_situations: list[SpecialSituation] = Field(default_factory=list)

    intake_completed: bool = Field(default=False)
    documents_collected: list[str] = Field(default_factory=list)
    documents_pending: list[str] = Field(default_factory=list)

    assigned_tax_pro: str | None = Field(default=None, description="Tax professional ID")
    appointment_id: str | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def has_special_situations(self) -> bool:
        return bool(self.special_situations)

    @property
    def has_checklist_documents(self) -> bool:
        """True once a checklist has populated either document list."""
        return bool(self.documents_collected or self.documents_pending)
