"""Pytest configuration and fixtures."""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from taxpilot.checklist import ChecklistService
from taxpilot.coordinator import IntakeCoordinator
from taxpilot.flow import FlowManager
from taxpilot.intake import IntakeService
from taxpilot.models.client import (
    ClientProfile,
    DeductionType,
    EmploymentType,
    FilingStatus,
    IncomeType,
    SpecialSituation,
)
from taxpilot.models.taxpro import ComplexityLevel, Specialization, TaxProfessional
from taxpilot.reminders import ReminderService
from taxpilot.routing import RoutingService
from taxpilot.storage.roster import DEFAULT_TAX_PROS
from taxpilot.storage.store import InMemoryStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_config(temp_dir, monkeypatch):
    """Point configuration at a temporary directory."""
    config_dir = temp_dir / ".taxpilot"
    config_dir.mkdir(parents=True)
    monkeypatch.setenv("TAXPILOT_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("TAXPILOT_ROSTER_PATH", raising=False)
    return config_dir


@pytest.fixture
def store():
    """Store loaded with the built-in roster."""
    return InMemoryStore([tp.model_copy(deep=True) for tp in DEFAULT_TAX_PROS])


@pytest.fixture
def empty_store():
    return InMemoryStore()


@pytest.fixture
def simple_client():
    """Single W-2 filer taking the standard deduction."""
    return ClientProfile(
        id="client-simple",
        name="Jane Doe",
        filing_status=FilingStatus.SINGLE,
        employment_type=EmploymentType.EMPLOYED,
        employers=["Acme Corp"],
        income_types=[IncomeType.W2],
        deductions=[DeductionType.STANDARD],
        intake_completed=True,
    )


@pytest.fixture
def crypto_client():
    """Married filer with investments and crypto."""
    return ClientProfile(
        id="client-crypto",
        name="Sam Rivera",
        filing_status=FilingStatus.MARRIED_FILING_JOINTLY,
        dependents=1,
        employment_type=EmploymentType.EMPLOYED,
        income_types=[IncomeType.W2, IncomeType.INVESTMENTS],
        deductions=[DeductionType.MORTGAGE_INTEREST],
        special_situations=[SpecialSituation.CRYPTO],
        intake_completed=True,
    )


@pytest.fixture
def gig_client():
    """Self-employed rideshare driver."""
    return ClientProfile(
        id="client-gig",
        name="Alex Kim",
        filing_status=FilingStatus.SINGLE,
        employment_type=EmploymentType.SELF_EMPLOYED,
        employers=["Uber", "DoorDash"],
        income_types=[IncomeType.GIG_ECONOMY],
        deductions=[DeductionType.BUSINESS_EXPENSES],
        intake_completed=True,
    )


@pytest.fixture
def make_taxpro():
    """Factory for tax professionals with sensible defaults."""

    def _make(tp_id: str, **overrides) -> TaxProfessional:
        fields = {
            "id": tp_id,
            "name": f"Pro {tp_id}",
            "specializations": [Specialization.INDIVIDUAL],
            "max_complexity": ComplexityLevel.EXPERT,
            "current_load": 0,
            "max_daily_appointments": 5,
            "rating": 4.5,
        }
        fields.update(overrides)
        return TaxProfessional(**fields)

    return _make


@pytest.fixture
def routing(store):
    return RoutingService(store)


@pytest.fixture
def flow(store):
    return FlowManager(store)


@pytest.fixture
def coordinator(store):
    """Coordinator wired to the shared store, as the registry builds it."""
    return IntakeCoordinator(
        store=store,
        intake=IntakeService(store),
        checklist=ChecklistService(store),
        routing=RoutingService(store),
        reminders=ReminderService(store),
        flow=FlowManager(store),
    )


@pytest.fixture
def next_week():
    return (datetime.now() + timedelta(days=7)).replace(hour=10, minute=0, second=0, microsecond=0)


INTAKE_ANSWERS = [
    "My name is Jane Doe, jane@example.com, 555-123-4567",
    "Single",
    "None",
    "I work full-time at Acme Corp",
    "W-2 wages",
    "Standard deduction",
    "None",
]


@pytest.fixture
def intake_answers():
    """Answers that complete the intake script for a simple W-2 filer."""
    return list(INTAKE_ANSWERS)
