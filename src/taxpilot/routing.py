"""Complexity scoring and tax professional routing.

The scoring and matching functions are pure: they look only at a client
snapshot and a list of professionals. ``RoutingService`` is the one place
that turns a match into an assignment by reserving capacity in the store.
"""

import logging
import threading
from datetime import datetime

from pydantic import BaseModel, Field

from taxpilot.errors import ClientNotFoundError, TaxProNotFoundError, TaxProUnavailableError
from taxpilot.models.appointment import Appointment, AppointmentType
from taxpilot.models.client import (
    ClientProfile,
    DeductionType,
    FilingStatus,
    IncomeType,
    SpecialSituation,
)
from taxpilot.models.taxpro import ComplexityLevel, Specialization, TaxProfessional
from taxpilot.storage.store import TaxPilotStore
from taxpilot.utils import humanize, new_id

logger = logging.getLogger(__name__)


# Score contributions. All weights are non-negative so adding a tag can never
# lower a score.
FILING_STATUS_WEIGHTS = {
    FilingStatus.SINGLE: 0,
    FilingStatus.MARRIED_FILING_JOINTLY: 3,
    FilingStatus.MARRIED_FILING_SEPARATELY: 6,
    FilingStatus.HEAD_OF_HOUSEHOLD: 4,
    FilingStatus.QUALIFYING_SURVIVING_SPOUSE: 4,
}

DEPENDENT_WEIGHT = 2
MAX_DEPENDENT_POINTS = 10

INCOME_TYPE_WEIGHTS = {
    IncomeType.W2: 0,
    IncomeType.SELF_EMPLOYMENT: 10,
    IncomeType.GIG_ECONOMY: 8,
    IncomeType.INVESTMENTS: 8,
    IncomeType.RENTAL: 10,
    IncomeType.RETIREMENT: 5,
    IncomeType.SOCIAL_SECURITY: 3,
    IncomeType.UNEMPLOYMENT: 3,
    IncomeType.OTHER: 5,
}

MULTIPLE_INCOME_THRESHOLD = 3
MULTIPLE_INCOME_BONUS = 5

DEDUCTION_WEIGHTS = {
    DeductionType.STANDARD: 0,
    DeductionType.MORTGAGE_INTEREST: 5,
    DeductionType.CHARITABLE: 3,
    DeductionType.MEDICAL: 5,
    DeductionType.STUDENT_LOAN: 2,
    DeductionType.EDUCATION: 3,
    DeductionType.RETIREMENT_CONTRIBUTIONS: 2,
    DeductionType.HSA: 3,
    DeductionType.HOME_OFFICE: 6,
    DeductionType.BUSINESS_EXPENSES: 8,
    DeductionType.CHILDCARE: 3,
    DeductionType.STATE_LOCAL_TAXES: 2,
}

# Any one of the specialist situations on its own lands in the complex tier.
SPECIAL_SITUATION_WEIGHTS = {
    SpecialSituation.CRYPTO: 55,
    SpecialSituation.FOREIGN_ACCOUNTS: 60,
    SpecialSituation.AUDIT_HISTORY: 55,
    SpecialSituation.ESTATE_OR_TRUST: 55,
    SpecialSituation.SMALL_BUSINESS: 35,
    SpecialSituation.SELF_EMPLOYMENT: 30,
    SpecialSituation.RENTAL_PROPERTY: 30,
    SpecialSituation.INVESTMENT_SALES: 20,
}

MAX_SCORE = 100

# Upper bound (inclusive) of each tier
COMPLEXITY_THRESHOLDS = [
    (20, ComplexityLevel.SIMPLE),
    (50, ComplexityLevel.MODERATE),
    (80, ComplexityLevel.COMPLEX),
    (MAX_SCORE, ComplexityLevel.EXPERT),
]

SITUATION_SPECIALIZATIONS = {
    SpecialSituation.CRYPTO: Specialization.CRYPTO,
    SpecialSituation.FOREIGN_ACCOUNTS: Specialization.FOREIGN_INCOME,
    SpecialSituation.RENTAL_PROPERTY: Specialization.REAL_ESTATE,
    SpecialSituation.SELF_EMPLOYMENT: Specialization.SELF_EMPLOYMENT,
    SpecialSituation.SMALL_BUSINESS: Specialization.SMALL_BUSINESS,
    SpecialSituation.INVESTMENT_SALES: Specialization.INVESTMENTS,
    SpecialSituation.AUDIT_HISTORY: Specialization.AUDIT_REPRESENTATION,
    SpecialSituation.ESTATE_OR_TRUST: Specialization.ESTATE_PLANNING,
}

COMPLEXITY_INTERPRETATIONS = {
    ComplexityLevel.SIMPLE: (
        "Standard return with W-2 income and basic deductions. Quick appointment expected."
    ),
    ComplexityLevel.MODERATE: (
        "Multiple income sources or itemized deductions. May require additional documentation."
    ),
    ComplexityLevel.COMPLEX: (
        "Business income, rental properties, or investments. "
        "Requires experienced tax professional."
    ),
    ComplexityLevel.EXPERT: (
        "Advanced situations like foreign accounts, crypto, or audit representation. "
        "Requires specialist."
    ),
}

# Appointment minutes per tier, and minutes saved when intake was finished beforehand
BASE_DURATIONS = {
    ComplexityLevel.SIMPLE: 30,
    ComplexityLevel.MODERATE: 45,
    ComplexityLevel.COMPLEX: 60,
    ComplexityLevel.EXPERT: 90,
}

INTAKE_TIME_SAVINGS = {
    ComplexityLevel.SIMPLE: 10,
    ComplexityLevel.MODERATE: 15,
    ComplexityLevel.COMPLEX: 20,
    ComplexityLevel.EXPERT: 30,
}


class ComplexityAssessment(BaseModel):
    """Score, tier and specialist needs for one client."""

    client_id: str
    score: int
    level: ComplexityLevel
    interpretation: str
    required_specializations: list[Specialization] = Field(default_factory=list)


class RoutingMatch(BaseModel):
    """Outcome of matching a client against the pool, without side effects."""

    tax_pro: TaxProfessional | None = None
    reason: str
    alternates: list[TaxProfessional] = Field(default_factory=list)


class RoutingResult(BaseModel):
    """Outcome of routing a client, after capacity was reserved."""

    success: bool
    message: str
    tax_pro: TaxProfessional | None = None
    alternates: list[TaxProfessional] = Field(default_factory=list)


class AppointmentEstimate(BaseModel):
    """Expected appointment length for a client."""

    estimated_duration: int
    savings: int
    complexity_level: ComplexityLevel
    message: str


def calculate_complexity_score(client: ClientProfile) -> int:
    """
    Score how involved a client's return is, from 0 to 100.

    Args:
        client: Client profile snapshot

    Returns:
        Integer score; higher means more involved
    """
    score = FILING_STATUS_WEIGHTS.get(client.filing_status, 0)
    score += min(client.dependents * DEPENDENT_WEIGHT, MAX_DEPENDENT_POINTS)

    income_types = set(client.income_types)
    score += sum(INCOME_TYPE_WEIGHTS.get(t, 0) for t in income_types)
    if len(income_types) >= MULTIPLE_INCOME_THRESHOLD:
        score += MULTIPLE_INCOME_BONUS

    score += sum(DEDUCTION_WEIGHTS.get(d, 0) for d in set(client.deductions))
    score += sum(SPECIAL_SITUATION_WEIGHTS.get(s, 0) for s in set(client.special_situations))

    return max(0, min(score, MAX_SCORE))


def get_complexity_level(score: int) -> ComplexityLevel:
    """Map a complexity score to its tier."""
    for upper, level in COMPLEXITY_THRESHOLDS:
        if score <= upper:
            return level
    return ComplexityLevel.EXPERT


def get_required_specializations(client: ClientProfile) -> list[Specialization]:
    """
    Specializations a professional must cover to take this client.

    Clients with no special situations only need an individual-returns
    professional.
    """
    required: list[Specialization] = []
    for situation in client.special_situations:
        spec = SITUATION_SPECIALIZATIONS.get(situation)
        if spec is not None and spec not in required:
            required.append(spec)
    return sorted(required, key=lambda s: list(Specialization).index(s)) or [
        Specialization.INDIVIDUAL
    ]


def _describe(level: ComplexityLevel, required: list[Specialization]) -> str:
    specs = " and ".join(humanize(s) for s in required)
    return f"{humanize(level)}-level {specs}"


def qualifies(
    taxpro: TaxProfessional,
    level: ComplexityLevel,
    required: list[Specialization],
    check_capacity: bool = True,
) -> bool:
    """Whether ``taxpro`` may take a client of this tier and specialist needs."""
    if not taxpro.can_handle(level) or not taxpro.covers(set(required)):
        return False
    return taxpro.has_capacity if check_capacity else True


def rank_tax_pros(
    client: ClientProfile, tax_pros: list[TaxProfessional]
) -> list[TaxProfessional]:
    """
    Qualified professionals for ``client``, best first.

    Ordered by rating (highest first), then current load (lightest first),
    then ID so that identical inputs always give identical output.
    """
    level = get_complexity_level(calculate_complexity_score(client))
    required = get_required_specializations(client)
    candidates = [tp for tp in tax_pros if qualifies(tp, level, required)]
    return sorted(candidates, key=lambda tp: (-tp.rating, tp.current_load, tp.id))


def find_best_tax_pro(
    client: ClientProfile,
    tax_pros: list[TaxProfessional],
    max_alternates: int = 2,
) -> RoutingMatch:
    """
    Pick the best professional for a client without reserving anything.

    Args:
        client: Client profile snapshot
        tax_pros: Current professional pool
        max_alternates: How many runners-up to include

    Returns:
        RoutingMatch with the top candidate, alternates and a reason
    """
    level = get_complexity_level(calculate_complexity_score(client))
    required = get_required_specializations(client)
    ranked = rank_tax_pros(client, tax_pros)

    if not ranked:
        return RoutingMatch(
            tax_pro=None,
            reason=f"No available professional handles {_describe(level, required)} cases",
            alternates=[],
        )

    best = ranked[0]
    return RoutingMatch(
        tax_pro=best,
        reason=(
            f"{best.name} handles {_describe(level, required)} returns "
            f"(rating {best.rating:.1f}, {best.remaining_slots} slots open today)"
        ),
        alternates=ranked[1:1 + max_alternates],
    )


def estimate_appointment_duration(
    level: ComplexityLevel, intake_completed: bool
) -> tuple[int, int]:
    """
    Appointment length for a tier.

    Returns:
        Tuple of (duration_minutes, minutes_saved_by_completed_intake)
    """
    level = ComplexityLevel(level)
    savings = INTAKE_TIME_SAVINGS[level] if intake_completed else 0
    return BASE_DURATIONS[level] - savings, savings


class RoutingService:
    """Routes clients to tax professionals and books appointments.

    Routing and booking for one client run under that client's lock, so the
    read of the current assignment and the slot reservation that follows it
    cannot interleave with another call for the same client.
    """

    def __init__(self, store: TaxPilotStore, max_alternates: int = 2):
        """
        Initialize the routing service.

        Args:
            store: Store holding clients, the professional pool and appointments
            max_alternates: Runners-up offered alongside each match
        """
        self.store = store
        self.max_alternates = max_alternates
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, client_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(client_id)
            if lock is None:
                lock = self._locks[client_id] = threading.RLock()
            return lock

    def held_reservation(self, client: ClientProfile) -> str | None:
        """
        Professional holding a routing slot the client has not booked yet.

        Routing reserves a slot with the assigned professional. That slot is
        still unused until an appointment with the same professional exists.
        """
        if client.assigned_tax_pro is None:
            return None
        if client.appointment_id is None:
            return client.assigned_tax_pro
        appointment = self.store.get_appointment(client.appointment_id)
        if appointment is None or appointment.tax_pro_id != client.assigned_tax_pro:
            return client.assigned_tax_pro
        return None

    def assess_complexity(self, client_id: str) -> ComplexityAssessment | None:
        """Score a stored client, or None if the client does not exist."""
        client = self.store.get_client(client_id)
        if client is None:
            return None
        score = calculate_complexity_score(client)
        level = get_complexity_level(score)
        return ComplexityAssessment(
            client_id=client.id,
            score=score,
            level=level,
            interpretation=COMPLEXITY_INTERPRETATIONS[level],
            required_specializations=get_required_specializations(client),
        )

    def find_match(self, client_id: str) -> RoutingMatch | None:
        client = self.store.get_client(client_id)
        if client is None:
            return None
        return find_best_tax_pro(client, self.store.list_taxpros(), self.max_alternates)

    def route_client_to_tax_pro(self, client_id: str) -> RoutingResult:
        """
        Assign a client to the best professional with capacity.

        Candidates are tried in rank order; each try is an atomic
        reservation, so a professional filled by a concurrent call is skipped
        rather than overbooked. A client who already holds a reservation with
        a professional who still qualifies keeps it.

        Returns:
            RoutingResult describing the assignment or why none was possible
        """
        if self.store.get_client(client_id) is None:
            return RoutingResult(success=False, message=f"Client not found: {client_id}")

        with self._lock_for(client_id):
            client = self.store.get_client(client_id)
            level = get_complexity_level(calculate_complexity_score(client))
            required = get_required_specializations(client)

            if client.assigned_tax_pro:
                current = self.store.get_taxpro(client.assigned_tax_pro)
                if current is not None and qualifies(current, level, required, check_capacity=False):
                    return RoutingResult(
                        success=True,
                        tax_pro=current,
                        message=f"Already matched with {current.name}.",
                        alternates=self._alternates(client, exclude=current.id),
                    )
                unused = self.held_reservation(client)
                if unused is not None:
                    self.store.release_taxpro_slot(unused)
                client = self.store.update_client(client.id, assigned_tax_pro=None)

            for candidate in rank_tax_pros(client, self.store.list_taxpros()):
                reserved = self.store.reserve_taxpro_slot(candidate.id)
                if reserved is None:
                    logger.debug(f"{candidate.id} filled up before {client_id} could be routed")
                    continue

                self.store.update_client(client.id, assigned_tax_pro=reserved.id)
                logger.info(f"Routed client {client_id} to {reserved.id} ({humanize(level)})")
                return RoutingResult(
                    success=True,
                    tax_pro=reserved,
                    message=(
                        f"Matched with {reserved.name}. {reserved.name} handles "
                        f"{_describe(level, required)} returns."
                    ),
                    alternates=self._alternates(client, exclude=reserved.id),
                )

        reason = f"No available professional handles {_describe(level, required)} cases"
        logger.warning(f"Routing failed for client {client_id}: {reason}")
        return RoutingResult(success=False, message=reason)

    def _alternates(self, client: ClientProfile, exclude: str) -> list[TaxProfessional]:
        ranked = rank_tax_pros(client, self.store.list_taxpros())
        return [tp for tp in ranked if tp.id != exclude][: self.max_alternates]

    def get_appointment_estimate(self, client_id: str) -> AppointmentEstimate | None:
        """
        Estimate appointment length for a stored client.

        Returns:
            AppointmentEstimate, or None if the client does not exist
        """
        client = self.store.get_client(client_id)
        if client is None:
            return None

        level = get_complexity_level(calculate_complexity_score(client))
        duration, savings = estimate_appointment_duration(level, client.intake_completed)

        if client.intake_completed:
            message = (
                f"Based on your {humanize(level)} tax situation, your appointment should take "
                f"about {duration} minutes. Completing intake ahead of time saved about "
                f"{savings} minutes."
            )
        else:
            message = (
                f"Based on your {humanize(level)} tax situation, your appointment should take "
                f"about {duration} minutes. Finishing the intake questions first would save "
                f"about {INTAKE_TIME_SAVINGS[level]} minutes."
            )

        return AppointmentEstimate(
            estimated_duration=duration,
            savings=savings,
            complexity_level=level,
            message=message,
        )

    def create_appointment(
        self,
        client_id: str,
        tax_pro_id: str,
        scheduled_at: datetime,
        appointment_type: AppointmentType | str = AppointmentType.VIRTUAL,
    ) -> Appointment:
        """
        Book an appointment.

        An unused routing slot with the same professional is turned into the
        booking; otherwise a new slot is reserved and any unused routing slot
        is released.

        Raises:
            ClientNotFoundError: Unknown client
            TaxProNotFoundError: Unknown professional
            TaxProUnavailableError: Professional has no capacity left
            ValueError: Unknown appointment type
        """
        appointment_type = AppointmentType(appointment_type)
        if self.store.get_client(client_id) is None:
            raise ClientNotFoundError(client_id)
        taxpro = self.store.get_taxpro(tax_pro_id)
        if taxpro is None:
            raise TaxProNotFoundError(tax_pro_id)

        with self._lock_for(client_id):
            client = self.store.get_client(client_id)
            held = self.held_reservation(client)
            if held != tax_pro_id:
                if self.store.reserve_taxpro_slot(tax_pro_id) is None:
                    raise TaxProUnavailableError(f"{taxpro.name} has no appointments left today")
                if held is not None:
                    self.store.release_taxpro_slot(held)

            level = get_complexity_level(calculate_complexity_score(client))
            duration, _ = estimate_appointment_duration(level, client.intake_completed)

            appointment = Appointment(
                id=new_id(),
                client_id=client.id,
                tax_pro_id=tax_pro_id,
                scheduled_at=scheduled_at,
                duration=duration,
                type=appointment_type,
                estimated_complexity=level,
            )
            self.store.create_appointment(appointment)
            self.store.update_client(
                client.id, appointment_id=appointment.id, assigned_tax_pro=tax_pro_id
            )
        logger.info(
            f"Booked {duration}-minute appointment {appointment.id} "
            f"for {client.id} with {tax_pro_id}"
        )
        return appointment

    def get_tax_pro_recommendations(self, client_id: str) -> str:
        """Readable recommendation of the best match and alternates."""
        from taxpilot.reports import format_taxpro_recommendations

        client = self.store.get_client(client_id)
        if client is None:
            return f"Client not found: {client_id}"
        assessment = self.assess_complexity(client_id)
        match = find_best_tax_pro(client, self.store.list_taxpros(), self.max_alternates)
        return format_taxpro_recommendations(assessment, match)
