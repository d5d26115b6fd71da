"""Conversational intake: questions, answer parsing and session progress."""

import logging
import re
from datetime import datetime
from typing import Any, Callable

from pydantic import BaseModel, Field

from taxpilot.models.client import (
    ClientProfile,
    DeductionType,
    EmploymentType,
    FilingStatus,
    IncomeType,
    SpecialSituation,
)
from taxpilot.models.intake import INTAKE_STEPS, IntakeSession, IntakeStep
from taxpilot.storage.store import TaxPilotStore
from taxpilot.utils import humanize, new_id

logger = logging.getLogger(__name__)

QUESTIONS: dict[IntakeStep, str] = {
    IntakeStep.PERSONAL_INFO: (
        "Let's start with the basics. What is your full name, and what email and phone "
        "number should your tax professional use to reach you?"
    ),
    IntakeStep.FILING_STATUS: (
        "What is your filing status? Single, married filing jointly, married filing "
        "separately, head of household, or qualifying surviving spouse?"
    ),
    IntakeStep.DEPENDENTS: (
        "How many dependents will you claim this year? Include children and other "
        "qualifying relatives, or say none."
    ),
    IntakeStep.EMPLOYMENT: (
        "How do you earn a living? Are you employed, self-employed, both, retired, "
        "unemployed, or a student? Please name your employers and any gig platforms "
        "you work through (Uber, DoorDash, Etsy and so on)."
    ),
    IntakeStep.INCOME_TYPES: (
        "What kinds of income did you have? For example W-2 wages, self-employment, gig "
        "work, investments, rental income, retirement distributions, Social Security, "
        "or unemployment."
    ),
    IntakeStep.DEDUCTIONS: (
        "Which deductions or credits might apply? Mortgage interest, charitable "
        "donations, medical expenses, student loan interest, tuition, retirement "
        "contributions, HSA, home office, business expenses, childcare, or state and "
        "local taxes. Say 'standard' if you plan to take the standard deduction."
    ),
    IntakeStep.SPECIAL_SITUATIONS: (
        "Last question: do any of these apply to you? Cryptocurrency, foreign bank "
        "accounts, rental property, self-employment, a small business, selling stocks "
        "or other investments, a past IRS audit, or an estate or trust. Say 'none' if "
        "nothing applies."
    ),
}

GIG_PLATFORMS = {
    "uber": "Uber",
    "lyft": "Lyft",
    "doordash": "DoorDash",
    "door dash": "DoorDash",
    "instacart": "Instacart",
    "grubhub": "Grubhub",
    "etsy": "Etsy",
    "upwork": "Upwork",
    "fiverr": "Fiverr",
    "airbnb": "Airbnb",
    "taskrabbit": "TaskRabbit",
}

FILING_STATUS_KEYWORDS = [
    (FilingStatus.QUALIFYING_SURVIVING_SPOUSE, ("qualifying", "surviving", "widow")),
    (FilingStatus.HEAD_OF_HOUSEHOLD, ("head of household", "head of house", "hoh")),
    (FilingStatus.MARRIED_FILING_SEPARATELY, ("separate", "mfs")),
    (FilingStatus.MARRIED_FILING_JOINTLY, ("joint", "mfj", "married")),
    (FilingStatus.SINGLE, ("single", "unmarried", "divorced")),
]

INCOME_KEYWORDS = {
    IncomeType.W2: ("w-2", "w2", "wage", "salary", "paycheck"),
    IncomeType.SELF_EMPLOYMENT: (
        "self-employ", "self employ", "freelanc", "contract", "1099-nec", "consult",
        "business income",
    ),
    IncomeType.GIG_ECONOMY: ("gig", "rideshare", "delivery", *GIG_PLATFORMS),
    IncomeType.INVESTMENTS: ("invest", "stock", "dividend", "interest", "capital gain", "brokerage"),
    IncomeType.RENTAL: ("rental", "rent", "landlord"),
    IncomeType.RETIREMENT: ("retirement", "pension", "401k", "401(k)", "ira", "annuit"),
    IncomeType.SOCIAL_SECURITY: ("social security", "ssa"),
    IncomeType.UNEMPLOYMENT: ("unemployment",),
    IncomeType.OTHER: ("other", "alimony", "gambling", "prize", "royalt"),
}

DEDUCTION_KEYWORDS = {
    DeductionType.STANDARD: ("standard",),
    DeductionType.MORTGAGE_INTEREST: ("mortgage",),
    DeductionType.CHARITABLE: ("charit", "donat"),
    DeductionType.MEDICAL: ("medical", "doctor", "hospital", "dental"),
    DeductionType.STUDENT_LOAN: ("student loan",),
    DeductionType.EDUCATION: ("tuition", "education", "college", "1098-t"),
    DeductionType.RETIREMENT_CONTRIBUTIONS: ("401", "ira", "retirement contribution"),
    DeductionType.HSA: ("hsa", "health savings"),
    DeductionType.HOME_OFFICE: ("home office",),
    DeductionType.BUSINESS_EXPENSES: ("business expense", "mileage", "equipment", "supplies"),
    DeductionType.CHILDCARE: ("childcare", "child care", "daycare", "day care"),
    DeductionType.STATE_LOCAL_TAXES: ("property tax", "state tax", "local tax", "salt"),
}

SPECIAL_SITUATION_KEYWORDS = {
    SpecialSituation.CRYPTO: ("crypto", "bitcoin", "ethereum", "nft"),
    SpecialSituation.FOREIGN_ACCOUNTS: ("foreign", "overseas", "abroad", "fbar"),
    SpecialSituation.RENTAL_PROPERTY: ("rental", "landlord"),
    SpecialSituation.SELF_EMPLOYMENT: ("self-employ", "self employ", "freelanc"),
    SpecialSituation.SMALL_BUSINESS: (
        "small business", "llc", "s corp", "s-corp", "business owner", "own a business",
        "my business",
    ),
    SpecialSituation.INVESTMENT_SALES: (
        "sold", "selling stock", "stock sale", "capital gain", "investment sale",
    ),
    SpecialSituation.AUDIT_HISTORY: ("audit",),
    SpecialSituation.ESTATE_OR_TRUST: ("estate", "trust", "inherit"),
}

SELF_EMPLOYED_WORDS = ("self-employ", "self employ", "freelanc", "contractor", "own business")
EMPLOYED_WORDS = (
    "w-2", "w2", "employee", "employer", "full-time", "full time", "part-time", "part time",
    "job", "salary", "work at", "work for", "works at", "works for",
)

NUMBER_WORDS = {
    "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

NONE_ANSWER = re.compile(r"^\s*(none|no|nope|nothing|n/?a|not really)\b", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
PHONE_PATTERN = re.compile(r"\+?\d[\d\s().-]{8,}\d")
EMPLOYER_PATTERN = re.compile(r"\b(?:at|for)\s+([A-Z][\w&.'-]*(?:\s+[A-Z][\w&.'-]*)*)")


def _contains(text: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword), text) is not None


def _match_keywords(text: str, table: dict) -> list:
    """Enum members whose keywords appear in ``text``, in enum order."""
    lowered = text.lower()
    return [member for member, keywords in table.items() if any(_contains(lowered, k) for k in keywords)]


def _is_none_answer(text: str) -> bool:
    return NONE_ANSWER.match(text) is not None


def find_gig_platforms(text: str) -> list[str]:
    """Gig platform names mentioned in ``text``, in first-mention order."""
    lowered = text.lower()
    found: list[tuple[int, str]] = []
    for key, name in GIG_PLATFORMS.items():
        position = lowered.find(key)
        if position >= 0 and name not in [n for _, n in found]:
            found.append((position, name))
    return [name for _, name in sorted(found)]


def parse_personal_info(answer: str) -> dict[str, Any]:
    """Pull name, email and phone out of a free-form introduction."""
    email = EMAIL_PATTERN.search(answer)
    phone = PHONE_PATTERN.search(answer)

    remainder = answer
    for match in (email, phone):
        if match:
            remainder = remainder.replace(match.group(0), " ")
    remainder = re.sub(
        r"\b(my name is|i am|i'm|name|email|e-mail|phone|number|is|and|it's)\b",
        " ",
        remainder,
        flags=re.IGNORECASE,
    )
    name = " ".join(re.sub(r"[^\w\s.'-]", " ", remainder).split()).strip(" .")
    if not name:
        raise ValueError("I didn't catch your name.")

    updates: dict[str, Any] = {"name": name}
    if email:
        updates["email"] = email.group(0)
    if phone:
        updates["phone"] = phone.group(0).strip()
    return updates


def parse_filing_status(answer: str) -> dict[str, Any]:
    lowered = answer.lower()
    for status, keywords in FILING_STATUS_KEYWORDS:
        if any(_contains(lowered, k) for k in keywords):
            return {"filing_status": status}
    raise ValueError("I didn't recognize that filing status.")


def parse_dependents(answer: str) -> dict[str, Any]:
    if _is_none_answer(answer):
        return {"dependents": 0}
    digits = re.search(r"\d+", answer)
    if digits:
        return {"dependents": int(digits.group(0))}
    lowered = answer.lower()
    for word, count in NUMBER_WORDS.items():
        if _contains(lowered, word):
            return {"dependents": count}
    raise ValueError("I need the number of dependents, for example 0, 1 or 2.")


def parse_employment(answer: str) -> dict[str, Any]:
    """
    Work out the employment type and name the employers and platforms.

    Gig platforms count as self-employment; a gig platform alongside a W-2
    job is ``both``.
    """
    lowered = answer.lower()
    platforms = find_gig_platforms(answer)
    employers = [m.strip() for m in EMPLOYER_PATTERN.findall(answer)]
    employers = [e for e in employers if e.lower() not in GIG_PLATFORMS]
    named = list(dict.fromkeys(employers + platforms))

    self_employed = bool(platforms) or any(_contains(lowered, k) for k in SELF_EMPLOYED_WORDS)
    employed = (
        any(_contains(lowered, k) for k in EMPLOYED_WORDS)
        or re.search(r"(?<!self-)(?<!self )\bemployed", lowered) is not None
    )

    if "unemploy" in lowered and not (self_employed or employed):
        employment = EmploymentType.UNEMPLOYED
    elif _contains(lowered, "retire") and not (self_employed or employed):
        employment = EmploymentType.RETIRED
    elif _contains(lowered, "both") or (self_employed and employed):
        employment = EmploymentType.BOTH
    elif self_employed:
        employment = EmploymentType.SELF_EMPLOYED
    elif employed:
        employment = EmploymentType.EMPLOYED
    elif _contains(lowered, "student"):
        employment = EmploymentType.STUDENT
    else:
        raise ValueError("I couldn't tell how you earn your income.")

    return {"employment_type": employment, "employers": named}


def _parse_list(field: str, table: dict, default: list | None = None) -> Callable[[str], dict[str, Any]]:
    def parse(answer: str) -> dict[str, Any]:
        found = _match_keywords(answer, table)
        if found:
            return {field: found}
        if _is_none_answer(answer):
            return {field: list(default or [])}
        raise ValueError(f"I didn't recognize any {humanize(field)} in that answer.")

    return parse


PARSERS: dict[IntakeStep, Callable[[str], dict[str, Any]]] = {
    IntakeStep.PERSONAL_INFO: parse_personal_info,
    IntakeStep.FILING_STATUS: parse_filing_status,
    IntakeStep.DEPENDENTS: parse_dependents,
    IntakeStep.EMPLOYMENT: parse_employment,
    IntakeStep.INCOME_TYPES: _parse_list("income_types", INCOME_KEYWORDS),
    IntakeStep.DEDUCTIONS: _parse_list("deductions", DEDUCTION_KEYWORDS, [DeductionType.STANDARD]),
    IntakeStep.SPECIAL_SITUATIONS: _parse_list("special_situations", SPECIAL_SITUATION_KEYWORDS),
}


class IntakeStart(BaseModel):
    session: IntakeSession
    client: ClientProfile
    current_step: IntakeStep
    next_question: str | None = None
    resumed: bool = False


class IntakeResponse(BaseModel):
    """Outcome of one answer."""

    success: bool
    message: str = ""
    current_step: IntakeStep | None = None
    next_question: str | None = None
    step_completed: bool = False
    intake_completed: bool = False
    client: ClientProfile | None = None


class IntakeProgress(BaseModel):
    current_step: IntakeStep
    completed_steps: list[IntakeStep] = Field(default_factory=list)
    total_steps: int
    percent_complete: int
    remaining_steps: list[IntakeStep] = Field(default_factory=list)


class IntakeService:
    """Runs the seven-step intake script against the store."""

    def __init__(self, store: TaxPilotStore):
        self.store = store

    def start_intake_session(self, client_id: str | None = None) -> IntakeStart:
        """
        Start intake for a new or existing client.

        An existing client's latest session is resumed rather than replaced.

        Args:
            client_id: Existing client to resume, or None for a new client

        Returns:
            IntakeStart with the session and the question to ask
        """
        client = self.store.get_client(client_id) if client_id else None
        if client is None:
            client = self.store.create_client(ClientProfile(id=client_id or new_id()))
            logger.info(f"Created client {client.id}")

        session = self.store.get_session_by_client(client.id)
        resumed = session is not None
        if session is None:
            session = self.store.create_session(IntakeSession(id=new_id(), client_id=client.id))
            logger.info(f"Started intake session {session.id} for client {client.id}")

        return IntakeStart(
            session=session,
            client=client,
            current_step=session.current_step,
            next_question=None if session.is_complete else QUESTIONS[session.current_step],
            resumed=resumed,
        )

    def process_intake_response(self, session_id: str, answer: str) -> IntakeResponse:
        """
        Record the answer to the current question and move to the next one.

        Answers that cannot be understood leave the session where it was and
        repeat the question.
        """
        session = self.store.get_session(session_id)
        if session is None:
            return IntakeResponse(success=False, message=f"Intake session not found: {session_id}")
        if session.is_complete:
            return IntakeResponse(
                success=False,
                message="Intake is already complete. Use update_intake_step to change an answer.",
                current_step=session.current_step,
                intake_completed=True,
                client=self.store.get_client(session.client_id),
            )

        step = session.current_step
        try:
            updates = PARSERS[step](answer)
        except ValueError as e:
            return IntakeResponse(
                success=False,
                message=str(e),
                current_step=step,
                next_question=QUESTIONS[step],
            )

        session.responses[step] = answer
        if step not in session.completed_steps:
            session.completed_steps.append(step)

        position = INTAKE_STEPS.index(step)
        finished = position == len(INTAKE_STEPS) - 1
        if finished:
            session.completed_at = datetime.now()
            updates["intake_completed"] = True
        else:
            session.current_step = INTAKE_STEPS[position + 1]

        self.store.save_session(session)
        client = self.store.update_client(session.client_id, **updates)

        if finished:
            logger.info(f"Intake complete for client {session.client_id}")
            return IntakeResponse(
                success=True,
                message="Thanks, that's everything we need for intake.",
                current_step=step,
                step_completed=True,
                intake_completed=True,
                client=client,
            )

        return IntakeResponse(
            success=True,
            current_step=session.current_step,
            next_question=QUESTIONS[session.current_step],
            step_completed=True,
            client=client,
        )

    def update_intake_step(self, session_id: str, step: IntakeStep | str, answer: str) -> IntakeResponse:
        """Re-answer a step that was already completed, e.g. after a summary edit."""
        session = self.store.get_session(session_id)
        if session is None:
            return IntakeResponse(success=False, message=f"Intake session not found: {session_id}")

        step = IntakeStep(step)
        if step not in session.completed_steps:
            return IntakeResponse(
                success=False,
                message=f"Step {humanize(step)} has not been answered yet.",
                current_step=session.current_step,
            )

        try:
            updates = PARSERS[step](answer)
        except ValueError as e:
            return IntakeResponse(success=False, message=str(e), current_step=step)

        session.responses[step] = answer
        self.store.save_session(session)
        client = self.store.update_client(session.client_id, **updates)
        logger.info(f"Updated {step.value} for client {session.client_id}")
        return IntakeResponse(
            success=True,
            message=f"Updated your {humanize(step)}.",
            current_step=session.current_step,
            step_completed=True,
            intake_completed=session.is_complete,
            client=client,
        )

    def get_intake_progress(self, session_id: str) -> IntakeProgress | None:
        session = self.store.get_session(session_id)
        if session is None:
            return None
        total = len(INTAKE_STEPS)
        return IntakeProgress(
            current_step=session.current_step,
            completed_steps=list(session.completed_steps),
            total_steps=total,
            percent_complete=round(len(session.completed_steps) / total * 100),
            remaining_steps=[s for s in INTAKE_STEPS if s not in session.completed_steps],
        )
