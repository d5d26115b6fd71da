"""Tax professional roster loading."""

import csv
import logging
from pathlib import Path

from pydantic import ValidationError

from taxpilot.errors import RosterError
from taxpilot.models.taxpro import ComplexityLevel, Specialization, TaxProfessional

logger = logging.getLogger(__name__)

ROSTER_FILENAME = "taxpros.csv"

REQUIRED_COLUMNS = {
    "tax_pro_id",
    "first_name",
    "last_name",
    "specializations",
    "complexity_level_max",
    "is_active",
}

# Roster wording -> Specialization
SPECIALIZATION_NAMES = {
    "individual returns": Specialization.INDIVIDUAL,
    "self-employment": Specialization.SELF_EMPLOYMENT,
    "small business": Specialization.SMALL_BUSINESS,
    "investments": Specialization.INVESTMENTS,
    "real estate": Specialization.REAL_ESTATE,
    "cryptocurrency": Specialization.CRYPTO,
    "foreign income": Specialization.FOREIGN_INCOME,
    "estate planning": Specialization.ESTATE_PLANNING,
    "audit representation": Specialization.AUDIT_REPRESENTATION,
}

DEFAULT_TAX_PROS = [
    TaxProfessional(
        id="tp-001",
        name="Sarah Johnson",
        email="sarah.johnson@taxfirm.com",
        specializations=[Specialization.INDIVIDUAL, Specialization.SELF_EMPLOYMENT],
        max_complexity=ComplexityLevel.MODERATE,
        current_load=3,
        max_daily_appointments=8,
        rating=4.8,
    ),
    TaxProfessional(
        id="tp-002",
        name="Michael Chen",
        email="michael.chen@taxfirm.com",
        specializations=[
            Specialization.INVESTMENTS,
            Specialization.CRYPTO,
            Specialization.FOREIGN_INCOME,
        ],
        max_complexity=ComplexityLevel.EXPERT,
        current_load=5,
        max_daily_appointments=6,
        rating=4.9,
    ),
    TaxProfessional(
        id="tp-003",
        name="Emily Rodriguez",
        email="emily.rodriguez@taxfirm.com",
        specializations=[
            Specialization.SMALL_BUSINESS,
            Specialization.SELF_EMPLOYMENT,
            Specialization.REAL_ESTATE,
        ],
        max_complexity=ComplexityLevel.COMPLEX,
        current_load=4,
        max_daily_appointments=7,
        rating=4.7,
    ),
    TaxProfessional(
        id="tp-004",
        name="James Wilson",
        email="james.wilson@taxfirm.com",
        specializations=[Specialization.INDIVIDUAL],
        max_complexity=ComplexityLevel.SIMPLE,
        current_load=6,
        max_daily_appointments=12,
        rating=4.5,
    ),
    TaxProfessional(
        id="tp-005",
        name="Dr. Patricia Martinez",
        email="patricia.martinez@taxfirm.com",
        specializations=[
            Specialization.ESTATE_PLANNING,
            Specialization.FOREIGN_INCOME,
            Specialization.AUDIT_REPRESENTATION,
        ],
        max_complexity=ComplexityLevel.EXPERT,
        current_load=2,
        max_daily_appointments=4,
        rating=5.0,
    ),
]


def map_specializations(raw: str) -> list[Specialization]:
    """
    Map a comma-separated roster specialization list to Specialization values.

    Exact names are tried first, then partial matches in either direction.
    Professionals with no recognizable specialization default to individual.
    """
    mapped: list[Specialization] = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name:
            continue
        spec = SPECIALIZATION_NAMES.get(name)
        if spec is None:
            spec = next(
                (value for key, value in SPECIALIZATION_NAMES.items() if name in key or key in name),
                None,
            )
        if spec is not None and spec not in mapped:
            mapped.append(spec)

    return mapped or [Specialization.INDIVIDUAL]


def max_complexity_for(level_max: int) -> ComplexityLevel:
    """Highest tier a professional handles, from the roster's 0-100 upper bound."""
    if level_max >= 81:
        return ComplexityLevel.EXPERT
    if level_max >= 51:
        return ComplexityLevel.COMPLEX
    if level_max >= 21:
        return ComplexityLevel.MODERATE
    return ComplexityLevel.SIMPLE


def _to_int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _to_float(value: str | None, default: float) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_roster(csv_path: Path) -> list[TaxProfessional]:
    """
    Parse a roster CSV into active tax professionals.

    Args:
        csv_path: Path to a CSV with the standard roster columns

    Returns:
        Active professionals in file order, each starting with no load

    Raises:
        RosterError: If required columns are missing or a row is invalid
    """
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        columns = {c.strip() for c in reader.fieldnames or []}
        missing = REQUIRED_COLUMNS - columns
        if missing:
            raise RosterError(f"Roster {csv_path} is missing columns: {sorted(missing)}")

        taxpros: list[TaxProfessional] = []
        for line_no, row in enumerate(reader, start=2):
            row = {k.strip(): (v or "").strip() for k, v in row.items() if k}
            if row.get("is_active", "").upper() != "TRUE":
                continue
            try:
                taxpros.append(TaxProfessional(
                    id=row["tax_pro_id"],
                    name=f"{row['first_name']} {row['last_name']}".strip(),
                    email=row.get("email") or None,
                    specializations=map_specializations(row["specializations"]),
                    max_complexity=max_complexity_for(_to_int(row["complexity_level_max"], 100)),
                    current_load=0,
                    max_daily_appointments=_to_int(row.get("appointments_per_day"), 8),
                    available=True,
                    rating=_to_float(row.get("rating"), 4.5),
                ))
            except ValidationError as e:
                raise RosterError(f"Invalid roster row {line_no} in {csv_path}: {e}") from e

    return taxpros


def find_roster_file(csv_path: Path | None = None) -> Path | None:
    """Locate a roster file, trying an explicit path then the working directory."""
    candidates = [
        csv_path,
        Path.cwd() / ROSTER_FILENAME,
        Path.cwd() / "data" / ROSTER_FILENAME,
    ]
    for candidate in candidates:
        if candidate is not None and candidate.is_file():
            return candidate
    return None


def load_roster(csv_path: Path | None = None) -> list[TaxProfessional]:
    """
    Load the tax professional pool.

    Args:
        csv_path: Optional roster CSV. Falls back to the built-in roster when
            no file can be found.

    Returns:
        List of tax professionals
    """
    path = find_roster_file(csv_path)
    if path is None:
        if csv_path is not None:
            logger.warning(f"Roster file not found at {csv_path}, using built-in roster")
        return [tp.model_copy(deep=True) for tp in DEFAULT_TAX_PROS]

    taxpros = parse_roster(path)
    logger.info(f"Loaded {len(taxpros)} active tax professionals from {path}")
    return taxpros
