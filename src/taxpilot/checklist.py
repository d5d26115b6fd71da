"""Personalized document checklists built from a client's intake answers."""

import logging
import re
from datetime import datetime

from pydantic import BaseModel

from taxpilot.intake import GIG_PLATFORMS
from taxpilot.models.client import ClientProfile, DeductionType, IncomeType, SpecialSituation
from taxpilot.models.documents import DocumentCategory, DocumentChecklist, DocumentItem
from taxpilot.storage.store import TaxPilotStore

logger = logging.getLogger(__name__)

Category = DocumentCategory

# id -> (name, description, category, tip, required)
DOCUMENT_CATALOG: dict[str, tuple[str, str, DocumentCategory, str | None, bool]] = {
    "photo_id": (
        "Photo ID", "Driver's license, state ID or passport", Category.IDENTIFICATION, None, True,
    ),
    "ssn_cards": (
        "Social Security cards", "Cards or ITIN letters for you and your spouse",
        Category.IDENTIFICATION, None, True,
    ),
    "dependent_ssn": (
        "Dependent Social Security numbers", "SSNs and birth dates for each dependent",
        Category.IDENTIFICATION, None, True,
    ),
    "prior_year_return": (
        "Last year's tax return", "Federal and state returns from the prior year",
        Category.OTHER, "Download a transcript from IRS.gov if you can't find a copy", True,
    ),
    "w2": (
        "Form W-2", "Wage and tax statement", Category.INCOME,
        "Employers must send W-2s by January 31", True,
    ),
    "1099_nec": (
        "Form 1099-NEC", "Nonemployee compensation from clients", Category.INCOME,
        "Clients who paid you $600 or more send these by January 31", True,
    ),
    "business_income_records": (
        "Business income and expense records", "Invoices, receipts and bank statements",
        Category.BUSINESS, None, True,
    ),
    "1099_b": (
        "Form 1099-B", "Proceeds from stock and fund sales", Category.INVESTMENTS,
        "Brokerages usually issue consolidated 1099s by mid-February", True,
    ),
    "1099_div": ("Form 1099-DIV", "Dividends and distributions", Category.INVESTMENTS, None, True),
    "1099_int": ("Form 1099-INT", "Interest income", Category.INVESTMENTS, None, True),
    "rental_income_records": (
        "Rental income and expense records", "Rent received, repairs, insurance and management fees",
        Category.PROPERTY, None, True,
    ),
    "1099_r": (
        "Form 1099-R", "Pension, annuity, IRA and 401(k) distributions", Category.INCOME, None, True,
    ),
    "ssa_1099": (
        "Form SSA-1099", "Social Security benefit statement", Category.INCOME,
        "Available from your my Social Security account", True,
    ),
    "1099_g": (
        "Form 1099-G", "Unemployment compensation", Category.INCOME,
        "Your state unemployment office posts this online", True,
    ),
    "other_income": (
        "Other income records", "Alimony, gambling winnings, prizes or royalties",
        Category.INCOME, None, False,
    ),
    "1098": (
        "Form 1098", "Mortgage interest statement", Category.DEDUCTIONS,
        "Your lender sends this by January 31", True,
    ),
    "charitable_receipts": (
        "Charitable donation receipts", "Acknowledgment letters for gifts of $250 or more",
        Category.DEDUCTIONS, None, True,
    ),
    "medical_receipts": (
        "Medical expense records", "Out-of-pocket medical, dental and vision costs",
        Category.DEDUCTIONS, None, True,
    ),
    "1098_e": ("Form 1098-E", "Student loan interest", Category.DEDUCTIONS, None, True),
    "1098_t": (
        "Form 1098-T", "Tuition statement from the school", Category.DEDUCTIONS,
        "Usually in the school's student portal", True,
    ),
    "retirement_contributions": (
        "Retirement contribution statements", "IRA or solo 401(k) contributions you made",
        Category.DEDUCTIONS, None, False,
    ),
    "5498_sa": ("Form 5498-SA", "HSA contributions", Category.DEDUCTIONS, None, True),
    "1099_sa": ("Form 1099-SA", "HSA distributions", Category.DEDUCTIONS, None, True),
    "home_office_records": (
        "Home office details", "Square footage of the office and the home, plus utility bills",
        Category.BUSINESS, None, True,
    ),
    "business_expense_records": (
        "Business expense records", "Mileage log, equipment and supply receipts",
        Category.BUSINESS, None, True,
    ),
    "childcare_provider_info": (
        "Childcare provider information", "Provider name, address, tax ID and amount paid",
        Category.DEDUCTIONS, None, True,
    ),
    "property_tax_statement": (
        "Property tax statement", "Real estate and personal property taxes paid",
        Category.DEDUCTIONS, None, True,
    ),
    "crypto_transactions": (
        "Cryptocurrency transaction history", "Gains and losses export or Form 1099-DA from each exchange",
        Category.INVESTMENTS, "Most exchanges offer a tax report download", True,
    ),
    "foreign_account_statements": (
        "Foreign account statements", "Highest balance of each foreign account during the year",
        Category.INTERNATIONAL, None, True,
    ),
    "business_financials": (
        "Business financial statements", "Profit and loss statement and balance sheet",
        Category.BUSINESS, None, True,
    ),
    "irs_correspondence": (
        "IRS correspondence", "Audit letters and notices from prior years", Category.OTHER, None, True,
    ),
    "k1_forms": (
        "Schedule K-1", "Income from estates, trusts or partnerships", Category.INCOME,
        "K-1s often arrive in March or later", True,
    ),
}

ALWAYS_REQUIRED = ["photo_id", "ssn_cards", "prior_year_return"]

INCOME_DOCUMENTS: dict[IncomeType, list[str]] = {
    IncomeType.W2: ["w2"],
    IncomeType.SELF_EMPLOYMENT: ["1099_nec", "business_income_records"],
    IncomeType.GIG_ECONOMY: ["business_expense_records"],
    IncomeType.INVESTMENTS: ["1099_b", "1099_div", "1099_int"],
    IncomeType.RENTAL: ["rental_income_records"],
    IncomeType.RETIREMENT: ["1099_r"],
    IncomeType.SOCIAL_SECURITY: ["ssa_1099"],
    IncomeType.UNEMPLOYMENT: ["1099_g"],
    IncomeType.OTHER: ["other_income"],
}

DEDUCTION_DOCUMENTS: dict[DeductionType, list[str]] = {
    DeductionType.MORTGAGE_INTEREST: ["1098"],
    DeductionType.CHARITABLE: ["charitable_receipts"],
    DeductionType.MEDICAL: ["medical_receipts"],
    DeductionType.STUDENT_LOAN: ["1098_e"],
    DeductionType.EDUCATION: ["1098_t"],
    DeductionType.RETIREMENT_CONTRIBUTIONS: ["retirement_contributions"],
    DeductionType.HSA: ["5498_sa", "1099_sa"],
    DeductionType.HOME_OFFICE: ["home_office_records"],
    DeductionType.BUSINESS_EXPENSES: ["business_expense_records"],
    DeductionType.CHILDCARE: ["childcare_provider_info"],
    DeductionType.STATE_LOCAL_TAXES: ["property_tax_statement"],
}

SITUATION_DOCUMENTS: dict[SpecialSituation, list[str]] = {
    SpecialSituation.CRYPTO: ["crypto_transactions"],
    SpecialSituation.FOREIGN_ACCOUNTS: ["foreign_account_statements"],
    SpecialSituation.RENTAL_PROPERTY: ["rental_income_records"],
    SpecialSituation.SELF_EMPLOYMENT: ["1099_nec", "business_income_records"],
    SpecialSituation.SMALL_BUSINESS: ["business_financials"],
    SpecialSituation.INVESTMENT_SALES: ["1099_b"],
    SpecialSituation.AUDIT_HISTORY: ["irs_correspondence"],
    SpecialSituation.ESTATE_OR_TRUST: ["k1_forms"],
}

GIG_PLATFORM_NAMES = set(GIG_PLATFORMS.values())


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.lower()).strip("_")


def catalog_item(document_id: str, **overrides) -> DocumentItem:
    """Build a checklist item from the catalog entry for ``document_id``."""
    name, description, category, tip, required = DOCUMENT_CATALOG[document_id]
    fields = {
        "id": document_id,
        "name": name,
        "description": description,
        "category": category,
        "tip": tip,
        "required": required,
    }
    fields.update(overrides)
    return DocumentItem(**fields)


def get_gig_economy_documents(employers: list[str]) -> list[DocumentItem]:
    """One 1099 per gig platform the client works through."""
    return [
        DocumentItem(
            id=f"1099_nec_{_slug(platform)}",
            name="Form 1099-NEC",
            description=f"Earnings from {platform} (may arrive as a 1099-K instead)",
            category=Category.INCOME,
            tip=f"Download it from the tax section of the {platform} app or website",
            source=platform,
        )
        for platform in employers
        if platform in GIG_PLATFORM_NAMES
    ]


def build_document_list(client: ClientProfile) -> list[DocumentItem]:
    """
    Work out every document a client needs from their intake answers.

    Each W-2 employer and each gig platform gets its own item so reminders
    can name where the form comes from.
    """
    items: list[DocumentItem] = [catalog_item(doc_id) for doc_id in ALWAYS_REQUIRED]
    if client.dependents > 0:
        items.append(catalog_item("dependent_ssn"))

    income_types = set(client.income_types)
    w2_employers = [e for e in client.employers if e not in GIG_PLATFORM_NAMES]
    if IncomeType.W2 in income_types and w2_employers:
        items.extend(
            catalog_item("w2", id=f"w2_{_slug(employer)}", source=employer)
            for employer in w2_employers
        )
        income_types.discard(IncomeType.W2)

    gig_items = get_gig_economy_documents(client.employers)
    items.extend(gig_items)

    for income_type in IncomeType:
        if income_type in income_types:
            items.extend(catalog_item(doc_id) for doc_id in INCOME_DOCUMENTS[income_type])
    for deduction in DeductionType:
        if deduction in client.deductions:
            items.extend(catalog_item(doc_id) for doc_id in DEDUCTION_DOCUMENTS.get(deduction, []))
    for situation in SpecialSituation:
        if situation in client.special_situations:
            items.extend(catalog_item(doc_id) for doc_id in SITUATION_DOCUMENTS[situation])

    unique: dict[str, DocumentItem] = {}
    for item in items:
        unique.setdefault(item.id, item)
    return list(unique.values())


class DocumentUpdate(BaseModel):
    success: bool
    message: str
    document: DocumentItem | None = None


class ChecklistService:
    """Generates checklists and tracks which documents have come in."""

    def __init__(self, store: TaxPilotStore):
        self.store = store

    def generate_document_checklist(self, client_id: str) -> DocumentChecklist | None:
        """
        Build and save the client's checklist.

        Documents already marked collected stay collected when the checklist
        is regenerated.

        Returns:
            The checklist, or None if the client does not exist
        """
        client = self.store.get_client(client_id)
        if client is None:
            return None

        previous = self.store.get_checklist(client_id)
        already_collected = set(client.documents_collected)
        if previous:
            already_collected.update(d.id for d in previous.collected)

        documents = build_document_list(client)
        for doc in documents:
            doc.collected = doc.id in already_collected

        checklist = DocumentChecklist(client_id=client_id, documents=documents)
        if previous:
            checklist.generated_at = previous.generated_at
        self.store.save_checklist(checklist)
        self._sync_client(checklist)
        logger.info(f"Generated checklist of {len(documents)} documents for client {client_id}")
        return checklist

    def get_document_checklist(self, client_id: str) -> DocumentChecklist | None:
        return self.store.get_checklist(client_id)

    def mark_document_collected(self, client_id: str, document_id: str) -> DocumentUpdate:
        checklist = self.store.get_checklist(client_id)
        if checklist is None:
            return DocumentUpdate(success=False, message=f"No checklist for client: {client_id}")

        doc = checklist.get(document_id)
        if doc is None:
            return DocumentUpdate(success=False, message=f"Document not on checklist: {document_id}")

        doc.collected = True
        checklist.last_updated = datetime.now()
        self.store.save_checklist(checklist)
        self._sync_client(checklist)
        return DocumentUpdate(success=True, message=f"Marked {doc.name} as collected.", document=doc)

    def get_pending_documents(self, client_id: str) -> list[DocumentItem]:
        """Required documents not yet collected (empty without a checklist)."""
        checklist = self.store.get_checklist(client_id)
        return checklist.pending if checklist else []

    def _sync_client(self, checklist: DocumentChecklist) -> None:
        self.store.update_client(
            checklist.client_id,
            documents_pending=[d.id for d in checklist.pending],
            documents_collected=[d.id for d in checklist.collected],
        )
