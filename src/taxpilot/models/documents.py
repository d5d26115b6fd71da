"""Document checklist models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class DocumentCategory(str, Enum):
    """Groupings used when presenting a checklist."""

    IDENTIFICATION = "identification"
    INCOME = "income"
    DEDUCTIONS = "deductions"
    INVESTMENTS = "investments"
    PROPERTY = "property"
    BUSINESS = "business"
    INTERNATIONAL = "international"
    OTHER = "other"


class DocumentItem(BaseModel):
    """A single document the client should bring."""

    id: str = Field(description="Stable key, e.g. 'w2' or '1099_nec_uber'")
    name: str = Field(description="Display name, e.g. 'Form W-2'")
    description: str
    category: DocumentCategory
    required: bool = Field(default=True)
    collected: bool = Field(default=False)
    tip: str | None = Field(default=None, description="Where to find the document")
    source: str | None = Field(default=None, description="Issuer, e.g. employer or platform")


class DocumentChecklist(BaseModel):
    """Personalized list of documents for one client."""

    client_id: str
    documents: list[DocumentItem] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.now)
    last_updated: datetime = Field(default_factory=datetime.now)

    @property
    def pending(self) -> list[DocumentItem]:
        return [d for d in self.documents if d.required and not d.collected]

    @property
    def collected(self) -> list[DocumentItem]:
        return [d for d in self.documents if d.collected]

    def get(self, document_id: str) -> DocumentItem | None:
        for doc in self.documents:
            if doc.id == document_id:
                return doc
        return None
