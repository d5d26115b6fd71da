"""Storage layer: the store interface, its in-memory implementation and roster loading."""

from taxpilot.storage.roster import DEFAULT_TAX_PROS, load_roster
from taxpilot.storage.store import InMemoryStore, TaxPilotStore

__all__ = [
    "DEFAULT_TAX_PROS",
    "InMemoryStore",
    "TaxPilotStore",
    "load_roster",
]
