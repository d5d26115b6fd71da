"""Exceptions raised by TaxPilot services.

Expected outcomes such as "not ready yet" or "no matching professional" are
reported through result models. These exceptions cover lookups at the service
layer and genuinely unexpected faults.
"""


class TaxPilotError(Exception):
    """Base class for TaxPilot errors."""


class NotFoundError(TaxPilotError, LookupError):
    """Raised when a referenced record does not exist."""

    kind = "record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.kind.capitalize()} not found: {record_id}")


class ClientNotFoundError(NotFoundError):
    kind = "client"


class SessionNotFoundError(NotFoundError):
    kind = "intake session"


class TaxProNotFoundError(NotFoundError):
    kind = "tax professional"


class AppointmentNotFoundError(NotFoundError):
    kind = "appointment"


class ReminderNotFoundError(NotFoundError):
    kind = "reminder"


class TaxProUnavailableError(TaxPilotError):
    """Raised when a tax professional has no capacity left for a booking."""


class FlowStateError(TaxPilotError):
    """Raised when a stored flow state breaks the stage-order invariant."""


class RosterError(TaxPilotError):
    """Raised when a tax professional roster file cannot be parsed."""
