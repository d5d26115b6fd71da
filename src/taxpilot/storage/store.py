"""In-memory storage for clients, tax professionals, appointments and flows."""

import logging
import threading
from datetime import datetime
from typing import Any, Iterable, Protocol, runtime_checkable

from taxpilot.models.appointment import Appointment, Reminder
from taxpilot.models.client import ClientProfile
from taxpilot.models.documents import DocumentChecklist
from taxpilot.models.flow import ConversationFlowState
from taxpilot.models.intake import IntakeSession
from taxpilot.models.taxpro import TaxProfessional

logger = logging.getLogger(__name__)


@runtime_checkable
class TaxPilotStore(Protocol):
    """Storage interface the services depend on.

    Getters return copies; every change goes through a write method so that a
    persistent backend can be swapped in behind the same interface.
    """

    def create_client(self, client: ClientProfile) -> ClientProfile: ...
    def get_client(self, client_id: str) -> ClientProfile | None: ...
    def update_client(self, client_id: str, **updates: Any) -> ClientProfile | None: ...
    def list_clients(self) -> list[ClientProfile]: ...

    def create_session(self, session: IntakeSession) -> IntakeSession: ...
    def get_session(self, session_id: str) -> IntakeSession | None: ...
    def get_session_by_client(self, client_id: str) -> IntakeSession | None: ...
    def save_session(self, session: IntakeSession) -> IntakeSession: ...

    def save_checklist(self, checklist: DocumentChecklist) -> DocumentChecklist: ...
    def get_checklist(self, client_id: str) -> DocumentChecklist | None: ...

    def add_taxpro(self, taxpro: TaxProfessional) -> TaxProfessional: ...
    def get_taxpro(self, taxpro_id: str) -> TaxProfessional | None: ...
    def list_taxpros(self) -> list[TaxProfessional]: ...
    def reserve_taxpro_slot(self, taxpro_id: str) -> TaxProfessional | None: ...
    def release_taxpro_slot(self, taxpro_id: str) -> TaxProfessional | None: ...

    def create_appointment(self, appointment: Appointment) -> Appointment: ...
    def get_appointment(self, appointment_id: str) -> Appointment | None: ...
    def list_appointments_by_client(self, client_id: str) -> list[Appointment]: ...
    def list_appointments_by_taxpro(self, taxpro_id: str) -> list[Appointment]: ...

    def create_reminder(self, reminder: Reminder) -> Reminder: ...
    def get_reminder(self, reminder_id: str) -> Reminder | None: ...
    def list_reminders_by_client(self, client_id: str) -> list[Reminder]: ...
    def list_pending_reminders(self, now: datetime | None = None) -> list[Reminder]: ...
    def mark_reminder_sent(self, reminder_id: str) -> Reminder | None: ...

    def get_flow_state(self, client_id: str) -> ConversationFlowState | None: ...
    def save_flow_state(self, state: ConversationFlowState) -> ConversationFlowState: ...


class InMemoryStore:
    """Process-lifetime store backed by dictionaries.

    A single re-entrant lock guards every map. ``reserve_taxpro_slot`` is the
    compare-and-increment used by routing and booking so that two concurrent
    callers can never push a professional past ``max_daily_appointments``.
    """

    def __init__(self, taxpros: Iterable[TaxProfessional] | None = None):
        self._lock = threading.RLock()
        self._clients: dict[str, ClientProfile] = {}
        self._sessions: dict[str, IntakeSession] = {}
        self._checklists: dict[str, DocumentChecklist] = {}
        self._taxpros: dict[str, TaxProfessional] = {}
        self._appointments: dict[str, Appointment] = {}
        self._reminders: dict[str, Reminder] = {}
        self._flows: dict[str, ConversationFlowState] = {}

        for taxpro in taxpros or []:
            self.add_taxpro(taxpro)

    # Client operations
    def create_client(self, client: ClientProfile) -> ClientProfile:
        with self._lock:
            self._clients[client.id] = client.model_copy(deep=True)
            logger.debug(f"Created client {client.id}")
            return client.model_copy(deep=True)

    def get_client(self, client_id: str) -> ClientProfile | None:
        with self._lock:
            client = self._clients.get(client_id)
            return client.model_copy(deep=True) if client else None

    def update_client(self, client_id: str, **updates: Any) -> ClientProfile | None:
        """Apply field updates to a client, returning the updated copy."""
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return None
            updated = client.model_copy(update={**updates, "updated_at": datetime.now()}, deep=True)
            self._clients[client_id] = updated
            logger.debug(f"Updated client {client_id}: {sorted(updates)}")
            return updated.model_copy(deep=True)

    def list_clients(self) -> list[ClientProfile]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._clients.values()]

    # Intake session operations
    def create_session(self, session: IntakeSession) -> IntakeSession:
        return self.save_session(session)

    def get_session(self, session_id: str) -> IntakeSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def get_session_by_client(self, client_id: str) -> IntakeSession | None:
        """Most recently started session for a client."""
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.client_id == client_id]
            if not sessions:
                return None
            latest = max(sessions, key=lambda s: s.started_at)
            return latest.model_copy(deep=True)

    def save_session(self, session: IntakeSession) -> IntakeSession:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)
            return session

    # Checklist operations
    def save_checklist(self, checklist: DocumentChecklist) -> DocumentChecklist:
        with self._lock:
            self._checklists[checklist.client_id] = checklist.model_copy(deep=True)
            return checklist

    def get_checklist(self, client_id: str) -> DocumentChecklist | None:
        with self._lock:
            checklist = self._checklists.get(client_id)
            return checklist.model_copy(deep=True) if checklist else None

    # Tax professional operations
    def add_taxpro(self, taxpro: TaxProfessional) -> TaxProfessional:
        with self._lock:
            self._taxpros[taxpro.id] = taxpro.model_copy(deep=True)
            return taxpro

    def get_taxpro(self, taxpro_id: str) -> TaxProfessional | None:
        with self._lock:
            taxpro = self._taxpros.get(taxpro_id)
            return taxpro.model_copy(deep=True) if taxpro else None

    def list_taxpros(self) -> list[TaxProfessional]:
        """All professionals in roster order."""
        with self._lock:
            return [tp.model_copy(deep=True) for tp in self._taxpros.values()]

    def reserve_taxpro_slot(self, taxpro_id: str) -> TaxProfessional | None:
        """
        Atomically take one appointment slot from a professional.

        Returns:
            The updated professional, or None if unknown, unavailable or full
        """
        with self._lock:
            taxpro = self._taxpros.get(taxpro_id)
            if taxpro is None or not taxpro.has_capacity:
                return None
            taxpro.current_load += 1
            logger.debug(
                f"Reserved slot on {taxpro_id} "
                f"({taxpro.current_load}/{taxpro.max_daily_appointments})"
            )
            return taxpro.model_copy(deep=True)

    def release_taxpro_slot(self, taxpro_id: str) -> TaxProfessional | None:
        """Give one appointment slot back, never dropping below zero."""
        with self._lock:
            taxpro = self._taxpros.get(taxpro_id)
            if taxpro is None:
                return None
            taxpro.current_load = max(0, taxpro.current_load - 1)
            logger.debug(f"Released slot on {taxpro_id}")
            return taxpro.model_copy(deep=True)

    # Appointment operations
    def create_appointment(self, appointment: Appointment) -> Appointment:
        with self._lock:
            self._appointments[appointment.id] = appointment.model_copy(deep=True)
            return appointment

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        with self._lock:
            appointment = self._appointments.get(appointment_id)
            return appointment.model_copy(deep=True) if appointment else None

    def list_appointments_by_client(self, client_id: str) -> list[Appointment]:
        with self._lock:
            return [
                a.model_copy(deep=True)
                for a in self._appointments.values()
                if a.client_id == client_id
            ]

    def list_appointments_by_taxpro(self, taxpro_id: str) -> list[Appointment]:
        with self._lock:
            return [
                a.model_copy(deep=True)
                for a in self._appointments.values()
                if a.tax_pro_id == taxpro_id
            ]

    # Reminder operations
    def create_reminder(self, reminder: Reminder) -> Reminder:
        with self._lock:
            self._reminders[reminder.id] = reminder.model_copy(deep=True)
            return reminder

    def get_reminder(self, reminder_id: str) -> Reminder | None:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            return reminder.model_copy(deep=True) if reminder else None

    def list_reminders_by_client(self, client_id: str) -> list[Reminder]:
        with self._lock:
            reminders = [r for r in self._reminders.values() if r.client_id == client_id]
            return [r.model_copy(deep=True) for r in sorted(reminders, key=lambda r: r.scheduled_for)]

    def list_pending_reminders(self, now: datetime | None = None) -> list[Reminder]:
        """Unsent reminders that are due at ``now`` (or all unsent when None)."""
        with self._lock:
            pending = [
                r for r in self._reminders.values()
                if not r.sent and (now is None or r.scheduled_for <= now)
            ]
            return [r.model_copy(deep=True) for r in sorted(pending, key=lambda r: r.scheduled_for)]

    def mark_reminder_sent(self, reminder_id: str) -> Reminder | None:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None:
                return None
            reminder.sent = True
            reminder.sent_at = datetime.now()
            return reminder.model_copy(deep=True)

    # Flow state operations
    def get_flow_state(self, client_id: str) -> ConversationFlowState | None:
        with self._lock:
            state = self._flows.get(client_id)
            return state.model_copy(deep=True) if state else None

    def save_flow_state(self, state: ConversationFlowState) -> ConversationFlowState:
        with self._lock:
            self._flows[state.client_id] = state.model_copy(deep=True)
            return state
