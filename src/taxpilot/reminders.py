"""Document and appointment reminders.

Reminders are only scheduled and marked sent here; delivery over email or
SMS is left to whatever consumes ``get_pending_reminders``.
"""

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel

from taxpilot.models.appointment import Appointment, Reminder, ReminderType
from taxpilot.models.documents import DocumentItem
from taxpilot.storage.store import TaxPilotStore
from taxpilot.utils import humanize, new_id

logger = logging.getLogger(__name__)


def document_reminder_message(doc: DocumentItem) -> str:
    """Personalized nudge, e.g. "Don't forget your 1099-NEC from Uber"."""
    if doc.source:
        return f"Don't forget your {doc.name.removeprefix('Form ')} from {doc.source}!"
    return f"Don't forget to bring your {doc.name}."


def appointment_reminder_type(hours_before: int) -> ReminderType:
    if hours_before >= 12:
        return ReminderType.APPOINTMENT_REMINDER_24H
    return ReminderType.APPOINTMENT_REMINDER_1H


class ReminderDelivery(BaseModel):
    success: bool
    message: str
    reminder: Reminder | None = None


class ReminderService:
    """Schedules reminders for pending documents and upcoming appointments."""

    def __init__(
        self,
        store: TaxPilotStore,
        appointment_reminder_hours: list[int] | None = None,
        document_reminder_lead_days: int = 3,
    ):
        self.store = store
        self.appointment_reminder_hours = appointment_reminder_hours or [24, 1]
        self.document_reminder_lead_days = document_reminder_lead_days

    def create_document_reminders(
        self, client_id: str, appointment_id: str | None = None
    ) -> list[Reminder]:
        """
        Create one reminder per pending document.

        Reminders go out ``document_reminder_lead_days`` before the
        appointment, or one day from now when there is no appointment or
        that time has already passed. Documents that already have an unsent
        reminder are skipped.

        Args:
            client_id: Client whose pending documents to remind about
            appointment_id: Appointment the documents are needed for

        Returns:
            The newly created reminders
        """
        checklist = self.store.get_checklist(client_id)
        if checklist is None:
            return []

        now = datetime.now()
        appointment = self.store.get_appointment(appointment_id) if appointment_id else None
        scheduled_for = now + timedelta(days=1)
        if appointment is not None:
            lead_time = appointment.scheduled_at - timedelta(days=self.document_reminder_lead_days)
            if lead_time > now:
                scheduled_for = lead_time

        already_reminded = {
            r.document_id
            for r in self.store.list_reminders_by_client(client_id)
            if r.document_id and not r.sent
        }

        created: list[Reminder] = []
        for doc in checklist.pending:
            if doc.id in already_reminded:
                continue
            reminder = Reminder(
                id=new_id(),
                client_id=client_id,
                appointment_id=appointment_id,
                reminder_type=ReminderType.DOCUMENT_REMINDER,
                message=document_reminder_message(doc),
                scheduled_for=scheduled_for,
                document_id=doc.id,
            )
            created.append(self.store.create_reminder(reminder))

        if created:
            logger.info(f"Scheduled {len(created)} document reminders for client {client_id}")
        return created

    def schedule_appointment_reminders(self, appointment: Appointment) -> list[Reminder]:
        """Create the reminders that go out before an appointment (24 h and 1 h by default)."""
        taxpro = self.store.get_taxpro(appointment.tax_pro_id)
        with_whom = f" with {taxpro.name}" if taxpro else ""
        when = appointment.scheduled_at.strftime("%A, %B %d at %I:%M %p")
        now = datetime.now()

        created: list[Reminder] = []
        for hours in sorted(self.appointment_reminder_hours, reverse=True):
            scheduled_for = appointment.scheduled_at - timedelta(hours=hours)
            if scheduled_for <= now:
                logger.debug(f"Skipping {hours}h reminder for {appointment.id}; time has passed")
                continue
            lead = "in one hour" if hours == 1 else f"in {hours} hours"
            reminder = Reminder(
                id=new_id(),
                client_id=appointment.client_id,
                appointment_id=appointment.id,
                reminder_type=appointment_reminder_type(hours),
                message=(
                    f"Your {humanize(appointment.type)} tax appointment{with_whom} starts "
                    f"{lead} ({when})."
                ),
                scheduled_for=scheduled_for,
            )
            created.append(self.store.create_reminder(reminder))

        return created

    def get_client_reminders(self, client_id: str) -> list[Reminder]:
        return self.store.list_reminders_by_client(client_id)

    def get_pending_reminders(self, now: datetime | None = None) -> list[Reminder]:
        """Unsent reminders whose time has come."""
        return self.store.list_pending_reminders(now or datetime.now())

    def send_reminder(self, reminder_id: str) -> ReminderDelivery:
        """Mark a reminder as sent."""
        reminder = self.store.get_reminder(reminder_id)
        if reminder is None:
            return ReminderDelivery(success=False, message=f"Reminder not found: {reminder_id}")
        if reminder.sent:
            return ReminderDelivery(success=False, message="Reminder was already sent.", reminder=reminder)

        reminder = self.store.mark_reminder_sent(reminder_id)
        logger.info(f"Sent {reminder.reminder_type} reminder {reminder_id} to client {reminder.client_id}")
        return ReminderDelivery(success=True, message="Reminder sent.", reminder=reminder)
