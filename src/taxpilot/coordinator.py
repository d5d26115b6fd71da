"""Client-facing operations.

``IntakeCoordinator`` is the single surface an assistant (or the CLI) talks
to. Each operation updates the store through the owning service first and
then reports what happened to the flow manager, so the conversation flow
always trails the stored facts and never the other way round.
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from taxpilot.checklist import ChecklistService
from taxpilot.errors import NotFoundError, TaxProUnavailableError
from taxpilot.flow import FlowManager
from taxpilot.intake import IntakeService
from taxpilot.models.flow import ConversationStage, FlowActionResult
from taxpilot.models.intake import IntakeStep
from taxpilot.reminders import ReminderService
from taxpilot.reports import format_checklist, format_client_summary, format_reminders
from taxpilot.routing import RoutingService
from taxpilot.storage.store import TaxPilotStore

logger = logging.getLogger(__name__)

Stage = ConversationStage


class ToolResult(BaseModel):
    """Uniform result for every coordinator operation."""

    success: bool
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    flow: FlowActionResult | None = None


def _client_missing(client_id: str) -> ToolResult:
    return ToolResult(success=False, message=f"Client not found: {client_id}")


class IntakeCoordinator:
    """Runs intake, checklist, routing, booking and reminders for clients."""

    def __init__(
        self,
        store: TaxPilotStore,
        intake: IntakeService,
        checklist: ChecklistService,
        routing: RoutingService,
        reminders: ReminderService,
        flow: FlowManager,
        default_appointment_type: str = "virtual",
    ):
        self.store = store
        self.intake = intake
        self.checklist = checklist
        self.routing = routing
        self.reminders = reminders
        self.flow = flow
        self.default_appointment_type = default_appointment_type

    def _status(self, client_id: str) -> FlowActionResult | None:
        return self.flow.get_flow_status(client_id)

    # Intake

    def start_intake(self, client_id: str | None = None) -> ToolResult:
        """
        Start or resume intake and the conversation flow.

        A returning client's flow is resynced with the store so it picks up
        where their stored progress says it should.
        """
        started = self.intake.start_intake_session(client_id)
        client_id = started.client.id
        session_id = started.session.id

        self.flow.get_or_create_flow_state(client_id, session_id)
        if started.resumed:
            self.flow.sync_flow_with_state(client_id, session_id)
        status = self.flow.record_stage_event(client_id, Stage.WELCOME, {"started": True})

        if started.next_question:
            message = "Intake session started. Ask the client the next question."
        else:
            message = "Intake already complete for this client."
        return ToolResult(
            success=True,
            message=message,
            data={
                "client_id": client_id,
                "session_id": session_id,
                "current_step": started.current_step.value,
                "next_question": started.next_question,
                "resumed": started.resumed,
            },
            flow=status,
        )

    def process_intake_response(self, session_id: str, answer: str) -> ToolResult:
        response = self.intake.process_intake_response(session_id, answer)
        session = self.store.get_session(session_id)
        if session is None:
            return ToolResult(success=False, message=response.message)

        client_id = session.client_id
        if response.success and response.intake_completed:
            status = self.flow.record_stage_event(
                client_id, Stage.INTAKE_QUESTIONS, {"completed": True}
            )
        else:
            status = self._status(client_id)

        return ToolResult(
            success=response.success,
            message=response.message,
            data={"client_id": client_id, **response.model_dump(mode="json", exclude={"client"})},
            flow=status,
        )

    def update_intake_step(self, session_id: str, step: IntakeStep | str, answer: str) -> ToolResult:
        """Change one intake answer, e.g. while the client reviews the summary."""
        try:
            response = self.intake.update_intake_step(session_id, step, answer)
        except ValueError:
            return ToolResult(success=False, message=f"Unknown intake step: {step}")
        session = self.store.get_session(session_id)
        client_id = session.client_id if session else None
        return ToolResult(
            success=response.success,
            message=response.message,
            data=response.model_dump(mode="json", exclude={"client"}),
            flow=self._status(client_id) if client_id else None,
        )

    def get_intake_progress(self, session_id: str) -> ToolResult:
        progress = self.intake.get_intake_progress(session_id)
        if progress is None:
            return ToolResult(success=False, message=f"Intake session not found: {session_id}")
        return ToolResult(success=True, data=progress.model_dump(mode="json"))

    def get_client(self, client_id: str) -> ToolResult:
        client = self.store.get_client(client_id)
        if client is None:
            return _client_missing(client_id)
        return ToolResult(
            success=True, data=client.model_dump(mode="json"), flow=self._status(client_id)
        )

    def get_client_summary(self, client_id: str) -> ToolResult:
        """Render the intake summary; showing it completes the summary review stage."""
        client = self.store.get_client(client_id)
        if client is None:
            return _client_missing(client_id)

        summary = format_client_summary(client)
        status = self._status(client_id)
        if client.intake_completed:
            status = self.flow.record_stage_event(client_id, Stage.SUMMARY_REVIEW, {"shown": True})
        return ToolResult(success=True, message=summary, data={"summary": summary}, flow=status)

    def confirm_summary(self, client_id: str) -> ToolResult:
        client = self.store.get_client(client_id)
        if client is None:
            return _client_missing(client_id)
        if not client.intake_completed:
            return ToolResult(
                success=False,
                message="Intake must be completed before the summary can be confirmed.",
                flow=self._status(client_id),
            )

        status = self.flow.confirm_summary(client_id)
        if status is None:
            return ToolResult(success=False, message="No active flow. Start with 'start_intake'.")
        return ToolResult(success=True, message="Summary confirmed.", flow=status)

    # Documents

    def generate_document_checklist(self, client_id: str) -> ToolResult:
        checklist = self.checklist.generate_document_checklist(client_id)
        if checklist is None:
            return _client_missing(client_id)

        status = self.flow.record_stage_event(
            client_id,
            Stage.DOCUMENT_CHECKLIST,
            {"generated": True, "document_count": len(checklist.documents)},
        )
        return ToolResult(
            success=True,
            message=format_checklist(checklist),
            data={
                "document_count": len(checklist.documents),
                "pending": [d.id for d in checklist.pending],
            },
            flow=status,
        )

    def get_document_checklist(self, client_id: str) -> ToolResult:
        checklist = self.checklist.get_document_checklist(client_id)
        if checklist is None:
            return ToolResult(
                success=False,
                message="No checklist yet. Use 'generate_document_checklist' first.",
            )
        return ToolResult(
            success=True,
            message=format_checklist(checklist),
            data=checklist.model_dump(mode="json"),
        )

    def mark_document_collected(self, client_id: str, document_id: str) -> ToolResult:
        update = self.checklist.mark_document_collected(client_id, document_id)
        return ToolResult(
            success=update.success,
            message=update.message,
            data={"pending": [d.id for d in self.checklist.get_pending_documents(client_id)]},
        )

    def get_pending_documents(self, client_id: str) -> ToolResult:
        pending = self.checklist.get_pending_documents(client_id)
        return ToolResult(
            success=True,
            message=f"{len(pending)} documents still needed.",
            data={"documents": [d.model_dump(mode="json") for d in pending]},
        )

    # Scheduling and routing

    def get_appointment_estimate(self, client_id: str) -> ToolResult:
        estimate = self.routing.get_appointment_estimate(client_id)
        if estimate is None:
            return _client_missing(client_id)
        return ToolResult(success=True, message=estimate.message, data=estimate.model_dump(mode="json"))

    def set_scheduling_preferences(
        self,
        client_id: str,
        preferred_dates: list[str],
        preferred_times: list[str],
        appointment_type: str | None = None,
    ) -> ToolResult:
        try:
            status = self.flow.set_scheduling_preferences(
                client_id,
                preferred_dates,
                preferred_times,
                appointment_type or self.default_appointment_type,
            )
        except ValueError:
            return ToolResult(success=False, message=f"Unknown appointment type: {appointment_type}")
        if status is None:
            return ToolResult(success=False, message="No active flow. Start with 'start_intake'.")
        return ToolResult(success=True, message="Scheduling preferences saved.", flow=status)

    def calculate_complexity(self, client_id: str) -> ToolResult:
        assessment = self.routing.assess_complexity(client_id)
        if assessment is None:
            return _client_missing(client_id)
        return ToolResult(
            success=True,
            message=assessment.interpretation,
            data=assessment.model_dump(mode="json"),
        )

    def route_client_to_tax_pro(self, client_id: str) -> ToolResult:
        """Match the client with a professional and record the selection."""
        result = self.routing.route_client_to_tax_pro(client_id)
        status = None
        if result.success and result.tax_pro is not None:
            status = self.flow.set_selected_tax_pro(client_id, result.tax_pro.id)
        elif self.store.get_client(client_id) is not None:
            status = self._status(client_id)
        return ToolResult(
            success=result.success,
            message=result.message,
            data={
                "tax_pro": result.tax_pro.model_dump(mode="json") if result.tax_pro else None,
                "alternates": [tp.model_dump(mode="json") for tp in result.alternates],
            },
            flow=status,
        )

    def get_tax_pro_recommendations(self, client_id: str) -> ToolResult:
        if self.store.get_client(client_id) is None:
            return _client_missing(client_id)
        return ToolResult(success=True, message=self.routing.get_tax_pro_recommendations(client_id))

    def list_tax_professionals(self) -> ToolResult:
        taxpros = self.store.list_taxpros()
        return ToolResult(
            success=True,
            message=f"{len(taxpros)} tax professionals on the roster.",
            data={"tax_pros": [tp.model_dump(mode="json") for tp in taxpros]},
        )

    def create_appointment(
        self,
        client_id: str,
        tax_pro_id: str,
        scheduled_at: datetime | str,
        appointment_type: str | None = None,
    ) -> ToolResult:
        """
        Book an appointment, schedule its reminders and move the flow on.

        Booking completes the appointment stage and the scheduled reminders
        complete the reminders stage, one flow transition each.
        """
        try:
            if isinstance(scheduled_at, str):
                scheduled_at = datetime.fromisoformat(scheduled_at)
            appointment = self.routing.create_appointment(
                client_id,
                tax_pro_id,
                scheduled_at,
                appointment_type or self.default_appointment_type,
            )
        except (NotFoundError, TaxProUnavailableError) as e:
            logger.warning(f"Could not book appointment for {client_id}: {e}")
            return ToolResult(success=False, message=str(e), flow=self._status(client_id))
        except ValueError as e:
            return ToolResult(success=False, message=f"Invalid appointment details: {e}")

        reminders = self.reminders.schedule_appointment_reminders(appointment)

        state = self.flow.get_flow_state(client_id)
        if state is not None and state.selected_tax_pro_id != tax_pro_id:
            self.flow.set_selected_tax_pro(client_id, tax_pro_id)
        self.flow.record_stage_event(
            client_id,
            Stage.APPOINTMENT_SCHEDULING,
            {"created": True, "appointment_id": appointment.id},
        )
        status = self.flow.record_stage_event(
            client_id,
            Stage.REMINDERS_SETUP,
            {"created": True, "reminder_count": len(reminders)},
        )

        when = appointment.scheduled_at.strftime("%A, %B %d at %I:%M %p")
        return ToolResult(
            success=True,
            message=f"Booked a {appointment.duration}-minute appointment for {when}.",
            data={
                "appointment": appointment.model_dump(mode="json"),
                "reminders": [r.model_dump(mode="json") for r in reminders],
            },
            flow=status,
        )

    # Reminders

    def create_document_reminders(self, client_id: str, appointment_id: str | None = None) -> ToolResult:
        client = self.store.get_client(client_id)
        if client is None:
            return _client_missing(client_id)

        reminders = self.reminders.create_document_reminders(
            client_id, appointment_id or client.appointment_id
        )
        status = self.flow.record_stage_event(
            client_id, Stage.REMINDERS_SETUP, {"created": True, "reminder_count": len(reminders)}
        )
        return ToolResult(
            success=True,
            message=format_reminders(reminders),
            data={"reminders": [r.model_dump(mode="json") for r in reminders]},
            flow=status,
        )

    def get_client_reminders(self, client_id: str) -> ToolResult:
        reminders = self.reminders.get_client_reminders(client_id)
        return ToolResult(
            success=True,
            message=format_reminders(reminders),
            data={"reminders": [r.model_dump(mode="json") for r in reminders]},
        )

    def get_pending_reminders(self) -> ToolResult:
        reminders = self.reminders.get_pending_reminders()
        return ToolResult(
            success=True,
            message=format_reminders(reminders),
            data={"reminders": [r.model_dump(mode="json") for r in reminders]},
        )

    def send_reminder(self, reminder_id: str) -> ToolResult:
        delivery = self.reminders.send_reminder(reminder_id)
        return ToolResult(success=delivery.success, message=delivery.message)

    # Flow

    def resume(self, client_id: str) -> ToolResult:
        """Resync a returning client's flow with the store and say what comes next."""
        client = self.store.get_client(client_id)
        if client is None:
            return _client_missing(client_id)

        session = self.store.get_session_by_client(client_id)
        self.flow.sync_flow_with_state(client_id, session.id if session else "")
        return ToolResult(
            success=True,
            message=self.flow.get_next_action_instructions(client_id),
            data={"session_id": session.id if session else None},
            flow=self._status(client_id),
        )

    def get_conversation_flow(self, client_id: str, session_id: str = "") -> ToolResult:
        """Resync the flow, then return guidance, the progress display and the raw state."""
        if self.store.get_client(client_id) is None:
            return _client_missing(client_id)

        state = self.flow.sync_flow_with_state(client_id, session_id)
        instructions = self.flow.get_next_action_instructions(client_id)
        progress = self.flow.get_flow_progress_display(client_id)
        return ToolResult(
            success=True,
            message=f"{instructions}\n\n---\n\n{progress}",
            data=state.model_dump(mode="json"),
            flow=self._status(client_id),
        )

    def advance_conversation_flow(
        self, client_id: str, stage_data: dict[str, Any] | None = None
    ) -> ToolResult:
        status = self.flow.advance_flow(client_id, stage_data)
        if status is None:
            return ToolResult(
                success=False,
                message="No active flow found for this client. Start a new session first.",
            )
        return ToolResult(
            success=True,
            message=self.flow.get_next_action_instructions(client_id),
            flow=status,
        )

    def select_tax_professional(self, client_id: str, tax_pro_id: str) -> ToolResult:
        """
        Record the professional the client chose, e.g. one of the alternates.

        Nothing is reserved here; booking with this professional through
        ``create_appointment`` moves any routing slot over to them.
        """
        taxpro = self.store.get_taxpro(tax_pro_id)
        if taxpro is None:
            return ToolResult(success=False, message=f"Tax professional not found: {tax_pro_id}")

        status = self.flow.set_selected_tax_pro(client_id, tax_pro_id)
        if status is None:
            return ToolResult(success=False, message="No active flow. Start with 'start_intake'.")
        return ToolResult(
            success=True,
            message=f"Selected {taxpro.name}.",
            data={"tax_pro": taxpro.model_dump(mode="json")},
            flow=status,
        )

    def get_flow_progress(self, client_id: str) -> ToolResult:
        status = self._status(client_id)
        return ToolResult(
            success=status is not None,
            message=self.flow.get_flow_progress_display(client_id),
            flow=status,
        )

    def get_next_action(self, client_id: str) -> ToolResult:
        status = self._status(client_id)
        return ToolResult(
            success=status is not None,
            message=self.flow.get_next_action_instructions(client_id),
            flow=status,
        )
