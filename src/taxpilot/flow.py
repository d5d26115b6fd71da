"""Conversation flow management.

Every client conversation moves through the same ten stages in order:

1. welcome                 -> greet the client, start an intake session
2. intake_questions        -> collect all tax information
3. summary_review          -> generate and show the summary
4. summary_confirmation    -> client confirms or edits
5. document_checklist      -> generate document requirements
6. availability_inquiry    -> ask scheduling preferences
7. taxpro_routing          -> match with a tax professional
8. appointment_scheduling  -> book the appointment
9. reminders_setup         -> set up reminders
10. complete               -> flow finished

Each stage has a completion predicate. ``FlowManager.advance_flow`` checks
the current stage's predicate once and moves forward at most one stage per
call. ``sync_flow_with_state`` pulls the flow forward when the store shows
progress that happened outside the flow.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from taxpilot.errors import FlowStateError
from taxpilot.models.appointment import AppointmentType
from taxpilot.models.client import ClientProfile
from taxpilot.models.flow import (
    FLOW_SEQUENCE,
    ConversationFlowState,
    ConversationStage,
    FlowActionResult,
    FlowProgress,
    PreferredSchedule,
)
from taxpilot.reports import format_flow_progress, format_next_action
from taxpilot.storage.store import TaxPilotStore

logger = logging.getLogger(__name__)

Stage = ConversationStage


@dataclass(frozen=True)
class StageDefinition:
    """Guidance and exit condition for one stage."""

    stage: ConversationStage
    description: str
    next_action: str
    instructions: str
    suggested_tools: tuple[str, ...]
    is_satisfied: Callable[[ConversationFlowState, ClientProfile | None], bool]
    blocker: str

    def check(
        self, state: ConversationFlowState, client: ClientProfile | None
    ) -> tuple[bool, list[str]]:
        """Evaluate the exit condition, returning (can_proceed, blockers)."""
        satisfied = bool(self.is_satisfied(state, client))
        return satisfied, [] if satisfied else [self.blocker]


def _flag(stage: ConversationStage, key: str) -> Callable[[ConversationFlowState, Any], bool]:
    return lambda state, client: state.data_for(stage).get(key) is True


STAGE_DEFINITIONS: tuple[StageDefinition, ...] = (
    StageDefinition(
        stage=Stage.WELCOME,
        description="Initial greeting and session setup",
        next_action="Start an intake session and greet the client",
        instructions=(
            "Welcome the client and introduce yourself as their tax intake assistant.\n"
            "Use 'start_intake' to open a session, then ask the first intake question.\n"
            "Explain that you will walk them through everything their tax professional needs."
        ),
        suggested_tools=("start_intake",),
        is_satisfied=lambda state, client: bool(state.session_id),
        blocker="Intake session must be started",
    ),
    StageDefinition(
        stage=Stage.INTAKE_QUESTIONS,
        description="Collecting all tax information from the client",
        next_action="Continue asking intake questions",
        instructions=(
            "Collect the client's information one question at a time:\n"
            "1. Ask the current intake question\n"
            "2. Record each answer with 'process_intake_response'\n"
            "3. Cover personal info, filing status, dependents, employment, income types, "
            "deductions and special situations\n"
            "4. Check 'get_intake_progress' whenever you need to see what is left\n"
            "Explain briefly why each answer matters for their return."
        ),
        suggested_tools=("process_intake_response", "get_intake_progress"),
        is_satisfied=lambda state, client: client is not None and client.intake_completed,
        blocker="All intake questions must be completed",
    ),
    StageDefinition(
        stage=Stage.SUMMARY_REVIEW,
        description="Generating and displaying the intake summary",
        next_action="Generate and present the summary to the client",
        instructions=(
            "Intake is complete.\n"
            "1. Use 'get_client_summary' to build the summary\n"
            "2. Present it clearly\n"
            "3. Ask: \"Please review this information. Is everything correct?\"\n"
            "Do not move on until the client has seen the summary."
        ),
        suggested_tools=("get_client_summary",),
        is_satisfied=_flag(Stage.SUMMARY_REVIEW, "shown"),
        blocker="Summary must be displayed to the client",
    ),
    StageDefinition(
        stage=Stage.SUMMARY_CONFIRMATION,
        description="Waiting for the client to confirm or request edits",
        next_action="Wait for confirmation or process edit requests",
        instructions=(
            "If the client confirms the summary, record it with 'confirm_summary'.\n"
            "If they want changes, ask what to change, update it with 'update_intake_step', "
            "and show the updated summary again.\n"
            "Do not proceed without explicit confirmation."
        ),
        suggested_tools=("confirm_summary", "update_intake_step", "get_client_summary"),
        is_satisfied=lambda state, client: state.summary_confirmed,
        blocker="Client must confirm their summary information",
    ),
    StageDefinition(
        stage=Stage.DOCUMENT_CHECKLIST,
        description="Generating the personalized document checklist",
        next_action="Generate and present the document checklist",
        instructions=(
            "1. Use 'generate_document_checklist' to build the client's list\n"
            "2. Present it grouped by category, separating required from optional items\n"
            "3. Share where each document usually comes from "
            "(e.g. W-2s arrive from employers by the end of January)"
        ),
        suggested_tools=("generate_document_checklist", "get_document_checklist"),
        is_satisfied=_flag(Stage.DOCUMENT_CHECKLIST, "generated"),
        blocker="Document checklist must be generated and shown",
    ),
    StageDefinition(
        stage=Stage.AVAILABILITY_INQUIRY,
        description="Asking about scheduling preferences",
        next_action="Ask about appointment availability and preferences",
        instructions=(
            "1. Ask when the client would like to meet their tax professional\n"
            "2. Collect preferred dates and times\n"
            "3. Ask whether they prefer a virtual or in-person appointment\n"
            "4. Share the expected length from 'get_appointment_estimate'\n"
            "Record the answers with 'set_scheduling_preferences'."
        ),
        suggested_tools=("get_appointment_estimate", "set_scheduling_preferences"),
        is_satisfied=lambda state, client: state.preferred_schedule is not None,
        blocker="Scheduling preferences must be collected",
    ),
    StageDefinition(
        stage=Stage.TAXPRO_ROUTING,
        description="Matching with the right tax professional",
        next_action="Route the client to an appropriate tax professional",
        instructions=(
            "1. Use 'calculate_complexity' to show the client's complexity level\n"
            "2. Use 'route_to_tax_pro' to match on complexity, required specializations "
            "and availability\n"
            "3. Explain why the professional is a good fit and mention alternates\n"
            "4. Ask whether they would like to book"
        ),
        suggested_tools=(
            "calculate_complexity",
            "route_to_tax_pro",
            "get_tax_pro_recommendations",
            "list_tax_professionals",
        ),
        is_satisfied=lambda state, client: state.selected_tax_pro_id is not None,
        blocker="Tax professional must be selected",
    ),
    StageDefinition(
        stage=Stage.APPOINTMENT_SCHEDULING,
        description="Creating the appointment",
        next_action="Book the appointment",
        instructions=(
            "Book with the selected professional using 'create_appointment' "
            "(client, professional, preferred date/time, virtual or in person), "
            "then confirm the details and mention that reminders will follow."
        ),
        suggested_tools=("create_appointment",),
        is_satisfied=lambda state, client: client is not None and client.appointment_id is not None,
        blocker="Appointment must be created",
    ),
    StageDefinition(
        stage=Stage.REMINDERS_SETUP,
        description="Setting up document and appointment reminders",
        next_action="Set up reminders for documents and the appointment",
        instructions=(
            "1. Use 'create_document_reminders' for any pending documents\n"
            "2. Confirm that appointment reminders go out 24 hours and 1 hour before\n"
            "3. Summarize the next steps"
        ),
        suggested_tools=(
            "create_document_reminders",
            "get_client_reminders",
            "get_pending_documents",
        ),
        is_satisfied=_flag(Stage.REMINDERS_SETUP, "created"),
        blocker="Reminders should be created",
    ),
    StageDefinition(
        stage=Stage.COMPLETE,
        description="Conversation flow completed",
        next_action="Provide a closing summary and offer additional help",
        instructions=(
            "Recap what was done: intake, document checklist, professional match, "
            "appointment time and reminders. Thank the client and offer to answer "
            "follow-up questions."
        ),
        suggested_tools=("get_client", "get_client_summary"),
        is_satisfied=lambda state, client: True,
        blocker="",
    ),
)

STAGES: dict[ConversationStage, StageDefinition] = {d.stage: d for d in STAGE_DEFINITIONS}

# Fields that only the advance and sync routines may change
PROTECTED_FIELDS = frozenset({"client_id", "current_stage", "completed_stages"})


def check_invariant(state: ConversationFlowState) -> None:
    """
    Verify that completed stages are exactly the stages before the current one.

    Raises:
        FlowStateError: If the stored state is inconsistent
    """
    index = FLOW_SEQUENCE.index(state.current_stage)
    if list(state.completed_stages) != FLOW_SEQUENCE[:index]:
        raise FlowStateError(
            f"Flow for client {state.client_id} is at {state.current_stage.value} "
            f"but completed stages are {[s.value for s in state.completed_stages]}"
        )


def build_progress(state: ConversationFlowState) -> FlowProgress:
    current = state.stage_index + 1
    total = len(FLOW_SEQUENCE)
    return FlowProgress(current=current, total=total, percentage=round(current / total * 100))


class FlowManager:
    """Owns one flow state per client and enforces the stage order.

    All mutation for a client happens under that client's lock, so two
    concurrent calls cannot both advance the same stage.
    """

    def __init__(self, store: TaxPilotStore):
        self.store = store
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, client_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(client_id)
            if lock is None:
                lock = self._locks[client_id] = threading.RLock()
            return lock

    def _existing_lock(self, client_id: str) -> "threading.RLock | None":
        """Lock for a client that already has a flow, or None.

        Operations that need an existing flow go through here so that
        unknown client ids never leave a lock behind.
        """
        with self._locks_guard:
            lock = self._locks.get(client_id)
            if lock is None and self.store.get_flow_state(client_id) is not None:
                lock = self._locks[client_id] = threading.RLock()
            return lock

    def _status(
        self, state: ConversationFlowState, client: ClientProfile | None
    ) -> FlowActionResult:
        definition = STAGES[state.current_stage]
        can_proceed, blockers = definition.check(state, client)
        return FlowActionResult(
            current_stage=state.current_stage,
            completed_stages=list(state.completed_stages),
            next_action=definition.next_action,
            instructions=definition.instructions,
            can_proceed=can_proceed,
            blockers=blockers,
            suggested_tools=list(definition.suggested_tools),
            progress=build_progress(state),
        )

    def initialize_flow(self, client_id: str, session_id: str) -> ConversationFlowState:
        """Start a fresh flow at the welcome stage, replacing any existing one."""
        with self._lock_for(client_id):
            state = ConversationFlowState(client_id=client_id, session_id=session_id or "")
            self.store.save_flow_state(state)
            logger.info(f"Started conversation flow for client {client_id}")
            return state

    def get_flow_state(self, client_id: str) -> ConversationFlowState | None:
        return self.store.get_flow_state(client_id)

    def get_or_create_flow_state(self, client_id: str, session_id: str) -> ConversationFlowState:
        """Return the client's flow, refreshing its activity time, or start one."""
        with self._lock_for(client_id):
            state = self.store.get_flow_state(client_id)
            if state is None:
                return self.initialize_flow(client_id, session_id)
            if session_id and not state.session_id:
                state.session_id = session_id
            state.touch()
            self.store.save_flow_state(state)
            return state

    def get_flow_status(self, client_id: str) -> FlowActionResult | None:
        """Current stage guidance, or None if the client has no flow."""
        state = self.store.get_flow_state(client_id)
        if state is None:
            return None
        return self._status(state, self.store.get_client(client_id))

    def advance_flow(
        self, client_id: str, stage_data: dict[str, Any] | None = None
    ) -> FlowActionResult | None:
        """
        Record stage data and move on if the current stage is now done.

        The current stage's predicate is checked once, so a call advances at
        most one stage even when later stages would also be satisfied. At
        ``complete`` this only records the data.

        Args:
            client_id: Client whose flow to advance
            stage_data: Data merged into the current stage's record

        Returns:
            Status after the call, or None if the client has no flow
        """
        lock = self._existing_lock(client_id)
        if lock is None:
            return None
        with lock:
            state = self.store.get_flow_state(client_id)
            if state is None:
                return None
            check_invariant(state)
            client = self.store.get_client(client_id)

            if stage_data:
                state.merge_stage_data(state.current_stage, stage_data)

            definition = STAGES[state.current_stage]
            if not state.is_complete and definition.is_satisfied(state, client):
                finished = state.current_stage
                state.completed_stages.append(finished)
                state.current_stage = FLOW_SEQUENCE[state.stage_index + 1]
                logger.info(
                    f"Client {client_id} flow: {finished.value} -> {state.current_stage.value}"
                )

            state.touch()
            self.store.save_flow_state(state)
            return self._status(state, client)

    def record_stage_event(
        self, client_id: str, stage: ConversationStage, data: dict[str, Any]
    ) -> FlowActionResult | None:
        """
        Report something that happened for ``stage``.

        When the flow is sitting at that stage this is ``advance_flow``.
        Otherwise the data is filed under the stage without a transition, so
        the stage passes as soon as the flow reaches it.
        """
        lock = self._existing_lock(client_id)
        if lock is None:
            return None
        with lock:
            state = self.store.get_flow_state(client_id)
            if state is None:
                return None
            if state.current_stage == stage:
                return self.advance_flow(client_id, data)

            state.merge_stage_data(stage, data)
            state.touch()
            self.store.save_flow_state(state)
            return self._status(state, self.store.get_client(client_id))

    def update_flow_state(self, client_id: str, **updates: Any) -> ConversationFlowState | None:
        """
        Update flow fields other than the stage position.

        Raises:
            ValueError: If an update touches the stage position or is invalid
        """
        protected = PROTECTED_FIELDS & set(updates)
        if protected:
            raise ValueError(f"Cannot update {sorted(protected)} directly; use advance_flow")

        lock = self._existing_lock(client_id)
        if lock is None:
            return None
        with lock:
            state = self.store.get_flow_state(client_id)
            if state is None:
                return None
            try:
                updated = ConversationFlowState.model_validate({**state.model_dump(), **updates})
            except ValidationError as e:
                raise ValueError(f"Invalid flow update: {e}") from e
            updated.touch()
            self.store.save_flow_state(updated)
            return updated

    def confirm_summary(self, client_id: str) -> FlowActionResult | None:
        """Mark the summary as confirmed, then try to advance."""
        lock = self._existing_lock(client_id)
        if lock is None:
            return None
        with lock:
            state = self.store.get_flow_state(client_id)
            if state is None:
                return None
            state.summary_confirmed = True
            state.merge_stage_data(Stage.SUMMARY_CONFIRMATION, {"confirmed": True})
            self.store.save_flow_state(state)
            return self.advance_flow(client_id)

    def set_scheduling_preferences(
        self,
        client_id: str,
        preferred_dates: list[str],
        preferred_times: list[str],
        appointment_type: AppointmentType | str = AppointmentType.VIRTUAL,
    ) -> FlowActionResult | None:
        """Store scheduling preferences, then try to advance."""
        lock = self._existing_lock(client_id)
        if lock is None:
            return None
        with lock:
            state = self.store.get_flow_state(client_id)
            if state is None:
                return None
            schedule = PreferredSchedule(
                preferred_dates=list(preferred_dates),
                preferred_times=list(preferred_times),
                appointment_type=AppointmentType(appointment_type),
            )
            state.preferred_schedule = schedule
            state.merge_stage_data(
                Stage.AVAILABILITY_INQUIRY,
                {"collected": True, "preferences": schedule.model_dump(mode="json")},
            )
            self.store.save_flow_state(state)
            return self.advance_flow(client_id)

    def set_selected_tax_pro(self, client_id: str, tax_pro_id: str) -> FlowActionResult | None:
        """Record the chosen tax professional, then try to advance."""
        lock = self._existing_lock(client_id)
        if lock is None:
            return None
        with lock:
            state = self.store.get_flow_state(client_id)
            if state is None:
                return None
            state.selected_tax_pro_id = tax_pro_id
            state.merge_stage_data(Stage.TAXPRO_ROUTING, {"selected": True, "tax_pro_id": tax_pro_id})
            self.store.save_flow_state(state)
            return self.advance_flow(client_id)

    def sync_flow_with_state(self, client_id: str, session_id: str = "") -> ConversationFlowState:
        """
        Bring the flow up to date with what the store shows has happened.

        Intake completion puts the flow at least at summary review, an
        existing checklist counts as generated, an assigned professional
        counts as selected, and a booked appointment puts the flow at least at
        reminders setup. The flow never moves backward, and calling this
        again with nothing new changes nothing.
        """
        with self._lock_for(client_id):
            state = self.store.get_flow_state(client_id)
            if state is None:
                state = self.initialize_flow(client_id, session_id)
            check_invariant(state)
            before = state.model_dump()

            if session_id and not state.session_id:
                state.session_id = session_id

            client = self.store.get_client(client_id)
            if client is not None:
                target = state.stage_index

                if client.intake_completed:
                    target = max(target, FLOW_SEQUENCE.index(Stage.SUMMARY_REVIEW))

                has_checklist = (
                    client.has_checklist_documents
                    or self.store.get_checklist(client_id) is not None
                )
                if has_checklist and not state.data_for(Stage.DOCUMENT_CHECKLIST).get("generated"):
                    state.merge_stage_data(Stage.DOCUMENT_CHECKLIST, {"generated": True})

                if client.assigned_tax_pro and state.selected_tax_pro_id != client.assigned_tax_pro:
                    state.selected_tax_pro_id = client.assigned_tax_pro
                    state.merge_stage_data(
                        Stage.TAXPRO_ROUTING,
                        {"selected": True, "tax_pro_id": client.assigned_tax_pro},
                    )

                if client.appointment_id:
                    target = max(target, FLOW_SEQUENCE.index(Stage.REMINDERS_SETUP))
                    booked = state.data_for(Stage.APPOINTMENT_SCHEDULING)
                    if booked.get("appointment_id") != client.appointment_id:
                        state.merge_stage_data(
                            Stage.APPOINTMENT_SCHEDULING,
                            {"created": True, "appointment_id": client.appointment_id},
                        )

                if target > state.stage_index:
                    logger.info(
                        f"Resynced client {client_id} flow: {state.current_stage.value} -> "
                        f"{FLOW_SEQUENCE[target].value}"
                    )
                    state.current_stage = FLOW_SEQUENCE[target]
                    state.completed_stages = FLOW_SEQUENCE[:target]

            if state.model_dump() != before:
                state.touch()
                self.store.save_flow_state(state)
            return state

    def get_flow_progress_display(self, client_id: str) -> str:
        """Markdown checklist of all stages with the client's position."""
        state = self.store.get_flow_state(client_id)
        if state is None:
            return "No active conversation flow found."
        descriptions = {d.stage: d.description for d in STAGE_DEFINITIONS}
        return format_flow_progress(state, descriptions, build_progress(state))

    def get_next_action_instructions(self, client_id: str) -> str:
        """Markdown guidance block for whoever is driving the conversation."""
        status = self.get_flow_status(client_id)
        if status is None:
            return "No active flow found. Start a new intake session with 'start_intake'."
        return format_next_action(status)
