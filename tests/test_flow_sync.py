"""Tests for resyncing a flow with stored client progress."""

from datetime import datetime, timedelta

from taxpilot.models.appointment import Appointment
from taxpilot.models.client import ClientProfile
from taxpilot.models.documents import DocumentChecklist
from taxpilot.models.flow import FLOW_SEQUENCE, ConversationStage
from taxpilot.models.taxpro import ComplexityLevel

Stage = ConversationStage


class TestSyncFlowWithState:
    """Tests for FlowManager.sync_flow_with_state."""

    def test_creates_missing_flow(self, store, flow):
        store.create_client(ClientProfile(id="c1"))
        state = flow.sync_flow_with_state("c1", "s1")
        assert state.current_stage == Stage.WELCOME
        assert state.session_id == "s1"

    def test_completed_intake_jumps_to_summary_review(self, store, flow):
        store.create_client(ClientProfile(id="c1", intake_completed=True))
        flow.initialize_flow("c1", "s1")

        state = flow.sync_flow_with_state("c1", "s1")
        assert state.current_stage == Stage.SUMMARY_REVIEW
        assert state.completed_stages == FLOW_SEQUENCE[:2]

    def test_appointment_jumps_to_reminders_setup(self, store, flow):
        store.create_client(ClientProfile(
            id="c1", intake_completed=True, assigned_tax_pro="tp-001", appointment_id="a1"
        ))
        flow.initialize_flow("c1", "s1")

        state = flow.sync_flow_with_state("c1", "s1")
        assert state.current_stage == Stage.REMINDERS_SETUP
        assert state.completed_stages == FLOW_SEQUENCE[:8]
        assert state.selected_tax_pro_id == "tp-001"
        assert state.data_for(Stage.APPOINTMENT_SCHEDULING)["appointment_id"] == "a1"

    def test_checklist_is_marked_generated(self, store, flow):
        store.create_client(ClientProfile(id="c1", intake_completed=True))
        store.save_checklist(DocumentChecklist(client_id="c1"))
        flow.initialize_flow("c1", "s1")

        state = flow.sync_flow_with_state("c1", "s1")
        assert state.data_for(Stage.DOCUMENT_CHECKLIST) == {"generated": True}
        # Recorded, but the flow still waits at summary review
        assert state.current_stage == Stage.SUMMARY_REVIEW

    def test_never_moves_backward(self, store, flow):
        store.create_client(ClientProfile(id="c1", intake_completed=True))
        flow.initialize_flow("c1", "s1")
        state = store.get_flow_state("c1")
        state.current_stage = Stage.AVAILABILITY_INQUIRY
        state.completed_stages = FLOW_SEQUENCE[:5]
        store.save_flow_state(state)

        synced = flow.sync_flow_with_state("c1", "s1")
        assert synced.current_stage == Stage.AVAILABILITY_INQUIRY
        assert synced.completed_stages == FLOW_SEQUENCE[:5]

    def test_repeated_sync_is_idempotent(self, store, flow):
        store.create_client(ClientProfile(
            id="c1", intake_completed=True, assigned_tax_pro="tp-002", appointment_id="a1",
            documents_pending=["photo_id"],
        ))
        flow.initialize_flow("c1", "s1")

        first = flow.sync_flow_with_state("c1", "s1")
        second = flow.sync_flow_with_state("c1", "s1")
        third = flow.sync_flow_with_state("c1", "s1")

        assert second.model_dump() == first.model_dump()
        assert third.model_dump() == first.model_dump()
        assert store.get_flow_state("c1").model_dump() == first.model_dump()

    def test_sync_then_advance_continues_normally(self, store, flow):
        when = datetime.now() + timedelta(days=2)
        store.create_client(ClientProfile(id="c1", intake_completed=True))
        store.create_appointment(Appointment(
            id="a1", client_id="c1", tax_pro_id="tp-001", scheduled_at=when,
            duration=20, estimated_complexity=ComplexityLevel.SIMPLE,
        ))
        store.update_client("c1", appointment_id="a1", assigned_tax_pro="tp-001")
        flow.initialize_flow("c1", "s1")
        flow.sync_flow_with_state("c1", "s1")

        result = flow.advance_flow("c1", {"created": True})
        assert result.current_stage == Stage.COMPLETE
        assert result.completed_stages == FLOW_SEQUENCE[:-1]

    def test_unknown_client_keeps_flow_unchanged(self, flow):
        flow.initialize_flow("ghost", "s1")
        before = flow.get_flow_state("ghost")
        after = flow.sync_flow_with_state("ghost", "s1")
        assert after.model_dump() == before.model_dump()
