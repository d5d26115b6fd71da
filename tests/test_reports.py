"""Tests for markdown report rendering."""

from datetime import datetime

from taxpilot.checklist import ChecklistService
from taxpilot.flow import FlowManager
from taxpilot.models.appointment import Reminder, ReminderType
from taxpilot.models.flow import ConversationStage
from taxpilot.reports import (
    format_checklist,
    format_client_summary,
    format_flow_progress,
    format_next_action,
    format_reminders,
    format_taxpro_recommendations,
    taxpro_rows,
)
from taxpilot.routing import RoutingService, find_best_tax_pro


class TestClientSummary:
    """Tests for format_client_summary."""

    def test_sections(self, simple_client):
        summary = format_client_summary(simple_client)
        assert summary.startswith("# Intake Summary")
        assert "- **Name:** Jane Doe" in summary
        assert "- **Filing Status:** Single" in summary
        assert "- **Employers / Platforms:** Acme Corp" in summary
        assert "## Special Situations\n\n- None" in summary
        assert "**Intake Status:** Complete" in summary

    def test_missing_answers(self):
        from taxpilot.models.client import ClientProfile

        summary = format_client_summary(ClientProfile(id="c1"))
        assert "- **Name:** Not provided" in summary
        assert "**Intake Status:** In progress" in summary


class TestChecklist:
    """Tests for format_checklist."""

    def test_grouped_with_totals(self, store, gig_client):
        store.create_client(gig_client)
        service = ChecklistService(store)
        service.generate_document_checklist(gig_client.id)
        service.mark_document_collected(gig_client.id, "photo_id")

        text = format_checklist(store.get_checklist(gig_client.id))
        assert "## Identification" in text
        assert "- [x] **Photo ID**" in text
        assert "- [ ] **Form 1099-NEC**" in text
        assert text.endswith("**1 collected, 5 required still pending**")


class TestReminders:
    def test_empty(self):
        assert format_reminders([]) == "No reminders scheduled."

    def test_sorted_by_time(self):
        reminders = [
            Reminder(
                id=rid,
                client_id="c1",
                reminder_type=ReminderType.DOCUMENT_REMINDER,
                message=rid,
                scheduled_for=datetime(2026, 3, day, 9, 0),
            )
            for rid, day in (("later", 20), ("sooner", 10))
        ]
        text = format_reminders(reminders)
        assert text.index("sooner") < text.index("later")
        assert "(Document Reminder, pending)" in text


class TestTaxProReports:
    """Tests for recommendation and roster rendering."""

    def test_recommendations(self, store, crypto_client):
        store.create_client(crypto_client)
        assessment = RoutingService(store).assess_complexity(crypto_client.id)
        match = find_best_tax_pro(crypto_client, store.list_taxpros())

        text = format_taxpro_recommendations(assessment, match)
        assert "## Recommended" in text
        assert "Michael Chen" in text
        assert "**Complexity:** Complex (score 73/100)" in text

    def test_no_match(self, crypto_client):
        match = find_best_tax_pro(crypto_client, [])
        text = format_taxpro_recommendations(None, match)
        assert "**No match:**" in text

    def test_rows(self, make_taxpro):
        rows = taxpro_rows([make_taxpro("p1", current_load=2, max_daily_appointments=5)])
        assert rows == [("p1", "Pro p1", "individual", "Expert", "2/5", "4.5")]


class TestFlowReports:
    """Tests for flow progress and next-action rendering."""

    def test_progress_markers(self, store, flow):
        from taxpilot.flow import STAGE_DEFINITIONS, build_progress

        flow.initialize_flow("c1", "s1")
        flow.advance_flow("c1")
        state = store.get_flow_state("c1")
        descriptions = {d.stage: d.description for d in STAGE_DEFINITIONS}

        text = format_flow_progress(state, descriptions, build_progress(state))
        assert text.startswith("## Conversation Progress: 20%")
        assert "✅ **1. WELCOME**" in text
        assert "🔵 **2. INTAKE QUESTIONS**" in text
        assert "⬜ **10. COMPLETE**" in text

    def test_next_action(self, store):
        manager = FlowManager(store)
        manager.initialize_flow("c1", "")
        status = manager.get_flow_status("c1")

        text = format_next_action(status)
        assert "**Stage:** WELCOME" in text
        assert "**Progress:** 10% (Step 1 of 10)" in text
        assert "- start_intake" in text
        assert "- Intake session must be started" in text
        assert status.current_stage == ConversationStage.WELCOME
