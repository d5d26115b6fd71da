"""Tests for document checklist generation."""

import pytest

from taxpilot.checklist import ChecklistService, build_document_list, get_gig_economy_documents
from taxpilot.models.client import ClientProfile, IncomeType
from taxpilot.models.documents import DocumentCategory


class TestBuildDocumentList:
    """Tests for the document lookup rules."""

    def test_simple_client(self, simple_client):
        ids = [d.id for d in build_document_list(simple_client)]
        assert ids == ["photo_id", "ssn_cards", "prior_year_return", "w2_acme_corp"]

    def test_w2_names_employer(self, simple_client):
        w2 = build_document_list(simple_client)[-1]
        assert w2.name == "Form W-2"
        assert w2.source == "Acme Corp"

    def test_gig_client_gets_one_form_per_platform(self, gig_client):
        docs = build_document_list(gig_client)
        ids = [d.id for d in docs]
        assert "1099_nec_uber" in ids
        assert "1099_nec_doordash" in ids
        assert ids.count("business_expense_records") == 1
        assert len(ids) == 6

    def test_crypto_client(self, crypto_client):
        ids = {d.id for d in build_document_list(crypto_client)}
        assert {"dependent_ssn", "w2", "1099_b", "1098", "crypto_transactions"} <= ids
        assert len(ids) == 10

    def test_always_includes_id_and_prior_return(self):
        ids = [d.id for d in build_document_list(ClientProfile(id="x"))]
        assert ids == ["photo_id", "ssn_cards", "prior_year_return"]

    def test_optional_documents(self):
        client = ClientProfile(id="x", income_types=[IncomeType.OTHER])
        other = [d for d in build_document_list(client) if d.id == "other_income"][0]
        assert other.required is False

    def test_gig_documents_ignore_regular_employers(self):
        docs = get_gig_economy_documents(["Acme Corp", "Etsy"])
        assert [d.id for d in docs] == ["1099_nec_etsy"]
        assert docs[0].category == DocumentCategory.INCOME


class TestChecklistService:
    """Tests for ChecklistService."""

    @pytest.fixture
    def service(self, store):
        return ChecklistService(store)

    def test_generate_updates_client(self, service, store, gig_client):
        store.create_client(gig_client)
        checklist = service.generate_document_checklist(gig_client.id)

        assert len(checklist.documents) == 6
        client = store.get_client(gig_client.id)
        assert client.documents_pending == [d.id for d in checklist.pending]
        assert client.documents_collected == []

    def test_generate_unknown_client(self, service):
        assert service.generate_document_checklist("nobody") is None

    def test_mark_collected(self, service, store, gig_client):
        store.create_client(gig_client)
        service.generate_document_checklist(gig_client.id)

        update = service.mark_document_collected(gig_client.id, "1099_nec_uber")
        assert update.success is True

        pending = [d.id for d in service.get_pending_documents(gig_client.id)]
        assert "1099_nec_uber" not in pending
        client = store.get_client(gig_client.id)
        assert client.documents_collected == ["1099_nec_uber"]
        assert "1099_nec_uber" not in client.documents_pending

    def test_mark_unknown_document(self, service, store, gig_client):
        store.create_client(gig_client)
        service.generate_document_checklist(gig_client.id)
        assert service.mark_document_collected(gig_client.id, "nope").success is False
        assert service.mark_document_collected("nobody", "w2").success is False

    def test_regenerate_keeps_collected(self, service, store, gig_client):
        store.create_client(gig_client)
        service.generate_document_checklist(gig_client.id)
        service.mark_document_collected(gig_client.id, "photo_id")

        regenerated = service.generate_document_checklist(gig_client.id)
        assert regenerated.get("photo_id").collected is True

    def test_pending_without_checklist(self, service):
        assert service.get_pending_documents("nobody") == []
