"""Tests for complexity scoring and tax professional routing."""

import threading
import time
from datetime import datetime, timedelta

import pytest

from taxpilot.errors import ClientNotFoundError, TaxProNotFoundError, TaxProUnavailableError
from taxpilot.models.client import (
    ClientProfile,
    DeductionType,
    FilingStatus,
    IncomeType,
    SpecialSituation,
)
from taxpilot.models.taxpro import ComplexityLevel, Specialization
from taxpilot.routing import (
    RoutingService,
    calculate_complexity_score,
    estimate_appointment_duration,
    find_best_tax_pro,
    get_complexity_level,
    get_required_specializations,
    rank_tax_pros,
)
from taxpilot.storage.store import InMemoryStore


class TestComplexityScore:
    """Tests for calculate_complexity_score."""

    def test_simple_client_scores_zero(self, simple_client):
        assert calculate_complexity_score(simple_client) == 0

    def test_crypto_client_score(self, crypto_client):
        # joint 3 + one dependent 2 + investments 8 + mortgage 5 + crypto 55
        assert calculate_complexity_score(crypto_client) == 73

    def test_dependent_points_are_capped(self):
        few = ClientProfile(id="a", dependents=5)
        many = ClientProfile(id="b", dependents=12)
        assert calculate_complexity_score(few) == 10
        assert calculate_complexity_score(many) == 10

    def test_multiple_income_bonus(self):
        client = ClientProfile(
            id="c",
            income_types=[IncomeType.W2, IncomeType.RETIREMENT, IncomeType.SOCIAL_SECURITY],
        )
        # 0 + 5 + 3 + bonus 5
        assert calculate_complexity_score(client) == 13

    def test_duplicate_tags_count_once(self):
        once = ClientProfile(id="d", deductions=[DeductionType.MEDICAL])
        twice = ClientProfile(id="e", deductions=[DeductionType.MEDICAL, DeductionType.MEDICAL])
        assert calculate_complexity_score(once) == calculate_complexity_score(twice)

    def test_score_is_clamped_to_100(self):
        client = ClientProfile(
            id="f",
            filing_status=FilingStatus.MARRIED_FILING_SEPARATELY,
            dependents=6,
            special_situations=list(SpecialSituation),
        )
        assert calculate_complexity_score(client) == 100

    def test_adding_tags_never_lowers_score(self):
        client = ClientProfile(id="g")
        previous = calculate_complexity_score(client)
        for income in IncomeType:
            client.income_types.append(income)
            score = calculate_complexity_score(client)
            assert score >= previous
            previous = score
        for deduction in DeductionType:
            client.deductions.append(deduction)
            score = calculate_complexity_score(client)
            assert score >= previous
            previous = score
        for situation in SpecialSituation:
            client.special_situations.append(situation)
            score = calculate_complexity_score(client)
            assert score >= previous
            previous = score


class TestComplexityLevel:
    """Tests for tier boundaries."""

    @pytest.mark.parametrize(
        "score,level",
        [
            (0, ComplexityLevel.SIMPLE),
            (20, ComplexityLevel.SIMPLE),
            (21, ComplexityLevel.MODERATE),
            (50, ComplexityLevel.MODERATE),
            (51, ComplexityLevel.COMPLEX),
            (80, ComplexityLevel.COMPLEX),
            (81, ComplexityLevel.EXPERT),
            (100, ComplexityLevel.EXPERT),
        ],
    )
    def test_boundaries(self, score, level):
        assert get_complexity_level(score) == level

    def test_single_specialist_situation_is_at_least_complex(self):
        for situation in (
            SpecialSituation.CRYPTO,
            SpecialSituation.FOREIGN_ACCOUNTS,
            SpecialSituation.AUDIT_HISTORY,
            SpecialSituation.ESTATE_OR_TRUST,
        ):
            client = ClientProfile(id="x", special_situations=[situation])
            level = get_complexity_level(calculate_complexity_score(client))
            assert level.rank >= ComplexityLevel.COMPLEX.rank


class TestRequiredSpecializations:
    """Tests for get_required_specializations."""

    def test_no_situations_needs_individual(self, simple_client):
        assert get_required_specializations(simple_client) == [Specialization.INDIVIDUAL]

    def test_situations_map_to_specializations(self):
        client = ClientProfile(
            id="x",
            special_situations=[SpecialSituation.FOREIGN_ACCOUNTS, SpecialSituation.CRYPTO],
        )
        assert get_required_specializations(client) == [
            Specialization.CRYPTO,
            Specialization.FOREIGN_INCOME,
        ]


class TestMatching:
    """Tests for the pure matching functions."""

    def test_crypto_client_matches_crypto_specialist(self, crypto_client, store):
        match = find_best_tax_pro(crypto_client, store.list_taxpros())
        assert match.tax_pro is not None
        assert match.tax_pro.id == "tp-002"

    def test_simple_client_prefers_higher_rating(self, simple_client, store):
        match = find_best_tax_pro(simple_client, store.list_taxpros())
        assert match.tax_pro.id == "tp-001"
        assert [tp.id for tp in match.alternates] == ["tp-004"]

    def test_specializations_must_all_be_covered(self, make_taxpro):
        client = ClientProfile(
            id="x",
            special_situations=[SpecialSituation.CRYPTO, SpecialSituation.AUDIT_HISTORY],
        )
        partial = make_taxpro("p1", specializations=[Specialization.CRYPTO], rating=5.0)
        full = make_taxpro(
            "p2",
            specializations=[Specialization.CRYPTO, Specialization.AUDIT_REPRESENTATION],
            rating=4.0,
        )
        match = find_best_tax_pro(client, [partial, full])
        assert match.tax_pro.id == "p2"
        assert match.alternates == []

    def test_complexity_must_be_within_max(self, make_taxpro):
        client = ClientProfile(id="x", special_situations=[SpecialSituation.CRYPTO])
        too_junior = make_taxpro(
            "p1", specializations=[Specialization.CRYPTO], max_complexity=ComplexityLevel.MODERATE
        )
        match = find_best_tax_pro(client, [too_junior])
        assert match.tax_pro is None
        assert "complex-level crypto" in match.reason

    def test_full_and_unavailable_pros_are_skipped(self, simple_client, make_taxpro):
        full = make_taxpro("p1", current_load=5, max_daily_appointments=5, rating=5.0)
        away = make_taxpro("p2", available=False, rating=5.0)
        open_pro = make_taxpro("p3", rating=3.0)
        ranked = rank_tax_pros(simple_client, [full, away, open_pro])
        assert [tp.id for tp in ranked] == ["p3"]

    def test_ties_break_on_load_then_id(self, simple_client, make_taxpro):
        pros = [
            make_taxpro("p3", current_load=1),
            make_taxpro("p2", current_load=2),
            make_taxpro("p1", current_load=1),
        ]
        ranked = rank_tax_pros(simple_client, pros)
        assert [tp.id for tp in ranked] == ["p1", "p3", "p2"]

    def test_matching_is_deterministic(self, crypto_client, store):
        first = find_best_tax_pro(crypto_client, store.list_taxpros())
        second = find_best_tax_pro(crypto_client, list(reversed(store.list_taxpros())))
        assert first.model_dump() == second.model_dump()

    def test_empty_pool(self, simple_client):
        match = find_best_tax_pro(simple_client, [])
        assert match.tax_pro is None
        assert match.alternates == []


class TestAppointmentDuration:
    """Tests for estimate_appointment_duration."""

    @pytest.mark.parametrize(
        "level,duration",
        [
            (ComplexityLevel.SIMPLE, 30),
            (ComplexityLevel.MODERATE, 45),
            (ComplexityLevel.COMPLEX, 60),
            (ComplexityLevel.EXPERT, 90),
        ],
    )
    def test_base_durations(self, level, duration):
        assert estimate_appointment_duration(level, intake_completed=False) == (duration, 0)

    def test_completed_intake_saves_time(self):
        assert estimate_appointment_duration(ComplexityLevel.EXPERT, True) == (60, 30)
        assert estimate_appointment_duration(ComplexityLevel.SIMPLE, True) == (20, 10)


class TestRoutingService:
    """Tests for RoutingService."""

    def test_route_assigns_and_reserves(self, store, routing, crypto_client):
        store.create_client(crypto_client)
        result = routing.route_client_to_tax_pro(crypto_client.id)

        assert result.success is True
        assert result.tax_pro.id == "tp-002"
        assert store.get_client(crypto_client.id).assigned_tax_pro == "tp-002"
        assert store.get_taxpro("tp-002").current_load == 6

    def test_route_unknown_client(self, routing):
        result = routing.route_client_to_tax_pro("missing")
        assert result.success is False
        assert result.message == "Client not found: missing"

    def test_rerouting_keeps_existing_assignment(self, store, routing, crypto_client):
        store.create_client(crypto_client)
        routing.route_client_to_tax_pro(crypto_client.id)
        again = routing.route_client_to_tax_pro(crypto_client.id)

        assert again.success is True
        assert again.tax_pro.id == "tp-002"
        assert store.get_taxpro("tp-002").current_load == 6

    def test_route_fails_when_specialist_is_full(self, store, routing, crypto_client):
        store.create_client(crypto_client)
        other = crypto_client.model_copy(update={"id": "other"})
        store.create_client(other)
        routing.route_client_to_tax_pro(other.id)  # takes tp-002's last slot

        result = routing.route_client_to_tax_pro(crypto_client.id)
        assert result.success is False
        assert "crypto" in result.message
        assert store.get_client(crypto_client.id).assigned_tax_pro is None

    def test_assess_complexity(self, store, routing, crypto_client):
        store.create_client(crypto_client)
        assessment = routing.assess_complexity(crypto_client.id)
        assert assessment.score == 73
        assert assessment.level == ComplexityLevel.COMPLEX
        assert assessment.required_specializations == [Specialization.CRYPTO]
        assert routing.assess_complexity("missing") is None

    def test_concurrent_routing_never_overbooks(self, make_taxpro):
        store = InMemoryStore([make_taxpro("solo", current_load=4, max_daily_appointments=5)])
        routing = RoutingService(store)
        for i in range(2):
            store.create_client(ClientProfile(id=f"c{i}"))

        barrier = threading.Barrier(2)
        results = {}

        def route(client_id):
            barrier.wait()
            results[client_id] = routing.route_client_to_tax_pro(client_id)

        threads = [threading.Thread(target=route, args=(f"c{i}",)) for i in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.success for r in results.values()) == [False, True]
        assert store.get_taxpro("solo").current_load == 5

    def test_concurrent_routing_same_client_reserves_once(self, make_taxpro):
        class SlowStore(InMemoryStore):
            def reserve_taxpro_slot(self, taxpro_id):
                time.sleep(0.05)
                return super().reserve_taxpro_slot(taxpro_id)

        store = SlowStore([make_taxpro("solo")])
        routing = RoutingService(store)
        store.create_client(ClientProfile(id="c1"))

        barrier = threading.Barrier(2)
        results = []

        def route():
            barrier.wait()
            results.append(routing.route_client_to_tax_pro("c1"))

        threads = [threading.Thread(target=route) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(r.success for r in results)
        assert store.get_taxpro("solo").current_load == 1
        assert store.get_client("c1").assigned_tax_pro == "solo"

    def test_appointment_estimate(self, store, routing, simple_client):
        store.create_client(simple_client)
        estimate = routing.get_appointment_estimate(simple_client.id)
        assert estimate.estimated_duration == 20
        assert estimate.savings == 10
        assert "20 minutes" in estimate.message
        assert routing.get_appointment_estimate("missing") is None

    def test_recommendations_text(self, store, routing, crypto_client):
        store.create_client(crypto_client)
        text = routing.get_tax_pro_recommendations(crypto_client.id)
        assert "Michael Chen" in text
        assert routing.get_tax_pro_recommendations("missing") == "Client not found: missing"


class TestCreateAppointment:
    """Tests for RoutingService.create_appointment."""

    def test_booking_reuses_routing_reservation(self, store, routing, simple_client, next_week):
        store.create_client(simple_client)
        routing.route_client_to_tax_pro(simple_client.id)
        load_after_routing = store.get_taxpro("tp-001").current_load

        appointment = routing.create_appointment(simple_client.id, "tp-001", next_week)

        assert store.get_taxpro("tp-001").current_load == load_after_routing
        assert appointment.duration == 20
        client = store.get_client(simple_client.id)
        assert client.appointment_id == appointment.id

    def test_booking_other_pro_moves_reservation(self, store, routing, simple_client, next_week):
        store.create_client(simple_client)
        routing.route_client_to_tax_pro(simple_client.id)

        routing.create_appointment(simple_client.id, "tp-004", next_week)

        assert store.get_taxpro("tp-001").current_load == 3
        assert store.get_taxpro("tp-004").current_load == 7
        assert store.get_client(simple_client.id).assigned_tax_pro == "tp-004"

    def test_rerouting_after_booking_moves_single_slot(self, make_taxpro, simple_client, next_week):
        store = InMemoryStore([
            make_taxpro("a"),
            make_taxpro("b", specializations=[Specialization.CRYPTO]),
        ])
        routing = RoutingService(store)
        store.create_client(simple_client)

        assert routing.route_client_to_tax_pro(simple_client.id).tax_pro.id == "a"
        routing.create_appointment(simple_client.id, "a", next_week)
        assert store.get_taxpro("a").current_load == 1

        store.update_client(simple_client.id, special_situations=[SpecialSituation.CRYPTO])
        rerouted = routing.route_client_to_tax_pro(simple_client.id)
        assert rerouted.tax_pro.id == "b"
        assert store.get_taxpro("b").current_load == 1

        routing.create_appointment(simple_client.id, "b", next_week)

        assert store.get_taxpro("b").current_load == 1
        assert len(store.list_appointments_by_taxpro("b")) == 1
        # The first booking still holds its slot with "a"
        assert store.get_taxpro("a").current_load == 1

    def test_booking_without_routing_reserves(self, store, routing, simple_client, next_week):
        store.create_client(simple_client)
        routing.create_appointment(simple_client.id, "tp-004", next_week, "in_person")
        assert store.get_taxpro("tp-004").current_load == 7

    def test_booking_errors(self, store, routing, simple_client, make_taxpro, next_week):
        store.create_client(simple_client)
        store.add_taxpro(make_taxpro("full", current_load=5, max_daily_appointments=5))

        with pytest.raises(ClientNotFoundError):
            routing.create_appointment("missing", "tp-001", next_week)
        with pytest.raises(TaxProNotFoundError):
            routing.create_appointment(simple_client.id, "nobody", next_week)
        with pytest.raises(TaxProUnavailableError):
            routing.create_appointment(simple_client.id, "full", next_week)
        with pytest.raises(ValueError):
            routing.create_appointment(simple_client.id, "tp-001", next_week, "carrier_pigeon")

    def test_appointment_duration_tracks_complexity(self, store, routing, crypto_client):
        store.create_client(crypto_client)
        routing.route_client_to_tax_pro(crypto_client.id)
        when = datetime.now() + timedelta(days=3)
        appointment = routing.create_appointment(crypto_client.id, "tp-002", when)
        assert appointment.estimated_complexity == ComplexityLevel.COMPLEX.value
        assert appointment.duration == 40
