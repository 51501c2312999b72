"""
Tests for the entitlement system.

Test Coverage:
1. reset_due - calendar month comparison including year boundaries
2. EntitlementLedger.get_entitlement - lazy monthly reset, idempotence, NotFound
3. record_appeal_created - free guard, paid credits, total invariant, no mutation on refusal
4. register_vehicle - first plate free, unchanged, change needs paid credit
5. apply_payment_succeeded - credits only, never the plate write
6. Profile upsert, outcomes and usage summary
7. PaymentGate - pure decisions over a snapshot
"""
import pytest
from datetime import datetime

from app.models.db_models import AppealStatus, PaymentType
from app.models.ssot import (
    ActionType,
    EntitlementRecord,
    GateDecision,
    VehicleRegistrationOutcome,
)
from app.services.entitlement import (
    NotFoundError,
    PaymentGate,
    PaymentRequiredError,
    ValidationError,
    normalize_plate,
    reset_due,
)


# =============================================================================
# TEST: RESET RULE
# =============================================================================

class TestResetDue:

    def test_same_month(self):
        assert reset_due(datetime(2024, 1, 1), datetime(2024, 1, 31, 23, 59)) is False

    def test_next_month(self):
        assert reset_due(datetime(2024, 1, 31, 23, 59), datetime(2024, 2, 1)) is True

    def test_year_boundary(self):
        assert reset_due(datetime(2023, 12, 20), datetime(2024, 1, 2)) is True

    def test_same_month_previous_year(self):
        assert reset_due(datetime(2023, 1, 20), datetime(2024, 1, 2)) is True

    def test_never_reset(self):
        assert reset_due(None, datetime(2024, 1, 2)) is True


# =============================================================================
# TEST: ENTITLEMENT READS
# =============================================================================

class TestGetEntitlement:
    """Tests for get_entitlement and the lazy monthly reset."""

    def test_fresh_record(self, ledger, user_id):
        record = ledger.get_entitlement(user_id)
        assert record.free_appeals_used == 0
        assert record.paid_appeals_used == 0
        assert record.total_appeals_created == 0
        assert record.has_free_appeal is True

    def test_missing_record(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.get_entitlement("no-such-user")

    def test_idempotent_within_month(self, ledger, user_id):
        ledger.record_appeal_created(user_id, is_free=True)
        first = ledger.get_entitlement(user_id)
        second = ledger.get_entitlement(user_id)
        assert first.free_appeals_used == second.free_appeals_used == 1
        assert first.last_free_appeal_reset == second.last_free_appeal_reset

    def test_monthly_reset(self, ledger, user_id, clock):
        """Prior month + free used → free 0, timestamp moved to now"""
        ledger.record_appeal_created(user_id, is_free=True)
        assert ledger.get_entitlement(user_id).free_appeals_used == 1

        clock.advance_to(datetime(2024, 2, 1, 9, 0))
        record = ledger.get_entitlement(user_id)

        assert record.free_appeals_used == 0
        assert record.last_free_appeal_reset == datetime(2024, 2, 1, 9, 0)
        assert record.total_appeals_created == 1
        assert record.has_free_appeal is True

    def test_no_reset_later_same_month(self, ledger, user_id, clock):
        ledger.record_appeal_created(user_id, is_free=True)
        clock.advance_to(datetime(2024, 1, 31, 23, 0))
        assert ledger.get_entitlement(user_id).free_appeals_used == 1

    def test_reset_across_year(self, db_session, ledger, user_id, clock):
        """December usage is forgotten in January"""
        from app.models.db_models import EntitlementDB

        db_session.query(EntitlementDB).filter(EntitlementDB.user_id == user_id).update(
            {EntitlementDB.free_appeals_used: 1, EntitlementDB.last_free_appeal_reset: datetime(2023, 12, 20)}
        )
        db_session.commit()

        clock.advance_to(datetime(2024, 1, 2))
        assert ledger.get_entitlement(user_id).free_appeals_used == 0

    def test_has_free_appeal_available(self, ledger, user_id):
        assert ledger.has_free_appeal_available(user_id) is True
        ledger.record_appeal_created(user_id, is_free=True)
        assert ledger.has_free_appeal_available(user_id) is False


# =============================================================================
# TEST: APPEAL ACCOUNTING
# =============================================================================

class TestRecordAppealCreated:
    """Tests for the conditional quota UPDATE."""

    def test_free_appeal(self, ledger, user_id):
        record = ledger.record_appeal_created(user_id, is_free=True, ticket_value=7000)
        assert record.free_appeals_used == 1
        assert record.total_appeals_created == 1

    def test_second_free_appeal_refused(self, ledger, user_id):
        ledger.record_appeal_created(user_id, is_free=True)
        with pytest.raises(PaymentRequiredError) as exc_info:
            ledger.record_appeal_created(user_id, is_free=True)

        assert exc_info.value.http_status == 402
        assert exc_info.value.to_dict()["amount"] == 500
        record = ledger.get_entitlement(user_id)
        assert record.free_appeals_used == 1
        assert record.total_appeals_created == 1

    def test_paid_appeal_without_credit_refused(self, ledger, user_id):
        with pytest.raises(PaymentRequiredError):
            ledger.record_appeal_created(user_id, is_free=False)
        assert ledger.get_entitlement(user_id).paid_appeals_used == 0

    def test_paid_appeal_spends_credit(self, ledger, user_id):
        ledger.record_appeal_created(user_id, is_free=True)
        ledger.apply_payment_succeeded(user_id, PaymentType.ADDITIONAL_APPEAL)

        record = ledger.record_appeal_created(user_id, is_free=False)

        assert record.paid_appeals_used == 1
        assert record.paid_appeal_credits == 0
        assert record.total_appeals_created == 2
        assert record.total_appeals_created == record.free_appeals_used + record.paid_appeals_used

    def test_credit_spent_once(self, ledger, user_id):
        ledger.apply_payment_succeeded(user_id, PaymentType.ADDITIONAL_APPEAL)
        ledger.record_appeal_created(user_id, is_free=False)
        with pytest.raises(PaymentRequiredError):
            ledger.record_appeal_created(user_id, is_free=False)

    def test_negative_ticket_value_rejected_without_mutation(self, ledger, user_id):
        with pytest.raises(ValidationError):
            ledger.record_appeal_created(user_id, is_free=True, ticket_value=-1)
        assert ledger.get_entitlement(user_id).free_appeals_used == 0

    def test_missing_record(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.record_appeal_created("no-such-user", is_free=True)

    def test_ticket_value_accumulates(self, ledger, user_id):
        ledger.record_appeal_created(user_id, is_free=True, ticket_value=7000)
        assert ledger.usage_summary(user_id).total_ticket_value == 7000


class TestRecordAppealOutcome:

    def test_accepted_adds_savings(self, ledger, user_id):
        ledger.record_appeal_outcome(user_id, AppealStatus.ACCEPTED, 6500)
        summary = ledger.usage_summary(user_id)
        assert summary.successful_appeals == 1
        assert summary.total_savings == 6500

    def test_rejected(self, ledger, user_id):
        ledger.record_appeal_outcome(user_id, AppealStatus.REJECTED, 6500)
        summary = ledger.usage_summary(user_id)
        assert summary.unsuccessful_appeals == 1
        assert summary.total_savings == 0

    def test_other_statuses_ignored(self, ledger, user_id):
        ledger.record_appeal_outcome(user_id, AppealStatus.SUBMITTED, 6500)
        summary = ledger.usage_summary(user_id)
        assert summary.successful_appeals == summary.unsuccessful_appeals == 0


# =============================================================================
# TEST: VEHICLES
# =============================================================================

class TestRegisterVehicle:
    """Tests for the single vehicle slot."""

    def test_first_plate_accepted_and_normalized(self, ledger, user_id):
        result = ledger.register_vehicle(user_id, "ab12 cde", make="Ford")
        assert result.outcome == VehicleRegistrationOutcome.ACCEPTED
        assert result.registration == "AB12CDE"
        assert ledger.get_entitlement(user_id).vehicle_registration == "AB12CDE"
        assert ledger.get_vehicles(user_id)[0]["make"] == "Ford"

    def test_same_plate_unchanged(self, ledger, user_id):
        ledger.register_vehicle(user_id, "AB12CDE")
        result = ledger.register_vehicle(user_id, "ab12 cde")
        assert result.outcome == VehicleRegistrationOutcome.UNCHANGED
        assert result.accepted is True

    def test_different_plate_requires_payment(self, ledger, user_id):
        ledger.register_vehicle(user_id, "AB12CDE")
        result = ledger.register_vehicle(user_id, "XY99ZZZ")
        assert result.outcome == VehicleRegistrationOutcome.PAYMENT_REQUIRED
        assert result.accepted is False
        assert ledger.get_entitlement(user_id).vehicle_registration == "AB12CDE"

    def test_payment_unlocks_but_does_not_write_plate(self, ledger, user_id):
        ledger.register_vehicle(user_id, "AB12CDE")
        record = ledger.apply_payment_succeeded(user_id, PaymentType.VEHICLE_ADDITION)
        assert record.vehicle_change_credits == 1
        assert record.vehicle_registration == "AB12CDE"

    def test_change_after_payment(self, ledger, user_id):
        ledger.register_vehicle(user_id, "AB12CDE")
        ledger.apply_payment_succeeded(user_id, PaymentType.VEHICLE_ADDITION)

        result = ledger.register_vehicle(user_id, "XY99ZZZ")

        assert result.outcome == VehicleRegistrationOutcome.ACCEPTED
        record = ledger.get_entitlement(user_id)
        assert record.vehicle_registration == "XY99ZZZ"
        assert record.vehicle_change_credits == 0

    def test_blank_plate_rejected(self, ledger, user_id):
        with pytest.raises(ValidationError):
            ledger.register_vehicle(user_id, "   ")

    def test_no_vehicles(self, ledger, user_id):
        assert ledger.get_vehicles(user_id) == []


class TestRemoveVehicle:

    def test_primary_cannot_be_removed(self, ledger, user_id):
        ledger.register_vehicle(user_id, "AB12CDE")
        with pytest.raises(ValidationError):
            ledger.remove_vehicle(user_id, "primary")
        assert ledger.get_entitlement(user_id).vehicle_registration == "AB12CDE"

    def test_unknown_vehicle(self, ledger, user_id):
        with pytest.raises(NotFoundError):
            ledger.remove_vehicle(user_id, "vehicle-2")


# =============================================================================
# TEST: PAYMENTS & PROFILE
# =============================================================================

class TestApplyPaymentSucceeded:

    def test_additional_appeal_grants_credit(self, ledger, user_id):
        record = ledger.apply_payment_succeeded(user_id, PaymentType.ADDITIONAL_APPEAL, {"amount": 500})
        assert record.paid_appeal_credits == 1
        assert record.paid_appeals_used == 0

    def test_missing_record(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.apply_payment_succeeded("no-such-user", PaymentType.ADDITIONAL_APPEAL)


class TestUpsertProfile:

    def test_creates_record_once(self, db_session, ledger):
        from app.models.db_models import EntitlementDB

        ledger.upsert_profile("user-x", first_name="Sam")
        ledger.upsert_profile("user-x", phone="07700900000")

        rows = db_session.query(EntitlementDB).filter(EntitlementDB.user_id == "user-x").all()
        assert len(rows) == 1
        assert rows[0].first_name == "Sam"
        assert rows[0].phone == "07700900000"

    def test_unknown_field(self, ledger, user_id):
        with pytest.raises(ValidationError):
            ledger.upsert_profile(user_id, free_appeals_used=0)

    def test_customer_ref(self, ledger, user_id):
        ledger.set_payment_customer_ref(user_id, "cus_123")
        assert ledger.get_entitlement(user_id).payment_customer_ref == "cus_123"


class TestUsageSummary:

    def test_shape(self, ledger, user_id):
        ledger.register_vehicle(user_id, "AB12CDE")
        data = ledger.usage_summary(user_id).to_dict()
        assert data["free_appeals_used"] == 0
        assert data["has_free_appeal"] is True
        assert data["total_vehicles"] == 1
        assert data["pending_appeals"] == 0


# =============================================================================
# TEST: PAYMENT GATE
# =============================================================================

class TestPaymentGate:
    """Pure decisions over an EntitlementRecord snapshot."""

    def test_free_appeal_available(self):
        record = EntitlementRecord(user_id="u", free_appeals_used=0)
        assert PaymentGate().decide(record, ActionType.CREATE_APPEAL) == GateDecision.ALLOW_FREE

    def test_free_appeal_used(self):
        record = EntitlementRecord(user_id="u", free_appeals_used=1)
        assert PaymentGate().decide(record, ActionType.CREATE_APPEAL) == GateDecision.REQUIRE_PAYMENT

    def test_paid_credit_waiting(self):
        record = EntitlementRecord(user_id="u", free_appeals_used=1, paid_appeal_credits=1)
        assert PaymentGate().decide(record, ActionType.CREATE_APPEAL) == GateDecision.ALLOW_PAID

    def test_first_vehicle_free(self):
        record = EntitlementRecord(user_id="u")
        assert PaymentGate().decide(record, ActionType.ADD_VEHICLE, "AB12CDE") == GateDecision.ALLOW_FREE

    def test_same_vehicle_unchanged(self):
        record = EntitlementRecord(user_id="u", vehicle_registration="AB12CDE")
        decision = PaymentGate().decide(record, ActionType.CHANGE_VEHICLE, "ab12 cde")
        assert decision == GateDecision.ALLOW_UNCHANGED

    def test_second_vehicle_requires_payment(self):
        record = EntitlementRecord(user_id="u", vehicle_registration="AB12CDE")
        decision = PaymentGate().decide(record, ActionType.ADD_VEHICLE, "XY99ZZZ")
        assert decision == GateDecision.REQUIRE_PAYMENT

    def test_second_vehicle_with_credit(self):
        record = EntitlementRecord(user_id="u", vehicle_registration="AB12CDE", vehicle_change_credits=1)
        decision = PaymentGate().decide(record, ActionType.CHANGE_VEHICLE, "XY99ZZZ")
        assert decision == GateDecision.ALLOW_PAID

    def test_prices(self):
        assert PaymentGate.price_for(ActionType.CREATE_APPEAL) == 500
        assert PaymentGate.price_for(ActionType.CHANGE_VEHICLE) == 300

    def test_normalize_plate(self):
        assert normalize_plate(" ab12\tcde ") == "AB12CDE"
        assert normalize_plate(None) == ""
