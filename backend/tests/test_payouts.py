# Overview: Pytest coverage for payout requests, the payout status machine and order payout status.

"""
Payout Tests

Covers:
- Requests: default amount, order selection, balance limits, bank details
- Status machine: PENDING -> PROCESSING -> COMPLETED, FAILED/CANCELLED release orders
- Cancellation rules for company admins
- Bulk approval, listing and summaries
"""

import pytest

from lilium.errors import (
    Forbidden,
    InsufficientBalance,
    InvalidTransition,
    PayoutNotFound,
    ValidationFailure,
)
from lilium.models import Order
from lilium.policies import Actor, COMPANY_ADMIN
from lilium.services.notifications import PAYOUT_STATUS_CHANGED
from lilium.validation import CreatePayoutInput, PayoutFilters


BANK = {"account_name": "Karkh Foods LLC", "account_number": "0012345", "bank_name": "Rafidain"}


def payout_status_of(db_session, order_id):
    return db_session.get(Order, order_id, populate_existing=True).payout_status


@pytest.fixture
def delivered(place_order, deliver, rice):
    """Two delivered karkh orders worth 10000 and 20000 (payable 9000 + 18000)."""
    return deliver(place_order((rice, 1))), deliver(place_order((rice, 2)))


def request(engine, company, **kwargs):
    kwargs.setdefault("method", "CASH")
    return engine.payouts.create_payout(CreatePayoutInput(company_id=company.id, **kwargs))


class TestCreatePayout:

    def test_default_covers_every_unpaid_delivered_order(self, engine, db_session, notifier, delivered, karkh_vendor):
        first, second = delivered

        payout = request(engine, karkh_vendor, requested_by=9003)

        assert payout.status == "PENDING"
        assert payout.amount == 27000
        assert payout.order_ids == [first.id, second.id]
        assert payout.requested_by == 9003
        assert payout_status_of(db_session, first.id) == "PENDING"
        assert payout_status_of(db_session, second.id) == "PENDING"
        assert engine.settlements.available_balance(karkh_vendor.id) == 0
        assert notifier.of(PAYOUT_STATUS_CHANGED)[0]["to"] == "PENDING"

    def test_selected_orders_only(self, engine, db_session, delivered, karkh_vendor):
        first, second = delivered

        payout = request(engine, karkh_vendor, order_ids=(first.id,))

        assert payout.amount == 9000
        assert payout_status_of(db_session, second.id) == "UNPAID"
        assert engine.settlements.available_balance(karkh_vendor.id) == 18000

    def test_partial_amount(self, engine, delivered, karkh_vendor):
        payout = request(engine, karkh_vendor, amount=5000)
        assert payout.amount == 5000

    def test_amount_above_balance(self, engine, db_session, delivered, karkh_vendor):
        with pytest.raises(InsufficientBalance) as exc:
            request(engine, karkh_vendor, amount=27001)

        assert exc.value.details["available"] == 27000
        assert payout_status_of(db_session, delivered[0].id) == "UNPAID"

    def test_amount_above_selected_orders(self, engine, delivered, karkh_vendor):
        with pytest.raises(InsufficientBalance):
            request(engine, karkh_vendor, amount=10000, order_ids=(delivered[0].id,))

    def test_nothing_to_pay(self, engine, place_order, rice, karkh_vendor):
        place_order((rice, 1))

        with pytest.raises(InsufficientBalance):
            request(engine, karkh_vendor)

    def test_ineligible_orders_rejected(self, engine, place_order, delivered, rice, karkh_vendor):
        pending = place_order((rice, 1))

        with pytest.raises(ValidationFailure) as exc:
            request(engine, karkh_vendor, order_ids=(delivered[0].id, pending.id))

        assert exc.value.details["order_ids"] == [pending.id]

    def test_orders_already_in_a_payout_are_ineligible(self, engine, delivered, karkh_vendor):
        request(engine, karkh_vendor, order_ids=(delivered[0].id,))

        with pytest.raises(ValidationFailure):
            request(engine, karkh_vendor, order_ids=(delivered[0].id,))

    def test_bank_transfer_requires_details(self, engine, delivered, karkh_vendor):
        with pytest.raises(ValidationFailure):
            request(engine, karkh_vendor, method="BANK_TRANSFER")

        with pytest.raises(ValidationFailure) as exc:
            request(engine, karkh_vendor, method="BANK_TRANSFER", bank_details={"bank_name": "Rafidain"})
        assert exc.value.details["missing"] == ["account_name", "account_number"]

    def test_bank_details_are_snapshotted(self, engine, delivered, karkh_vendor):
        payout = request(engine, karkh_vendor, method="BANK_TRANSFER", bank_details=dict(BANK, extra="ignored"))
        assert payout.bank_details == BANK

    def test_unsupported_method(self, engine, delivered, karkh_vendor):
        with pytest.raises(ValidationFailure):
            request(engine, karkh_vendor, method="CRYPTO")


class TestPayoutStatus:

    def test_completion_marks_orders_paid(self, engine, db_session, delivered, karkh_vendor, super_actor):
        payout = request(engine, karkh_vendor)

        engine.payouts.update_status(payout.id, "PROCESSING", super_actor.id)
        payout = engine.payouts.update_status(payout.id, "COMPLETED", super_actor.id, "wired")

        assert payout.status == "COMPLETED"
        assert payout.processed_by == super_actor.id
        assert payout.processed_at is not None
        assert payout.notes == "wired"
        assert {payout_status_of(db_session, o.id) for o in delivered} == {"PAID"}
        assert engine.settlements.available_balance(karkh_vendor.id) == 0

    @pytest.mark.parametrize("path", [("CANCELLED",), ("FAILED",), ("PROCESSING", "FAILED"), ("PROCESSING", "CANCELLED")])
    def test_failure_and_cancellation_release_orders(self, engine, db_session, delivered, karkh_vendor, path):
        payout = request(engine, karkh_vendor)

        for status in path:
            engine.payouts.update_status(payout.id, status)

        assert {payout_status_of(db_session, o.id) for o in delivered} == {"UNPAID"}
        assert engine.settlements.available_balance(karkh_vendor.id) == 27000

    @pytest.mark.parametrize("path,target", [
        ((), "COMPLETED"),
        (("PROCESSING", "COMPLETED"), "CANCELLED"),
        (("CANCELLED",), "PROCESSING"),
        ((), "PENDING"),
    ])
    def test_invalid_transitions(self, engine, delivered, karkh_vendor, path, target):
        payout = request(engine, karkh_vendor)
        for status in path:
            engine.payouts.update_status(payout.id, status)

        with pytest.raises(InvalidTransition):
            engine.payouts.update_status(payout.id, target)

    def test_unknown_payout(self, engine, db_session):
        with pytest.raises(PayoutNotFound):
            engine.payouts.update_status(424242, "PROCESSING")

    def test_unknown_status(self, engine, delivered, karkh_vendor):
        payout = request(engine, karkh_vendor)
        with pytest.raises(ValidationFailure):
            engine.payouts.update_status(payout.id, "LOST")

    def test_events_carry_previous_status(self, engine, notifier, delivered, karkh_vendor):
        payout = request(engine, karkh_vendor)
        engine.payouts.update_status(payout.id, "PROCESSING")

        events = notifier.of(PAYOUT_STATUS_CHANGED)
        assert [(e["from"], e["to"]) for e in events] == [(None, "PENDING"), ("PENDING", "PROCESSING")]


class TestSharedOrders:
    """One direct order carrying lines of two vendors; each vendor is paid out on its own."""

    @pytest.fixture
    def shared(self, place_order, deliver, rice, sugar):
        return deliver(place_order((rice, 1), (sugar, 1)))

    def test_other_vendor_balance_survives_payout(self, engine, shared, karkh_vendor, rusafa_vendor):
        payout = request(engine, karkh_vendor)
        engine.payouts.update_status(payout.id, "PROCESSING")
        engine.payouts.update_status(payout.id, "COMPLETED")

        assert engine.settlements.available_balance(karkh_vendor.id) == 0
        assert engine.settlements.available_balance(rusafa_vendor.id) == 18000

    def test_second_vendor_can_claim_the_same_order(self, engine, db_session, shared, karkh_vendor, rusafa_vendor):
        request(engine, karkh_vendor)

        payout = request(engine, rusafa_vendor, order_ids=(shared.id,))

        assert payout.amount == 18000
        assert payout.order_ids == [shared.id]
        assert engine.settlements.available_balance(rusafa_vendor.id) == 0

    def test_order_status_is_paid_once_every_vendor_is_paid(self, engine, db_session, shared, karkh_vendor, rusafa_vendor):
        assert payout_status_of(db_session, shared.id) == "UNPAID"

        karkh = request(engine, karkh_vendor)
        engine.payouts.update_status(karkh.id, "PROCESSING")
        engine.payouts.update_status(karkh.id, "COMPLETED")
        assert payout_status_of(db_session, shared.id) == "PENDING"

        rusafa = request(engine, rusafa_vendor)
        engine.payouts.update_status(rusafa.id, "PROCESSING")
        engine.payouts.update_status(rusafa.id, "COMPLETED")
        assert payout_status_of(db_session, shared.id) == "PAID"

    def test_cancelling_one_vendor_keeps_the_other_claim(self, engine, db_session, shared, karkh_vendor, rusafa_vendor):
        karkh = request(engine, karkh_vendor)
        rusafa = request(engine, rusafa_vendor)

        engine.payouts.update_status(rusafa.id, "CANCELLED")

        assert payout_status_of(db_session, shared.id) == "PENDING"
        assert engine.settlements.available_balance(rusafa_vendor.id) == 18000
        assert engine.settlements.available_balance(karkh_vendor.id) == 0

        engine.payouts.update_status(karkh.id, "FAILED")
        assert payout_status_of(db_session, shared.id) == "UNPAID"


class TestCancelPayout:

    def test_company_admin_cancels_own_pending(self, engine, db_session, delivered, karkh_vendor, karkh_vendor_actor):
        payout = request(engine, karkh_vendor)

        cancelled = engine.payouts.cancel_payout(payout.id, karkh_vendor_actor, "wrong account")

        assert cancelled.status == "CANCELLED"
        assert cancelled.notes == "wrong account"
        assert payout_status_of(db_session, delivered[0].id) == "UNPAID"

    def test_company_admin_cannot_cancel_processing(self, engine, delivered, karkh_vendor, karkh_vendor_actor):
        payout = request(engine, karkh_vendor)
        engine.payouts.update_status(payout.id, "PROCESSING")

        with pytest.raises(Forbidden):
            engine.payouts.cancel_payout(payout.id, karkh_vendor_actor)

    def test_other_company_admin_forbidden(self, engine, delivered, karkh_vendor, rusafa_vendor):
        payout = request(engine, karkh_vendor)

        with pytest.raises(Forbidden):
            engine.payouts.cancel_payout(payout.id, Actor(id=77, role=COMPANY_ADMIN, company_id=rusafa_vendor.id))

    def test_super_admin_cancels_processing(self, engine, delivered, karkh_vendor, super_actor):
        payout = request(engine, karkh_vendor)
        engine.payouts.update_status(payout.id, "PROCESSING")

        assert engine.payouts.cancel_payout(payout.id, super_actor).status == "CANCELLED"


class TestBulkApprove:

    def test_pending_approved_others_skipped(self, engine, delivered, karkh_vendor, super_actor):
        first, second = delivered
        pending = request(engine, karkh_vendor, order_ids=(first.id,))
        processing = request(engine, karkh_vendor, order_ids=(second.id,))
        engine.payouts.update_status(processing.id, "PROCESSING")

        result = engine.payouts.bulk_approve([pending.id, processing.id, 999999, pending.id], super_actor.id)

        assert result["approved"] == [pending.id]
        assert result["skipped"] == [
            {"payout_id": processing.id, "reason": "status is PROCESSING"},
            {"payout_id": 999999, "reason": "not found"},
        ]
        assert engine.payouts.get_payout(pending.id).status == "PROCESSING"

    def test_empty_list_rejected(self, engine):
        with pytest.raises(ValidationFailure):
            engine.payouts.bulk_approve([])


class TestQueries:

    def test_list_filters_by_status_and_company(self, engine, delivered, karkh_vendor, rusafa_vendor):
        first, second = delivered
        a = request(engine, karkh_vendor, order_ids=(first.id,))
        request(engine, karkh_vendor, order_ids=(second.id,))
        engine.payouts.update_status(a.id, "PROCESSING")

        items, pagination = engine.payouts.list_payouts(PayoutFilters(status="PROCESSING"))
        assert [p.id for p in items] == [a.id]
        assert pagination["total"] == 1

        items, _ = engine.payouts.list_payouts(PayoutFilters(company_id=rusafa_vendor.id))
        assert items == []

    def test_summary(self, engine, delivered, karkh_vendor):
        first, second = delivered
        done = request(engine, karkh_vendor, order_ids=(first.id,))
        engine.payouts.update_status(done.id, "PROCESSING")
        engine.payouts.update_status(done.id, "COMPLETED")
        request(engine, karkh_vendor, order_ids=(second.id,))

        summary = engine.payouts.payout_summary(karkh_vendor.id)

        assert summary["by_status"]["COMPLETED"] == {"count": 1, "amount": 9000}
        assert summary["by_status"]["PENDING"] == {"count": 1, "amount": 18000}
        assert summary["total_paid"] == 9000
        assert summary["in_progress_amount"] == 18000
        assert summary["average_payout"] == 9000
        assert summary["last_payout_at"] is not None
        assert summary["available_balance"] == 0

    def test_get_unknown(self, engine, db_session):
        with pytest.raises(PayoutNotFound):
            engine.payouts.get_payout(1)
