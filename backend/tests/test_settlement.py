# Overview: Pytest coverage for vendor balances, commission reports and settlement summaries.

"""
Settlement Tests

Vendor revenue is gross (unit_price * quantity over the vendor's own lines),
only DELIVERED orders count, commission rounds half-up.
"""

from datetime import timedelta

import pytest

from lilium.errors import CompanyNotFound, ValidationFailure
from lilium.services.settlement_service import commission_for
from lilium.time_utils import utcnow
from lilium.validation import CreatePayoutInput


@pytest.fixture
def flour(make_product, karkh_vendor):
    return make_product(karkh_vendor, sku="FLOUR-25", price=20000, stock=40)


@pytest.fixture
def window():
    now = utcnow()
    return now - timedelta(days=1), now + timedelta(days=1)


class TestCommission:

    @pytest.mark.parametrize("revenue,rate,expected", [
        (30000, 1000, 3000),
        (10020, 250, 251),      # 250.5 rounds up
        (10019, 250, 250),
        (0, 1000, 0),
        (12345, 0, 0),
    ])
    def test_half_up(self, revenue, rate, expected):
        assert commission_for(revenue, rate) == expected


class TestAvailableBalance:

    def test_delivered_orders_less_commission(self, engine, place_order, deliver, rice, flour, karkh_vendor):
        deliver(place_order((rice, 1)))
        deliver(place_order((flour, 1)))

        assert engine.settlements.available_balance(karkh_vendor.id) == 27000

    def test_undelivered_orders_do_not_count(self, engine, place_order, deliver, super_actor, rice, karkh_vendor):
        place_order((rice, 2))
        shipped = place_order((rice, 1))
        for status in ("CONFIRMED", "PROCESSING", "SHIPPED"):
            engine.orders.transition(shipped.id, status, None, super_actor)
        cancelled = place_order((rice, 1))
        engine.orders.cancel(cancelled.id, super_actor)

        assert engine.settlements.available_balance(karkh_vendor.id) == 0

    def test_only_vendor_lines_of_mixed_order(
        self, engine, place_order, deliver, rice, sugar, karkh_vendor, rusafa_vendor
    ):
        deliver(place_order((rice, 1), (sugar, 1)))

        assert engine.settlements.available_balance(karkh_vendor.id) == 9000
        # Platform default commission (10%)
        assert engine.settlements.available_balance(rusafa_vendor.id) == 18000

    def test_unknown_company(self, engine, db_session):
        with pytest.raises(CompanyNotFound):
            engine.settlements.available_balance(424242)

    def test_company_with_no_orders(self, engine, karkh_vendor):
        assert engine.settlements.available_balance(karkh_vendor.id) == 0


class TestReport:

    def test_rows_and_totals(self, engine, place_order, deliver, rice, flour, karkh_vendor, window):
        first = deliver(place_order((rice, 1)))
        second = deliver(place_order((flour, 2)))

        report = engine.settlements.generate_report(karkh_vendor.id, *window)

        assert report["commission_rate_bps"] == 1000
        assert [row["order_id"] for row in report["orders"]] == [first.id, second.id]
        assert report["orders"][1] == {
            "order_id": second.id,
            "order_number": second.order_number,
            "delivered_at": report["orders"][1]["delivered_at"],
            "revenue": 40000,
            "commission": 4000,
            "payout": 36000,
            "payout_status": "UNPAID",
        }
        assert report["totals"] == {
            "order_count": 2,
            "revenue": 50000,
            "commission": 5000,
            "payout": 45000,
            "unpaid_payout": 45000,
        }

    def test_window_excludes_other_deliveries(self, engine, place_order, deliver, rice, karkh_vendor):
        deliver(place_order((rice, 1)))
        past = utcnow() - timedelta(days=30)

        report = engine.settlements.generate_report(karkh_vendor.id, past - timedelta(days=1), past)

        assert report["orders"] == []
        assert report["totals"]["order_count"] == 0

    def test_start_after_end_rejected(self, engine, karkh_vendor, window):
        start, end = window
        with pytest.raises(ValidationFailure):
            engine.settlements.generate_report(karkh_vendor.id, end, start)

    def test_orders_in_a_payout_are_not_unpaid(self, engine, place_order, deliver, rice, karkh_vendor, window):
        deliver(place_order((rice, 1)))
        deliver(place_order((rice, 2)))
        engine.payouts.create_payout(CreatePayoutInput(company_id=karkh_vendor.id, method="CASH"))

        totals = engine.settlements.generate_report(karkh_vendor.id, *window)["totals"]

        assert totals["payout"] == 27000
        assert totals["unpaid_payout"] == 0

    def test_shared_order_status_is_per_vendor(
        self, engine, place_order, deliver, rice, sugar, karkh_vendor, rusafa_vendor, window
    ):
        deliver(place_order((rice, 1), (sugar, 1)))
        engine.payouts.create_payout(CreatePayoutInput(company_id=karkh_vendor.id, method="CASH"))

        karkh = engine.settlements.generate_report(karkh_vendor.id, *window)
        rusafa = engine.settlements.generate_report(rusafa_vendor.id, *window)

        assert karkh["orders"][0]["payout_status"] == "PENDING"
        assert karkh["totals"]["unpaid_payout"] == 0
        assert rusafa["orders"][0]["payout_status"] == "UNPAID"
        assert rusafa["totals"]["unpaid_payout"] == 18000


class TestSummary:

    def test_counts_revenue_and_pending_collection(
        self, engine, place_order, deliver, super_actor, rice, karkh_vendor
    ):
        deliver(place_order((rice, 2)))
        place_order((rice, 1))
        cancelled = place_order((rice, 3))
        engine.orders.cancel(cancelled.id, super_actor)

        summary = engine.settlements.settlement_summary(karkh_vendor.id)

        assert summary["orders"] == {"total": 3, "delivered": 1, "cancelled": 1, "in_flight": 1}
        assert summary["revenue"] == 20000
        assert summary["commission"] == 2000
        assert summary["vendor_payout"] == 18000
        assert summary["pending_collection"] == 10000
        assert summary["available_balance"] == 18000

    def test_rejects_inverted_window(self, engine, karkh_vendor, window):
        start, end = window
        with pytest.raises(ValidationFailure):
            engine.settlements.settlement_summary(karkh_vendor.id, end, start)
