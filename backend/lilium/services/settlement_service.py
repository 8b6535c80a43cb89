# Overview: Vendor settlement math: payable balance, commission reports and period summaries. Read-only.

from __future__ import annotations

from datetime import datetime, timedelta

from ..errors import CompanyNotFound, ValidationFailure
from ..time_utils import to_utc_z, utcnow

"""
Settlement rules

- Vendor revenue of an order = SUM(unit_price * quantity) over the order's
  lines for that vendor's products (gross, before promotion discounts).
- Only DELIVERED orders count as completed.
- commission = revenue * rate_bps / 10000, rounded half-up; rate is the
  company's own rate or the platform default.
- Available balance covers completed orders the company has not claimed in a
  live payout (PENDING, PROCESSING or COMPLETED) and is never negative. Claims
  are per company, so a multi-vendor order is paid out to each vendor once.
- Reports are recomputed on every call; nothing is cached.
"""

COMPLETED_STATUSES = ("DELIVERED",)
IN_FLIGHT_STATUSES = ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED")
DEFAULT_SUMMARY_DAYS = 30


def commission_for(revenue: int, rate_bps: int) -> int:
    """Half-up integer commission."""
    return (revenue * rate_bps + 5000) // 10000


def claim_status(payout_status: str | None) -> str:
    """Vendor-side payout status of an order from the live payout claiming it."""
    if payout_status is None:
        return "UNPAID"
    return "PAID" if payout_status == "COMPLETED" else "PENDING"


class SettlementCalculator:

    def __init__(self, *, orders, companies, payouts, settings):
        self.orders = orders
        self.companies = companies
        self.payouts = payouts
        self.settings = settings

    def get_company(self, company_id: int):
        company = self.companies.get(company_id)
        if company is None:
            raise CompanyNotFound("Company not found", {"company_id": company_id})
        return company

    def commission_rate_bps(self, company) -> int:
        if company.commission_rate_bps is not None:
            return company.commission_rate_bps
        return self.settings.default_commission_rate_bps

    def payable_for(self, revenue: int, rate_bps: int) -> int:
        return max(0, revenue - commission_for(revenue, rate_bps))

    def unpaid_completed(self, company_id: int, *, order_ids=None):
        """(order, vendor_revenue) for delivered orders this company has not been paid for."""
        return self.orders.vendor_revenue_by_order(
            company_id,
            statuses=COMPLETED_STATUSES,
            unclaimed=True,
            order_ids=order_ids,
        )

    def available_balance(self, company_id: int) -> int:
        company = self.get_company(company_id)
        revenue = sum(amount for _, amount in self.unpaid_completed(company.id))
        return self.payable_for(revenue, self.commission_rate_bps(company))

    def generate_report(self, company_id: int, start: datetime, end: datetime) -> dict:
        """
        Commission/payout report for orders delivered within [start, end].

        One row per order plus totals; unpaid_payout is the part still owed.
        """
        if start is None or end is None:
            raise ValidationFailure("start and end are required")
        if start > end:
            raise ValidationFailure("start must be before end")
        company = self.get_company(company_id)
        rate = self.commission_rate_bps(company)

        entries = self.orders.vendor_revenue_by_order(
            company.id,
            statuses=COMPLETED_STATUSES,
            delivered_from=start,
            delivered_to=end,
        )
        claims = self.payouts.claims_by_order(order.id for order, _ in entries)

        rows = []
        totals = {"order_count": 0, "revenue": 0, "commission": 0, "payout": 0, "unpaid_payout": 0}
        for order, revenue in entries:
            commission = commission_for(revenue, rate)
            payout = max(0, revenue - commission)
            payout_status = claim_status(claims.get(order.id, {}).get(company.id))
            rows.append({
                "order_id": order.id,
                "order_number": order.order_number,
                "delivered_at": to_utc_z(order.delivered_at),
                "revenue": revenue,
                "commission": commission,
                "payout": payout,
                "payout_status": payout_status,
            })
            totals["order_count"] += 1
            totals["revenue"] += revenue
            totals["commission"] += commission
            totals["payout"] += payout
            if payout_status == "UNPAID":
                totals["unpaid_payout"] += payout

        return {
            "company_id": company.id,
            "company_name": company.name,
            "start": to_utc_z(start),
            "end": to_utc_z(end),
            "commission_rate_bps": rate,
            "orders": rows,
            "totals": totals,
        }

    def settlement_summary(self, company_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
        """Activity for orders placed in the window (default: the last 30 days)."""
        end = end or utcnow()
        start = start or (end - timedelta(days=DEFAULT_SUMMARY_DAYS))
        if start > end:
            raise ValidationFailure("start must be before end")
        company = self.get_company(company_id)
        rate = self.commission_rate_bps(company)

        counts = {"total": 0, "delivered": 0, "cancelled": 0, "in_flight": 0}
        revenue = 0
        pending_collection = 0
        for order, amount in self.orders.vendor_revenue_by_order(
            company.id,
            statuses=None,
            created_from=start,
            created_to=end,
        ):
            counts["total"] += 1
            if order.status in COMPLETED_STATUSES:
                counts["delivered"] += 1
                revenue += amount
            elif order.status == "CANCELLED":
                counts["cancelled"] += 1
            elif order.status in IN_FLIGHT_STATUSES:
                counts["in_flight"] += 1
                # Cash on delivery: not collected until delivered
                pending_collection += amount

        commission = commission_for(revenue, rate)
        return {
            "company_id": company.id,
            "start": to_utc_z(start),
            "end": to_utc_z(end),
            "commission_rate_bps": rate,
            "orders": counts,
            "revenue": revenue,
            "commission": commission,
            "vendor_payout": max(0, revenue - commission),
            "pending_collection": pending_collection,
            "available_balance": self.available_balance(company.id),
        }
