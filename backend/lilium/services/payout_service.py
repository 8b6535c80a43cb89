# Overview: Vendor payout requests and the payout status machine, kept in step with order payout status.

from __future__ import annotations

from ..errors import (
    Forbidden,
    InsufficientBalance,
    InvalidTransition,
    PayoutNotFound,
    ValidationFailure,
)
from ..models import PAYOUT_METHODS, PAYOUT_REQUEST_STATUSES, Payout, PayoutOrder
from ..policies import COMPANY_ADMIN, ensure_can_request_payout
from ..time_utils import to_utc_z, utcnow
from ..validation import validate_bank_details
from .concurrency import begin_write, run_with_retry
from .notifications import PAYOUT_STATUS_CHANGED, dispatch
from .settlement_service import claim_status

"""
Payout Invariants (authoritative)

Status machine:
    PENDING    -> PROCESSING | FAILED | CANCELLED
    PROCESSING -> COMPLETED | FAILED | CANCELLED
    COMPLETED, FAILED, CANCELLED are terminal

Claims (PayoutOrder rows) are per company:
- request:                the company claims its share of each included order
- COMPLETED:              the claim is settled (PAID for that company)
- FAILED / CANCELLED:     the claim is released; the share is eligible again

A payout may only include DELIVERED orders with this company's lines that the
company has not claimed yet, and never exceeds its available balance. Another
vendor's claim on the same order does not affect eligibility.

Order.payout_status is recomputed from every vendor's claims in the same
transaction: UNPAID with no claims, PAID when every vendor is paid, otherwise
PENDING.
"""

PAYOUT_TRANSITIONS = {
    "PENDING": ("PROCESSING", "FAILED", "CANCELLED"),
    "PROCESSING": ("COMPLETED", "FAILED", "CANCELLED"),
    "COMPLETED": (),
    "FAILED": (),
    "CANCELLED": (),
}
RELEASING_STATUSES = ("FAILED", "CANCELLED")


def rollup_payout_status(vendor_ids, claims) -> str:
    """Order-level payout status from each vendor's live claim (company_id -> payout status)."""
    states = {claim_status(claims.get(vendor_id)) for vendor_id in vendor_ids}
    if not states or states == {"UNPAID"}:
        return "UNPAID"
    if states == {"PAID"}:
        return "PAID"
    return "PENDING"


class PayoutService:

    def __init__(self, *, session, payouts, orders, settlements, settings, notifier=None, logger=None):
        self.session = session
        self.payouts = payouts
        self.orders = orders
        self.settlements = settlements
        self.settings = settings
        self.notifier = notifier
        self.logger = logger

    def _run(self, op):
        return run_with_retry(
            self.session,
            op,
            attempts=self.settings.retry_attempts,
            backoff_base=self.settings.retry_backoff,
        )

    # =========================================================================
    # REQUEST
    # =========================================================================

    def create_payout(self, data) -> Payout:
        """
        Request a payout for a vendor. `data` is a CreatePayoutInput.

        Without order_ids every delivered, unpaid order is included. Without
        amount the payout is the full payable value of the included orders.
        """
        if data.method not in PAYOUT_METHODS:
            raise ValidationFailure(f"Unsupported payout method: {data.method}", {"method": data.method})
        bank_details = None
        if data.method == "BANK_TRANSFER":
            bank_details = validate_bank_details(data.bank_details)

        def _op():
            begin_write(self.session)
            company = self.settlements.get_company(data.company_id)
            rate = self.settlements.commission_rate_bps(company)

            eligible = {order.id: revenue for order, revenue in self.settlements.unpaid_completed(company.id)}
            if data.order_ids is None:
                selected = sorted(eligible)
            else:
                not_eligible = [oid for oid in data.order_ids if oid not in eligible]
                if not_eligible:
                    raise ValidationFailure(
                        "Orders are not delivered, unpaid orders of this company",
                        {"order_ids": not_eligible},
                    )
                selected = sorted(data.order_ids)
            if not selected:
                raise InsufficientBalance(
                    "No delivered, unpaid orders to pay out",
                    {"company_id": company.id},
                )

            balance = self.settlements.payable_for(sum(eligible.values()), rate)
            selected_value = self.settlements.payable_for(sum(eligible[oid] for oid in selected), rate)
            amount = data.amount if data.amount is not None else selected_value
            limit = min(balance, selected_value)
            if amount <= 0 or amount > limit:
                raise InsufficientBalance(
                    f"Requested payout {amount} exceeds available balance {limit}",
                    {"requested": amount, "available": limit, "company_id": company.id},
                )

            payout = Payout(
                company_id=company.id,
                amount=amount,
                method=data.method,
                status="PENDING",
                bank_details=bank_details,
                notes=data.notes,
                requested_by=data.requested_by,
                requested_at=utcnow(),
            )
            payout.included_orders = [PayoutOrder(order_id=oid) for oid in selected]
            self.payouts.add(payout)
            self._refresh_orders(selected)
            self.session.commit()
            return payout

        payout = self._run(_op)
        if self.logger is not None:
            self.logger.info(
                "Payout %s requested for company %s: amount=%s orders=%s",
                payout.id, payout.company_id, payout.amount, len(payout.order_ids),
            )
        self._notify(payout, None)
        return payout

    # =========================================================================
    # STATUS
    # =========================================================================

    def _apply_status(self, payout: Payout, new_status: str, actor_id, notes) -> str:
        previous = payout.status
        if new_status not in PAYOUT_TRANSITIONS.get(previous, ()):
            raise InvalidTransition(
                f"Cannot transition payout from {previous} to {new_status}",
                {"payout_id": payout.id, "from": previous, "to": new_status},
            )
        payout.status = new_status
        if notes:
            payout.notes = notes

        if new_status == "COMPLETED" or new_status in RELEASING_STATUSES:
            payout.processed_at = utcnow()
            payout.processed_by = actor_id
        self._refresh_orders(payout.order_ids)
        return previous

    def _refresh_orders(self, order_ids) -> None:
        order_ids = list(order_ids)
        vendors = self.orders.vendor_ids_by_order(order_ids)
        claims = self.payouts.claims_by_order(order_ids)
        for order in self.orders.get_many(order_ids, lock=True):
            order.payout_status = rollup_payout_status(vendors.get(order.id, ()), claims.get(order.id, {}))

    def update_status(self, payout_id: int, new_status: str, actor_id: int | None = None, notes: str | None = None) -> Payout:
        if new_status not in PAYOUT_REQUEST_STATUSES:
            raise ValidationFailure(f"Unknown payout status: {new_status}", {"status": new_status})

        def _op():
            begin_write(self.session)
            payout = self.payouts.get(payout_id, lock=True)
            if payout is None:
                raise PayoutNotFound("Payout not found", {"payout_id": payout_id})
            previous = self._apply_status(payout, new_status, actor_id, notes)
            self.session.commit()
            return payout, previous

        payout, previous = self._run(_op)
        if self.logger is not None:
            self.logger.info("Payout %s moved %s -> %s by %s", payout.id, previous, new_status, actor_id)
        self._notify(payout, previous)
        return payout

    def cancel_payout(self, payout_id: int, actor, reason: str | None = None) -> Payout:
        """
        Cancel a payout and release its orders.

        Company admins may only cancel their own payouts while still PENDING.
        """
        def _op():
            begin_write(self.session)
            payout = self.payouts.get(payout_id, lock=True)
            if payout is None:
                raise PayoutNotFound("Payout not found", {"payout_id": payout_id})
            ensure_can_request_payout(actor, payout.company_id)
            if actor.role == COMPANY_ADMIN and payout.status != "PENDING":
                raise Forbidden(
                    "Only pending payouts can be cancelled by the company",
                    {"payout_id": payout.id, "status": payout.status},
                )
            previous = self._apply_status(payout, "CANCELLED", actor.id, reason)
            self.session.commit()
            return payout, previous

        payout, previous = self._run(_op)
        if self.logger is not None:
            self.logger.info("Payout %s cancelled by %s", payout.id, actor.id)
        self._notify(payout, previous)
        return payout

    def bulk_approve(self, payout_ids, actor_id: int | None = None) -> dict:
        """Move every PENDING payout in `payout_ids` to PROCESSING in one unit; others are skipped."""
        payout_ids = list(dict.fromkeys(payout_ids))
        if not payout_ids:
            raise ValidationFailure("payout_ids must not be empty")

        def _op():
            begin_write(self.session)
            found = {p.id: p for p in self.payouts.get_many(payout_ids, lock=True)}
            approved, skipped = [], []
            for payout_id in payout_ids:
                payout = found.get(payout_id)
                if payout is None:
                    skipped.append({"payout_id": payout_id, "reason": "not found"})
                elif payout.status != "PENDING":
                    skipped.append({"payout_id": payout_id, "reason": f"status is {payout.status}"})
                else:
                    self._apply_status(payout, "PROCESSING", actor_id, None)
                    approved.append(payout)
            self.session.commit()
            return approved, skipped

        approved, skipped = self._run(_op)
        for payout in approved:
            self._notify(payout, "PENDING")
        return {
            "approved": [p.id for p in approved],
            "skipped": skipped,
        }

    def _notify(self, payout: Payout, previous: str | None) -> None:
        dispatch(self.notifier, self.logger, PAYOUT_STATUS_CHANGED, {
            "payout_id": payout.id,
            "company_id": payout.company_id,
            "amount": payout.amount,
            "from": previous,
            "to": payout.status,
        })

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_payout(self, payout_id: int) -> Payout:
        payout = self.payouts.get(payout_id)
        if payout is None:
            raise PayoutNotFound("Payout not found", {"payout_id": payout_id})
        return payout

    def list_payouts(self, filters) -> tuple[list[Payout], dict]:
        items, total = self.payouts.paginate(
            page=filters.page,
            limit=filters.limit,
            company_id=filters.company_id,
            status=filters.status,
            start=filters.start,
            end=filters.end,
        )
        return items, {
            "page": filters.page,
            "limit": filters.limit,
            "total": total,
            "pages": (total + filters.limit - 1) // filters.limit,
        }

    def payout_summary(self, company_id: int) -> dict:
        company = self.settlements.get_company(company_id)
        totals = self.payouts.totals_by_status(company.id)
        by_status = {
            status: {"count": totals.get(status, (0, 0))[0], "amount": totals.get(status, (0, 0))[1]}
            for status in PAYOUT_REQUEST_STATUSES
        }
        completed = by_status["COMPLETED"]
        return {
            "company_id": company.id,
            "by_status": by_status,
            "total_paid": completed["amount"],
            "in_progress_amount": by_status["PENDING"]["amount"] + by_status["PROCESSING"]["amount"],
            "average_payout": completed["amount"] // completed["count"] if completed["count"] else 0,
            "last_payout_at": to_utc_z(self.payouts.last_completed_at(company.id)),
            "available_balance": self.settlements.available_balance(company.id),
        }
