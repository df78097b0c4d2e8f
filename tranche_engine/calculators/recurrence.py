"""
Recurrence Engine

Recurring monthly commission for partners that pay one: eligibility,
rate, expected installments and the paid-months ledger.
"""

import logging
from datetime import date
from decimal import Decimal

from ..dates import add_months_pin_day, month_key, months_between
from ..models import (
    CommissionRule,
    PaidMonthsLedger,
    RecurrenceState,
    SaleRecord,
)
from .tranches import quantize_money

logger = logging.getLogger(__name__)


class RecurrenceEngine:
    """Evaluates recurring commission for a sale."""

    def __init__(self, activation_offset_months: int = 4):
        self.activation_offset_months = activation_offset_months

    def evaluate(
        self,
        sale: SaleRecord,
        rule: CommissionRule,
        ledger: PaidMonthsLedger | None = None,
        as_of: date | None = None,
        seller_excluded: bool = False,
    ) -> RecurrenceState:
        """
        Build the recurrence state for one sale.

        Ineligible sales get rate 0 and no installments, but their ledger
        months are still reported so an operator can see and undo them.
        """
        ledger = ledger or PaidMonthsLedger()
        paid_months = tuple(sorted(ledger.months_for(sale.sale_id)))

        reason = self.exclusion_reason(sale, rule, seller_excluded)
        if reason is not None:
            return RecurrenceState(eligible=False, paid_months=paid_months, exclusion_reason=reason)

        rate = self.rate_pct(sale, rule)
        monthly = quantize_money(sale.gross_proposal * rate / Decimal('100'))

        activation = self.activation_date(sale)
        expected = 0
        if activation is not None and as_of is not None:
            expected = max(0, months_between(activation, as_of))

        return RecurrenceState(
            eligible=True,
            rate_pct=rate,
            monthly_amount=monthly,
            activation_month=month_key(activation) if activation is not None else None,
            expected_installments=expected,
            paid_months=paid_months,
        )

    def exclusion_reason(self, sale: SaleRecord, rule: CommissionRule, seller_excluded: bool) -> str | None:
        """Why the sale earns no recurrence, or None when it does."""
        recurrence = rule.recurrence
        if recurrence is None:
            return f"partner {rule.partner.value} does not pay recurrence"
        if seller_excluded:
            return "seller is excluded from recurrence"
        if recurrence.kind == "discount_sensitive":
            cutoff = recurrence.discount_cutoff_pct
            if cutoff is not None and sale.discount_pct >= cutoff:
                return f"discount {sale.discount_pct}% meets the {cutoff}% cutoff"
        return None

    def rate_pct(self, sale: SaleRecord, rule: CommissionRule) -> Decimal:
        """Recurring rate as a percentage of the gross proposal."""
        recurrence = rule.recurrence
        if recurrence is None:
            return Decimal('0')
        if recurrence.kind == "discount_sensitive":
            return max(Decimal('0'), recurrence.base_ceiling_pct - sale.discount_pct)
        return recurrence.flat_pct

    def activation_date(self, sale: SaleRecord) -> date | None:
        """
        First day of the month installments start.

        Uses the externally supplied reference month; falls back to the
        completion month when the sale has none.
        """
        if sale.reference_month is not None and sale.reference_year is not None:
            reference = date(sale.reference_year, sale.reference_month, 1)
        elif sale.completed_at is not None:
            reference = sale.completed_at.replace(day=1)
        else:
            return None
        return add_months_pin_day(reference, self.activation_offset_months, 1)

    def toggle_paid(self, ledger: PaidMonthsLedger, sale_id: str, month_key: str) -> PaidMonthsLedger:
        """Flip a month's paid status. Toggling twice restores the ledger."""
        updated = ledger.toggle(sale_id, month_key)
        logger.info(
            f"Recurrence for sale {sale_id} month {month_key} marked "
            f"{'paid' if updated.is_paid(sale_id, month_key) else 'unpaid'}"
        )
        return updated
