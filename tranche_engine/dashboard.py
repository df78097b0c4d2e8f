"""
Dashboard Aggregator

Sums what a reporting window actually receives: tranches by effective due
date and recurrence by the months marked paid in the ledger.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from .calculators.costs import CostAllocator
from .calculators.tranches import quantize_money
from .dates import month_bounds, parse_month_key
from .models import DashboardFilter, DashboardTotals, SaleView, TrancheOrdinal

DEFAULT_GOOD_STANDING_STATUSES = ("adimplente",)


class DashboardAggregator:
    """Filters computed sale views and totals them over a window."""

    def __init__(
        self,
        cost_allocator: CostAllocator | None = None,
        good_standing_statuses: Iterable[str] = DEFAULT_GOOD_STANDING_STATUSES,
    ):
        self.cost_allocator = cost_allocator or CostAllocator()
        self.good_standing_statuses = frozenset(s.strip().lower() for s in good_standing_statuses)

    def summarize(self, views: Iterable[SaleView], filters: DashboardFilter | None = None) -> DashboardTotals:
        """
        Window totals.

        - A tranche counts once, in the window holding its due date, and only
          when its amount is positive.
        - Recurrence counts one monthly amount per paid month whose first day
          falls in the window, and only for clients in good financial standing.
        - Costs follow the schedule: pass-through on every received tranche,
          financing interest and the seller's commission on the immediate
          tranche's due date even when that tranche pays nothing.
        """
        filters = filters or DashboardFilter()
        window = self.window(filters)
        totals = DashboardTotals()

        for view in views:
            if not self.matches(view, filters):
                continue

            received, costs, count = self._tranches_in_window(view, window)
            recurrence = self._recurrence_in_window(view, window)
            if count == 0 and costs == 0 and recurrence == 0:
                continue

            totals.tranche_receivable += received
            totals.recurrence_received += recurrence
            totals.total_costs += costs
            totals.tranche_count += count
            totals.sale_count += 1
            totals.total_kwh += view.sale.kwh

        return totals

    def breakdown_by(
        self, views: Iterable[SaleView], filters: DashboardFilter | None = None, key: str = "partner"
    ) -> dict[str, DashboardTotals]:
        """Window totals grouped by partner or seller."""
        if key not in ("partner", "seller"):
            raise ValueError(f"Invalid breakdown key: {key}. Must be 'partner' or 'seller'")

        groups: dict[str, list[SaleView]] = {}
        for view in views:
            if key == "partner":
                group = view.sale.partner.value
            else:
                group = str(view.sale.seller_name or view.sale.seller_id or "unassigned")
            groups.setdefault(group, []).append(view)

        return {group: self.summarize(members, filters) for group, members in sorted(groups.items())}

    def window(self, filters: DashboardFilter) -> tuple[date, date] | None:
        """Inclusive [start, end] window, or None for all time."""
        if filters.month_key is not None:
            return month_bounds(filters.month_key)
        if filters.start is not None:
            end = filters.end or filters.start
            if end < filters.start:
                raise ValueError(f"Window end ({end}) is before start ({filters.start})")
            return filters.start, end
        return None

    def matches(self, view: SaleView, filters: DashboardFilter) -> bool:
        sale = view.sale
        if filters.partner is not None and sale.partner is not filters.partner:
            return False
        if filters.seller is not None:
            wanted = filters.seller.strip().lower()
            if wanted not in (str(sale.seller_id or "").lower(), str(sale.seller_name).strip().lower()):
                return False
        return True

    def in_good_standing(self, view: SaleView) -> bool:
        """Whether the client's payments are current, so recurrence is cash in hand."""
        if not self.good_standing_statuses:
            return True
        status = (view.sale.financial_status or "").strip().lower()
        return status in self.good_standing_statuses

    def _tranches_in_window(self, view: SaleView, window) -> tuple[Decimal, Decimal, int]:
        pass_through_rate = self.cost_allocator.pass_through_rate(view.rule)
        received = Decimal("0")
        costs = Decimal("0")
        count = 0

        for tranche in view.tranches:
            if window is not None and not (window[0] <= tranche.due_date <= window[1]):
                continue
            if tranche.ordinal == TrancheOrdinal.IMMEDIATE:
                costs += view.costs.financing_interest + view.costs.seller_commission
            if tranche.amount <= 0:
                continue
            received += tranche.amount
            costs += quantize_money(tranche.amount * pass_through_rate)
            count += 1

        return received, costs, count

    def _recurrence_in_window(self, view: SaleView, window) -> Decimal:
        recurrence = view.recurrence
        if not recurrence.eligible or recurrence.monthly_amount <= 0:
            return Decimal("0")
        if not self.in_good_standing(view):
            return Decimal("0")

        if window is None:
            paid = len(recurrence.paid_months)
        else:
            paid = sum(1 for month in recurrence.paid_months if window[0] <= parse_month_key(month) <= window[1])
        return recurrence.monthly_amount * paid
