"""
Tranche Scheduler

Builds the three-tranche commission schedule for one sale.
All amounts use Decimal with ROUND_HALF_UP rounding.
"""

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ..dates import FRIDAY, add_months_pin_day, next_weekly_boundary
from ..models import (
    AggregateMetrics,
    CommissionRule,
    DateOverrides,
    PctSelections,
    SaleRecord,
    Tranche,
    TrancheOrdinal,
    VolumeTier,
)

logger = logging.getLogger(__name__)


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def tier_pct(tiers: tuple[VolumeTier, ...], volume: Decimal) -> Decimal:
    """
    Percentage of the first tier whose upper bound is >= volume.

    Boundary values belong to the lower tier: with bounds 30k/40k,
    exactly 30 000 kWh pays the first tier and 40 000 kWh the second.
    """
    for tier in tiers:
        if tier.upper_bound is None or volume <= tier.upper_bound:
            return tier.pct
    # Validated tables end with an unbounded tier; this only guards hand-built ones
    return tiers[-1].pct if tiers else Decimal('0')


class TrancheScheduler:
    """Computes tranche amounts and due dates for a sale."""

    def __init__(self, payroll_weekday: int = FRIDAY):
        self.payroll_weekday = payroll_weekday

    def schedule(
        self,
        sale: SaleRecord,
        rule: CommissionRule,
        overrides: DateOverrides | None = None,
        metrics: AggregateMetrics | None = None,
        as_of: date | None = None,
        selections: PctSelections | None = None,
    ) -> list[Tranche]:
        """
        Build the ordered schedule: immediate, second, third.

        Zero-amount tranches are kept so every sale has the same columns.
        A sale with no completion date is scheduled from `as_of`.
        An operator-selected percentage replaces the default only when the
        rule lists it among its options for that tranche.
        """
        overrides = overrides or DateOverrides()
        selections = selections or PctSelections()
        completed = sale.completed_at or as_of
        if completed is None:
            raise ValueError(f"Sale {sale.sale_id} has no completion date and no as_of date was given")

        gross = sale.gross_proposal
        second_pct, second_selected = self._selected_pct(sale, rule, TrancheOrdinal.SECOND, rule.second_pct, selections)
        third_pct, third_selected = self._selected_pct(
            sale, rule, TrancheOrdinal.THIRD, self.third_pct(rule, metrics), selections
        )

        immediate_default = next_weekly_boundary(completed, self.payroll_weekday)
        second_default = add_months_pin_day(completed, rule.second_offset_months, rule.second_pin_day)
        third_default = add_months_pin_day(completed, rule.third_offset_months, rule.third_pin_day)

        return [
            self._build(sale, TrancheOrdinal.IMMEDIATE, gross, rule.immediate_pct, immediate_default, overrides),
            self._build(sale, TrancheOrdinal.SECOND, gross, second_pct, second_default, overrides, second_selected),
            self._build(sale, TrancheOrdinal.THIRD, gross, third_pct, third_default, overrides, third_selected),
        ]

    def third_pct(self, rule: CommissionRule, metrics: AggregateMetrics | None) -> Decimal:
        """Flat third percentage, or the tier selected by monthly volume."""
        if not rule.is_tiered:
            return rule.third_pct
        volume = metrics.total_kwh if metrics is not None else Decimal('0')
        return tier_pct(rule.third_tiers, volume)

    def _selected_pct(
        self,
        sale: SaleRecord,
        rule: CommissionRule,
        ordinal: TrancheOrdinal,
        default: Decimal,
        selections: PctSelections,
    ) -> tuple[Decimal, bool]:
        selected = selections.get(sale.sale_id, ordinal)
        if selected is None:
            return default, False
        if selected not in rule.pct_options(ordinal):
            logger.warning(
                f"Ignoring {ordinal.name.lower()} percentage {selected} for sale {sale.sale_id}: "
                f"not an option for {rule.partner.value}"
            )
            return default, False
        return selected, True

    def _build(
        self,
        sale: SaleRecord,
        ordinal: TrancheOrdinal,
        gross: Decimal,
        pct: Decimal,
        default_due: date,
        overrides: DateOverrides,
        pct_selected: bool = False,
    ) -> Tranche:
        override = overrides.get(sale.sale_id, ordinal)
        return Tranche(
            ordinal=ordinal,
            amount=quantize_money(gross * pct),
            pct=pct,
            due_date=override if override is not None else default_due,
            default_due_date=default_due,
            overridden=override is not None,
            pct_selected=pct_selected,
        )
