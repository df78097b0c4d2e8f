"""
Output Builder

Constructs the API response (per-sale views and dashboard totals) from
computed results.
"""

from decimal import Decimal

from .models import (
    BatchResult,
    CostAllocation,
    DashboardFilter,
    DashboardTotals,
    RecurrenceState,
    SaleView,
    SkippedSale,
    Tranche,
)


def to_money(value: Decimal) -> float:
    """Convert Decimal to float with 2 decimal places."""
    return round(float(value), 2)


def to_pct(ratio: Decimal) -> float:
    """Convert a ratio (0.45) to a percentage number (45.0)."""
    return round(float(ratio * 100), 4)


def _fmt(value) -> str:
    """Format a number as currency string for descriptions."""
    return f"R$ {value:,.2f}"


class OutputBuilder:
    """Builds the output response."""

    def build_batch(self, batch: BatchResult) -> dict:
        """Construct the batch response: every view plus skipped sales."""
        return {
            "views": [self.build_view(view) for view in batch.views],
            "skipped": [self.build_skipped(s) for s in batch.skipped],
            "warnings": batch.warnings,
        }

    def build_view(self, view: SaleView) -> dict:
        """Build the per-sale view consumed by tables and CSV export."""
        sale = view.sale
        output = {
            "sale_id": sale.sale_id,
            "partner": sale.partner.value,
            "seller_id": sale.seller_id,
            "seller_name": sale.seller_name,
            "client_name": sale.client_name,
            "gross_proposal": to_money(sale.gross_proposal),
            "discount_pct": float(sale.discount_pct),
            "kwh": float(sale.kwh),
            "financial_status": sale.financial_status,
            "completed_at": sale.completed_at.isoformat() if sale.completed_at else None,
            "tranches": [self.build_tranche(t, view.rule.pct_options(t.ordinal)) for t in view.tranches],
            "seller_commission": to_money(view.costs.seller_commission),
            "company_net_profit": to_money(view.costs.company_net_profit),
            "costs": self._build_costs(view),
            "recurrence": self.build_recurrence(view.recurrence),
            "warnings": list(view.warnings),
        }
        if view.metrics is not None:
            output["monthly_volume"] = {
                "month_key": view.metrics.month_key,
                "total_kwh": float(view.metrics.total_kwh),
                "sale_count": view.metrics.sale_count,
            }
        return output

    def build_tranche(self, tranche: Tranche, pct_options: tuple[Decimal, ...] = ()) -> dict:
        return {
            "ordinal": int(tranche.ordinal),
            "label": tranche.ordinal.name.lower(),
            "amount": to_money(tranche.amount),
            "pct": to_pct(tranche.pct),
            "due_date": tranche.due_date.isoformat(),
            "default_due_date": tranche.default_due_date.isoformat(),
            "overridden": tranche.overridden,
            "overridable": tranche.overridable,
            "pct_selected": tranche.pct_selected,
            "pct_options": [to_pct(option) for option in pct_options],
        }

    def _build_costs(self, view: SaleView) -> dict:
        """Build cost breakdown with value and dynamic description for each field."""
        sale = view.sale
        rule = view.rule
        costs: CostAllocation = view.costs
        gross_total = to_money(costs.gross_commission_total)

        if rule.cost_exempt:
            pass_through_desc = f"{rule.partner.value} is exempt from pass-through costs"
        else:
            pass_through_desc = (
                f"risk reserve ({_fmt(costs.risk_reserve_fee)}) + broker ({_fmt(costs.broker_fee)}) "
                f"+ tax note ({_fmt(costs.tax_note_fee)}) = {_fmt(costs.pass_through_total)}"
            )

        return {
            "gross_commission_total": {
                "value": gross_total,
                "description": " + ".join(_fmt(t.amount) for t in view.tranches) + f" = {_fmt(gross_total)}",
            },
            "seller_commission": {
                "value": to_money(costs.seller_commission),
                "description": (
                    f"{_fmt(sale.gross_proposal)} × (1 - {sale.discount_pct}%) × "
                    f"{to_pct(costs.seller_rate):g}% = {_fmt(costs.seller_commission)}"
                ),
            },
            "company_gross_profit": {
                "value": to_money(costs.company_gross_profit),
                "description": (
                    f"gross commission ({_fmt(gross_total)}) - seller ({_fmt(costs.seller_commission)}) "
                    f"= {_fmt(costs.company_gross_profit)}"
                ),
            },
            "risk_reserve_fee": {
                "value": to_money(costs.risk_reserve_fee),
                "description": "Churn guarantee reserve on gross commission",
            },
            "broker_fee": {
                "value": to_money(costs.broker_fee),
                "description": (
                    "Commercializer fee not charged for this partner"
                    if rule.broker_fee_exempt or rule.cost_exempt
                    else "Commercializer fee on gross commission"
                ),
            },
            "tax_note_fee": {
                "value": to_money(costs.tax_note_fee),
                "description": "Tax invoice fee on gross commission",
            },
            "pass_through_total": {
                "value": to_money(costs.pass_through_total),
                "description": pass_through_desc,
            },
            "financing_interest": {
                "value": to_money(costs.financing_interest),
                "pct": to_pct(costs.financing_interest_pct),
                "description": (
                    f"{to_pct(costs.financing_interest_pct):g}% × immediate tranche = {_fmt(costs.financing_interest)}"
                    if costs.financing_interest_pct > 0
                    else "No financing interest for this partner"
                ),
            },
            "company_net_profit": {
                "value": to_money(costs.company_net_profit),
                "description": (
                    f"gross profit ({_fmt(costs.company_gross_profit)}) - pass-through "
                    f"({_fmt(costs.pass_through_total)}) - interest ({_fmt(costs.financing_interest)}) "
                    f"= {_fmt(costs.company_net_profit)}"
                ),
            },
        }

    def build_recurrence(self, state: RecurrenceState) -> dict:
        return {
            "eligible": state.eligible,
            "rate_pct": float(state.rate_pct),
            "monthly_amount": to_money(state.monthly_amount),
            "activation_month": state.activation_month,
            "expected_installments": state.expected_installments,
            "paid_months": list(state.paid_months),
            "paid_installments": state.paid_installments,
            "pending_installments": state.pending_installments,
            "exclusion_reason": state.exclusion_reason,
        }

    def build_totals(self, totals: DashboardTotals) -> dict:
        """Build the summary dashboard totals."""
        return {
            "total_receivable": to_money(totals.total_receivable),
            "tranche_receivable": to_money(totals.tranche_receivable),
            "recurrence_received": to_money(totals.recurrence_received),
            "total_costs": to_money(totals.total_costs),
            "net_profit": to_money(totals.net_profit),
            "tranche_count": totals.tranche_count,
            "sale_count": totals.sale_count,
            "total_kwh": float(totals.total_kwh),
        }

    def build_filter(self, filters: DashboardFilter) -> dict:
        return {
            "partner": filters.partner.value if filters.partner else None,
            "seller": filters.seller,
            "month_key": filters.month_key,
            "start": filters.start.isoformat() if filters.start else None,
            "end": filters.end.isoformat() if filters.end else None,
        }

    def build_skipped(self, skipped: SkippedSale) -> dict:
        return {"sale_id": skipped.sale_id, "reason": skipped.reason}
