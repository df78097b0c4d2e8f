"""
Cost Allocator

Derives the seller's commission, pass-through costs and company profit
from a sale's tranche schedule.
"""

from decimal import Decimal

from ..config import CostConfig
from ..models import CommissionRule, CostAllocation, SaleRecord, Tranche, TrancheOrdinal
from .tranches import quantize_money


class CostAllocator:
    """Splits a sale's gross commission between seller, costs and company."""

    def __init__(self, config: CostConfig | None = None):
        self.config = config or CostConfig()

    def allocate(
        self,
        sale: SaleRecord,
        rule: CommissionRule,
        tranches: list[Tranche],
        seller_rate: Decimal | None = None,
    ) -> CostAllocation:
        """
        Compute the full cost breakdown.

        Net Profit = Gross Commission Total
                   - Seller Commission
                   - Risk Reserve, Broker Fee, Tax Note (unless cost-exempt)
                   - Financing Interest (on the immediate tranche)
        """
        rate = seller_rate if seller_rate is not None else self.config.default_seller_rate

        seller_commission = self.seller_commission(sale, rate)
        gross_total = sum((t.amount for t in tranches), Decimal('0'))
        gross_profit = gross_total - seller_commission

        risk_reserve, broker_fee, tax_note = self._pass_through(rule, gross_total)
        pass_through = risk_reserve + broker_fee + tax_note

        immediate = next((t for t in tranches if t.ordinal == TrancheOrdinal.IMMEDIATE), None)
        immediate_amount = immediate.amount if immediate is not None else Decimal('0')
        financing_interest = quantize_money(immediate_amount * rule.financing_interest_pct)

        return CostAllocation(
            seller_rate=rate,
            seller_commission=seller_commission,
            gross_commission_total=gross_total,
            company_gross_profit=gross_profit,
            risk_reserve_fee=risk_reserve,
            broker_fee=broker_fee,
            tax_note_fee=tax_note,
            pass_through_total=pass_through,
            financing_interest_pct=rule.financing_interest_pct,
            financing_interest=financing_interest,
            company_net_profit=gross_profit - pass_through - financing_interest,
        )

    def seller_commission(self, sale: SaleRecord, rate: Decimal) -> Decimal:
        """
        Seller commission on the discounted proposal.

        The discount reduces the base before the seller's rate is applied.
        Partner tranches are not discounted again.
        """
        discount_factor = max(Decimal('0'), Decimal('1') - sale.discount_pct / Decimal('100'))
        return quantize_money(sale.gross_proposal * discount_factor * rate)

    def pass_through_rate(self, rule: CommissionRule) -> Decimal:
        """Combined pass-through rate this rule pays on gross commission."""
        if rule.cost_exempt:
            return Decimal('0')
        rate = self.config.risk_reserve_rate + self.config.tax_note_rate
        if not rule.broker_fee_exempt:
            rate += self.config.broker_fee_rate
        return rate

    def _pass_through(self, rule: CommissionRule, gross_total: Decimal) -> tuple[Decimal, Decimal, Decimal]:
        if rule.cost_exempt:
            return Decimal('0'), Decimal('0'), Decimal('0')

        risk_reserve = quantize_money(gross_total * self.config.risk_reserve_rate)
        tax_note = quantize_money(gross_total * self.config.tax_note_rate)
        if rule.broker_fee_exempt:
            broker_fee = Decimal('0')
        else:
            broker_fee = quantize_money(gross_total * self.config.broker_fee_rate)
        return risk_reserve, broker_fee, tax_note
