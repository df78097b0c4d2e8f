"""
Rule Table

One CommissionRule per partner, plus a zero-commission default for sales
that reference an unknown or missing partner. Lookups never fail.
"""

import logging
from decimal import Decimal, InvalidOperation

from .models import CommissionRule, Partner, RecurrenceRule, VolumeTier
from .validators import RuleValidator

logger = logging.getLogger(__name__)


# Origo pays its third tranche from the month's total finalized kWh
ORIGO_THIRD_TIERS = (
    VolumeTier(upper_bound=Decimal("30000"), pct=Decimal("0")),
    VolumeTier(upper_bound=Decimal("40000"), pct=Decimal("0.30")),
    VolumeTier(upper_bound=None, pct=Decimal("0.50")),
)

DEFAULT_RULES = {
    Partner.BOWE: CommissionRule(
        partner=Partner.BOWE,
        immediate_pct=Decimal("0.60"),
        cost_exempt=True,
        documented_total_ratio=Decimal("0.60"),
    ),
    Partner.MATRIX: CommissionRule(
        partner=Partner.MATRIX,
        immediate_pct=Decimal("0.60"),
        broker_fee_exempt=True,
        documented_total_ratio=Decimal("0.60"),
    ),
    Partner.ORIGO: CommissionRule(
        partner=Partner.ORIGO,
        immediate_pct=Decimal("0.50"),
        second_pct=Decimal("1.20"),
        second_pin_day=15,
        third_tiers=ORIGO_THIRD_TIERS,
        third_pin_day=15,
        financing_interest_pct=Decimal("0.17"),
        documented_total_ratio=Decimal("2.20"),
        second_pct_options=(Decimal("1.20"), Decimal("1.50")),
        third_pct_options=(Decimal("0.30"), Decimal("0.50"), Decimal("0.70")),
    ),
    Partner.BC: CommissionRule(
        partner=Partner.BC,
        immediate_pct=Decimal("0.50"),
        second_pct=Decimal("0.45"),
        second_pin_day=15,
        third_pct=Decimal("0.60"),
        third_pin_day=15,
        financing_interest_pct=Decimal("0.12"),
        recurrence=RecurrenceRule(kind="flat", flat_pct=Decimal("1")),
        documented_total_ratio=Decimal("1.55"),
    ),
    Partner.FIT_ENERGIA: CommissionRule(
        partner=Partner.FIT_ENERGIA,
        immediate_pct=Decimal("0.40"),
        second_pct=Decimal("0.60"),
        broker_fee_exempt=True,
        recurrence=RecurrenceRule(
            kind="discount_sensitive",
            base_ceiling_pct=Decimal("25"),
            discount_cutoff_pct=Decimal("25"),
        ),
        documented_total_ratio=Decimal("1.00"),
    ),
}

DEFAULT_FALLBACK_RULE = CommissionRule(partner=Partner.UNKNOWN, immediate_pct=Decimal("0"))


class RuleTable:
    """Holds and serves the commission rule for each partner."""

    def __init__(self, rules: dict[Partner, CommissionRule] | None = None, default: CommissionRule | None = None):
        self.validator = RuleValidator()
        self._rules = dict(DEFAULT_RULES if rules is None else rules)
        self._default = default or DEFAULT_FALLBACK_RULE

        for rule in [*self._rules.values(), self._default]:
            self.validator.validate(rule)

    def rule_for(self, partner) -> CommissionRule:
        """Return the rule for a partner (enum or free text). Never raises."""
        partner = Partner.parse(partner)
        rule = self._rules.get(partner)
        if rule is None:
            logger.debug(f"No commission rule for partner {partner.value!r}; using default rule")
            return self._default
        return rule

    @property
    def partners(self) -> list[Partner]:
        return list(self._rules)

    @classmethod
    def from_dict(cls, data: dict | None) -> "RuleTable":
        """
        Build a table from configuration keyed by partner name.

        Partners not present keep their default rule. Unknown partner names
        are rejected so a typo cannot silently drop a payout rule.
        """
        rules = dict(DEFAULT_RULES)
        for name, rule_data in (data or {}).items():
            partner = Partner.parse(name)
            if partner is Partner.UNKNOWN:
                raise ValueError(f"Unknown partner in rule configuration: {name!r}")
            try:
                rules[partner] = CommissionRule.from_dict(partner, rule_data)
            except (InvalidOperation, KeyError) as e:
                raise ValueError(f"Invalid rule for {name!r}: {e!r}") from None
        return cls(rules)
