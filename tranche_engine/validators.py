"""
Rule Validation for the Tranche Scheduling Engine

Validates commission rules when a rule table is built.
Raises ValueError with clear messages for any constraint violations.

Sale records are not validated here: bad sale data is clamped while
parsing (see SaleRecord.from_dict) so a partial record still schedules.
"""

from decimal import Decimal

from .models import CommissionRule, RecurrenceRule


class RuleValidator:
    """Validates commission rules according to business rules."""

    RECURRENCE_KINDS = ("discount_sensitive", "flat")

    def validate(self, rule: CommissionRule) -> None:
        """
        Run all validations. Raises ValueError if any check fails.
        """
        self._validate_percentages(rule)
        self._validate_schedule(rule)
        self._validate_tiers(rule)
        if rule.recurrence is not None:
            self._validate_recurrence(rule, rule.recurrence)

    def _validate_percentages(self, rule: CommissionRule) -> None:
        """All percentages must be non-negative."""
        for name in ("immediate_pct", "second_pct", "third_pct", "financing_interest_pct", "documented_total_ratio"):
            value = getattr(rule, name)
            if value < 0:
                raise ValueError(f"{rule.partner.value}: {name} cannot be negative, got: {value}")

        for name in ("second_pct_options", "third_pct_options"):
            for option in getattr(rule, name):
                if option < 0:
                    raise ValueError(f"{rule.partner.value}: {name} cannot contain negative values, got: {option}")

        if rule.financing_interest_pct > 1:
            raise ValueError(
                f"{rule.partner.value}: financing_interest_pct must be between 0 and 1, "
                f"got: {rule.financing_interest_pct}"
            )

    def _validate_schedule(self, rule: CommissionRule) -> None:
        """Offsets are whole months forward; pin days are calendar days."""
        for offset_name, day_name in (
            ("second_offset_months", "second_pin_day"),
            ("third_offset_months", "third_pin_day"),
        ):
            offset = getattr(rule, offset_name)
            day = getattr(rule, day_name)
            if offset < 0:
                raise ValueError(f"{rule.partner.value}: {offset_name} cannot be negative, got: {offset}")
            if not (1 <= day <= 31):
                raise ValueError(f"{rule.partner.value}: {day_name} must be between 1 and 31, got: {day}")

    def _validate_tiers(self, rule: CommissionRule) -> None:
        """
        Tier bounds must strictly increase with only the last tier unbounded,
        and tier percentages must never decrease as volume grows.
        """
        tiers = rule.third_tiers
        if not tiers:
            return

        previous_bound = Decimal("-1")
        previous_pct = Decimal("0")
        for i, tier in enumerate(tiers):
            is_last = i == len(tiers) - 1
            if tier.pct < 0:
                raise ValueError(f"{rule.partner.value}: tier {i} pct cannot be negative, got: {tier.pct}")
            if tier.pct < previous_pct:
                raise ValueError(
                    f"{rule.partner.value}: tier {i} pct ({tier.pct}) is lower than the previous tier "
                    f"({previous_pct}); tiers must be non-decreasing"
                )
            if tier.upper_bound is None:
                if not is_last:
                    raise ValueError(f"{rule.partner.value}: only the last tier may be unbounded (tier {i})")
            elif tier.upper_bound <= previous_bound:
                raise ValueError(
                    f"{rule.partner.value}: tier {i} upper_bound ({tier.upper_bound}) must be greater "
                    f"than the previous bound ({previous_bound})"
                )
            else:
                previous_bound = tier.upper_bound
            previous_pct = tier.pct

        if tiers[-1].upper_bound is not None:
            raise ValueError(f"{rule.partner.value}: the last tier must be unbounded (upper_bound=None)")

    def _validate_recurrence(self, rule: CommissionRule, recurrence: RecurrenceRule) -> None:
        if recurrence.kind not in self.RECURRENCE_KINDS:
            raise ValueError(
                f"{rule.partner.value}: invalid recurrence kind: {recurrence.kind}. "
                f"Must be one of {', '.join(self.RECURRENCE_KINDS)}"
            )

        if recurrence.kind == "flat" and recurrence.flat_pct < 0:
            raise ValueError(f"{rule.partner.value}: flat_pct cannot be negative, got: {recurrence.flat_pct}")

        if recurrence.kind == "discount_sensitive":
            if recurrence.base_ceiling_pct <= 0:
                raise ValueError(
                    f"{rule.partner.value}: base_ceiling_pct must be positive, got: {recurrence.base_ceiling_pct}"
                )
            cutoff = recurrence.discount_cutoff_pct
            if cutoff is not None and not (0 <= cutoff <= recurrence.base_ceiling_pct):
                raise ValueError(
                    f"{rule.partner.value}: discount_cutoff_pct must be between 0 and base_ceiling_pct, "
                    f"got: {cutoff}"
                )
