"""
Engine Configuration

Percentages and offsets that apply across partners. Defaults match the
commission table the finance team works from; deployments override them
through TRANCHE_* environment variables or a request-level "config" block.
"""

import calendar
import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation


@dataclass(frozen=True)
class CostConfig:
    """Pass-through cost rates (ratios of the gross commission total)."""

    risk_reserve_rate: Decimal = Decimal("0.10")
    broker_fee_rate: Decimal = Decimal("0.10")
    tax_note_rate: Decimal = Decimal("0.12")
    default_seller_rate: Decimal = Decimal("0.40")

    @property
    def pass_through_rate(self) -> Decimal:
        return self.risk_reserve_rate + self.broker_fee_rate + self.tax_note_rate


@dataclass(frozen=True)
class EngineConfig:
    """Top-level engine configuration."""

    costs: CostConfig = field(default_factory=CostConfig)
    activation_offset_months: int = 4
    payroll_weekday: int = calendar.FRIDAY
    excluded_seller_fragments: tuple[str, ...] = ()
    # Financial statuses whose paid recurrence months count as received; empty counts every status
    good_standing_statuses: tuple[str, ...] = ("adimplente",)

    @classmethod
    def from_dict(cls, data: dict | None, base: "EngineConfig | None" = None) -> "EngineConfig":
        """Apply the keys present in `data` on top of `base` (or defaults)."""
        config = base or cls()
        if not data:
            return config

        cost_updates = {
            name: _parse_rate(name, data[name])
            for name in ("risk_reserve_rate", "broker_fee_rate", "tax_note_rate", "default_seller_rate")
            if data.get(name) is not None
        }
        updates = {}
        if cost_updates:
            updates["costs"] = replace(config.costs, **cost_updates)
        if data.get("activation_offset_months") is not None:
            updates["activation_offset_months"] = int(data["activation_offset_months"])
        if data.get("payroll_weekday") is not None:
            updates["payroll_weekday"] = _parse_weekday(data["payroll_weekday"])
        for name in ("excluded_seller_fragments", "good_standing_statuses"):
            if data.get(name) is not None:
                updates[name] = _parse_names(name, data[name])

        result = replace(config, **updates)
        if result.activation_offset_months < 0:
            raise ValueError(f"activation_offset_months cannot be negative, got: {result.activation_offset_months}")
        for name, rate in vars(result.costs).items():
            if not (0 <= rate <= 1):
                raise ValueError(f"{name} must be between 0 and 1, got: {rate}")
        return result

    @classmethod
    def from_env(cls, environ=None) -> "EngineConfig":
        environ = os.environ if environ is None else environ
        return cls.from_dict(
            {
                "risk_reserve_rate": environ.get("TRANCHE_RISK_RESERVE_RATE"),
                "broker_fee_rate": environ.get("TRANCHE_BROKER_FEE_RATE"),
                "tax_note_rate": environ.get("TRANCHE_TAX_NOTE_RATE"),
                "default_seller_rate": environ.get("TRANCHE_DEFAULT_SELLER_RATE"),
                "activation_offset_months": environ.get("TRANCHE_ACTIVATION_OFFSET_MONTHS"),
                "payroll_weekday": environ.get("TRANCHE_PAYROLL_WEEKDAY"),
                "excluded_seller_fragments": environ.get("TRANCHE_RECURRENCE_EXCLUDED_SELLERS") or None,
                "good_standing_statuses": environ.get("TRANCHE_GOOD_STANDING_STATUSES") or None,
            }
        )


def _parse_weekday(value) -> int:
    if isinstance(value, int):
        weekday = value
    elif str(value).strip().isdigit():
        weekday = int(value)
    else:
        names = [name.lower() for name in calendar.day_name]
        try:
            weekday = names.index(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid payroll_weekday: {value!r}") from None
    if not 0 <= weekday <= 6:
        raise ValueError(f"payroll_weekday must be between 0 and 6, got: {weekday}")
    return weekday


def _parse_names(name: str, value) -> tuple[str, ...]:
    """A list of names, or one comma-separated string of them."""
    if isinstance(value, str):
        value = value.split(",")
    elif not isinstance(value, (list, tuple)):
        raise ValueError(f"{name} must be a list or a comma-separated string, got: {value!r}")
    return tuple(str(item).strip() for item in value if str(item).strip())


def _parse_rate(name: str, value) -> Decimal:
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid {name}: {value!r}") from None
