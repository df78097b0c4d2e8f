"""
Domain Models for the Tranche Scheduling Engine

These dataclasses provide type-safe representations of all business entities.
All monetary values use Decimal for precision.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum, IntEnum

logger = logging.getLogger(__name__)

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def to_decimal(value, field_name: str, warnings: list | None = None) -> Decimal:
    """Coerce a loose numeric input to a non-negative Decimal.

    Negative, non-numeric, NaN and missing values become 0. When a list is
    given, a warning describing the clamp is appended to it.
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        value = int(value)
    try:
        result = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        if warnings is not None:
            warnings.append(f"{field_name} is not numeric ({value!r}); using 0")
        return Decimal("0")
    if not result.is_finite():
        if warnings is not None:
            warnings.append(f"{field_name} is not finite ({value!r}); using 0")
        return Decimal("0")
    if result < 0:
        if warnings is not None:
            warnings.append(f"{field_name} is negative ({value!r}); using 0")
        return Decimal("0")
    return result


def to_date(value) -> date | None:
    """Parse an ISO date/datetime string (or date/datetime) into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return date.fromisoformat(text[:10])


# =============================================================================
# PARTNERS
# =============================================================================


class Partner(Enum):
    """Commercializing companies that underwrite a sale."""

    BOWE = "bowe"
    MATRIX = "matrix"
    ORIGO = "origo"
    BC = "bc"
    FIT_ENERGIA = "fit_energia"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "Partner":
        """Map a free-text company identifier to a Partner. Never raises."""
        if isinstance(value, Partner):
            return value
        if value is None:
            return cls.UNKNOWN
        text = unicodedata.normalize("NFKD", str(value)).encode("ascii", "ignore").decode()
        key = re.sub(r"[\s\-]+", "_", text.strip().lower())
        return _PARTNER_ALIASES.get(key, cls.UNKNOWN)


_PARTNER_ALIASES = {
    "bowe": Partner.BOWE,
    "matrix": Partner.MATRIX,
    "origo": Partner.ORIGO,
    "bc": Partner.BC,
    "bc_energia": Partner.BC,
    "fit": Partner.FIT_ENERGIA,
    "fit_energia": Partner.FIT_ENERGIA,
}


class TrancheOrdinal(IntEnum):
    """Position of a tranche in a sale's commission schedule."""

    IMMEDIATE = 1
    SECOND = 2
    THIRD = 3

    @classmethod
    def parse(cls, value) -> "TrancheOrdinal | None":
        """Return the ordinal for 1/2/3 (or their names); None otherwise."""
        if isinstance(value, TrancheOrdinal):
            return value
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            pass
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return None


# =============================================================================
# RULE MODELS
# =============================================================================


@dataclass(frozen=True)
class VolumeTier:
    """A single tier of a volume-tiered percentage.

    A volume belongs to the first tier whose upper bound is >= the volume,
    so boundary values land in the lower tier.
    """

    upper_bound: Decimal | None  # None = infinite
    pct: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> "VolumeTier":
        upper = data.get("upper_bound")
        return cls(
            upper_bound=Decimal(str(upper)) if upper is not None else None,
            pct=Decimal(str(data["pct"])),
        )


@dataclass(frozen=True)
class RecurrenceRule:
    """How a partner pays an open-ended monthly commission."""

    kind: str  # 'discount_sensitive' or 'flat'
    base_ceiling_pct: Decimal = Decimal("0")
    discount_cutoff_pct: Decimal | None = None
    flat_pct: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: dict) -> "RecurrenceRule":
        cutoff = data.get("discount_cutoff_pct")
        return cls(
            kind=data["kind"],
            base_ceiling_pct=Decimal(str(data.get("base_ceiling_pct", 0))),
            discount_cutoff_pct=Decimal(str(cutoff)) if cutoff is not None else None,
            flat_pct=Decimal(str(data.get("flat_pct", 0))),
        )


@dataclass(frozen=True)
class CommissionRule:
    """Commission split and costs for one partner."""

    partner: Partner
    immediate_pct: Decimal
    second_pct: Decimal = Decimal("0")
    second_offset_months: int = 2
    second_pin_day: int = 10
    third_pct: Decimal = Decimal("0")
    third_tiers: tuple[VolumeTier, ...] = ()
    third_offset_months: int = 4
    third_pin_day: int = 10
    cost_exempt: bool = False
    broker_fee_exempt: bool = False
    financing_interest_pct: Decimal = Decimal("0")
    recurrence: RecurrenceRule | None = None
    documented_total_ratio: Decimal = Decimal("0")
    # Percentages an operator may pick per sale instead of the default
    second_pct_options: tuple[Decimal, ...] = ()
    third_pct_options: tuple[Decimal, ...] = ()

    def pct_options(self, ordinal: TrancheOrdinal) -> tuple[Decimal, ...]:
        if ordinal == TrancheOrdinal.SECOND:
            return self.second_pct_options
        if ordinal == TrancheOrdinal.THIRD:
            return self.third_pct_options
        return ()

    @property
    def is_tiered(self) -> bool:
        return bool(self.third_tiers)

    @property
    def max_third_pct(self) -> Decimal:
        """Third-tranche percentage at the highest tier."""
        if self.third_tiers:
            return self.third_tiers[-1].pct
        return self.third_pct

    @classmethod
    def from_dict(cls, partner: Partner, data: dict) -> "CommissionRule":
        recurrence = data.get("recurrence")
        return cls(
            partner=partner,
            immediate_pct=Decimal(str(data["immediate_pct"])),
            second_pct=Decimal(str(data.get("second_pct", 0))),
            second_offset_months=int(data.get("second_offset_months", 2)),
            second_pin_day=int(data.get("second_pin_day", 10)),
            third_pct=Decimal(str(data.get("third_pct", 0))),
            third_tiers=tuple(VolumeTier.from_dict(t) for t in data.get("third_tiers", [])),
            third_offset_months=int(data.get("third_offset_months", 4)),
            third_pin_day=int(data.get("third_pin_day", 10)),
            cost_exempt=data.get("cost_exempt", False),
            broker_fee_exempt=data.get("broker_fee_exempt", False),
            financing_interest_pct=Decimal(str(data.get("financing_interest_pct", 0))),
            recurrence=RecurrenceRule.from_dict(recurrence) if recurrence else None,
            documented_total_ratio=Decimal(str(data.get("documented_total_ratio", 0))),
            second_pct_options=tuple(Decimal(str(p)) for p in data.get("second_pct_options", [])),
            third_pct_options=tuple(Decimal(str(p)) for p in data.get("third_pct_options", [])),
        )


# =============================================================================
# INPUT MODELS
# =============================================================================


@dataclass(frozen=True)
class SaleRecord:
    """Immutable facts about a completed sale."""

    sale_id: str
    partner: Partner
    gross_proposal: Decimal
    kwh: Decimal = Decimal("0")
    discount_pct: Decimal = Decimal("0")
    seller_id: str | None = None
    seller_name: str = ""
    completed_at: date | None = None
    reference_month: int | None = None
    reference_year: int | None = None
    client_name: str = ""
    financial_status: str | None = None
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "SaleRecord":
        sale_id = data.get("sale_id", data.get("id"))
        if sale_id is None or str(sale_id).strip() == "":
            raise ValueError("sale_id is required")

        warnings: list[str] = []
        completed_raw = data.get("completed_at")
        try:
            completed_at = to_date(completed_raw)
        except ValueError:
            warnings.append(f"completed_at is not a valid date ({completed_raw!r})")
            completed_at = None

        reference_month, reference_year = _parse_reference(data, warnings)
        seller_id = data.get("seller_id")
        financial_status = data.get("financial_status")

        return cls(
            sale_id=str(sale_id),
            partner=Partner.parse(data.get("partner", data.get("company"))),
            gross_proposal=to_decimal(data.get("gross_proposal"), "gross_proposal", warnings),
            kwh=to_decimal(data.get("kwh"), "kwh", warnings),
            discount_pct=to_decimal(data.get("discount_pct"), "discount_pct", warnings),
            seller_id=str(seller_id) if seller_id is not None else None,
            seller_name=str(data.get("seller_name") or ""),
            completed_at=completed_at,
            reference_month=reference_month,
            reference_year=reference_year,
            client_name=str(data.get("client_name") or ""),
            financial_status=str(financial_status) if financial_status is not None else None,
            warnings=tuple(warnings),
        )


def _parse_reference(data: dict, warnings: list) -> tuple[int | None, int | None]:
    month = data.get("reference_month")
    year = data.get("reference_year")
    if month is None or year is None:
        return None, None
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        warnings.append(f"reference month/year is not numeric ({month!r}/{year!r}); ignoring")
        return None, None
    if not 1 <= month <= 12:
        warnings.append(f"reference_month out of range ({month}); ignoring")
        return None, None
    return month, year


@dataclass(frozen=True)
class SellerProfile:
    """A seller's commission configuration from the seller directory."""

    seller_id: str
    name: str = ""
    commission_rate: Decimal | None = None  # ratio; None = use default
    recurrence_excluded: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "SellerProfile":
        """
        Parse a directory entry.

        `commission_rate` is always a percentage number, as the CRM stores it
        (40 = 40%, 1 = 1%). A missing or zero rate means "use the default".
        """
        rate = to_decimal(data.get("commission_rate"), "commission_rate")
        if rate > 100:
            raise ValueError(f"commission_rate must be between 0 and 100, got: {rate}")
        return cls(
            seller_id=str(data["seller_id"]),
            name=str(data.get("name") or ""),
            commission_rate=rate / Decimal("100") if rate > 0 else None,
            recurrence_excluded=data.get("recurrence_excluded", False),
        )


@dataclass
class SellerDirectory:
    """Seller lookups: commission rates and recurrence exclusions."""

    profiles: dict[str, SellerProfile] = field(default_factory=dict)
    excluded_name_fragments: tuple[str, ...] = ()

    def get(self, seller_id: str | None) -> SellerProfile | None:
        if seller_id is None:
            return None
        return self.profiles.get(str(seller_id))

    def is_recurrence_excluded(self, sale: SaleRecord) -> bool:
        profile = self.get(sale.seller_id)
        if profile is not None and profile.recurrence_excluded:
            return True
        name = (sale.seller_name or (profile.name if profile else "")).lower()
        return any(fragment.lower() in name for fragment in self.excluded_name_fragments if fragment)

    @classmethod
    def from_list(cls, data: list, excluded_name_fragments=()) -> "SellerDirectory":
        profiles = [SellerProfile.from_dict(d) for d in data or []]
        return cls(
            profiles={p.seller_id: p for p in profiles},
            excluded_name_fragments=tuple(excluded_name_fragments),
        )


def _tranche_entries(data: dict | None):
    """
    Walk a per-tranche store (overrides, selections), yielding (sale_id, ordinal, value).

    Accepts both flat keys ("sale-1:2": value) and nested maps
    ({"sale-1": {"2": value}}). Entries naming an ordinal the scheduler does
    not produce are dropped.
    """
    for key, value in (data or {}).items():
        if isinstance(value, dict):
            pairs = [(key, ordinal, item) for ordinal, item in value.items()]
        else:
            sale_id, _, ordinal = str(key).rpartition(":")
            pairs = [(sale_id, ordinal, value)]

        for sale_id, raw_ordinal, item in pairs:
            ordinal = TrancheOrdinal.parse(raw_ordinal)
            if ordinal is None or not sale_id:
                logger.debug(f"Ignoring entry for unknown tranche {sale_id!r}/{raw_ordinal!r}")
                continue
            yield str(sale_id), ordinal, item


class DateOverrides:
    """Operator-supplied due dates keyed by (sale_id, tranche ordinal)."""

    def __init__(self, entries: dict[tuple[str, TrancheOrdinal], date] | None = None):
        self._entries = dict(entries or {})

    def get(self, sale_id: str, ordinal: TrancheOrdinal) -> date | None:
        return self._entries.get((sale_id, ordinal))

    @classmethod
    def from_dict(cls, data: dict | None) -> "DateOverrides":
        """Build overrides from the store's shape ("sale-1:2": "2025-05-10")."""
        entries = {}
        for sale_id, ordinal, due in _tranche_entries(data):
            try:
                due_date = to_date(due)
            except ValueError:
                logger.warning(f"Ignoring override with invalid date for {sale_id!r}/{ordinal.name}: {due!r}")
                continue
            if due_date is not None:
                entries[(sale_id, ordinal)] = due_date
        return cls(entries)


class PctSelections:
    """
    Operator-picked tranche percentages keyed by (sale_id, tranche ordinal).

    Values arrive as percentage numbers (70 = 70%) and are stored as ratios.
    The scheduler only honors a selection listed in the partner rule's options.
    """

    def __init__(self, entries: dict[tuple[str, TrancheOrdinal], Decimal] | None = None):
        self._entries = dict(entries or {})

    def get(self, sale_id: str, ordinal: TrancheOrdinal) -> Decimal | None:
        return self._entries.get((sale_id, ordinal))

    @classmethod
    def from_dict(cls, data: dict | None) -> "PctSelections":
        entries = {}
        for sale_id, ordinal, pct in _tranche_entries(data):
            if pct is None or pct == "":
                continue
            try:
                value = Decimal(str(pct).strip())
            except InvalidOperation:
                logger.warning(f"Ignoring non-numeric percentage for {sale_id!r}/{ordinal.name}: {pct!r}")
                continue
            if not value.is_finite() or value < 0:
                logger.warning(f"Ignoring invalid percentage for {sale_id!r}/{ordinal.name}: {pct!r}")
                continue
            entries[(sale_id, ordinal)] = value / Decimal("100")
        return cls(entries)


class PaidMonthsLedger:
    """
    Months in which a sale's recurring commission was marked paid.

    Immutable: toggle() returns a new ledger.
    """

    def __init__(self, entries: dict[str, frozenset[str]] | None = None):
        self._entries = {k: frozenset(v) for k, v in (entries or {}).items() if v}

    def months_for(self, sale_id: str) -> frozenset[str]:
        return self._entries.get(sale_id, frozenset())

    def is_paid(self, sale_id: str, month_key: str) -> bool:
        return month_key in self.months_for(sale_id)

    def toggle(self, sale_id: str, month_key: str) -> "PaidMonthsLedger":
        validate_month_key(month_key)
        months = set(self.months_for(sale_id))
        months.symmetric_difference_update({month_key})
        entries = dict(self._entries)
        entries[sale_id] = frozenset(months)
        return PaidMonthsLedger(entries)

    def to_dict(self) -> dict[str, list[str]]:
        return {sale_id: sorted(months) for sale_id, months in sorted(self._entries.items())}

    def __eq__(self, other) -> bool:
        if not isinstance(other, PaidMonthsLedger):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"PaidMonthsLedger({self.to_dict()!r})"

    @classmethod
    def from_dict(cls, data: dict | None) -> "PaidMonthsLedger":
        entries = {}
        for sale_id, months in (data or {}).items():
            for month in months:
                validate_month_key(month)
            entries[str(sale_id)] = frozenset(months)
        return cls(entries)


def validate_month_key(month_key: str) -> None:
    if not isinstance(month_key, str) or not MONTH_KEY_PATTERN.match(month_key):
        raise ValueError(f"Invalid month key: {month_key!r}. Expected 'YYYY-MM'")


def parse_month_key_parts(month_key: str) -> tuple[int, int]:
    year, month = month_key.split("-")
    return int(year), int(month)


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass(frozen=True)
class Tranche:
    """One scheduled partial payment of a sale's commission."""

    ordinal: TrancheOrdinal
    amount: Decimal
    pct: Decimal
    due_date: date
    default_due_date: date
    overridden: bool = False
    overridable: bool = True
    pct_selected: bool = False


@dataclass(frozen=True)
class AggregateMetrics:
    """Completed-sale volume for one calendar month."""

    month_key: str
    total_kwh: Decimal = Decimal("0")
    sale_count: int = 0


@dataclass
class CostAllocation:
    """Seller cut, pass-through costs and profit for one sale."""

    seller_rate: Decimal = Decimal("0")
    seller_commission: Decimal = Decimal("0")
    gross_commission_total: Decimal = Decimal("0")
    company_gross_profit: Decimal = Decimal("0")
    risk_reserve_fee: Decimal = Decimal("0")
    broker_fee: Decimal = Decimal("0")
    tax_note_fee: Decimal = Decimal("0")
    pass_through_total: Decimal = Decimal("0")
    financing_interest_pct: Decimal = Decimal("0")
    financing_interest: Decimal = Decimal("0")
    company_net_profit: Decimal = Decimal("0")


@dataclass
class RecurrenceState:
    """Recurring commission status for one sale."""

    eligible: bool = False
    rate_pct: Decimal = Decimal("0")
    monthly_amount: Decimal = Decimal("0")
    activation_month: str | None = None
    expected_installments: int = 0
    paid_months: tuple[str, ...] = ()
    exclusion_reason: str | None = None

    @property
    def paid_installments(self) -> int:
        return len(self.paid_months)

    @property
    def pending_installments(self) -> int:
        return max(0, self.expected_installments - self.paid_installments)


@dataclass
class SaleView:
    """
    Everything computed for one sale.
    This is the "bag" that flows through the pipeline.
    """

    sale: SaleRecord
    rule: CommissionRule
    as_of: date
    metrics: AggregateMetrics | None = None
    tranches: list[Tranche] = field(default_factory=list)
    costs: CostAllocation = field(default_factory=CostAllocation)
    recurrence: RecurrenceState = field(default_factory=RecurrenceState)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SkippedSale:
    """A sale that could not be computed in a batch."""

    sale_id: str | None
    reason: str


@dataclass
class BatchResult:
    """Result of computing a batch of sales."""

    views: list[SaleView] = field(default_factory=list)
    skipped: list[SkippedSale] = field(default_factory=list)

    @property
    def warnings(self) -> dict[str, list[str]]:
        return {v.sale.sale_id: v.warnings for v in self.views if v.warnings}


@dataclass(frozen=True)
class DashboardFilter:
    """Reporting window and filters for the dashboard."""

    partner: Partner | None = None
    seller: str | None = None
    month_key: str | None = None
    start: date | None = None
    end: date | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "DashboardFilter":
        data = data or {}
        partner = data.get("partner")
        seller = data.get("seller")
        month_key = data.get("month_key")
        if month_key is not None:
            validate_month_key(month_key)
        return cls(
            partner=Partner.parse(partner) if partner not in (None, "", "all") else None,
            seller=str(seller) if seller not in (None, "", "all") else None,
            month_key=month_key,
            start=to_date(data.get("start")),
            end=to_date(data.get("end")),
        )


@dataclass
class DashboardTotals:
    """Window-level totals for the summary dashboard."""

    tranche_receivable: Decimal = Decimal("0")
    recurrence_received: Decimal = Decimal("0")
    total_costs: Decimal = Decimal("0")
    tranche_count: int = 0
    sale_count: int = 0
    total_kwh: Decimal = Decimal("0")

    @property
    def total_receivable(self) -> Decimal:
        return self.tranche_receivable + self.recurrence_received

    @property
    def net_profit(self) -> Decimal:
        return self.total_receivable - self.total_costs
