"""
Aggregate Volume Tracker

Totals finalized kWh for a calendar month. Recomputed on every call: the
sale set changes often and a stale total would mis-price commissions.
"""

from decimal import Decimal
from typing import Iterable

from ..dates import month_key as to_month_key
from ..models import AggregateMetrics, SaleRecord, validate_month_key


class VolumeTracker:
    """Sums completed-sale volume per calendar month."""

    def aggregate(self, sales: Iterable[SaleRecord], month_key: str) -> AggregateMetrics:
        """Total kWh of sales whose completion date falls in `month_key`."""
        validate_month_key(month_key)

        total = Decimal("0")
        count = 0
        for sale in sales:
            if sale.completed_at is None:
                continue
            if to_month_key(sale.completed_at) != month_key:
                continue
            total += sale.kwh
            count += 1

        return AggregateMetrics(month_key=month_key, total_kwh=total, sale_count=count)
