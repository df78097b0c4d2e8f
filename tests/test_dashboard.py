"""
Unit Tests for the Dashboard Aggregator

Window totals: tranches by effective due date, recurrence by paid month.
"""

from datetime import date
from decimal import Decimal

import pytest

from tranche_engine import SaleProcessor
from tranche_engine.dashboard import DashboardAggregator
from tranche_engine.models import (
    DashboardFilter,
    DateOverrides,
    PaidMonthsLedger,
    Partner,
    SaleRecord,
    TrancheOrdinal,
)

AS_OF = date(2025, 12, 31)


def make_sale(sale_id, partner, discount="0", **kwargs) -> SaleRecord:
    values = {
        "sale_id": sale_id,
        "partner": partner,
        "gross_proposal": Decimal("10000"),
        "discount_pct": Decimal(discount),
        "completed_at": date(2025, 3, 12),
        "seller_id": "u1",
        "seller_name": "Ana",
        "financial_status": "Adimplente",
    }
    values.update(kwargs)
    return SaleRecord(**values)


@pytest.fixture
def processor():
    return SaleProcessor()


@pytest.fixture
def bc_view(processor):
    return processor.process(make_sale("bc-1", Partner.BC, discount="20"), AS_OF)


class TestSummarize:
    """Per-window receivables and costs."""

    def test_immediate_tranche_month(self, processor, bc_view):
        totals = processor.dashboard.summarize([bc_view], DashboardFilter(month_key="2025-03"))

        assert totals.tranche_receivable == Decimal("5000.00")
        # pass-through 1600 + interest 600 + seller 3200
        assert totals.total_costs == Decimal("5400.00")
        assert totals.tranche_count == 1
        assert totals.sale_count == 1

    def test_second_tranche_month(self, processor, bc_view):
        totals = processor.dashboard.summarize([bc_view], DashboardFilter(month_key="2025-05"))
        assert totals.tranche_receivable == Decimal("4500.00")
        assert totals.total_costs == Decimal("1440.00")

    def test_empty_month(self, processor, bc_view):
        totals = processor.dashboard.summarize([bc_view], DashboardFilter(month_key="2025-04"))
        assert totals.total_receivable == Decimal("0")
        assert totals.sale_count == 0

    def test_zero_amount_tranches_not_counted(self, processor):
        view = processor.process(make_sale("b-1", Partner.BOWE), AS_OF)
        totals = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-05"))
        assert totals.tranche_count == 0
        assert totals.sale_count == 0

    def test_adjacent_windows_add_up_to_range(self, processor, bc_view):
        march = processor.dashboard.summarize([bc_view], DashboardFilter(month_key="2025-03"))
        april_to_july = processor.dashboard.summarize(
            [bc_view], DashboardFilter(start=date(2025, 4, 1), end=date(2025, 7, 31))
        )
        whole = processor.dashboard.summarize(
            [bc_view], DashboardFilter(start=date(2025, 3, 1), end=date(2025, 7, 31))
        )
        assert march.tranche_receivable + april_to_july.tranche_receivable == whole.tranche_receivable
        assert march.total_costs + april_to_july.total_costs == whole.total_costs
        assert whole.tranche_receivable == Decimal("15500.00")

    def test_split_month_windows_count_recurrence_once(self, processor):
        ledger = PaidMonthsLedger.from_dict({"bc-1": ["2025-08"]})
        view = processor.process(make_sale("bc-1", Partner.BC), AS_OF, ledger=ledger)

        first_half = processor.dashboard.summarize(
            [view], DashboardFilter(start=date(2025, 8, 1), end=date(2025, 8, 15))
        )
        second_half = processor.dashboard.summarize(
            [view], DashboardFilter(start=date(2025, 8, 16), end=date(2025, 8, 31))
        )
        month = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-08"))
        assert month.recurrence_received == Decimal("100.00")
        assert first_half.recurrence_received + second_half.recurrence_received == month.recurrence_received
        assert second_half.recurrence_received == Decimal("0")

    def test_all_time_when_no_window(self, processor, bc_view):
        totals = processor.dashboard.summarize([bc_view])
        assert totals.tranche_count == 3

    def test_override_moves_tranche_between_windows(self, processor):
        overrides = DateOverrides({("bc-1", TrancheOrdinal.SECOND): date(2025, 6, 2)})
        view = processor.process(make_sale("bc-1", Partner.BC), AS_OF, overrides=overrides)

        may = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-05"))
        june = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-06"))
        assert may.tranche_receivable == Decimal("0")
        assert june.tranche_receivable == Decimal("4500.00")

    def test_recurrence_counts_paid_months_in_window(self, processor):
        ledger = PaidMonthsLedger.from_dict({"bc-1": ["2025-03", "2025-08"]})
        view = processor.process(make_sale("bc-1", Partner.BC, discount="20"), AS_OF, ledger=ledger)

        march = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-03"))
        august = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-08"))
        assert march.recurrence_received == Decimal("100.00")
        assert march.total_receivable == Decimal("5100.00")
        assert august.recurrence_received == Decimal("100.00")
        assert august.tranche_count == 0
        assert august.sale_count == 1

    @pytest.mark.parametrize("status", ["Inadimplente", "", None])
    def test_recurrence_needs_good_standing(self, processor, status):
        ledger = PaidMonthsLedger.from_dict({"bc-1": ["2025-08"]})
        view = processor.process(make_sale("bc-1", Partner.BC, financial_status=status), AS_OF, ledger=ledger)
        totals = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-08"))
        assert totals.recurrence_received == Decimal("0")
        assert totals.sale_count == 0

    def test_good_standing_match_ignores_case(self, processor):
        ledger = PaidMonthsLedger.from_dict({"bc-1": ["2025-08"]})
        view = processor.process(make_sale("bc-1", Partner.BC, financial_status=" adimplente "), AS_OF, ledger=ledger)
        totals = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-08"))
        assert totals.recurrence_received == Decimal("100.00")

    def test_empty_good_standing_list_counts_every_status(self, processor):
        ledger = PaidMonthsLedger.from_dict({"bc-1": ["2025-08"]})
        view = processor.process(make_sale("bc-1", Partner.BC, financial_status=None), AS_OF, ledger=ledger)
        dashboard = DashboardAggregator(processor.cost_allocator, good_standing_statuses=())
        totals = dashboard.summarize([view], DashboardFilter(month_key="2025-08"))
        assert totals.recurrence_received == Decimal("100.00")

    def test_ineligible_recurrence_not_counted(self, processor):
        ledger = PaidMonthsLedger.from_dict({"f-1": ["2025-08"]})
        view = processor.process(make_sale("f-1", Partner.FIT_ENERGIA, discount="30"), AS_OF, ledger=ledger)
        totals = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-08"))
        assert totals.recurrence_received == Decimal("0")

    def test_net_profit(self, processor, bc_view):
        totals = processor.dashboard.summarize([bc_view], DashboardFilter(month_key="2025-03"))
        assert totals.net_profit == Decimal("-400.00")

    def test_costs_charged_when_immediate_tranche_pays_nothing(self, processor):
        view = processor.process(make_sale("x-1", Partner.UNKNOWN), AS_OF)
        assert view.costs.company_net_profit == Decimal("-4000.00")

        totals = processor.dashboard.summarize([view])
        assert totals.tranche_receivable == Decimal("0")
        assert totals.total_costs == Decimal("4000.00")
        assert totals.net_profit == Decimal("-4000.00")
        assert totals.tranche_count == 0
        assert totals.sale_count == 1

    def test_zero_immediate_costs_land_in_its_month(self, processor):
        view = processor.process(make_sale("x-1", Partner.UNKNOWN), AS_OF)
        march = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-03"))
        april = processor.dashboard.summarize([view], DashboardFilter(month_key="2025-04"))
        assert march.total_costs == Decimal("4000.00")
        assert april.total_costs == Decimal("0")
        assert april.sale_count == 0


class TestFilters:
    """Partner and seller filters."""

    @pytest.fixture
    def views(self, processor):
        return [
            processor.process(make_sale("bc-1", Partner.BC), AS_OF),
            processor.process(make_sale("b-1", Partner.BOWE, seller_id="u2", seller_name="Bruno"), AS_OF),
        ]

    def test_partner_filter(self, processor, views):
        totals = processor.dashboard.summarize(views, DashboardFilter(partner=Partner.BOWE, month_key="2025-03"))
        assert totals.tranche_receivable == Decimal("6000.00")

    def test_seller_filter_by_name(self, processor, views):
        totals = processor.dashboard.summarize(views, DashboardFilter(seller="bruno", month_key="2025-03"))
        assert totals.sale_count == 1
        assert totals.tranche_receivable == Decimal("6000.00")

    def test_seller_filter_by_id(self, processor, views):
        totals = processor.dashboard.summarize(views, DashboardFilter(seller="u1", month_key="2025-03"))
        assert totals.tranche_receivable == Decimal("5000.00")

    def test_filter_from_dict_treats_all_as_none(self):
        filters = DashboardFilter.from_dict({"partner": "all", "seller": "", "month_key": "2025-03"})
        assert filters.partner is None
        assert filters.seller is None

    def test_breakdown_by_partner(self, processor, views):
        breakdown = processor.dashboard.breakdown_by(views, DashboardFilter(month_key="2025-03"), "partner")
        assert set(breakdown) == {"bc", "bowe"}
        assert breakdown["bowe"].tranche_receivable == Decimal("6000.00")

    def test_breakdown_by_seller(self, processor, views):
        breakdown = processor.dashboard.breakdown_by(views, key="seller")
        assert set(breakdown) == {"Ana", "Bruno"}

    def test_seller_breakdown_with_numeric_ids(self, processor):
        views = [
            processor.process(SaleRecord.from_dict({"sale_id": "a", "partner": "BC", "gross_proposal": 1000,
                                                    "seller_id": 7, "completed_at": "2025-03-12"}), AS_OF),
            processor.process(SaleRecord.from_dict({"sale_id": "b", "partner": "BC", "gross_proposal": 1000,
                                                    "seller_name": "Ana", "completed_at": "2025-03-12"}), AS_OF),
        ]
        breakdown = processor.dashboard.breakdown_by(views, key="seller")
        assert set(breakdown) == {"7", "Ana"}

    def test_invalid_breakdown_key(self, processor, views):
        with pytest.raises(ValueError, match="Invalid breakdown key"):
            processor.dashboard.breakdown_by(views, key="client")

    def test_window_end_before_start(self, processor, views):
        with pytest.raises(ValueError, match="before start"):
            processor.dashboard.summarize(views, DashboardFilter(start=date(2025, 5, 1), end=date(2025, 4, 1)))
