"""
Sale Processor - Main Orchestrator

Coordinates the sale processing pipeline through discrete, testable steps.
"""

import json
import logging
from datetime import date
from typing import Any, Dict, Iterable

from .calculators import CostAllocator, RecurrenceEngine, TrancheScheduler, VolumeTracker
from .config import EngineConfig
from .dashboard import DashboardAggregator
from .dates import month_key
from .models import (
    AggregateMetrics,
    BatchResult,
    DashboardFilter,
    DateOverrides,
    PaidMonthsLedger,
    PctSelections,
    SaleRecord,
    SaleView,
    SellerDirectory,
    SkippedSale,
    to_date,
)
from .output import OutputBuilder
from .rules import RuleTable

logger = logging.getLogger(__name__)


class SaleProcessor:
    """
    Main orchestrator for sale processing.

    Implements a clear pipeline pattern:
    1. Look Up Partner Rule
    2. Aggregate Monthly Volume (tiered partners only)
    3. Schedule Tranches
    4. Allocate Costs
    5. Evaluate Recurrence
    6. Build Output

    The processor keeps no state between calls; one instance can serve
    every request.
    """

    def __init__(self, rules: RuleTable | None = None, config: EngineConfig | None = None):
        self.config = config or EngineConfig()
        self.rules = rules or RuleTable()

        # Initialize all calculators
        self.volume_tracker = VolumeTracker()
        self.scheduler = TrancheScheduler(payroll_weekday=self.config.payroll_weekday)
        self.cost_allocator = CostAllocator(self.config.costs)
        self.recurrence_engine = RecurrenceEngine(self.config.activation_offset_months)
        self.dashboard = DashboardAggregator(self.cost_allocator, self.config.good_standing_statuses)
        self.output_builder = OutputBuilder()

    def process(
        self,
        sale: SaleRecord,
        as_of: date,
        all_sales: Iterable[SaleRecord] = (),
        sellers: SellerDirectory | None = None,
        overrides: DateOverrides | None = None,
        ledger: PaidMonthsLedger | None = None,
        metrics: AggregateMetrics | None = None,
        selections: PctSelections | None = None,
    ) -> SaleView:
        """
        Process one sale through the complete pipeline.

        Args:
            sale: The completed sale
            as_of: The reporting date used in place of "now"
            all_sales: Every completed sale, for tiered volume lookups
            sellers: Seller directory (commission rates, exclusions)
            overrides: Due-date overrides snapshot
            ledger: Paid-months ledger snapshot
            metrics: Pre-computed volume for the sale's month, if available
            selections: Operator-picked tranche percentages

        Returns:
            SaleView with tranches, costs and recurrence
        """
        sellers = sellers or SellerDirectory(excluded_name_fragments=self.config.excluded_seller_fragments)

        # Step 1: Look up the partner rule
        rule = self.rules.rule_for(sale.partner)
        view = SaleView(sale=sale, rule=rule, as_of=as_of, warnings=list(sale.warnings))

        if sale.completed_at is None:
            view.warnings.append(f"completed_at is missing; scheduling from {as_of.isoformat()}")
            logger.warning(f"Sale {sale.sale_id} has no completion date; scheduling from {as_of}")

        # Step 2: Aggregate monthly volume when the third tranche is tiered
        if rule.is_tiered:
            target_month = month_key(sale.completed_at or as_of)
            if metrics is None or metrics.month_key != target_month:
                metrics = self.volume_tracker.aggregate(all_sales, target_month)
            view.metrics = metrics

        # Step 3: Schedule tranches
        view.tranches = self.scheduler.schedule(sale, rule, overrides, view.metrics, as_of, selections)
        if selections is not None:
            for tranche in view.tranches:
                picked = selections.get(sale.sale_id, tranche.ordinal)
                if picked is not None and not tranche.pct_selected:
                    view.warnings.append(
                        f"{tranche.ordinal.name.lower()} percentage {float(picked * 100):g}% is not an option "
                        f"for {rule.partner.value}; using {float(tranche.pct * 100):g}%"
                    )

        # Step 4: Allocate costs
        profile = sellers.get(sale.seller_id)
        seller_rate = profile.commission_rate if profile is not None else None
        view.costs = self.cost_allocator.allocate(sale, rule, view.tranches, seller_rate)

        # Step 5: Evaluate recurrence
        if rule.recurrence is not None and sale.reference_month is None and sale.completed_at is not None:
            view.warnings.append("reference month missing; recurrence activates from the completion month")
        view.recurrence = self.recurrence_engine.evaluate(
            sale, rule, ledger, as_of, seller_excluded=sellers.is_recurrence_excluded(sale)
        )

        return view

    def process_batch(
        self,
        sales: list[SaleRecord],
        as_of: date,
        sellers: SellerDirectory | None = None,
        overrides: DateOverrides | None = None,
        ledger: PaidMonthsLedger | None = None,
        selections: PctSelections | None = None,
    ) -> BatchResult:
        """
        Process every sale, isolating failures.

        A sale that fails is reported as skipped; the rest still compute.
        Monthly volumes are aggregated once per month for this call only.
        """
        result = BatchResult()
        monthly: Dict[str, AggregateMetrics] = {}

        for sale in sales:
            try:
                metrics = None
                if self.rules.rule_for(sale.partner).is_tiered:
                    target_month = month_key(sale.completed_at or as_of)
                    if target_month not in monthly:
                        monthly[target_month] = self.volume_tracker.aggregate(sales, target_month)
                    metrics = monthly[target_month]

                view = self.process(sale, as_of, sales, sellers, overrides, ledger, metrics, selections)
                result.views.append(view)

            except (ValueError, TypeError, KeyError, ArithmeticError) as e:
                logger.error(f"Skipping sale {sale.sale_id}: {str(e)}")
                result.skipped.append(SkippedSale(sale_id=sale.sale_id, reason=str(e)))

        logger.info(f"Processed {len(result.views)} sales, skipped {len(result.skipped)}")
        return result

    def process_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process a batch from raw dictionary input.

        Convenience method for API usage.
        """
        batch, _ = self._batch_from_dict(data)
        return self.output_builder.build_batch(batch)

    def dashboard_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Compute a batch and return window totals for the dashboard."""
        batch, processor = self._batch_from_dict(data)
        filters = DashboardFilter.from_dict(data.get("filter"))

        totals = processor.dashboard.summarize(batch.views, filters)
        output = {
            "filter": self.output_builder.build_filter(filters),
            "totals": self.output_builder.build_totals(totals),
            "sales_computed": len(batch.views),
            "skipped": [self.output_builder.build_skipped(s) for s in batch.skipped],
        }
        breakdown = data.get("breakdown_by")
        if breakdown:
            output["breakdown"] = {
                group: self.output_builder.build_totals(group_totals)
                for group, group_totals in processor.dashboard.breakdown_by(batch.views, filters, breakdown).items()
            }
        return output

    def toggle_paid_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Flip one month in the ledger and return the new ledger."""
        sale_id = data.get("sale_id")
        month = data.get("month_key")
        if not sale_id:
            raise ValueError("sale_id is required")
        if not month:
            raise ValueError("month_key is required")

        ledger = PaidMonthsLedger.from_dict(data.get("ledger"))
        updated = self.recurrence_engine.toggle_paid(ledger, str(sale_id), month)
        return {
            "sale_id": str(sale_id),
            "month_key": month,
            "is_paid": updated.is_paid(str(sale_id), month),
            "ledger": updated.to_dict(),
        }

    def _batch_from_dict(self, data: Dict[str, Any]) -> tuple[BatchResult, "SaleProcessor"]:
        as_of = to_date(data.get("as_of"))
        if as_of is None:
            raise ValueError("as_of is required")

        config = EngineConfig.from_dict(data.get("config"), base=self.config)
        processor = self
        if data.get("rules") or config != self.config:
            rules = RuleTable.from_dict(data["rules"]) if data.get("rules") else self.rules
            processor = SaleProcessor(rules, config)

        sellers = SellerDirectory.from_list(data.get("sellers", []), config.excluded_seller_fragments)
        overrides = DateOverrides.from_dict(data.get("overrides"))
        ledger = PaidMonthsLedger.from_dict(data.get("ledger"))
        selections = PctSelections.from_dict(data.get("pct_selections"))

        # Parse each sale on its own so one bad record doesn't sink the batch
        sales: list[SaleRecord] = []
        parse_skipped: list[SkippedSale] = []
        for raw in data.get("sales", []):
            try:
                sales.append(SaleRecord.from_dict(raw))
            except (ValueError, TypeError, AttributeError) as e:
                sale_id = raw.get("sale_id", raw.get("id")) if isinstance(raw, dict) else None
                logger.error(f"Skipping unparseable sale {sale_id}: {str(e)}")
                parse_skipped.append(SkippedSale(sale_id=sale_id, reason=str(e)))

        batch = processor.process_batch(sales, as_of, sellers, overrides, ledger, selections)
        batch.skipped[:0] = parse_skipped
        return batch, processor


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def process_sales_from_dict(input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Process a batch of sales from a Python dict and return a Python dict."""
    processor = SaleProcessor(config=EngineConfig.from_env())
    return processor.process_from_dict(input_data)


def process_sales_from_json(json_input: str) -> str:
    """
    Process a batch of sales from a JSON string and return a JSON string.
    """
    try:
        input_data = json.loads(json_input)
        processor = SaleProcessor(config=EngineConfig.from_env())
        result = processor.process_from_dict(input_data)
        return json.dumps(result, indent=2)

    except ValueError as e:
        error_response = {"error": str(e), "status": "validation_failed"}
        return json.dumps(error_response, indent=2)

    except Exception as e:
        logger.exception(f"Unexpected error processing sales: {str(e)}")
        error_response = {"error": str(e), "status": "failed"}
        return json.dumps(error_response, indent=2)
