"""
Analytics Reports Module

Named reports over the mart relations. Each report declares the relations
it reads; `run_report` resolves them through a `ref` callable.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

import polars as pl
import structlog

from . import cohorts, funnels, sales, sessions

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Report:
    """A report function and the relations passed to it, in order"""
    func: Callable[..., pl.DataFrame]
    relations: Tuple[str, ...]

    @property
    def description(self) -> str:
        return (self.func.__doc__ or "").strip().split("\n")[0]


REPORTS: Dict[str, Report] = {
    "cohort_retention": Report(cohorts.retention_by_segment, ("cohort_analysis",)),
    "cohort_retention_matrix": Report(cohorts.retention_matrix, ("cohort_analysis",)),
    "cohort_ltv": Report(cohorts.ltv_comparison, ("cohort_analysis",)),
    "cohort_segments": Report(cohorts.segment_comparison, ("cohort_analysis",)),
    "cohort_early_indicators": Report(cohorts.early_indicators, ("cohort_analysis",)),
    "cohort_revenue_curves": Report(cohorts.revenue_curves, ("cohort_analysis",)),
    "funnel_daily": Report(funnels.daily_overview, ("funnel_metrics",)),
    "funnel_shape": Report(funnels.funnel_shape, ("funnel_metrics",)),
    "funnel_by_segment": Report(funnels.funnel_by_segment, ("funnel_metrics",)),
    "funnel_anomalies": Report(funnels.dropoff_anomalies, ("funnel_metrics",)),
    "funnel_weekly": Report(funnels.weekly_trends, ("funnel_metrics",)),
    "session_frequency": Report(sessions.frequency_buckets, ("sessionization",)),
    "session_quality": Report(sessions.quality_distribution, ("sessionization",)),
    "session_channels": Report(sessions.by_device_and_source, ("sessionization",)),
    "sales_top_products": Report(sales.top_products, ("stg_sales",)),
    "sales_spending_segments": Report(sales.spending_segments, ("stg_sales",)),
    "sales_daily": Report(sales.daily_revenue, ("stg_sales",)),
    "sales_day_over_day": Report(sales.day_over_day, ("stg_sales",)),
    "sales_lifecycle": Report(sales.customer_lifecycle, ("stg_sales",)),
}


def list_reports() -> List[str]:
    return sorted(REPORTS)


def run_report(name: str, ref: Callable[[str], pl.DataFrame], **kwargs) -> pl.DataFrame:
    """
    Compute a named report.

    Args:
        name: Key in REPORTS
        ref: Returns a relation as a DataFrame
        **kwargs: Passed through to the report function

    Raises:
        KeyError: Unknown report name
    """
    try:
        report = REPORTS[name]
    except KeyError:
        raise KeyError(f"Unknown report '{name}'. Available: {', '.join(list_reports())}") from None

    frames = [ref(relation) for relation in report.relations]
    df = report.func(*frames, **kwargs)
    logger.debug("Report computed", report=name, rows=len(df))
    return df


__all__ = ["REPORTS", "Report", "list_reports", "run_report"]
