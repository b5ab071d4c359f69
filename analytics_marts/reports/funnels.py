"""
Funnel Reports

Conversion overviews, funnel shape, segment comparisons, drop-off anomaly
detection and weekly trends over the funnel_metrics table.

Day windows are counted back from the latest event_date in the table, so
reports over historical data behave the same as over live data.
"""

from datetime import timedelta
from typing import Optional

import polars as pl

from analytics_marts.models.funnel_metrics import add_funnel_rates

COUNT_COLUMNS = [
    "total_users",
    "users_page_view",
    "users_product_view",
    "users_add_to_cart",
    "users_purchase",
    "total_page_views",
    "total_product_views",
    "total_add_to_cart",
    "total_purchases",
    "total_revenue",
]

STAGES = [
    ("Page View", "users_page_view"),
    ("Product View", "users_product_view"),
    ("Add to Cart", "users_add_to_cart"),
    ("Purchase", "users_purchase"),
]

DROPOFF_COLUMNS = {
    "dropoff_page_view_pct": "High Page Drop-off",
    "dropoff_product_view_pct": "High Product Drop-off",
    "dropoff_add_to_cart_pct": "High Cart Abandonment",
}

SEGMENT_DIMENSIONS = ("device_type", "region", "age_group")


def last_days(funnel: pl.DataFrame, days: int) -> pl.DataFrame:
    """Rows within `days` of the latest event_date"""
    if funnel.is_empty():
        return funnel
    as_of = funnel["event_date"].max()
    return funnel.filter(pl.col("event_date") >= as_of - timedelta(days=days))


def _round2(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 2)


def daily_overview(funnel: pl.DataFrame, days: int = 30) -> pl.DataFrame:
    """Daily funnel across all segments, newest first"""
    daily = (
        last_days(funnel, days)
        .group_by("event_date")
        .agg(pl.col(COUNT_COLUMNS).sum())
    )
    return (
        add_funnel_rates(daily)
        .select(
            "event_date",
            "total_users",
            "users_page_view",
            "users_product_view",
            "users_add_to_cart",
            "users_purchase",
            "conversion_page_to_product_pct",
            "conversion_product_to_cart_pct",
            "conversion_cart_to_purchase_pct",
            "conversion_overall_pct",
        )
        .sort("event_date", descending=True)
    )


def funnel_shape(funnel: pl.DataFrame, days: int = 30) -> pl.DataFrame:
    """
    Stage totals for a funnel chart.

    pct_of_start is relative to the page-view stage; drop_off_pct is
    relative to the previous stage. Both are null when their base is zero.
    """
    recent = last_days(funnel, days)
    totals = {column: int(recent[column].sum()) for _, column in STAGES}
    start = totals[STAGES[0][1]]

    rows = []
    previous = None
    for order, (stage, column) in enumerate(STAGES, start=1):
        users = totals[column]
        if previous is None:
            drop_off = 0.0
        else:
            drop_off = _round2(100.0 * (previous - users) / previous) if previous else None
        rows.append({
            "stage": stage,
            "stage_order": order,
            "users": users,
            "pct_of_start": _round2(100.0 * users / start) if start else None,
            "drop_off_pct": drop_off,
        })
        previous = users

    return pl.DataFrame(
        rows,
        schema={
            "stage": pl.String,
            "stage_order": pl.Int64,
            "users": pl.Int64,
            "pct_of_start": pl.Float64,
            "drop_off_pct": pl.Float64,
        },
    )


def funnel_by_segment(funnel: pl.DataFrame, by: str = "device_type", days: int = 30) -> pl.DataFrame:
    """Conversion, cart abandonment and revenue per segment value"""
    if by not in SEGMENT_DIMENSIONS:
        raise ValueError(f"by must be one of {SEGMENT_DIMENSIONS}, got '{by}'")

    return (
        last_days(funnel, days)
        .group_by(by)
        .agg(
            pl.col("users_page_view").sum().alias("total_page_views"),
            pl.col("total_product_views").sum().alias("total_product_views"),
            pl.col("users_purchase").sum().alias("total_purchases"),
            pl.col("conversion_overall_pct").mean().round(2).alias("avg_conversion_rate"),
            pl.col("dropoff_add_to_cart_pct").mean().round(2).alias("avg_cart_abandonment_rate"),
            pl.col("avg_order_value").mean().round(2).alias("avg_order_value"),
            pl.col("total_revenue").sum().alias("total_revenue"),
        )
        .sort("total_revenue", descending=True)
    )


def dropoff_anomalies(
    funnel: pl.DataFrame,
    baseline_days: int = 90,
    report_days: int = 30,
    threshold_std: float = 2.0,
) -> pl.DataFrame:
    """
    Segment-days whose drop-off exceeds the baseline mean by more than
    `threshold_std` standard deviations.

    The baseline covers the last `baseline_days`; anomalies are reported for
    the last `report_days`. The first exceeded stage names the anomaly.
    """
    baseline = last_days(funnel, baseline_days)
    limits = {}
    for column in DROPOFF_COLUMNS:
        mean, std = baseline[column].mean(), baseline[column].std()
        limits[column] = None if mean is None or std is None else mean + threshold_std * std

    exceeded = {
        column: pl.col(column) > limit if limit is not None else pl.lit(False)
        for column, limit in limits.items()
    }

    anomaly_type = pl.lit("Normal")
    for column, label in reversed(DROPOFF_COLUMNS.items()):
        anomaly_type = pl.when(exceeded[column]).then(pl.lit(label)).otherwise(anomaly_type)

    return (
        last_days(funnel, report_days)
        .filter(pl.any_horizontal(*[expr.fill_null(False) for expr in exceeded.values()]))
        .select(
            "event_date",
            "region",
            "device_type",
            "age_group",
            *DROPOFF_COLUMNS,
            anomaly_type.alias("anomaly_type"),
        )
        .sort(["event_date", "region", "device_type", "age_group"], descending=[True, False, False, False])
    )


def weekly_trends(funnel: pl.DataFrame, weeks: int = 12) -> pl.DataFrame:
    """Average conversion and total revenue per week, latest `weeks` first"""
    return (
        funnel.with_columns(pl.col("event_date").dt.truncate("1w").alias("week"))
        .group_by("week")
        .agg(
            pl.col("conversion_overall_pct").mean().round(2).alias("avg_conversion_rate"),
            pl.col("conversion_cart_to_purchase_pct").mean().round(2).alias("avg_cart_conversion"),
            pl.col("avg_order_value").mean().round(2).alias("avg_order_value"),
            pl.col("total_revenue").sum().alias("weekly_revenue"),
            pl.col("users_purchase").sum().alias("weekly_purchases"),
        )
        .sort("week", descending=True)
        .head(weeks)
    )
