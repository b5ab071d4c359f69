"""
Cohort Analysis Model

Retention, revenue and lifetime value per signup cohort segment
(cohort month, region, device type, age group) and cohort age in months.
"""

from datetime import datetime
from typing import Optional

import polars as pl

from analytics_marts.orchestration.registry import model
from .expressions import months_between, pct, safe_divide

SEGMENT_KEYS = ["cohort_month", "region", "device_type", "age_group"]

COHORT_COLUMNS = [
    "cohort_month",
    "cohort_age_months",
    "region",
    "device_type",
    "age_group",
    "cohort_size",
    "active_users",
    "total_revenue",
    "avg_revenue_per_transaction",
    "avg_revenue_per_user",
    "total_transactions",
    "avg_transactions_per_user",
    "retention_rate_pct",
    "cumulative_revenue",
    "cumulative_active_users",
    "ltv_to_date",
    "calculated_at",
]


def cohort_sizes(user_cohorts: pl.LazyFrame) -> pl.LazyFrame:
    """Distinct users per cohort segment at signup"""
    return user_cohorts.group_by(SEGMENT_KEYS).agg(
        pl.col("user_id").n_unique().cast(pl.Int64).alias("cohort_size")
    )


def cohort_purchases(user_cohorts: pl.LazyFrame, sales: pl.LazyFrame) -> pl.LazyFrame:
    """Purchases tagged with the buyer's cohort segment and cohort age"""
    purchases = sales.select(
        "user_id",
        "purchase_date",
        pl.col("purchase_date").dt.truncate("1mo").alias("purchase_month"),
        "net_amount",
    )
    return (
        user_cohorts
        .join(purchases, on="user_id", how="inner")
        .with_columns(
            months_between("cohort_month", "purchase_month").alias("cohort_age_months")
        )
    )


def build_cohorts(
    users: pl.LazyFrame,
    sales: pl.LazyFrame,
    calculated_at: Optional[datetime] = None,
) -> pl.LazyFrame:
    """
    Cohort metrics by segment and cohort age.

    Purchases made before the signup month (negative cohort age) are
    dropped before any cumulative metric is computed. Ratios over an empty
    cohort are null.

    Args:
        users: Users with user_id and the segment columns
        sales: Completed sales with user_id, purchase_date and net_amount
        calculated_at: Timestamp stamped on every row

    Returns:
        One row per (segment, cohort_age_months)
    """
    calculated_at = calculated_at or datetime.utcnow().replace(microsecond=0)
    user_cohorts = users.select("user_id", *SEGMENT_KEYS)

    metrics = (
        cohort_purchases(user_cohorts, sales)
        .filter(pl.col("cohort_age_months") >= 0)
        .group_by(["cohort_month", "cohort_age_months", "region", "device_type", "age_group"])
        .agg(
            pl.col("user_id").n_unique().cast(pl.Int64).alias("active_users"),
            pl.col("net_amount").sum().alias("total_revenue"),
            pl.col("net_amount").mean().alias("avg_revenue_per_transaction"),
            pl.len().cast(pl.Int64).alias("total_transactions"),
        )
        .with_columns(
            safe_divide("total_revenue", "active_users").alias("avg_revenue_per_user"),
            safe_divide("total_transactions", "active_users").alias("avg_transactions_per_user"),
        )
    )

    return (
        metrics
        .join(cohort_sizes(user_cohorts), on=SEGMENT_KEYS, how="left")
        .sort([*SEGMENT_KEYS, "cohort_age_months"])
        .with_columns(
            pl.col("total_revenue").cum_sum().over(SEGMENT_KEYS).alias("cumulative_revenue"),
            pl.col("active_users").cum_sum().over(SEGMENT_KEYS).alias("cumulative_active_users"),
        )
        .with_columns(
            pct("active_users", "cohort_size").alias("retention_rate_pct"),
            safe_divide("cumulative_revenue", "cohort_size").alias("ltv_to_date"),
            pl.lit(calculated_at).alias("calculated_at"),
        )
        .sort(["cohort_month", "cohort_age_months", "region", "device_type", "age_group"])
        .select(COHORT_COLUMNS)
    )


@model(materialized="table", tags=["analytics", "cohort_analysis"])
def cohort_analysis(ctx, stg_users: pl.LazyFrame, stg_sales: pl.LazyFrame) -> pl.LazyFrame:
    """Signup cohort retention and lifetime value"""
    return build_cohorts(stg_users, stg_sales, ctx.run_started_at)
