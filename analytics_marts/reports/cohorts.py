"""
Cohort Reports

Retention and lifetime value views over the cohort_analysis table.
"""

from typing import Optional, Sequence

import polars as pl

from analytics_marts.models.expressions import pct, safe_divide

MATRIX_AGES = (0, 1, 2, 3, 6, 12)
COMPARISON_AGES = (0, 1, 3, 6, 12)
SEGMENT_KEYS = ["cohort_month", "region", "device_type", "age_group"]


def _value_at_age(column: str, age: int) -> pl.Expr:
    return pl.col(column).filter(pl.col("cohort_age_months") == age).max()


def retention_by_segment(
    cohorts: pl.DataFrame,
    region: Optional[str] = "North America",
    device_type: Optional[str] = "Mobile",
) -> pl.DataFrame:
    """Retention and LTV over cohort age for one region and device type"""
    df = cohorts
    if region is not None:
        df = df.filter(pl.col("region") == region)
    if device_type is not None:
        df = df.filter(pl.col("device_type") == device_type)

    return df.select(
        "cohort_month",
        "cohort_age_months",
        "age_group",
        "cohort_size",
        "active_users",
        "retention_rate_pct",
        "cumulative_revenue",
        "ltv_to_date",
    ).sort(["cohort_month", "cohort_age_months", "age_group"])


def retention_matrix(
    cohorts: pl.DataFrame,
    region: Optional[str] = "North America",
    ages: Sequence[int] = MATRIX_AGES,
) -> pl.DataFrame:
    """
    Cohort month by cohort age retention grid.

    A cohort month with several segments in the region reports the highest
    segment retention at each age, and null where no segment was active.
    """
    df = cohorts.filter(pl.col("cohort_age_months") <= max(ages))
    if region is not None:
        df = df.filter(pl.col("region") == region)

    return (
        df.group_by("cohort_month")
        .agg(*[_value_at_age("retention_rate_pct", age).alias(f"month_{age}") for age in ages])
        .sort("cohort_month")
    )


def ltv_comparison(cohorts: pl.DataFrame, age: int = 12) -> pl.DataFrame:
    """LTV, revenue and retention of each cohort month once it reaches `age`"""
    return (
        cohorts.group_by("cohort_month")
        .agg(
            _value_at_age("ltv_to_date", age).alias(f"ltv_{age}_months"),
            _value_at_age("cumulative_revenue", age).alias(f"revenue_{age}_months"),
            _value_at_age("retention_rate_pct", age).alias(f"retention_{age}_months"),
        )
        .filter(pl.col(f"ltv_{age}_months").is_not_null())
        .sort("cohort_month")
    )


def segment_comparison(
    cohorts: pl.DataFrame,
    ages: Sequence[int] = COMPARISON_AGES,
) -> pl.DataFrame:
    """Cohort performance at milestone ages, by region"""
    return (
        cohorts.filter(pl.col("cohort_age_months").is_in(list(ages)))
        .select(
            "region",
            "cohort_month",
            "cohort_age_months",
            "device_type",
            "age_group",
            "cohort_size",
            "retention_rate_pct",
            "avg_revenue_per_user",
            "ltv_to_date",
        )
        .sort(["region", "cohort_month", "cohort_age_months", "device_type", "age_group"])
    )


def early_indicators(
    cohorts: pl.DataFrame,
    low_threshold: float = 50.0,
    high_threshold: float = 100.0,
) -> pl.DataFrame:
    """
    Does first-month spend predict month-6 retention?

    Segments are bucketed by month-0 revenue per active user. Segments that
    never reach month 6 are left out.
    """
    first_month = (
        cohorts.group_by(SEGMENT_KEYS)
        .agg(
            pl.col("cohort_size").max(),
            _value_at_age("avg_revenue_per_user", 0).alias("month_0_arpu"),
            _value_at_age("avg_transactions_per_user", 0).alias("month_0_trans_per_user"),
            _value_at_age("retention_rate_pct", 6).alias("month_6_retention"),
        )
        .filter(pl.col("month_6_retention").is_not_null())
    )

    return (
        first_month.with_columns(
            pl.when(pl.col("month_0_arpu") < low_threshold).then(pl.lit("Low First Purchase"))
            .when(pl.col("month_0_arpu") <= high_threshold).then(pl.lit("Medium First Purchase"))
            .otherwise(pl.lit("High First Purchase"))
            .alias("first_purchase_segment")
        )
        .group_by("first_purchase_segment")
        .agg(
            pl.len().alias("cohort_count"),
            pl.col("month_0_arpu").mean().alias("avg_first_month_arpu"),
            pl.col("month_6_retention").mean().alias("avg_6_month_retention"),
        )
        .sort("avg_6_month_retention", descending=True)
    )


def revenue_curves(cohorts: pl.DataFrame, region: Optional[str] = "North America") -> pl.DataFrame:
    """Cumulative and incremental revenue per segment over cohort age"""
    df = cohorts if region is None else cohorts.filter(pl.col("region") == region)
    previous = pl.col("cumulative_revenue").shift(1).over(SEGMENT_KEYS)

    return (
        df.sort([*SEGMENT_KEYS, "cohort_age_months"])
        .with_columns((pl.col("cumulative_revenue") - previous).alias("incremental_revenue"))
        .with_columns(
            safe_divide("cumulative_revenue", "cohort_size").alias("revenue_per_user"),
            pct("incremental_revenue", "cumulative_revenue").alias("incremental_revenue_pct"),
        )
        .select(
            *SEGMENT_KEYS,
            "cohort_age_months",
            "cumulative_revenue",
            "revenue_per_user",
            "incremental_revenue",
            "incremental_revenue_pct",
        )
    )
