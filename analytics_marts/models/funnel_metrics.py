"""
Funnel Metrics Model

Daily conversion through the ordered stages page view -> product view ->
add to cart -> purchase, per region, device type and age group.

Each stage is flagged independently per user and day: a user who adds to
cart without a same-day page view still counts at the add-to-cart stage.
Purchases come from a same-day match against completed sales.
"""

from datetime import datetime
from typing import Optional

import polars as pl

from analytics_marts.orchestration.registry import model
from .expressions import pct

FUNNEL_STAGES = ["page_view", "product_view", "add_to_cart", "purchase"]
SEGMENT_KEYS = ["region", "device_type", "age_group"]

FUNNEL_COLUMNS = [
    "event_date",
    "region",
    "device_type",
    "age_group",
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
    "conversion_page_to_product_pct",
    "conversion_product_to_cart_pct",
    "conversion_cart_to_purchase_pct",
    "conversion_overall_pct",
    "dropoff_page_view_pct",
    "dropoff_product_view_pct",
    "dropoff_add_to_cart_pct",
    "avg_order_value",
    "revenue_per_user",
    "calculated_at",
]


def daily_user_funnel(events: pl.LazyFrame, sales: pl.LazyFrame) -> pl.LazyFrame:
    """
    Stage flags and counts per user and day.

    Args:
        events: Events with user_id, event_date, event_type and segment columns
        sales: Completed sales with user_id, purchase_date and net_amount
    """
    daily = events.group_by(["user_id", "event_date", *SEGMENT_KEYS]).agg(
        *[
            (pl.col("event_type") == stage).any().cast(pl.Int64).alias(f"reached_{stage}")
            for stage in FUNNEL_STAGES[:-1]
        ],
        (pl.col("event_type") == "page_view").sum().cast(pl.Int64).alias("page_view_count"),
        (pl.col("event_type") == "product_view").sum().cast(pl.Int64).alias("product_view_count"),
        (pl.col("event_type") == "add_to_cart").sum().cast(pl.Int64).alias("add_to_cart_count"),
    )

    purchases = (
        sales
        .group_by(["user_id", "purchase_date"])
        .agg(
            pl.len().cast(pl.Int64).alias("purchase_count"),
            pl.col("net_amount").sum().alias("purchase_amount"),
        )
        .rename({"purchase_date": "event_date"})
    )

    return (
        daily
        .join(purchases, on=["user_id", "event_date"], how="left")
        .with_columns(
            pl.col("purchase_count").fill_null(0),
            pl.col("purchase_amount").fill_null(0.0),
        )
        .with_columns(
            (pl.col("purchase_count") > 0).cast(pl.Int64).alias("reached_purchase")
        )
    )


def summarize_funnel(daily: pl.LazyFrame) -> pl.LazyFrame:
    """Stage and event totals per day and segment"""
    return daily.group_by(["event_date", *SEGMENT_KEYS]).agg(
        pl.col("user_id").n_unique().cast(pl.Int64).alias("total_users"),
        *[pl.col(f"reached_{stage}").sum().alias(f"users_{stage}") for stage in FUNNEL_STAGES],
        pl.col("page_view_count").sum().alias("total_page_views"),
        pl.col("product_view_count").sum().alias("total_product_views"),
        pl.col("add_to_cart_count").sum().alias("total_add_to_cart"),
        pl.col("purchase_count").sum().alias("total_purchases"),
        pl.col("purchase_amount").sum().alias("total_revenue"),
    )


def add_funnel_rates(summary):
    """
    Conversion, drop-off and value ratios from stage totals.

    Works on a DataFrame or LazyFrame. Every ratio is rounded to two
    decimals and is null when its denominator is zero.
    """
    return summary.with_columns(
        pct("users_product_view", "users_page_view").alias("conversion_page_to_product_pct"),
        pct("users_add_to_cart", "users_product_view").alias("conversion_product_to_cart_pct"),
        pct("users_purchase", "users_add_to_cart").alias("conversion_cart_to_purchase_pct"),
        pct("users_purchase", "users_page_view").alias("conversion_overall_pct"),
        pct(pl.col("users_page_view") - pl.col("users_product_view"), "users_page_view")
        .alias("dropoff_page_view_pct"),
        pct(pl.col("users_product_view") - pl.col("users_add_to_cart"), "users_product_view")
        .alias("dropoff_product_view_pct"),
        pct(pl.col("users_add_to_cart") - pl.col("users_purchase"), "users_add_to_cart")
        .alias("dropoff_add_to_cart_pct"),
        pl.when(pl.col("users_purchase") != 0)
        .then((pl.col("total_revenue") / pl.col("users_purchase")).round(2))
        .otherwise(None)
        .alias("avg_order_value"),
        pl.when(pl.col("total_users") != 0)
        .then((pl.col("total_revenue") / pl.col("total_users")).round(2))
        .otherwise(None)
        .alias("revenue_per_user"),
    )


def build_funnel(
    events: pl.LazyFrame,
    sales: pl.LazyFrame,
    calculated_at: Optional[datetime] = None,
) -> pl.LazyFrame:
    """Funnel metrics per day and segment, newest day first"""
    calculated_at = calculated_at or datetime.utcnow().replace(microsecond=0)
    summary = summarize_funnel(daily_user_funnel(events, sales))

    return (
        add_funnel_rates(summary)
        .with_columns(pl.lit(calculated_at).alias("calculated_at"))
        .sort(
            ["event_date", *SEGMENT_KEYS],
            descending=[True, False, False, False],
            nulls_last=True,
        )
        .select(FUNNEL_COLUMNS)
    )


@model(materialized="table", tags=["analytics", "funnel_metrics"])
def funnel_metrics(
    ctx,
    stg_events: pl.LazyFrame,
    stg_users: pl.LazyFrame,
    stg_sales: pl.LazyFrame,
) -> pl.LazyFrame:
    """Daily stage-to-stage conversion and drop-off"""
    events = (
        stg_events
        .select("user_id", "event_date", "event_type", "product_id", "event_timestamp")
        .join(
            stg_users.select("user_id", *SEGMENT_KEYS),
            on="user_id",
            how="left",
        )
    )
    return build_funnel(events, stg_sales, ctx.run_started_at)
