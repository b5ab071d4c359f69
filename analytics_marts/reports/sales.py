"""
Sales Reports

Ranking, segmentation, trend and lifecycle views over completed sales
(stg_sales).
"""

import polars as pl

from analytics_marts.models.expressions import ntile, pct

SPENDING_SEGMENTS = {1: "VIP", 2: "High Value", 3: "Medium Value", 4: "Low Value"}


def top_products(sales: pl.DataFrame, limit: int = 20) -> pl.DataFrame:
    """Products by revenue with row number, rank, dense rank and percent rank"""
    revenue = pl.col("total_revenue")
    n = pl.len().cast(pl.Float64)

    return (
        sales.group_by("product_id")
        .agg(pl.col("net_amount").sum().alias("total_revenue"))
        .sort(["total_revenue", "product_id"], descending=[True, False])
        .with_columns(
            pl.int_range(1, pl.len() + 1, dtype=pl.Int64).alias("row_num"),
            revenue.rank(method="min", descending=True).cast(pl.Int64).alias("rank"),
            revenue.rank(method="dense", descending=True).cast(pl.Int64).alias("dense_rank"),
        )
        .with_columns(
            pl.when(n > 1)
            .then((pl.col("rank") - 1) / (n - 1))
            .otherwise(0.0)
            .alias("percent_rank")
        )
        .head(limit)
    )


def spending_segments(sales: pl.DataFrame) -> pl.DataFrame:
    """Customers split into spending quartiles, biggest spenders first"""
    return (
        sales.group_by("user_id")
        .agg(pl.col("net_amount").sum().alias("total_spent"))
        .sort(["total_spent", "user_id"], descending=[True, False])
        .with_columns(
            ntile(4, pl.int_range(pl.len(), dtype=pl.Int64), pl.len().cast(pl.Int64))
            .alias("spending_quartile")
        )
        .with_columns(
            pl.col("spending_quartile")
            .replace_strict(SPENDING_SEGMENTS, return_dtype=pl.String)
            .alias("customer_segment")
        )
    )


def daily_revenue(sales: pl.DataFrame) -> pl.DataFrame:
    """Daily revenue with trailing 7 and 30 day averages and running purchase count"""
    return (
        sales.group_by("purchase_date")
        .agg(
            pl.col("net_amount").sum().alias("daily_revenue"),
            pl.len().alias("daily_purchases"),
        )
        .sort("purchase_date")
        .with_columns(
            pl.col("daily_revenue").rolling_mean(window_size=7, min_samples=1).alias("moving_avg_7day"),
            pl.col("daily_revenue").rolling_mean(window_size=30, min_samples=1).alias("moving_avg_30day"),
            pl.col("daily_purchases").cum_sum().alias("cumulative_purchases"),
        )
    )


def day_over_day(sales: pl.DataFrame) -> pl.DataFrame:
    """Revenue change against the previous sales day; percentage is null after a zero day"""
    previous = pl.col("current_revenue").shift(1)
    return (
        sales.group_by("purchase_date")
        .agg(pl.col("net_amount").sum().alias("current_revenue"))
        .sort("purchase_date")
        .with_columns(
            previous.alias("prev_day_revenue"),
            (pl.col("current_revenue") - previous).alias("revenue_change"),
        )
        .with_columns(pct("revenue_change", "prev_day_revenue").alias("revenue_change_pct"))
    )


def customer_lifecycle(sales: pl.DataFrame) -> pl.DataFrame:
    """Each purchase labelled First, Repeat or Latest within its customer's history"""
    return (
        sales.with_row_index("_row")
        .sort(["user_id", "purchase_date", "_row"])
        .with_columns(
            (pl.int_range(pl.len(), dtype=pl.Int64) + 1).over("user_id").alias("purchase_number"),
            pl.len().over("user_id").cast(pl.Int64).alias("total_purchases"),
            pl.col("net_amount").cum_sum().over("user_id").alias("cumulative_spent"),
            pl.col("net_amount").rolling_mean(window_size=3, min_samples=1)
            .over("user_id").alias("moving_avg_3_purchases"),
        )
        .with_columns(
            pl.when(pl.col("purchase_number") == 1).then(pl.lit("First Purchase"))
            .when(pl.col("purchase_number") == pl.col("total_purchases")).then(pl.lit("Latest Purchase"))
            .otherwise(pl.lit("Repeat Purchase"))
            .alias("purchase_type")
        )
        .select(
            "user_id",
            "purchase_date",
            "purchase_number",
            "total_purchases",
            "net_amount",
            "cumulative_spent",
            "moving_avg_3_purchases",
            "purchase_type",
        )
    )
