"""
Window Functions Analysis Model

Per-sale running totals, rankings, trailing averages, lag/lead lookups and
percentiles over user, category and region partitions.

Every window is ordered ascending by its sort key. Rows tied on the sort key
keep their input order, which is tracked with a row index and used as the
final tie-breaker in each partition sort.
"""

import polars as pl

from analytics_marts.orchestration.registry import model
from .expressions import ntile

ROW_INDEX = "_row"

QUARTILE_LABELS = {
    1: "Top 25%",
    2: "Upper Middle 25%",
    3: "Lower Middle 25%",
    4: "Bottom 25%",
}

WINDOW_COLUMNS = [
    "sale_id",
    "purchase_date",
    "user_id",
    "product_id",
    "category",
    "region",
    "net_amount",
    "user_lifetime_value",
    "category_cumulative_revenue",
    "purchase_number",
    "category_revenue_rank",
    "category_7day_moving_avg",
    "category_30day_moving_avg",
    "previous_purchase_date",
    "next_purchase_date",
    "category_percentile",
    "region_quartile",
    "first_purchase_amount",
    "last_purchase_amount",
    "days_since_last_purchase",
    "purchase_amount_growth_pct",
    "region_quartile_label",
]


def user_windows(sales: pl.LazyFrame) -> pl.LazyFrame:
    """Running value, sequence number, lag/lead and first/last amount per user"""
    return (
        sales
        .sort(["user_id", "purchase_date", ROW_INDEX])
        .with_columns(
            pl.col("net_amount").cum_sum().over("user_id").alias("user_lifetime_value"),
            (pl.int_range(pl.len(), dtype=pl.Int64) + 1).over("user_id").alias("purchase_number"),
            pl.col("purchase_date").shift(1).over("user_id").alias("previous_purchase_date"),
            pl.col("purchase_date").shift(-1).over("user_id").alias("next_purchase_date"),
            pl.col("net_amount").first().over("user_id").alias("first_purchase_amount"),
            pl.col("net_amount").last().over("user_id").alias("last_purchase_amount"),
        )
    )


def category_windows(sales: pl.LazyFrame) -> pl.LazyFrame:
    """
    Cumulative revenue, trailing averages, revenue rank and percentile per
    category.

    The 7 and 30 "day" averages are trailing windows of 7 and 30 rows,
    shorter at the start of a category.
    """
    rank_min = pl.col("net_amount").rank(method="min").over("category").cast(pl.Float64)
    partition_size = pl.len().over("category").cast(pl.Float64)

    return (
        sales
        .sort(["category", "purchase_date", ROW_INDEX])
        .with_columns(
            pl.col("net_amount").cum_sum().over("category").alias("category_cumulative_revenue"),
            pl.col("net_amount").rolling_mean(window_size=7, min_samples=1)
            .over("category").alias("category_7day_moving_avg"),
            pl.col("net_amount").rolling_mean(window_size=30, min_samples=1)
            .over("category").alias("category_30day_moving_avg"),
            pl.col("net_amount").rank(method="dense", descending=True)
            .over("category").cast(pl.Int64).alias("category_revenue_rank"),
            pl.when(partition_size > 1)
            .then((rank_min - 1) / (partition_size - 1))
            .otherwise(0.0)
            .alias("category_percentile"),
        )
    )


def region_windows(sales: pl.LazyFrame) -> pl.LazyFrame:
    """Quartile by net amount, largest first, per region"""
    return (
        sales
        .sort(["region", "net_amount", ROW_INDEX], descending=[False, True, False])
        .with_columns(
            ntile(
                4,
                pl.int_range(pl.len(), dtype=pl.Int64).over("region"),
                pl.len().over("region").cast(pl.Int64),
            ).alias("region_quartile")
        )
    )


def build_sales_windows(
    sales: pl.LazyFrame,
    products: pl.LazyFrame,
    users: pl.LazyFrame,
) -> pl.LazyFrame:
    """
    One row per completed sale with its window metrics, in input order.

    Args:
        sales: Completed sales with sale_id, user_id, product_id,
            purchase_date and net_amount
        products: Products with product_id and category
        users: Users with user_id and region
    """
    base = (
        sales
        .select("sale_id", "purchase_date", "user_id", "product_id", "net_amount")
        .with_row_index(ROW_INDEX)
        .join(products.select("product_id", "category"), on="product_id", how="left")
        .join(users.select("user_id", "region"), on="user_id", how="left")
    )

    windowed = region_windows(category_windows(user_windows(base)))

    return (
        windowed
        .sort(ROW_INDEX)
        .with_columns(
            (pl.col("purchase_date") - pl.col("previous_purchase_date"))
            .dt.total_days()
            .alias("days_since_last_purchase"),
            pl.when(pl.col("first_purchase_amount") > 0)
            .then(
                (pl.col("last_purchase_amount") - pl.col("first_purchase_amount"))
                / pl.col("first_purchase_amount")
                * 100
            )
            .otherwise(0.0)
            .alias("purchase_amount_growth_pct"),
            pl.col("region_quartile")
            .replace_strict(QUARTILE_LABELS, return_dtype=pl.String)
            .alias("region_quartile_label"),
        )
        .select(WINDOW_COLUMNS)
    )


@model(materialized="table", tags=["analytics", "window_functions"])
def window_functions_analysis(
    stg_sales: pl.LazyFrame,
    stg_products: pl.LazyFrame,
    stg_users: pl.LazyFrame,
) -> pl.LazyFrame:
    """Running, ranking and moving-window sales metrics"""
    return build_sales_windows(stg_sales, stg_products, stg_users)
