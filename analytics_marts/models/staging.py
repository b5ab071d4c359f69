"""
Staging Models

Views over the raw sources: select the contracted columns, drop rows missing
their keys and stamp the load time. Refunded orders are dropped here, so
every mart only sees completed sales.
"""

import polars as pl

from analytics_marts.orchestration.registry import model


@model(materialized="view", tags=["staging", "users"])
def stg_users(ctx, raw_users: pl.LazyFrame) -> pl.LazyFrame:
    """Users with demographics and signup cohort"""
    return (
        raw_users
        .filter(pl.col("user_id").is_not_null())
        .select(
            "user_id",
            "user_email",
            "age",
            "age_group",
            "region",
            "device_type",
            "signup_date",
            "cohort_month",
            pl.lit(ctx.run_started_at).alias("loaded_at"),
        )
    )


@model(materialized="view", tags=["staging", "products"])
def stg_products(ctx, raw_products: pl.LazyFrame) -> pl.LazyFrame:
    """Product catalog"""
    return (
        raw_products
        .filter(pl.col("product_id").is_not_null())
        .select(
            "product_id",
            "product_name",
            "category",
            "brand",
            "base_price",
            "current_price",
            pl.lit(ctx.run_started_at).alias("loaded_at"),
        )
    )


@model(materialized="view", tags=["staging", "events"])
def stg_events(ctx, raw_events: pl.LazyFrame) -> pl.LazyFrame:
    """Events with an id, an owner and a timestamp"""
    return (
        raw_events
        .filter(
            pl.col("event_id").is_not_null()
            & pl.col("user_id").is_not_null()
            & pl.col("event_timestamp").is_not_null()
        )
        .select(
            "event_id",
            "user_id",
            "product_id",
            "event_type",
            "event_timestamp",
            "event_date",
            "session_duration_seconds",
            "traffic_source",
            "event_properties",
            pl.lit(ctx.run_started_at).alias("loaded_at"),
        )
    )


@model(materialized="view", tags=["staging", "sales"])
def stg_sales(ctx, raw_sales: pl.LazyFrame) -> pl.LazyFrame:
    """Completed sales"""
    return (
        raw_sales
        .filter(
            pl.col("sale_id").is_not_null()
            & pl.col("user_id").is_not_null()
            & (pl.col("order_status") == "completed")
        )
        .select(
            "sale_id",
            "user_id",
            "product_id",
            "purchase_timestamp",
            "purchase_date",
            "quantity",
            "current_price",
            "total_amount",
            "discount_amount",
            "net_amount",
            "payment_method",
            "order_status",
            pl.lit(ctx.run_started_at).alias("loaded_at"),
        )
    )
