"""
Sessionization Model

Groups each user's events into sessions. A new session starts at a user's
first event and whenever the gap since the previous event exceeds the
session timeout (project variable `session_timeout_minutes`, default 30).
"""

from datetime import datetime
from typing import Optional

import polars as pl

from analytics_marts.orchestration.registry import model

DEFAULT_SESSION_TIMEOUT_MINUTES = 30
EVENT_ORDER = "_event_order"

ENGAGEMENT_WEIGHTS = {
    "page_views": 1,
    "product_views": 2,
    "add_to_cart_events": 5,
    "remove_from_cart_events": -3,
}

SESSION_COLUMNS = [
    "session_id",
    "user_id",
    "user_session_number",
    "session_start",
    "session_end",
    "events_in_session",
    "unique_products_viewed",
    "region",
    "device_type",
    "traffic_source",
    "page_views",
    "product_views",
    "add_to_cart_events",
    "remove_from_cart_events",
    "has_cart_activity",
    "session_duration_seconds",
    "session_duration_minutes",
    "engagement_score",
    "session_quality",
    "calculated_at",
]


def _count_of(event_type: str) -> pl.Expr:
    return (pl.col("event_type") == event_type).sum().cast(pl.Int64)


def mark_session_starts(
    events: pl.LazyFrame,
    session_timeout_minutes: int = DEFAULT_SESSION_TIMEOUT_MINUTES,
) -> pl.LazyFrame:
    """
    Number each event's session within its user.

    Events are ordered by timestamp per user. Events sharing a timestamp
    keep their input order.

    Adds prev_event_timestamp, minutes_since_prev_event (whole minutes, 0 for
    a user's first event), is_session_start and user_session_number.
    """
    return (
        events
        .with_row_index(EVENT_ORDER)
        .sort(["user_id", "event_timestamp", EVENT_ORDER])
        .drop(EVENT_ORDER)
        .with_columns(
            pl.col("event_timestamp").shift(1).over("user_id").alias("prev_event_timestamp")
        )
        .with_columns(
            pl.when(pl.col("prev_event_timestamp").is_null())
            .then(pl.lit(0, dtype=pl.Int64))
            .otherwise(
                (pl.col("event_timestamp") - pl.col("prev_event_timestamp")).dt.total_minutes()
            )
            .alias("minutes_since_prev_event")
        )
        .with_columns(
            (
                pl.col("prev_event_timestamp").is_null()
                | (pl.col("minutes_since_prev_event") > session_timeout_minutes)
            )
            .cast(pl.Int64)
            .alias("is_session_start")
        )
        .with_columns(
            pl.col("is_session_start").cum_sum().over("user_id").alias("user_session_number")
        )
    )


def classify_session_quality() -> pl.Expr:
    """Intent label from a session's event-type counts"""
    return (
        pl.when(pl.col("add_to_cart_events") > 0).then(pl.lit("High Intent"))
        .when(pl.col("product_views") > 3).then(pl.lit("Medium Intent"))
        .when(pl.col("page_views") > 5).then(pl.lit("Browsing"))
        .otherwise(pl.lit("Low Engagement"))
    )


def engagement_score() -> pl.Expr:
    score = pl.lit(0, dtype=pl.Int64)
    for column, weight in ENGAGEMENT_WEIGHTS.items():
        score = score + pl.col(column) * weight
    return score


def build_sessions(
    events: pl.LazyFrame,
    session_timeout_minutes: int = DEFAULT_SESSION_TIMEOUT_MINUTES,
    calculated_at: Optional[datetime] = None,
) -> pl.LazyFrame:
    """
    One row per (user, session).

    Args:
        events: Events with user_id, event_type, event_timestamp, product_id,
            traffic_source, region and device_type
        session_timeout_minutes: Largest gap, in minutes, inside one session
        calculated_at: Timestamp stamped on every row

    Returns:
        Session-grain frame with counts, duration, engagement score and quality
    """
    calculated_at = calculated_at or datetime.utcnow().replace(microsecond=0)

    sessions = (
        mark_session_starts(events, session_timeout_minutes)
        .group_by(["user_id", "user_session_number"], maintain_order=True)
        .agg(
            pl.col("event_timestamp").min().alias("session_start"),
            pl.col("event_timestamp").max().alias("session_end"),
            pl.len().cast(pl.Int64).alias("events_in_session"),
            pl.col("product_id").drop_nulls().n_unique().cast(pl.Int64).alias("unique_products_viewed"),
            pl.col("region").max(),
            pl.col("device_type").max(),
            pl.col("traffic_source").max(),
            _count_of("page_view").alias("page_views"),
            _count_of("product_view").alias("product_views"),
            _count_of("add_to_cart").alias("add_to_cart_events"),
            _count_of("remove_from_cart").alias("remove_from_cart_events"),
        )
    )

    return (
        sessions
        .with_columns(
            pl.format("{}-{}", "user_id", "user_session_number").alias("session_id"),
            (pl.col("add_to_cart_events") > 0).cast(pl.Int64).alias("has_cart_activity"),
            (pl.col("session_end") - pl.col("session_start")).dt.total_seconds().alias("session_duration_seconds"),
            (pl.col("session_end") - pl.col("session_start")).dt.total_minutes().alias("session_duration_minutes"),
            engagement_score().alias("engagement_score"),
            classify_session_quality().alias("session_quality"),
            pl.lit(calculated_at).alias("calculated_at"),
        )
        .select(SESSION_COLUMNS)
    )


@model(materialized="table", tags=["analytics", "sessionization"])
def sessionization(ctx, stg_events: pl.LazyFrame, stg_users: pl.LazyFrame) -> pl.LazyFrame:
    """User sessions split on inactivity gaps"""
    timeout = int(ctx.var("session_timeout_minutes", DEFAULT_SESSION_TIMEOUT_MINUTES))

    events = (
        stg_events
        .select("event_id", "user_id", "event_type", "event_timestamp", "product_id", "traffic_source")
        .join(
            stg_users.select("user_id", "region", "device_type"),
            on="user_id",
            how="left",
            maintain_order="left",
        )
    )

    return build_sessions(events, timeout, ctx.run_started_at)
