"""
Session Reports

User session patterns over the sessionization table.
"""

import polars as pl

from analytics_marts.models.expressions import pct

FREQUENCY_BUCKETS = ["Single Session", "2-5 Sessions", "6-10 Sessions", "10+ Sessions"]


def frequency_buckets(sessions: pl.DataFrame) -> pl.DataFrame:
    """Users grouped by how many sessions they had"""
    per_user = sessions.group_by("user_id").agg(
        pl.col("session_id").n_unique().alias("total_sessions"),
        pl.col("events_in_session").mean().alias("avg_events_per_session"),
        pl.col("session_duration_minutes").mean().alias("avg_session_duration"),
        pl.col("events_in_session").sum().alias("total_events"),
    )

    bucket = (
        pl.when(pl.col("total_sessions") == 1).then(pl.lit(FREQUENCY_BUCKETS[0]))
        .when(pl.col("total_sessions") <= 5).then(pl.lit(FREQUENCY_BUCKETS[1]))
        .when(pl.col("total_sessions") <= 10).then(pl.lit(FREQUENCY_BUCKETS[2]))
        .otherwise(pl.lit(FREQUENCY_BUCKETS[3]))
    )

    return (
        per_user.with_columns(bucket.alias("session_frequency_bucket"))
        .group_by("session_frequency_bucket")
        .agg(
            pl.len().alias("user_count"),
            pl.col("total_sessions").mean().alias("avg_sessions"),
            pl.col("avg_events_per_session").mean().alias("avg_events"),
            pl.col("avg_session_duration").mean().alias("avg_duration"),
            pl.col("total_sessions").min().alias("_min_sessions"),
        )
        .sort("_min_sessions")
        .drop("_min_sessions")
    )


def quality_distribution(sessions: pl.DataFrame) -> pl.DataFrame:
    """Session count, averages and share of all sessions per quality label"""
    return (
        sessions.group_by("session_quality")
        .agg(
            pl.len().alias("session_count"),
            pl.col("session_duration_minutes").mean().alias("avg_duration"),
            pl.col("events_in_session").mean().alias("avg_events"),
        )
        .with_columns(
            pct("session_count", pl.col("session_count").sum()).alias("pct_of_total_sessions")
        )
        .sort(["session_count", "session_quality"], descending=[True, False])
    )


def by_device_and_source(sessions: pl.DataFrame) -> pl.DataFrame:
    """Session volume, depth and cart activity per device type and traffic source"""
    return (
        sessions.group_by(["device_type", "traffic_source"])
        .agg(
            pl.col("session_id").n_unique().alias("total_sessions"),
            pl.col("events_in_session").mean().alias("avg_events_per_session"),
            pl.col("session_duration_minutes").mean().alias("avg_session_duration"),
            pl.col("has_cart_activity").sum().alias("sessions_with_cart"),
        )
        .with_columns(
            pct("sessions_with_cart", "total_sessions").alias("cart_conversion_pct")
        )
        .sort(["total_sessions", "device_type", "traffic_source"], descending=[True, False, False])
    )
