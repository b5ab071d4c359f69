"""
Unit Tests - Sessionization
"""
from datetime import datetime, timedelta

import pytest
import polars as pl

from analytics_marts.models.sessionization import build_sessions, mark_session_starts, sessionization

START = datetime(2024, 3, 1, 10, 0)


def make_events(user_minutes: dict, event_type: str = "page_view") -> pl.LazyFrame:
    """Events at the given minute offsets from START, per user"""
    rows = []
    event_id = 1
    for user_id, offsets in user_minutes.items():
        for offset in offsets:
            rows.append({
                "event_id": event_id,
                "user_id": user_id,
                "event_type": event_type,
                "event_timestamp": START + timedelta(minutes=offset),
                "product_id": event_id,
                "traffic_source": "organic",
                "region": "Europe",
                "device_type": "Mobile",
            })
            event_id += 1
    return pl.DataFrame(rows).lazy()


class TestSessionBoundaries:
    """Tests for gap-based session splitting"""

    def test_gap_over_timeout_starts_new_session(self):
        """Events at 0, 10, 20, 80, 85 minutes form {0,10,20} and {80,85}"""
        events = make_events({1: [0, 10, 20, 80, 85]})

        df = mark_session_starts(events, 30).collect()

        assert df["user_session_number"].to_list() == [1, 1, 1, 2, 2]
        assert df["is_session_start"].to_list() == [1, 0, 0, 1, 0]
        assert df["minutes_since_prev_event"].to_list() == [0, 10, 10, 60, 5]

    def test_gap_equal_to_timeout_stays_in_session(self):
        """Exactly 30 minutes is not a new session; 31 is"""
        events = make_events({1: [0, 30, 61]})

        df = mark_session_starts(events, 30).collect()

        assert df["user_session_number"].to_list() == [1, 1, 2]

    def test_partial_minutes_are_truncated(self):
        """A 30m59s gap counts as 30 whole minutes"""
        events = make_events({1: [0, 30 + 59 / 60]})

        df = mark_session_starts(events, 30).collect()

        assert df["minutes_since_prev_event"].to_list() == [0, 30]
        assert df["user_session_number"].to_list() == [1, 1]

    def test_unordered_input_is_sorted_per_user(self):
        """Session numbering follows timestamps, not input order"""
        events = make_events({1: [100, 0, 10]})

        df = mark_session_starts(events, 30).collect()

        assert df["event_timestamp"].to_list() == [
            START,
            START + timedelta(minutes=10),
            START + timedelta(minutes=100),
        ]
        assert df["user_session_number"].to_list() == [1, 1, 2]

    def test_equal_timestamps_keep_input_order(self):
        events = make_events({1: [0, 0, 0]}).with_columns(
            pl.Series("event_id", [3, 1, 2])
        )

        df = mark_session_starts(events, 30).collect()

        assert df["event_id"].to_list() == [3, 1, 2]
        assert df["user_session_number"].to_list() == [1, 1, 1]

    def test_users_are_sessionized_independently(self):
        """Another user's events never close or open a session"""
        events = make_events({1: [0, 40], 2: [5, 10]})

        df = mark_session_starts(events, 30).collect()

        numbers = dict(zip(zip(df["user_id"], df["event_timestamp"]), df["user_session_number"]))
        assert numbers[(1, START + timedelta(minutes=40))] == 2
        assert numbers[(2, START + timedelta(minutes=10))] == 1

    def test_custom_timeout(self):
        """A larger timeout merges the two sessions"""
        events = make_events({1: [0, 10, 20, 100, 105]})

        df = mark_session_starts(events, 90).collect()

        assert df["user_session_number"].to_list() == [1, 1, 1, 1, 1]


class TestBuildSessions:
    """Tests for session-grain output"""

    def test_two_sessions_with_durations(self):
        """Session durations are last minus first event"""
        events = make_events({1: [0, 10, 20, 100, 105]})

        df = build_sessions(events, 30).collect().sort("user_session_number")

        assert df["session_id"].to_list() == ["1-1", "1-2"]
        assert df["events_in_session"].to_list() == [3, 2]
        assert df["session_duration_seconds"].to_list() == [1200, 300]
        assert df["session_duration_minutes"].to_list() == [20, 5]

    def test_single_event_session_has_zero_duration(self):
        events = make_events({7: [0]})

        df = build_sessions(events).collect()

        assert len(df) == 1
        assert df["session_duration_seconds"][0] == 0
        assert df["events_in_session"][0] == 1

    def test_session_quality_and_engagement(self, raw_events_df):
        """Cart activity makes a session High Intent"""
        events = raw_events_df.lazy().with_columns(
            pl.lit("Europe").alias("region"),
            pl.lit("Mobile").alias("device_type"),
        )

        df = build_sessions(events, 30).collect().sort(["user_id", "user_session_number"])

        first = df.row(0, named=True)
        assert first["session_id"] == "1-1"
        assert first["add_to_cart_events"] == 1
        assert first["has_cart_activity"] == 1
        assert first["session_quality"] == "High Intent"
        # 1 page view + 1 product view * 2 + 1 add to cart * 5
        assert first["engagement_score"] == 8

        second = df.row(1, named=True)
        assert second["session_quality"] == "Low Engagement"
        assert second["has_cart_activity"] == 0

    @pytest.mark.parametrize(
        "event_type,count,expected",
        [
            ("product_view", 4, "Medium Intent"),
            ("product_view", 3, "Low Engagement"),
            ("page_view", 6, "Browsing"),
            ("page_view", 5, "Low Engagement"),
        ],
    )
    def test_quality_thresholds(self, event_type, count, expected):
        events = make_events({1: list(range(count))}, event_type=event_type)

        df = build_sessions(events).collect()

        assert df["session_quality"].to_list() == [expected]

    def test_calculated_at_is_stamped(self):
        stamp = datetime(2024, 6, 1, 12, 0)
        events = make_events({1: [0, 1]})

        df = build_sessions(events, calculated_at=stamp).collect()

        assert df["calculated_at"].to_list() == [stamp]

    def test_unique_products_ignore_nulls(self):
        events = make_events({1: [0, 1, 2]}).with_columns(
            pl.when(pl.col("event_id") == 3).then(None).otherwise(pl.col("product_id")).alias("product_id")
        )

        df = build_sessions(events).collect()

        assert df["unique_products_viewed"].to_list() == [2]


class TestSessionizationModel:
    """Tests for the model wiring events to user attributes"""

    def test_user_attributes_joined_onto_sessions(self, ctx):
        events = make_events({2: [0, 50], 1: [0, 10]}).drop("region", "device_type")
        users = pl.DataFrame({
            "user_id": [1, 2],
            "region": ["Asia", "Europe"],
            "device_type": ["Tablet", "Desktop"],
        }).lazy()

        df = sessionization(ctx, events, users).collect().sort(["user_id", "user_session_number"])

        assert df["session_id"].to_list() == ["1-1", "2-1", "2-2"]
        assert df["region"].to_list() == ["Asia", "Europe", "Europe"]
        assert df["device_type"].to_list() == ["Tablet", "Desktop", "Desktop"]
        assert df["calculated_at"].unique().to_list() == [ctx.run_started_at]
