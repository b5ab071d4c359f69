"""
Unit Tests - Project Runner
"""
from datetime import datetime
from pathlib import Path

import pytest
import polars as pl
from polars.testing import assert_frame_equal

from analytics_marts.orchestration import (
    ModelRegistry,
    SourceCatalog,
    ModelStatus,
    ProjectRunner,
    RelationNotFoundError,
    load_project,
)
from analytics_marts.quality import ValidationStatus

MART_TABLES = ["sessionization", "cohort_analysis", "funnel_metrics", "window_functions_analysis"]
TIMESTAMP_COLUMNS = ["loaded_at", "calculated_at"]


class TestProjectRun:
    """Tests for building the project models"""

    def test_full_run_materializes_tables(self, runner):
        result = runner.run()

        assert result.success
        assert len(result.results) == 8
        for name in MART_TABLES:
            assert runner.relation_path(name).exists()
            assert result.get(name).rows is not None
        assert not runner.relation_path("stg_users").exists()
        assert result.get("stg_users").rows is None

    def test_sessionization_output(self, runner):
        runner.run(select=["+sessionization"])

        df = pl.read_parquet(runner.relation_path("sessionization")).sort(["user_id", "user_session_number"])

        assert df["session_id"].to_list() == ["1-1", "1-2", "2-1"]
        assert df["events_in_session"].to_list() == [3, 2, 1]
        assert df["region"].to_list() == ["North America", "North America", "Europe"]

    def test_window_output_uses_completed_sales(self, runner):
        runner.run(select=["+window_functions_analysis"])

        df = pl.read_parquet(runner.relation_path("window_functions_analysis"))
        user_1 = df.filter(pl.col("user_id") == 1).sort("purchase_date")

        assert len(df) == 4
        assert user_1["user_lifetime_value"].to_list() == [10.0, 30.0, 60.0]
        assert user_1["first_purchase_amount"].to_list() == [10.0, 10.0, 10.0]
        assert user_1["last_purchase_amount"].to_list() == [30.0, 30.0, 30.0]

    def test_session_timeout_var(self, catalog, tmp_path):
        """A 90 minute timeout merges user 1's two sessions"""
        runner = ProjectRunner(
            registry=load_project(),
            sources=catalog,
            target_path=str(tmp_path / "target"),
            vars={"session_timeout_minutes": 90},
        )

        runner.run(select=["sessionization"])

        df = pl.read_parquet(runner.relation_path("sessionization"))
        assert df.filter(pl.col("user_id") == 1).height == 1

    def test_rebuild_is_idempotent(self, catalog, tmp_path):
        """Two runs agree on every column except timestamps"""
        target = str(tmp_path / "target")
        first = ProjectRunner(load_project(), catalog, target, run_started_at=datetime(2024, 6, 1))
        second = ProjectRunner(load_project(), catalog, target, run_started_at=datetime(2024, 7, 1))

        first.run()
        before = {n: pl.read_parquet(first.relation_path(n)) for n in MART_TABLES}
        second.run()

        for name in MART_TABLES:
            after = pl.read_parquet(second.relation_path(name))
            drop = [c for c in TIMESTAMP_COLUMNS if c in after.columns]
            assert_frame_equal(before[name].drop(drop), after.drop(drop))

        stamped = pl.read_parquet(second.relation_path("cohort_analysis"))
        assert stamped["calculated_at"].unique().to_list() == [datetime(2024, 7, 1)]

    def test_unselected_table_is_read_from_target(self, runner):
        runner.run(select=["+sessionization"])

        lf = runner.ref("sessionization")

        assert lf.collect().height == 3

    def test_unbuilt_table_reference_raises(self, runner):
        with pytest.raises(RelationNotFoundError):
            runner.ref("funnel_metrics")

    def test_missing_sources_fail_and_skip(self, tmp_path):
        """Without raw data every staging model errors and every mart skips"""
        runner = ProjectRunner(
            registry=load_project(),
            sources=None,
            target_path=str(tmp_path / "target"),
        )
        runner.sources.raw_path = str(tmp_path / "empty")

        result = runner.run()

        assert not result.success
        assert {r.name for r in result.errors} == {"stg_users", "stg_products", "stg_events", "stg_sales"}
        assert {r.name for r in result.skipped} == set(MART_TABLES)
        assert "SourceNotFoundError" in result.get("stg_users").error


class TestFailureHandling:
    """Tests for error capture and downstream skipping"""

    @pytest.fixture
    def failing_registry(self) -> ModelRegistry:
        registry = ModelRegistry()

        @registry.model(materialized="table")
        def broken(raw_users):
            return raw_users.select(pl.col("no_such_column"))

        @registry.model(materialized="table")
        def after_broken(broken):
            return broken

        @registry.model(materialized="table")
        def independent(raw_products):
            return raw_products.select("product_id", "category")

        return registry

    def test_failure_skips_descendants_only(self, failing_registry, catalog, tmp_path):
        runner = ProjectRunner(failing_registry, catalog, str(tmp_path / "target"))

        result = runner.run()

        assert result.get("broken").status == ModelStatus.ERROR
        assert result.get("after_broken").status == ModelStatus.SKIPPED
        assert "broken" in result.get("after_broken").error
        assert result.get("independent").status == ModelStatus.SUCCESS
        assert not runner.relation_path("broken").exists()

    def test_fail_fast_stops_the_run(self, failing_registry, catalog, tmp_path):
        runner = ProjectRunner(failing_registry, catalog, str(tmp_path / "target"), fail_fast=True)

        result = runner.run()

        names = [r.name for r in result.results]
        after = result.results[names.index("broken") + 1:]
        assert result.get("broken").status == ModelStatus.ERROR
        assert after
        assert all(r.status == ModelStatus.SKIPPED for r in after)

    def test_full_refresh_drops_stale_table(self, failing_registry, catalog, tmp_path):
        """A failed rebuild with full refresh leaves no stale output behind"""
        target = tmp_path / "target"
        target.mkdir()
        pl.DataFrame({"x": [1]}).write_parquet(target / "broken.parquet")

        ProjectRunner(failing_registry, catalog, str(target)).run(select=["broken"])
        assert (target / "broken.parquet").exists()

        ProjectRunner(failing_registry, catalog, str(target)).run(select=["broken"], full_refresh=True)
        assert not (target / "broken.parquet").exists()

    def test_no_temporary_files_left(self, runner):
        runner.run()

        leftovers = list(Path(runner.target_path).glob("*.tmp"))
        assert leftovers == []


class TestProjectTests:
    """Tests for running data tests through the runner"""

    def test_data_tests_pass_after_run(self, runner):
        runner.run()

        results = runner.test()

        assert set(results) == {
            "stg_users", "stg_products", "stg_events", "stg_sales", *MART_TABLES,
        }
        for name, result in results.items():
            assert result.status != ValidationStatus.FAILED, (name, result.failures)

    def test_unbuilt_table_fails_its_tests(self, runner):
        results = runner.test(select=["cohort_analysis"])

        result = results["cohort_analysis"]
        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].name == "relation_exists_cohort_analysis"

    def test_missing_parent_fails_relationship_suite(self, raw_frames, tmp_path):
        """Events are testable but their users source is gone"""
        frames = {k: v for k, v in raw_frames.items() if k != "raw_users"}
        catalog = SourceCatalog(raw_path=str(tmp_path / "raw"), frames=frames)
        runner = ProjectRunner(load_project(), catalog, str(tmp_path / "target"))

        results = runner.test(select=["stg_events", "stg_products"])

        assert results["stg_events"].status == ValidationStatus.FAILED
        assert "raw_users" in results["stg_events"].checks[0].message
        assert results["stg_products"].status == ValidationStatus.PASSED
