"""
Unit Tests - Model Registry
"""
import pytest
import polars as pl

from analytics_marts.orchestration import (
    CyclicDependencyError,
    Materialization,
    ModelNotFoundError,
    ModelRegistry,
    SelectionError,
    load_project,
)

STAGING = ["stg_users", "stg_products", "stg_events", "stg_sales"]
MARTS = ["sessionization", "cohort_analysis", "funnel_metrics", "window_functions_analysis"]


@pytest.fixture(scope="module")
def project() -> ModelRegistry:
    return load_project()


class TestProjectGraph:
    """Tests for the registered project models"""

    def test_all_models_registered(self, project):
        assert set(project.names) == set(STAGING + MARTS)

    def test_graph_is_valid(self, project):
        project.validate()

    def test_dependencies_come_from_parameters(self, project):
        node = project.get("funnel_metrics")

        assert node.depends_on == ("stg_events", "stg_users", "stg_sales")
        assert node.uses_context is True
        assert node.materialized == Materialization.TABLE

    def test_staging_are_views_and_marts_are_tables(self, project):
        for name in STAGING:
            assert project.get(name).materialized == Materialization.VIEW
        for name in MARTS:
            assert project.get(name).materialized == Materialization.TABLE

    def test_topological_order_puts_parents_first(self, project):
        order = project.topological_order()

        for node in project:
            for parent in project.parents(node.name):
                assert order.index(parent) < order.index(node.name)

    def test_description_from_docstring(self, project):
        assert project.get("stg_sales").description == "Completed sales"


class TestSelection:
    """Tests for selector resolution"""

    def test_select_all_by_default(self, project):
        assert set(project.select()) == set(STAGING + MARTS)

    def test_select_by_name(self, project):
        assert project.select(["cohort_analysis"]) == ["cohort_analysis"]

    def test_select_by_tag(self, project):
        assert set(project.select(["tag:staging"])) == set(STAGING)

    def test_select_with_ancestors(self, project):
        selected = project.select(["+funnel_metrics"])

        assert set(selected) == {"stg_events", "stg_users", "stg_sales", "funnel_metrics"}
        assert selected[-1] == "funnel_metrics"

    def test_select_with_descendants(self, project):
        selected = project.select(["stg_events+"])

        assert set(selected) == {"stg_events", "sessionization", "funnel_metrics"}
        assert selected[0] == "stg_events"

    def test_exclude(self, project):
        selected = project.select(["tag:analytics"], exclude=["window_functions_analysis"])

        assert set(selected) == {"sessionization", "cohort_analysis", "funnel_metrics"}

    def test_unknown_selector_raises(self, project):
        with pytest.raises(SelectionError):
            project.select(["no_such_model"])

    def test_unmatched_tag_selects_nothing(self, project):
        assert project.select(["tag:nothing"]) == []


class TestRegistryErrors:
    """Tests for graph validation"""

    def test_cycle_is_detected(self):
        registry = ModelRegistry()

        @registry.model()
        def model_a(model_b):
            return model_b

        @registry.model()
        def model_b(model_a):
            return model_a

        with pytest.raises(CyclicDependencyError):
            registry.validate()

    def test_unknown_reference_is_detected(self):
        registry = ModelRegistry()

        @registry.model()
        def orphan(missing_model):
            return missing_model

        with pytest.raises(ModelNotFoundError):
            registry.validate()

    def test_duplicate_name_rejected(self):
        registry = ModelRegistry()

        @registry.model()
        def stg_thing(raw_users):
            return raw_users

        with pytest.raises(ValueError):
            registry.model(name="stg_thing")(lambda raw_users: raw_users)

    def test_model_cannot_shadow_source(self):
        registry = ModelRegistry()

        with pytest.raises(ValueError):
            registry.model(name="raw_users")(lambda raw_events: raw_events)

    def test_get_unknown_model(self):
        with pytest.raises(ModelNotFoundError):
            ModelRegistry().get("nope")

    def test_sources_are_not_parents(self):
        registry = ModelRegistry()

        @registry.model(materialized="table")
        def users_copy(raw_users: pl.LazyFrame) -> pl.LazyFrame:
            return raw_users

        assert registry.parents("users_copy") == []
        assert registry.topological_order() == ["users_copy"]
