"""
Test Suite Configuration
"""
from datetime import date, datetime

import pytest
import polars as pl

from analytics_marts.config import Settings
from analytics_marts.config.settings import GeneratorSettings
from analytics_marts.data import DataGenerator
from analytics_marts.orchestration import ProjectRunner, SourceCatalog, load_project
from analytics_marts.orchestration.runner import RunContext

RUN_STARTED_AT = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(APP_ENV="testing")


@pytest.fixture
def ctx() -> RunContext:
    """Run context with a fixed start time"""
    return RunContext(run_started_at=RUN_STARTED_AT, vars={"session_timeout_minutes": 30})


@pytest.fixture
def raw_users_df() -> pl.DataFrame:
    """Three users across two signup cohorts"""
    return pl.DataFrame({
        "user_id": [1, 2, 3],
        "user_email": ["user_00000001", "user_00000002", "user_00000003"],
        "age": [30, 45, 22],
        "age_group": ["25-34", "45-54", "18-24"],
        "region": ["North America", "Europe", "Asia"],
        "device_type": ["Mobile", "Desktop", "Tablet"],
        "signup_date": [date(2024, 1, 15), date(2024, 1, 20), date(2024, 2, 3)],
        "cohort_month": [date(2024, 1, 1), date(2024, 1, 1), date(2024, 2, 1)],
    })


@pytest.fixture
def raw_products_df() -> pl.DataFrame:
    """Two products in different categories"""
    return pl.DataFrame({
        "product_id": [1, 2],
        "product_name": ["Product_1", "Product_2"],
        "category": ["Electronics", "Books"],
        "brand": ["Brand A", "Brand B"],
        "base_price": [100.0, 20.0],
        "current_price": [95.0, 22.0],
    })


@pytest.fixture
def raw_events_df() -> pl.DataFrame:
    """
    User 1 has events at minutes 0, 10, 20, 100 and 105 of the day (two
    sessions); user 2 has a single event.
    """
    return pl.DataFrame({
        "event_id": [1, 2, 3, 4, 5, 6],
        "user_id": [1, 1, 1, 1, 1, 2],
        "product_id": [1, 1, 1, 2, 2, 1],
        "event_type": ["page_view", "product_view", "add_to_cart", "page_view", "product_view", "page_view"],
        "event_timestamp": [
            datetime(2024, 3, 1, 10, 0),
            datetime(2024, 3, 1, 10, 10),
            datetime(2024, 3, 1, 10, 20),
            datetime(2024, 3, 1, 11, 40),
            datetime(2024, 3, 1, 11, 45),
            datetime(2024, 3, 1, 9, 0),
        ],
        "event_date": [date(2024, 3, 1)] * 6,
        "session_duration_seconds": [30, 45, 60, 20, 15, 10],
        "traffic_source": ["organic", "organic", "organic", "social", "social", "direct"],
    }).with_columns(
        pl.struct(
            page_url=pl.format("/product/{}", pl.col("product_id")),
            referrer=pl.lit("https://example.com"),
            user_agent=pl.lit("pytest"),
        ).alias("event_properties")
    )


@pytest.fixture
def raw_sales_df() -> pl.DataFrame:
    """User 1 buys three times (10, 20, 30) plus one refund; user 2 buys once"""
    return pl.DataFrame({
        "sale_id": [1, 2, 3, 4, 5],
        "user_id": [1, 1, 1, 1, 2],
        "product_id": [1, 1, 2, 1, 2],
        "purchase_timestamp": [
            datetime(2024, 3, 1, 10, 25),
            datetime(2024, 3, 5, 8, 0),
            datetime(2024, 3, 9, 18, 30),
            datetime(2024, 3, 10, 12, 0),
            datetime(2024, 3, 1, 9, 5),
        ],
        "purchase_date": [
            date(2024, 3, 1),
            date(2024, 3, 5),
            date(2024, 3, 9),
            date(2024, 3, 10),
            date(2024, 3, 1),
        ],
        "quantity": [1, 1, 1, 2, 1],
        "current_price": [10.0, 20.0, 30.0, 95.0, 50.0],
        "total_amount": [11.0, 22.0, 33.0, 190.0, 55.0],
        "discount_amount": [1.0, 2.0, 3.0, 19.0, 5.0],
        "net_amount": [10.0, 20.0, 30.0, 171.0, 50.0],
        "payment_method": ["credit_card", "paypal", "credit_card", "paypal", "bank_transfer"],
        "order_status": ["completed", "completed", "completed", "refunded", "completed"],
    })


@pytest.fixture
def raw_frames(raw_users_df, raw_products_df, raw_events_df, raw_sales_df) -> dict:
    return {
        "raw_users": raw_users_df,
        "raw_products": raw_products_df,
        "raw_events": raw_events_df,
        "raw_sales": raw_sales_df,
    }


@pytest.fixture
def catalog(raw_frames, tmp_path) -> SourceCatalog:
    """Source catalog over the in-memory raw frames"""
    return SourceCatalog(raw_path=str(tmp_path / "raw"), frames=raw_frames)


@pytest.fixture
def runner(catalog, tmp_path) -> ProjectRunner:
    """Runner over the sample sources writing to a temporary target"""
    return ProjectRunner(
        registry=load_project(),
        sources=catalog,
        target_path=str(tmp_path / "target"),
        run_started_at=RUN_STARTED_AT,
    )


@pytest.fixture
def small_generator_config() -> GeneratorSettings:
    """A dataset small enough to build in a unit test"""
    return GeneratorSettings(
        n_users=40,
        n_products=8,
        n_events=600,
        n_sales=120,
        seed=7,
        signup_window_days=120,
        activity_window_days=120,
    )


@pytest.fixture
def generated_raw_path(small_generator_config, tmp_path) -> str:
    """Directory of generated raw parquet tables"""
    raw_path = tmp_path / "generated_raw"
    DataGenerator(config=small_generator_config, output_dir=str(raw_path)).generate_all(save=True)
    return str(raw_path)
