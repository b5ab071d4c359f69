"""
Synthetic Data Generator

Generates the four raw source tables consumed by the staging models:
- raw_users: demographics, signup date and cohort month
- raw_products: catalog with base and current prices
- raw_events: page / product / cart activity stream
- raw_sales: purchases, including refunded orders

Generation is vectorized with numpy and fully determined by the seed.
"""

from datetime import date, datetime, time
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import polars as pl
import structlog
from faker import Faker

from analytics_marts.config import get_settings
from analytics_marts.config.settings import GeneratorSettings

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

REGIONS = ["North America", "Europe", "Asia", "Other"]
# Mobile appears twice so it is drawn twice as often
DEVICE_CHOICES = ["Mobile", "Desktop", "Tablet", "Mobile"]
CATEGORIES = ["Electronics", "Clothing", "Home & Garden", "Books", "Sports"]
BRANDS = ["Brand A", "Brand B"]
EVENT_TYPES = [
    ("page_view", 0.40),
    ("product_view", 0.20),
    ("add_to_cart", 0.20),
    ("remove_from_cart", 0.20),
]
TRAFFIC_SOURCES = ["organic", "paid_search", "social", "direct"]
PAYMENT_METHODS = ["credit_card", "paypal", "bank_transfer"]

RAW_TABLES = ["raw_users", "raw_products", "raw_events", "raw_sales"]


def _days_before(end: date, offsets: np.ndarray) -> np.ndarray:
    """Dates `offsets` days before `end`"""
    return np.datetime64(end, "D") - offsets.astype("timedelta64[D]")


def _seconds_before(end: datetime, offsets: np.ndarray) -> np.ndarray:
    """Timestamps `offsets` seconds before `end`, microsecond precision"""
    return (np.datetime64(end, "s") - offsets.astype("timedelta64[s]")).astype("datetime64[us]")


# =============================================================================
# GENERATORS
# =============================================================================

class UserGenerator:
    """Generate users with demographics and signup cohort"""

    def __init__(self, rng: np.random.Generator, end_date: date, signup_window_days: int):
        self.rng = rng
        self.end_date = end_date
        self.signup_window_days = signup_window_days

    def generate(self, n: int = 5000) -> pl.DataFrame:
        """Generate n users"""
        offsets = self.rng.integers(0, self.signup_window_days, n)

        df = pl.DataFrame({
            "user_id": np.arange(1, n + 1, dtype=np.int64),
            "age": self.rng.integers(18, 75, n).astype(np.int64),
            "region": self.rng.choice(REGIONS, n),
            "device_type": self.rng.choice(DEVICE_CHOICES, n),
            "signup_date": _days_before(self.end_date, offsets),
        })

        return df.select(
            "user_id",
            pl.format("user_{}", pl.col("user_id").cast(pl.Utf8).str.zfill(8)).alias("user_email"),
            "age",
            pl.when(pl.col("age").is_between(18, 24)).then(pl.lit("18-24"))
            .when(pl.col("age").is_between(25, 34)).then(pl.lit("25-34"))
            .when(pl.col("age").is_between(35, 44)).then(pl.lit("35-44"))
            .when(pl.col("age").is_between(45, 54)).then(pl.lit("45-54"))
            .otherwise(pl.lit("55+"))
            .alias("age_group"),
            "region",
            "device_type",
            "signup_date",
            pl.col("signup_date").dt.truncate("1mo").alias("cohort_month"),
        )


class ProductGenerator:
    """Generate the product catalog"""

    def __init__(self, rng: np.random.Generator):
        self.rng = rng

    def generate(self, n: int = 200) -> pl.DataFrame:
        """Generate n products"""
        base_price = self.rng.integers(5, 500, n).astype(np.float64)
        price_factor = self.rng.uniform(0.7, 1.3, n)

        df = pl.DataFrame({
            "product_id": np.arange(1, n + 1, dtype=np.int64),
            "category": self.rng.choice(CATEGORIES, n),
            "base_price": base_price,
            "current_price": np.round(base_price * price_factor, 2),
            "brand": self.rng.choice(BRANDS, n),
        })

        return df.select(
            "product_id",
            pl.format("Product_{}", pl.col("product_id")).alias("product_name"),
            "category",
            "base_price",
            "current_price",
            "brand",
        )


class EventGenerator:
    """Generate the user activity stream"""

    def __init__(
        self,
        rng: np.random.Generator,
        n_users: int,
        n_products: int,
        end_date: date,
        activity_window_days: int,
        user_agents: List[str],
    ):
        self.rng = rng
        self.n_users = n_users
        self.n_products = n_products
        self.end_ts = datetime.combine(end_date, time(23, 59, 59))
        self.window_seconds = activity_window_days * 86_400
        self.user_agents = user_agents

    def generate(self, n: int = 200_000) -> pl.DataFrame:
        """Generate n events"""
        offsets = self.rng.integers(0, self.window_seconds, n)

        df = pl.DataFrame({
            "event_id": np.arange(1, n + 1, dtype=np.int64),
            "user_id": self.rng.integers(1, self.n_users + 1, n).astype(np.int64),
            "product_id": self.rng.integers(1, self.n_products + 1, n).astype(np.int64),
            "event_type": self.rng.choice(
                [e[0] for e in EVENT_TYPES], n, p=[e[1] for e in EVENT_TYPES]
            ),
            "event_timestamp": _seconds_before(self.end_ts, offsets),
            "session_duration_seconds": self.rng.integers(1, 301, n).astype(np.int64),
            "traffic_source": self.rng.choice(TRAFFIC_SOURCES, n),
            "_user_agent": self.rng.choice(self.user_agents, n),
        })

        return df.select(
            "event_id",
            "user_id",
            "product_id",
            "event_type",
            "event_timestamp",
            pl.col("event_timestamp").dt.date().alias("event_date"),
            "session_duration_seconds",
            "traffic_source",
            pl.struct(
                page_url=pl.format("/product/{}", pl.col("product_id")),
                referrer=pl.lit("https://example.com"),
                user_agent=pl.col("_user_agent"),
            ).alias("event_properties"),
        )


class SaleGenerator:
    """Generate purchases priced from the product catalog"""

    def __init__(
        self,
        rng: np.random.Generator,
        n_users: int,
        products_df: pl.DataFrame,
        end_date: date,
        activity_window_days: int,
        refund_rate: float,
    ):
        self.rng = rng
        self.n_users = n_users
        self.product_ids = products_df["product_id"].to_numpy()
        self.prices = products_df["current_price"].to_numpy()
        self.end_ts = datetime.combine(end_date, time(23, 59, 59))
        self.window_seconds = activity_window_days * 86_400
        self.refund_rate = refund_rate

    def generate(self, n: int = 20_000) -> pl.DataFrame:
        """Generate n sales"""
        product_idx = self.rng.integers(0, len(self.product_ids), n)
        offsets = self.rng.integers(0, self.window_seconds, n)
        quantity = self.rng.integers(1, 6, n).astype(np.int64)
        price = self.prices[product_idx]
        total = quantity * price
        discount = total * self.rng.uniform(0.05, 0.15, n)

        df = pl.DataFrame({
            "sale_id": np.arange(1, n + 1, dtype=np.int64),
            "user_id": self.rng.integers(1, self.n_users + 1, n).astype(np.int64),
            "product_id": self.product_ids[product_idx],
            "purchase_timestamp": _seconds_before(self.end_ts, offsets),
            "quantity": quantity,
            "current_price": price,
            "total_amount": np.round(total, 2),
            "discount_amount": np.round(discount, 2),
            "net_amount": np.round(total - discount, 2),
            "payment_method": self.rng.choice(PAYMENT_METHODS, n),
            "order_status": np.where(
                self.rng.random(n) < self.refund_rate, "refunded", "completed"
            ),
        })

        return df.select(
            "sale_id",
            "user_id",
            "product_id",
            "purchase_timestamp",
            pl.col("purchase_timestamp").dt.date().alias("purchase_date"),
            "quantity",
            "current_price",
            "total_amount",
            "discount_amount",
            "net_amount",
            "payment_method",
            "order_status",
        )


# =============================================================================
# MAIN GENERATOR
# =============================================================================

class DataGenerator:
    """
    Raw data generator orchestrator.

    Example:
        generator = DataGenerator(output_dir="./data/raw")
        tables = generator.generate_all()
    """

    def __init__(
        self,
        config: Optional[GeneratorSettings] = None,
        output_dir: Optional[str] = None,
    ):
        settings = get_settings()
        self.config = config or settings.generator
        self.output_dir = Path(output_dir or settings.data_lake.raw_path)

    def generate_all(self, save: bool = True) -> Dict[str, pl.DataFrame]:
        """Generate the complete raw dataset"""
        cfg = self.config
        rng = np.random.default_rng(cfg.seed)
        fake = Faker()
        fake.seed_instance(cfg.seed)
        user_agents = [fake.user_agent() for _ in range(25)]

        logger.info(
            "Generating synthetic data",
            users=cfg.n_users,
            products=cfg.n_products,
            events=cfg.n_events,
            sales=cfg.n_sales,
            seed=cfg.seed,
        )

        users_df = UserGenerator(rng, cfg.end_date, cfg.signup_window_days).generate(cfg.n_users)
        products_df = ProductGenerator(rng).generate(cfg.n_products)
        events_df = EventGenerator(
            rng,
            n_users=cfg.n_users,
            n_products=cfg.n_products,
            end_date=cfg.end_date,
            activity_window_days=cfg.activity_window_days,
            user_agents=user_agents,
        ).generate(cfg.n_events)
        sales_df = SaleGenerator(
            rng,
            n_users=cfg.n_users,
            products_df=products_df,
            end_date=cfg.end_date,
            activity_window_days=cfg.activity_window_days,
            refund_rate=cfg.refund_rate,
        ).generate(cfg.n_sales)

        data = {
            "raw_users": users_df,
            "raw_products": products_df,
            "raw_events": events_df,
            "raw_sales": sales_df,
        }

        if save:
            self._save_data(data)

        return data

    def _save_data(self, data: Dict[str, pl.DataFrame]) -> None:
        """Save generated tables as parquet"""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        for name, df in data.items():
            path = self.output_dir / f"{name}.parquet"
            df.write_parquet(path)
            logger.info(f"Saved {name}: {len(df)} rows -> {path}")


def summarize(data: Dict[str, pl.DataFrame]) -> pl.DataFrame:
    """
    Row counts and activity date ranges per raw table.

    Dates come from the table's natural date column (signup, event or
    purchase date); products have none.
    """
    date_columns = {
        "raw_users": "signup_date",
        "raw_events": "event_date",
        "raw_sales": "purchase_date",
    }
    rows = []
    for name in RAW_TABLES:
        if name not in data:
            continue
        df = data[name]
        date_col = date_columns.get(name)
        rows.append({
            "table_name": name,
            "row_count": len(df),
            "min_date": df[date_col].min() if date_col else None,
            "max_date": df[date_col].max() if date_col else None,
            "unique_users": df["user_id"].n_unique() if "user_id" in df.columns else None,
        })

    return pl.DataFrame(
        rows,
        schema={
            "table_name": pl.Utf8,
            "row_count": pl.Int64,
            "min_date": pl.Date,
            "max_date": pl.Date,
            "unique_users": pl.Int64,
        },
    )
