"""
Raw Source Tables

Named raw inputs with a fixed column/type contract. Staging models read
sources only through the catalog, which checks the contract before any
model sees the data.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import polars as pl
import structlog

from analytics_marts.config import get_settings

logger = structlog.get_logger(__name__)


class SourceNotFoundError(FileNotFoundError):
    """Raw source table is not available"""


class SourceContractError(ValueError):
    """Raw source table does not match its column/type contract"""


def _dtype_kind(dtype: pl.DataType) -> str:
    """Coarse type family used by source contracts"""
    if dtype.is_integer():
        return "int"
    if dtype.is_float():
        return "float"
    if dtype == pl.Utf8:
        return "str"
    if dtype == pl.Date:
        return "date"
    if dtype == pl.Datetime:
        return "datetime"
    if dtype == pl.Struct:
        return "struct"
    if dtype == pl.Boolean:
        return "bool"
    return str(dtype)


@dataclass(frozen=True)
class SourceTable:
    """A raw table and the columns it must provide"""
    name: str
    columns: Dict[str, str]
    description: str = ""

    def check_schema(self, schema: pl.Schema) -> None:
        """Raise SourceContractError listing missing or mistyped columns"""
        problems: List[str] = []
        for column, kind in self.columns.items():
            if column not in schema:
                problems.append(f"missing column '{column}'")
                continue
            actual = _dtype_kind(schema[column])
            # Nulls-only columns carry no type information
            if actual != kind and schema[column] != pl.Null:
                problems.append(f"column '{column}' is {actual}, expected {kind}")

        if problems:
            raise SourceContractError(f"Source '{self.name}': " + "; ".join(problems))


SOURCE_TABLES: Dict[str, SourceTable] = {
    "raw_users": SourceTable(
        name="raw_users",
        description="Registered users with demographics and signup cohort",
        columns={
            "user_id": "int",
            "user_email": "str",
            "age": "int",
            "age_group": "str",
            "region": "str",
            "device_type": "str",
            "signup_date": "date",
            "cohort_month": "date",
        },
    ),
    "raw_products": SourceTable(
        name="raw_products",
        description="Product catalog",
        columns={
            "product_id": "int",
            "product_name": "str",
            "category": "str",
            "brand": "str",
            "base_price": "float",
            "current_price": "float",
        },
    ),
    "raw_events": SourceTable(
        name="raw_events",
        description="Append-only user activity stream",
        columns={
            "event_id": "int",
            "user_id": "int",
            "product_id": "int",
            "event_type": "str",
            "event_timestamp": "datetime",
            "event_date": "date",
            "session_duration_seconds": "int",
            "traffic_source": "str",
            "event_properties": "struct",
        },
    ),
    "raw_sales": SourceTable(
        name="raw_sales",
        description="Purchases including refunded orders",
        columns={
            "sale_id": "int",
            "user_id": "int",
            "product_id": "int",
            "purchase_timestamp": "datetime",
            "purchase_date": "date",
            "quantity": "int",
            "current_price": "float",
            "total_amount": "float",
            "discount_amount": "float",
            "net_amount": "float",
            "payment_method": "str",
            "order_status": "str",
        },
    ),
}


@dataclass
class SourceCatalog:
    """
    Resolves source names to lazy frames.

    Tables are read from `<raw_path>/<name>.parquet` unless an in-memory
    frame is supplied for that name.

    Example:
        catalog = SourceCatalog(raw_path="./data/raw")
        users = catalog.load("raw_users")
    """
    raw_path: Optional[str] = None
    frames: Dict[str, pl.DataFrame] = field(default_factory=dict)
    tables: Dict[str, SourceTable] = field(default_factory=lambda: dict(SOURCE_TABLES))

    def __post_init__(self) -> None:
        self.raw_path = self.raw_path or get_settings().data_lake.raw_path

    @property
    def names(self) -> List[str]:
        return list(self.tables)

    def __contains__(self, name: str) -> bool:
        return name in self.tables

    def path(self, name: str) -> Path:
        return Path(self.raw_path) / f"{name}.parquet"

    def load(self, name: str) -> pl.LazyFrame:
        """Load a source table and check it against its contract"""
        if name not in self.tables:
            raise SourceNotFoundError(f"Unknown source '{name}'")

        if name in self.frames:
            lf = self.frames[name].lazy()
        else:
            path = self.path(name)
            if not path.exists():
                raise SourceNotFoundError(
                    f"Source '{name}' not found at {path}; generate raw data first"
                )
            lf = pl.scan_parquet(path)

        self.tables[name].check_schema(lf.collect_schema())
        logger.debug("Source loaded", source=name)
        return lf
