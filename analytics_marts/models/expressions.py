"""
Shared column expressions for mart models.
"""

from typing import Union

import polars as pl

IntoExpr = Union[str, pl.Expr]


def _col(value: IntoExpr) -> pl.Expr:
    return pl.col(value) if isinstance(value, str) else value


def safe_divide(numerator: IntoExpr, denominator: IntoExpr) -> pl.Expr:
    """numerator / denominator, null when the denominator is zero or null"""
    num, den = _col(numerator), _col(denominator)
    return pl.when(den != 0).then(num / den).otherwise(None)


def pct(numerator: IntoExpr, denominator: IntoExpr, decimals: int = 2) -> pl.Expr:
    """Rounded percentage, null when the denominator is zero or null"""
    num, den = _col(numerator), _col(denominator)
    return pl.when(den != 0).then((100.0 * num / den).round(decimals)).otherwise(None)


def ntile(buckets: int, position: pl.Expr, size: pl.Expr) -> pl.Expr:
    """
    Bucket number (1-based) for a 0-based position in a partition of `size`
    rows. When rows don't split evenly the leading buckets get one extra row.
    """
    per_bucket = size // buckets
    remainder = size % buckets
    large_rows = remainder * (per_bucket + 1)
    return (
        pl.when(position < large_rows)
        .then(position // (per_bucket + 1) + 1)
        .otherwise(remainder + (position - large_rows) // pl.max_horizontal(per_bucket, 1) + 1)
    )


def months_between(start: IntoExpr, end: IntoExpr) -> pl.Expr:
    """Calendar month difference between two dates, ignoring the day"""
    start, end = _col(start), _col(end)
    return (
        (end.dt.year().cast(pl.Int64) - start.dt.year().cast(pl.Int64)) * 12
        + (end.dt.month().cast(pl.Int64) - start.dt.month().cast(pl.Int64))
    )
