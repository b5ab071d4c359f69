"""
Data Generation Module
"""
from .generators import (
    DataGenerator,
    EventGenerator,
    ProductGenerator,
    SaleGenerator,
    UserGenerator,
    summarize,
)

__all__ = [
    "DataGenerator",
    "UserGenerator",
    "ProductGenerator",
    "EventGenerator",
    "SaleGenerator",
    "summarize",
]
