"""
Project Models

Importing this package registers every model with the default registry.
"""
from . import cohort_analysis, funnel_metrics, sessionization, staging, window_functions
from .cohort_analysis import build_cohorts
from .funnel_metrics import add_funnel_rates, build_funnel
from .sessionization import build_sessions, mark_session_starts
from .window_functions import build_sales_windows

__all__ = [
    "cohort_analysis",
    "funnel_metrics",
    "sessionization",
    "staging",
    "window_functions",
    "build_cohorts",
    "add_funnel_rates",
    "build_funnel",
    "build_sessions",
    "mark_session_starts",
    "build_sales_windows",
]
