"""
Analytics Marts

Staging and mart models for business analytics over a users / products /
events / sales schema: sessionization, cohort retention, funnel conversion
and window-function sales analytics.
"""

__version__ = "1.0.0"
