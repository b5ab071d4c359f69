"""
Data Quality Module
"""
from .model_tests import MODEL_TESTS
from .validators import (
    DataValidator,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
)

__all__ = [
    "MODEL_TESTS",
    "DataValidator",
    "ValidationCheck",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
]
