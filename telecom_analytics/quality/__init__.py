"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    RuleCategory,
    ValidationCheck,
    ValidationReport,
    ValidationSeverity,
    ValidationStatus,
    validate_sources,
)

__all__ = [
    "DataValidator",
    "RuleCategory",
    "ValidationCheck",
    "ValidationReport",
    "ValidationSeverity",
    "ValidationStatus",
    "validate_sources",
]
