"""
Data Validation Module

Rule-based data tests for staging and mart relations.

Checks:
- not null and uniqueness (single column or column combination)
- value ranges and accepted values
- regex patterns
- relationships to a parent relation
- column comparisons and ordered non-increasing sequences
- custom predicates
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
import operator

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Fails the test run
    WARNING = "warning"  # Reported, does not fail


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def failures(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed]


_COMPARISONS: Dict[str, Callable] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "==": operator.eq,
}


def _missing(name: str, columns: Sequence[str], severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column(s) {', '.join(repr(c) for c in columns)} not found",
    )


class DataValidator:
    """
    Data test suite for one relation.

    Example:
        validator = DataValidator("stg_users")
        validator.add_not_null_check("user_id").add_unique_check("user_id")
        result = validator.validate(df)
    """

    def __init__(self, relation: str = "relation", strict_mode: bool = False):
        self.relation = relation
        self.strict_mode = strict_mode  # Warnings fail the suite
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def __len__(self) -> int:
        return len(self._checks)

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Column has no nulls"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return _missing(name, [column], severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Column, or combination of columns, identifies rows uniquely"""
        cols = [columns] if isinstance(columns, str) else list(columns)

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{'_'.join(cols)}"
            missing = [c for c in cols if c not in df.columns]
            if missing:
                return _missing(name, missing, severity)

            total = len(df)
            unique_count = df.select(cols).n_unique() if total else 0
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{cols} has {duplicate_count} duplicate rows" if not passed else f"{cols} is unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Non-null values lie within [min_value, max_value]"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return _missing(name, [column], severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_accepted_values_check(
        self,
        column: str,
        accepted: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Non-null values belong to `accepted`"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"accepted_values_{column}"
            if column not in df.columns:
                return _missing(name, [column], severity)

            invalid = df.filter(
                ~pl.col(column).is_in(accepted) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = invalid == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} values outside {accepted}" if not passed else "All values are accepted",
                details={"accepted": accepted, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_pattern_check(
        self,
        column: str,
        pattern: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Non-null string values match `pattern`"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"pattern_{column}"
            if column not in df.columns:
                return _missing(name, [column], severity)

            non_matching = df.filter(
                ~pl.col(column).str.contains(pattern) & pl.col(column).is_not_null()
            ).height
            total = df.filter(pl.col(column).is_not_null()).height
            passed = non_matching == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {non_matching} values not matching pattern" if not passed else "All values match pattern",
                details={"pattern": pattern, "non_matching_count": non_matching},
                failed_rows=non_matching,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_relationship_check(
        self,
        column: str,
        parent: pl.DataFrame,
        parent_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Every non-null value exists in the parent relation"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"relationships_{column}"
            if column not in df.columns:
                return _missing(name, [column], severity)

            orphans = df.filter(
                ~pl.col(column).is_in(parent[parent_column].unique()) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan rows" if not passed else "All rows have a parent",
                details={"orphan_count": orphans, "parent_column": parent_column},
                failed_rows=orphans,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_comparison_check(
        self,
        left: str,
        op: str,
        right: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Row-wise `left <op> right`; rows with a null side are ignored"""
        compare = _COMPARISONS[op]

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"compare_{left}_{op}_{right}"
            missing = [c for c in (left, right) if c not in df.columns]
            if missing:
                return _missing(name, missing, severity)

            violations = df.filter(~compare(pl.col(left), pl.col(right))).height
            total = len(df)
            passed = violations == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{violations} rows violate {left} {op} {right}" if not passed else f"{left} {op} {right} holds",
                details={"violation_count": violations},
                failed_rows=violations,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_non_increasing_check(
        self,
        columns: Sequence[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Within each row, values never increase across `columns`"""
        cols = list(columns)

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"non_increasing_{'_'.join(cols)}"
            missing = [c for c in cols if c not in df.columns]
            if missing:
                return _missing(name, missing, severity)

            increasing = pl.lit(False)
            for earlier, later in zip(cols, cols[1:]):
                increasing = increasing | (pl.col(later) > pl.col(earlier))

            violations = df.filter(increasing).height
            total = len(df)
            passed = violations == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{violations} rows increase across {cols}" if not passed else "Sequence never increases",
                details={"violation_count": violations},
                failed_rows=violations,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
                return ValidationCheck(
                    name=name,
                    passed=passed,
                    severity=severity,
                    message="Check passed" if passed else message_on_fail,
                    total_rows=len(df),
                )
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.info(f"Running {len(self._checks)} checks on {self.relation} ({len(df)} rows)")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Check failed: {result.name}",
                    relation=self.relation,
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        logger.info(
            f"Validation complete: {status.value}",
            relation=self.relation,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result
