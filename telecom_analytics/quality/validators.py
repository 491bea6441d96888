"""
Data Validation Module

Rule-based data quality checks over the operational source snapshot.
Implements validation patterns inspired by Great Expectations.

Rule categories:
- Duplicate key candidates
- Required-field presence
- Logical date ordering
- Referential integrity

Every check runs on every validation; none short-circuits another. Each
check reports the identifiers of the rows that violate it. The report is
advisory: findings do not stop the pipeline unless the caller opts into
strict mode.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from telecom_analytics.sources.schemas import SourceSnapshot

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Finding - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


class RuleCategory(str, Enum):
    """Data quality rule families"""
    DUPLICATE_KEY = "duplicate_key"
    REQUIRED_FIELD = "required_field"
    DATE_ORDER = "date_order"
    REFERENTIAL_INTEGRITY = "referential_integrity"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    category: RuleCategory
    table: str
    passed: bool
    severity: ValidationSeverity
    message: str
    offending_ids: List[Any] = field(default_factory=list)
    details: Optional[Dict[str, Any]] = None
    total_rows: int = 0

    @property
    def failed_rows(self) -> int:
        return len(self.offending_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "table": self.table,
            "passed": self.passed,
            "severity": self.severity.value,
            "message": self.message,
            "offending_ids": list(self.offending_ids),
            "failed_rows": self.failed_rows,
            "total_rows": self.total_rows,
        }


@dataclass
class ValidationReport:
    """Complete validation suite result"""
    checks: List[ValidationCheck] = field(default_factory=list)
    strict_mode: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def total_checks(self) -> int:
        return len(self.checks)

    @property
    def passed_checks(self) -> int:
        return sum(1 for c in self.checks if c.passed)

    @property
    def failed_checks(self) -> int:
        return sum(1 for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for c in self.checks if not c.passed and c.severity == ValidationSeverity.WARNING)

    @property
    def findings(self) -> List[ValidationCheck]:
        """Checks that did not pass"""
        return [c for c in self.checks if not c.passed]

    @property
    def has_findings(self) -> bool:
        return any(not c.passed for c in self.checks)

    @property
    def status(self) -> ValidationStatus:
        if self.failed_checks > 0:
            return ValidationStatus.FAILED
        if self.warning_count > 0 and self.strict_mode:
            return ValidationStatus.FAILED
        if self.warning_count > 0:
            return ValidationStatus.PARTIAL
        return ValidationStatus.PASSED

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def check(self, name: str) -> ValidationCheck:
        for c in self.checks:
            if c.name == name:
                return c
        raise KeyError(name)

    def offending_ids(self, name: str) -> List[Any]:
        """Offending row identifiers for one check (empty list = pass)"""
        return self.check(name).offending_ids

    def by_category(self) -> Dict[RuleCategory, List[ValidationCheck]]:
        grouped: Dict[RuleCategory, List[ValidationCheck]] = {category: [] for category in RuleCategory}
        for c in self.checks:
            grouped[c.category].append(c)
        return grouped

    def extend(self, other: "ValidationReport") -> "ValidationReport":
        self.checks.extend(other.checks)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "total_checks": self.total_checks,
            "passed_checks": self.passed_checks,
            "finding_count": len(self.findings),
            "success_rate": round(self.success_rate, 2),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "checks": [c.to_dict() for c in self.checks],
        }


class DataValidator:
    """
    Data validator for one source table.

    Checks are registered with the builder methods and all of them run on
    every call to validate(). Each check reports offending row ids taken
    from the table's identifier column.

    Example:
        validator = DataValidator("customers", "customer_id")
        validator.add_not_null_check("phone_number")
        validator.add_unique_check("email")
        report = validator.validate(customers_df)
    """

    def __init__(
        self,
        table: str,
        id_column: str,
        severity: ValidationSeverity = ValidationSeverity.WARNING,
        strict_mode: bool = False,
    ):
        self.table = table
        self.id_column = id_column
        self.severity = severity
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def _result(
        self,
        name: str,
        category: RuleCategory,
        df: pl.DataFrame,
        offenders: pl.DataFrame,
        ok_message: str,
        fail_message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ValidationCheck:
        ids = sorted(offenders[self.id_column].drop_nulls().to_list())
        passed = not ids
        return ValidationCheck(
            name=name,
            category=category,
            table=self.table,
            passed=passed,
            severity=self.severity,
            message=ok_message if passed else fail_message.format(count=len(ids)),
            offending_ids=ids,
            details=details,
            total_rows=len(df),
        )

    def _missing_column(self, name: str, category: RuleCategory, column: str) -> ValidationCheck:
        return ValidationCheck(
            name=name,
            category=category,
            table=self.table,
            passed=False,
            severity=ValidationSeverity.ERROR,
            message=f"Column '{column}' not found in {self.table}",
        )

    def add_unique_check(self, column: str, name: Optional[str] = None) -> "DataValidator":
        """Flag every row whose non-null value in `column` occurs more than once"""
        check_name = name or f"unique_{self.table}_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(check_name, RuleCategory.DUPLICATE_KEY, column)

            offenders = df.filter(pl.col(column).is_not_null() & pl.col(column).is_duplicated())
            return self._result(
                check_name,
                RuleCategory.DUPLICATE_KEY,
                df,
                offenders,
                ok_message=f"Column '{column}' values are unique",
                fail_message=f"Column '{column}' has {{count}} rows sharing a duplicate value",
                details={"duplicate_values": offenders[column].n_unique()},
            )

        self._checks.append(check)
        return self

    def add_not_null_check(self, column: str) -> "DataValidator":
        """Flag rows with a null in a required column"""
        check_name = f"not_null_{self.table}_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(check_name, RuleCategory.REQUIRED_FIELD, column)

            offenders = df.filter(pl.col(column).is_null())
            return self._result(
                check_name,
                RuleCategory.REQUIRED_FIELD,
                df,
                offenders,
                ok_message=f"Column '{column}' has no null values",
                fail_message=f"Column '{column}' has {{count}} null values",
            )

        self._checks.append(check)
        return self

    def add_date_order_check(
        self,
        name: str,
        later: pl.Expr,
        earlier: pl.Expr,
        reference_df: Optional[pl.DataFrame] = None,
        join_column: Optional[str] = None,
    ) -> "DataValidator":
        """
        Flag rows where `later` falls before `earlier`.

        When reference_df is given, it is inner-joined on join_column first so
        that `earlier` can come from the referenced table. Rows with a null on
        either side are not judged.
        """
        check_name = f"date_order_{name}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            frame = df
            if reference_df is not None:
                if join_column not in df.columns:
                    return self._missing_column(check_name, RuleCategory.DATE_ORDER, join_column)
                frame = df.join(reference_df, on=join_column, how="inner", suffix="_ref")

            offenders = frame.filter(
                later.is_not_null() & earlier.is_not_null() & (later < earlier)
            )
            return self._result(
                check_name,
                RuleCategory.DATE_ORDER,
                df,
                offenders,
                ok_message="Date ordering holds",
                fail_message="{count} rows have illogical date ordering",
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        reference_table: str,
    ) -> "DataValidator":
        """Flag rows whose non-null foreign key has no match in the reference table"""
        check_name = f"ref_integrity_{self.table}_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(check_name, RuleCategory.REFERENTIAL_INTEGRITY, column)

            reference_keys = reference_df.select(pl.col(reference_column).alias(column)).unique()
            offenders = df.filter(pl.col(column).is_not_null()).join(reference_keys, on=column, how="anti")
            return self._result(
                check_name,
                RuleCategory.REFERENTIAL_INTEGRITY,
                df,
                offenders,
                ok_message="Referential integrity maintained",
                fail_message=f"Column '{column}' has {{count}} orphan records (no matching {reference_table})",
                details={"reference_table": reference_table},
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationReport:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationReport with all check results
        """
        report = ValidationReport(strict_mode=self.strict_mode)

        for check_func in self._checks:
            result = check_func(df)
            report.checks.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    table=self.table,
                    message=result.message,
                    severity=result.severity.value,
                    offending_rows=result.failed_rows,
                )

        report.completed_at = datetime.now(timezone.utc)
        return report


# Pre-built validators for the source tables
def _registration_dates(customers: pl.DataFrame) -> pl.DataFrame:
    return customers.select(
        "customer_id",
        pl.col("registration_date").dt.date().alias("registration_day"),
    )


def create_customers_validator() -> DataValidator:
    """Create pre-configured validator for customers data"""
    return (
        DataValidator("customers", "customer_id")
        .add_unique_check("phone_number")
        .add_unique_check("email")
        .add_not_null_check("phone_number")
        .add_not_null_check("registration_date")
        .add_not_null_check("customer_type")
        .add_date_order_check(
            "customers_registration_after_dob",
            later=pl.col("registration_date").dt.date(),
            earlier=pl.col("dob"),
        )
    )


def create_sim_connections_validator(customers: pl.DataFrame, plans: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for SIM connections data"""
    return (
        DataValidator("sim_connections", "sim_id")
        .add_unique_check("sim_number")
        .add_not_null_check("customer_id")
        .add_not_null_check("plan_id")
        .add_date_order_check(
            "sim_connections_activation_after_registration",
            later=pl.col("activation_date"),
            earlier=pl.col("registration_day"),
            reference_df=_registration_dates(customers),
            join_column="customer_id",
        )
        .add_referential_integrity_check("customer_id", customers, "customer_id", "customers")
        .add_referential_integrity_check("plan_id", plans, "plan_id", "plans")
    )


def create_fiber_connections_validator(customers: pl.DataFrame, plans: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for fiber connections data"""
    return (
        DataValidator("fiber_connections", "fiber_id")
        .add_not_null_check("customer_id")
        .add_not_null_check("plan_id")
        .add_date_order_check(
            "fiber_connections_installation_after_registration",
            later=pl.col("installation_date"),
            earlier=pl.col("registration_day"),
            reference_df=_registration_dates(customers),
            join_column="customer_id",
        )
        .add_referential_integrity_check("customer_id", customers, "customer_id", "customers")
        .add_referential_integrity_check("plan_id", plans, "plan_id", "plans")
    )


def create_payments_validator(customers: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for payments data"""
    return (
        DataValidator("payments", "payment_id")
        .add_not_null_check("customer_id")
        .add_not_null_check("plan_id")
        .add_not_null_check("payment_date")
        .add_not_null_check("amount_paid")
        .add_date_order_check(
            "payments_after_registration",
            later=pl.col("payment_date"),
            earlier=pl.col("registration_day"),
            reference_df=_registration_dates(customers),
            join_column="customer_id",
        )
        .add_referential_integrity_check("customer_id", customers, "customer_id", "customers")
    )


def validate_sources(snapshot: SourceSnapshot, strict_mode: bool = False) -> ValidationReport:
    """
    Run every data quality rule over a source snapshot.

    Args:
        snapshot: The five source collections
        strict_mode: Report FAILED status for any finding

    Returns:
        One report covering all tables
    """
    report = ValidationReport(strict_mode=strict_mode)
    customers, plans = snapshot.customers, snapshot.plans

    report.extend(create_customers_validator().validate(customers))
    report.extend(create_sim_connections_validator(customers, plans).validate(snapshot.sim_connections))
    report.extend(create_fiber_connections_validator(customers, plans).validate(snapshot.fiber_connections))
    report.extend(create_payments_validator(customers).validate(snapshot.payments))
    report.completed_at = datetime.now(timezone.utc)

    logger.info(
        f"Validation complete: {report.status.value}",
        checks=report.total_checks,
        passed=report.passed_checks,
        findings=len(report.findings),
    )
    return report
