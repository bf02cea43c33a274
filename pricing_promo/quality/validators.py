"""
Data Validation Module

Rule-based checks run on every derived table before it may be published.

Features:
- Null, range and pattern checks
- Single and composite key uniqueness
- Logical implication between flag columns
- Referential checks between derived tables
- Pre-built suites for line items, enriched items and order KPIs
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import polars as pl
import structlog

from pricing_promo.exceptions import CardinalityError, DataQualityError

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks publishing
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


class CheckKind(str, Enum):
    """What a failing check says about the data"""
    QUALITY = "quality"
    CARDINALITY = "cardinality"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    kind: CheckKind = CheckKind.QUALITY
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
    suite: str = "default"
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def failures(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed]

    def raise_for_status(self) -> None:
        """
        Raise if the suite failed.

        Raises:
            CardinalityError: A failed check guards a key or row-count invariant
            DataQualityError: Any other failed check
        """
        if self.status != ValidationStatus.FAILED:
            return

        blocking = [c for c in self.failures if c.severity != ValidationSeverity.INFO]
        names = [c.name for c in blocking]
        message = f"Validation suite '{self.suite}' failed: {', '.join(names)}"
        details = {"suite": self.suite, "failed_checks": names}

        if any(c.kind == CheckKind.CARDINALITY for c in blocking):
            raise CardinalityError(message, details=details)
        raise DataQualityError(message, details=details)


def _as_list(columns: Union[str, List[str]]) -> List[str]:
    return [columns] if isinstance(columns, str) else list(columns)


class DataValidator:
    """
    Data validator with a fluent check suite.

    Example:
        validator = DataValidator("order_kpis")
        validator.add_not_null_check("order_id")
        validator.add_unique_check(["order_id"])
        result = validator.validate(df)
    """

    def __init__(self, suite: str = "default", strict_mode: bool = False):
        self.suite = suite
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    @staticmethod
    def _missing(df: pl.DataFrame, columns: List[str]) -> List[str]:
        return [c for c in columns if c not in df.columns]

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=f"not_null_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=f"not_null_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, List[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that a column or column combination identifies rows"""
        key = _as_list(columns)
        name = f"unique_{'_'.join(key)}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = self._missing(df, key)
            if missing:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    kind=CheckKind.CARDINALITY,
                    message=f"Columns {missing} not found",
                )

            total = len(df)
            unique_count = df.select(key).n_unique() if total else 0
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                kind=CheckKind.CARDINALITY,
                message=f"Key {key} has {duplicate_count} duplicate rows" if not passed else f"Key {key} is unique",
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
        """Add check for values within specified range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=f"range_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=f"range_{column}",
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            passed = out_of_range == 0

            return ValidationCheck(
                name=f"range_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for positive values"""
        min_val = 0 if allow_zero else 0.0001
        return self.add_range_check(column, min_value=min_val, severity=severity)

    def add_pattern_check(
        self,
        column: str,
        pattern: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add regex pattern check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=f"pattern_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            non_matching = df.filter(
                ~pl.col(column).str.contains(pattern) & pl.col(column).is_not_null()
            ).height
            passed = non_matching == 0

            return ValidationCheck(
                name=f"pattern_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {non_matching} values not matching pattern" if not passed else "All values match pattern",
                details={"pattern": pattern, "non_matching_count": non_matching},
                failed_rows=non_matching,
                total_rows=df.filter(pl.col(column).is_not_null()).height,
            )

        self._checks.append(check)
        return self

    def add_implication_check(
        self,
        antecedent: pl.Expr,
        consequent: pl.Expr,
        name: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every row satisfying ``antecedent`` also satisfies ``consequent``"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                violations = df.filter(antecedent & ~consequent).height
            except pl.exceptions.ColumnNotFoundError as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Column not found: {e}",
                )
            passed = violations == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{violations} rows violate {name}" if not passed else f"{name} holds",
                failed_rows=violations,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
        kind: CheckKind = CheckKind.QUALITY,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
                return ValidationCheck(
                    name=name,
                    passed=passed,
                    severity=severity,
                    kind=kind,
                    message="Check passed" if passed else message_on_fail,
                    total_rows=len(df),
                )
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    kind=kind,
                    message=f"Check failed with error: {str(e)}",
                )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every value of ``column`` exists in the reference frame"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=f"ref_integrity_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            reference = reference_df.select(pl.col(reference_column).alias(column)).unique()
            orphans = (
                df.filter(pl.col(column).is_not_null())
                .join(reference, on=column, how="anti")
                .height
            )
            passed = orphans == 0

            return ValidationCheck(
                name=f"ref_integrity_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=len(df),
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

        logger.info(f"Running {len(self._checks)} validation checks on {len(df)} rows", suite=self.suite)

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    suite=self.suite,
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

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
            suite=self.suite,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            suite=self.suite,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


# Pre-built validators for the pipeline's tables
def create_line_items_validator(strict_mode: bool = False) -> DataValidator:
    """Create pre-configured validator for assembled line items"""
    return (
        DataValidator("line_items", strict_mode=strict_mode)
        .add_not_null_check("order_id")
        .add_not_null_check("order_item_id")
        .add_not_null_check("order_purchase_timestamp")
        .add_unique_check(["order_id", "order_item_id"])
        .add_positive_check("price")
        .add_positive_check("freight_value")
        .add_pattern_check("period", r"^\d{4}-\d{2}$")
    )


def create_enriched_items_validator(strict_mode: bool = False) -> DataValidator:
    """Create pre-configured validator for discount-flagged line items"""
    return (
        DataValidator("enriched_items", strict_mode=strict_mode)
        .add_unique_check(["order_id", "order_item_id"])
        .add_not_null_check("is_discounted")
        .add_not_null_check("is_low_confidence")
        .add_not_null_check("is_trusted_discount")
        .add_implication_check(
            pl.col("is_trusted_discount"),
            pl.col("is_discounted"),
            name="trusted_implies_discounted",
        )
        .add_implication_check(
            pl.col("is_trusted_discount"),
            ~pl.col("is_low_confidence"),
            name="trusted_implies_confident",
        )
        .add_implication_check(
            pl.col("median_price").is_null(),
            ~pl.col("is_discounted") & ~pl.col("is_low_confidence") & ~pl.col("is_trusted_discount"),
            name="no_baseline_no_flags",
        )
    )


def create_order_kpis_validator(enriched: pl.DataFrame, strict_mode: bool = False) -> DataValidator:
    """Create pre-configured validator for order KPIs built from ``enriched``"""
    orders_in_items = enriched["order_id"].n_unique()
    return (
        DataValidator("order_kpis", strict_mode=strict_mode)
        .add_not_null_check("order_id")
        .add_unique_check("order_id")
        .add_not_null_check("items_revenue")
        .add_not_null_check("freight_total")
        .add_not_null_check("payment_value")
        .add_custom_check(
            name="one_row_per_order",
            check_func=lambda df: df.height == orders_in_items,
            message_on_fail=f"Order KPI row count differs from {orders_in_items} orders with line items",
            kind=CheckKind.CARDINALITY,
        )
        .add_positive_check("freight_total", severity=ValidationSeverity.WARNING)
    )


def create_clean_kpis_validator(
    kpis: pl.DataFrame,
    tolerance: float,
    strict_mode: bool = False,
) -> DataValidator:
    """Create pre-configured validator asserting the clean-subset property"""
    gap = (pl.col("payment_value") - (pl.col("items_revenue") + pl.col("freight_total"))).abs().round(6)
    return (
        DataValidator("order_kpis_clean", strict_mode=strict_mode)
        .add_unique_check("order_id")
        .add_referential_integrity_check("order_id", kpis, "order_id")
        .add_range_check("margin_proxy", min_value=0)
        .add_custom_check(
            name="payments_reconciled",
            check_func=lambda df: df.filter(gap > tolerance).height == 0,
            message_on_fail=f"Clean orders with payment gap above {tolerance}",
        )
    )
