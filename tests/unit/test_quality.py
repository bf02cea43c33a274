"""
Unit Tests - Data Quality
"""
import pytest
import polars as pl

from pricing_promo.exceptions import CardinalityError, DataQualityError
from pricing_promo.quality.validators import (
    CheckKind,
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_clean_kpis_validator,
    create_enriched_items_validator,
    create_line_items_validator,
    create_order_kpis_validator,
)
from pricing_promo.transformation.classifier import classify_line_items


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 1]})

        validator = DataValidator()
        validator.add_unique_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].kind == CheckKind.CARDINALITY
        assert result.checks[0].failed_rows == 1

    def test_composite_unique_check(self):
        """Test a column combination can be unique while its parts repeat"""
        df = pl.DataFrame({"order_id": ["o1", "o1", "o2"], "order_item_id": [1, 2, 1]})

        validator = DataValidator()
        validator.add_unique_check(["order_id", "order_item_id"])

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.checks[0].name == "unique_order_id_order_item_id"

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        validator = DataValidator()
        validator.add_range_check("price", min_value=0, max_value=100)

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        assert result.checks[0].failed_rows == 2

    def test_pattern_check(self):
        """Test regex pattern check ignores nulls"""
        df = pl.DataFrame({"period": ["2017-01", None, "2017/02"]})

        validator = DataValidator()
        validator.add_pattern_check("period", r"^\d{4}-\d{2}$")

        result = validator.validate(df)

        assert result.checks[0].failed_rows == 1
        assert result.checks[0].total_rows == 2

    def test_implication_check(self):
        """Test rows satisfying the antecedent must satisfy the consequent"""
        df = pl.DataFrame({"a": [True, True, False], "b": [True, False, False]})

        validator = DataValidator()
        validator.add_implication_check(pl.col("a"), pl.col("b"), name="a_implies_b")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_referential_integrity_check(self):
        """Test orphan values are counted"""
        reference = pl.DataFrame({"key": ["a", "b"]})
        df = pl.DataFrame({"key": ["a", "b", "c", None]})

        validator = DataValidator()
        validator.add_referential_integrity_check("key", reference, "key")

        result = validator.validate(df)

        assert result.checks[0].failed_rows == 1

    def test_warning_severity(self):
        """Test warnings give PARTIAL unless strict mode is on"""
        df = pl.DataFrame({"value": [-1.0, 2.0]})

        lenient = DataValidator().add_positive_check("value", severity=ValidationSeverity.WARNING)
        strict = DataValidator(strict_mode=True).add_positive_check("value", severity=ValidationSeverity.WARNING)

        assert lenient.validate(df).status == ValidationStatus.PARTIAL
        assert strict.validate(df).status == ValidationStatus.FAILED

    def test_missing_column_fails(self):
        """Test a check on an absent column fails instead of raising"""
        validator = DataValidator()
        validator.add_not_null_check("missing")

        result = validator.validate(pl.DataFrame({"id": [1]}))

        assert result.status == ValidationStatus.FAILED

    def test_custom_check_error_is_failure(self):
        """Test an exception inside a custom check is reported as a failure"""
        validator = DataValidator()
        validator.add_custom_check("boom", lambda df: df["missing"].sum() > 0, "boom failed")

        result = validator.validate(pl.DataFrame({"id": [1]}))

        assert result.status == ValidationStatus.FAILED
        assert "error" in result.checks[0].message


class TestRaiseForStatus:
    """Tests for ValidationResult.raise_for_status"""

    def test_passed_does_not_raise(self):
        """Test a passing suite is silent"""
        result = DataValidator().add_unique_check("id").validate(pl.DataFrame({"id": [1, 2]}))

        result.raise_for_status()

    def test_duplicate_key_raises_cardinality_error(self):
        """Test a failed uniqueness check maps to CardinalityError"""
        validator = DataValidator("kpis").add_not_null_check("id").add_unique_check("id")

        result = validator.validate(pl.DataFrame({"id": [1, 1, None]}))

        with pytest.raises(CardinalityError) as exc_info:
            result.raise_for_status()
        assert exc_info.value.details["suite"] == "kpis"
        assert set(exc_info.value.details["failed_checks"]) == {"not_null_id", "unique_id"}

    def test_quality_failure_raises_data_quality_error(self):
        """Test other failed checks map to DataQualityError"""
        result = DataValidator().add_not_null_check("id").validate(pl.DataFrame({"id": [None, 1]}))

        with pytest.raises(DataQualityError):
            result.raise_for_status()

    def test_partial_does_not_raise(self):
        """Test warnings alone never raise"""
        validator = DataValidator().add_positive_check("v", severity=ValidationSeverity.WARNING)

        validator.validate(pl.DataFrame({"v": [-1.0]})).raise_for_status()


class TestPipelineValidators:
    """Tests for the pre-built table suites"""

    def test_line_items_suite(self, make_line_items):
        """Test assembled line items pass and duplicated keys fail"""
        items = make_line_items(["o1", "o1", "o2"], [10.0, 20.0, 30.0], item_ids=[1, 2, 1])
        duplicated = make_line_items(["o1", "o1"], [10.0, 20.0], item_ids=[1, 1])

        assert create_line_items_validator().validate(items).status == ValidationStatus.PASSED
        assert create_line_items_validator().validate(duplicated).status == ValidationStatus.FAILED

    def test_enriched_items_suite(self, make_line_items, make_baselines, params):
        """Test classifier output satisfies the flag implications"""
        items = make_line_items(["o1", "o2", "o3"], [50.0, 99.0, 10.0], product_ids=["p1", "p1", "p2"])
        baselines = make_baselines([("p1", "2017-03", 100.0, 5), ("p2", "2017-03", 100.0, 1)])

        result = create_enriched_items_validator().validate(classify_line_items(items, baselines, params))

        assert result.status == ValidationStatus.PASSED

    def test_enriched_items_suite_catches_bad_flags(self, make_line_items, make_baselines, params):
        """Test a trusted flag without a discount breaks the suite"""
        items = make_line_items(["o1"], [99.0])
        enriched = classify_line_items(items, make_baselines([("prod-1", "2017-03", 100.0, 5)]), params)
        broken = enriched.with_columns(pl.lit(True).alias("is_trusted_discount"))

        result = create_enriched_items_validator().validate(broken)

        names = [c.name for c in result.failures]
        assert "trusted_implies_discounted" in names

    def test_order_kpis_suite_row_count(self, make_line_items, make_baselines, make_kpis, params):
        """Test a missing order row is a cardinality failure"""
        items = make_line_items(["o1", "o2"], [10.0, 20.0])
        enriched = classify_line_items(items, make_baselines([]), params)

        result = create_order_kpis_validator(enriched).validate(make_kpis([{"order_id": "o1"}]))

        with pytest.raises(CardinalityError):
            result.raise_for_status()

    def test_clean_kpis_suite(self, make_kpis):
        """Test the clean set must reconcile and belong to the full set"""
        kpis = make_kpis([{"order_id": "a"}, {"order_id": "b", "payment_value": 0.0}])

        good = create_clean_kpis_validator(kpis, 0.01).validate(kpis.filter(pl.col("order_id") == "a"))
        bad = create_clean_kpis_validator(kpis, 0.01).validate(kpis)

        assert good.status == ValidationStatus.PASSED
        assert [c.name for c in bad.failures] == ["payments_reconciled"]
