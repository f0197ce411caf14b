"""Tests for ICD-10/CPT code validation."""

import pytest

from billing_engine.schemas.base import CodeType
from billing_engine.services.code_validator import (
    BillingCodeValidator,
    get_code_validator,
    reset_code_validator,
)


@pytest.fixture
def validator() -> BillingCodeValidator:
    return BillingCodeValidator()


class TestValidateIcd10:
    """Tests for single ICD-10 codes."""

    def test_specific_code(self, validator):
        result = validator.validate_icd10("E11.65")
        assert result.valid
        assert result.format_valid
        assert result.code_type == CodeType.ICD10
        assert result.category == "Endocrine, nutritional and metabolic diseases"
        assert result.warnings == []

    def test_low_specificity_warns(self, validator):
        result = validator.validate_icd10("E11.9")
        assert result.valid
        assert "Consider using more specific ICD-10 code for better documentation" in result.warnings

    def test_category_only_code(self, validator):
        result = validator.validate_icd10("J44")
        assert result.format_valid
        assert len(result.warnings) == 1

    def test_symptom_code_warns(self, validator):
        result = validator.validate_icd10("R06.02")
        assert result.warnings == [
            "Symptom codes (R-codes) may require more specific diagnosis if available"
        ]

    def test_z_code_warns(self, validator):
        result = validator.validate_icd10("Z00.00")
        assert result.warnings == ["Z-codes may need supporting diagnosis for medical necessity"]

    def test_uncommon_prefix(self, validator):
        result = validator.validate_icd10("A41.51")
        assert result.valid
        assert result.category is None
        assert result.warnings == ["Uncommon ICD-10 prefix: A"]

    def test_lowercase_is_upper_cased(self, validator):
        result = validator.validate_icd10(" e11.65 ")
        assert result.valid
        assert result.code == "E11.65"

    @pytest.mark.parametrize("code", ["11.9E", "E1", "U07.1", "E11.12345", ""])
    def test_invalid_format(self, validator, code):
        result = validator.validate_icd10(code)
        assert not result.valid
        assert not result.format_valid
        assert result.errors[0].startswith("Invalid ICD-10 format")


class TestValidateCpt:
    """Tests for single CPT codes."""

    def test_em_code(self, validator):
        result = validator.validate_cpt("99213")
        assert result.valid
        assert result.code_type == CodeType.CPT
        assert result.category == "Evaluation and Management"
        assert result.warnings == ["99213 requires MDM documentation to support level"]

    def test_radiology_suggests_modifier(self, validator):
        result = validator.validate_cpt("71046")
        assert result.category == "Radiology"
        assert result.warnings == []
        assert len(result.suggestions) == 1

    def test_unlisted_procedure(self, validator):
        result = validator.validate_cpt("99199")
        assert result.category == "Medicine"
        assert "Unlisted procedure code - requires detailed documentation" in result.warnings

    @pytest.mark.parametrize("code", ["9921", "992133", "9921A", ""])
    def test_invalid_format(self, validator, code):
        result = validator.validate_cpt(code)
        assert not result.valid
        assert result.errors == [f"Invalid CPT format: {code}. Expected 5-digit code"]


class TestCodeSetChecks:
    """Tests for bundling, duplicate and consistency checks."""

    def test_bundling_pair(self, validator):
        warnings = validator.check_bundling(["99213", "99214"])
        assert warnings == [
            "Bundling issue: 99213, 99214. Cannot bill multiple E/M levels for same encounter"
        ]

    def test_duplicates(self, validator):
        warnings = validator.check_bundling(["36415", "36415", "36415"])
        assert warnings == ["Duplicate CPT codes detected: 36415"]

    def test_radiology_without_diagnosis(self, validator):
        warnings = validator.check_consistency([], ["71046"])
        assert warnings == ["Radiology procedures require supporting diagnosis codes"]

    def test_high_em_with_symptoms_only(self, validator):
        warnings = validator.check_consistency(["R06.02", "r05.9"], ["99214"])
        assert len(warnings) == 1
        assert warnings[0].startswith("High-level E/M with only symptom codes")

    def test_high_em_with_definitive_diagnosis(self, validator):
        assert validator.check_consistency(["R06.02", "J44.1"], ["99214"]) == []


class TestValidate:
    """Tests for full code set validation."""

    def test_clean_code_set(self, validator):
        report = validator.validate(["E11.65", "I50.22"], ["36415"])
        assert report.valid
        assert not report.has_errors
        assert report.all_warnings == []
        assert report.summary == {
            "total_codes": 3,
            "valid_codes": 3,
            "errors": False,
            "warnings": False,
        }

    def test_invalid_code_fails_report(self, validator):
        report = validator.validate(["E11.65", "bogus"], ["99213"])
        assert not report.valid
        assert report.has_errors
        assert report.summary["valid_codes"] == 2

    def test_warnings_flatten_in_order(self, validator):
        report = validator.validate(["R06.02"], ["99214", "99213"], modifiers=["XYZ"])
        warnings = report.all_warnings
        assert warnings[0] == "Symptom codes (R-codes) may require more specific diagnosis if available"
        assert warnings[-1] == "Invalid modifier format: XYZ"
        assert any(w.startswith("Bundling issue") for w in warnings)
        assert any(w.startswith("High-level E/M") for w in warnings)

    @pytest.mark.parametrize("modifier", ["25", "-25", "TC", "59", "F1"])
    def test_valid_modifiers(self, validator, modifier):
        report = validator.validate(["E11.65"], ["99213"], modifiers=[modifier])
        assert report.modifier_warnings == []

    def test_empty_code_set(self, validator):
        report = validator.validate([], [])
        assert report.valid
        assert report.summary["total_codes"] == 0


class TestServiceInit:
    """Test service initialization."""

    def test_singleton_reset(self):
        first = get_code_validator()
        assert get_code_validator() is first
        reset_code_validator()
        assert get_code_validator() is not first
