"""Billing Code Validation.

Format and consistency checks for ICD-10 and CPT code sets:

- ICD-10 / CPT / modifier format
- Code category (ICD-10 chapter, CPT section)
- Specificity, symptom-code and Z-code warnings
- Bundling conflicts and duplicate services
- Diagnosis/procedure consistency

Validation never raises on bad input; malformed codes come back with
``valid=False`` and an error message.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
import re
import threading
from typing import Any

from billing_engine.schemas.base import CodeType
from billing_engine.services.code_tables import CodeTables, get_code_tables

logger = logging.getLogger(__name__)

ICD10_PATTERN = re.compile(r"^[A-TV-Z]\d{2}(\.\d{1,4})?$", re.IGNORECASE)
CPT_PATTERN = re.compile(r"^\d{5}$")
MODIFIER_PATTERN = re.compile(r"^(-?\d{2}|[A-Z]{2}|\d[A-Z]|[A-Z]\d)$")


@dataclass
class CodeValidationResult:
    """Validation outcome for a single code."""

    code: str
    code_type: CodeType
    valid: bool = True
    format_valid: bool = False
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    category: str | None = None


@dataclass
class CodeValidationReport:
    """Validation outcome for a full encounter code set."""

    icd10: list[CodeValidationResult] = field(default_factory=list)
    cpt: list[CodeValidationResult] = field(default_factory=list)
    bundling_warnings: list[str] = field(default_factory=list)
    consistency_warnings: list[str] = field(default_factory=list)
    modifier_warnings: list[str] = field(default_factory=list)

    @property
    def results(self) -> list[CodeValidationResult]:
        return self.icd10 + self.cpt

    @property
    def valid(self) -> bool:
        """True when every code passed validation."""
        return all(r.valid for r in self.results)

    @property
    def has_errors(self) -> bool:
        return any(r.errors for r in self.results)

    @property
    def all_warnings(self) -> list[str]:
        """Flat list of every warning, per-code first then code-set level."""
        warnings = [w for r in self.results for w in r.warnings]
        return warnings + self.bundling_warnings + self.consistency_warnings + self.modifier_warnings

    @property
    def summary(self) -> dict[str, Any]:
        return {
            "total_codes": len(self.results),
            "valid_codes": sum(1 for r in self.results if r.valid),
            "errors": self.has_errors,
            "warnings": bool(self.all_warnings),
        }


class BillingCodeValidator:
    """Validates ICD-10 and CPT code sets."""

    def __init__(self, tables: CodeTables | None = None) -> None:
        self._tables = tables or get_code_tables()

    def validate_icd10(self, code: str) -> CodeValidationResult:
        code = code.strip()
        result = CodeValidationResult(code=code.upper(), code_type=CodeType.ICD10)

        result.format_valid = bool(ICD10_PATTERN.match(code))
        if not result.format_valid:
            result.valid = False
            result.errors.append(f"Invalid ICD-10 format: {code}. Expected format: A00.0 or A00.00")
            return result

        upper = code.upper()
        prefix = upper[0]
        result.category = self._tables.icd10_chapters.get(prefix)
        if result.category is None:
            result.warnings.append(f"Uncommon ICD-10 prefix: {prefix}")

        parts = upper.split(".")
        if len(parts) == 1 or len(parts[1]) < 2:
            result.warnings.append("Consider using more specific ICD-10 code for better documentation")

        if upper.startswith("R"):
            result.warnings.append("Symptom codes (R-codes) may require more specific diagnosis if available")
        if upper.startswith("Z"):
            result.warnings.append("Z-codes may need supporting diagnosis for medical necessity")

        return result

    def validate_cpt(self, code: str) -> CodeValidationResult:
        code = code.strip()
        result = CodeValidationResult(code=code, code_type=CodeType.CPT)

        result.format_valid = bool(CPT_PATTERN.match(code))
        if not result.format_valid:
            result.valid = False
            result.errors.append(f"Invalid CPT format: {code}. Expected 5-digit code")
            return result

        number = int(code)
        for cpt_range in self._tables.cpt_ranges:
            if cpt_range.contains(number):
                result.category = cpt_range.description
                break

        if code.endswith("99"):
            result.warnings.append("Unlisted procedure code - requires detailed documentation")

        if code in self._tables.mdm_documentation_em_codes:
            result.warnings.append(f"{code} requires MDM documentation to support level")

        if self._tables.radiology_range.contains(number):
            result.suggestions.append("Consider adding modifier -26 for professional component if applicable")

        return result

    def check_bundling(self, cpt_codes: list[str]) -> list[str]:
        warnings = []
        for pair in self._tables.bundling_pairs:
            if all(c in cpt_codes for c in pair.codes):
                warnings.append(f"Bundling issue: {', '.join(pair.codes)}. {pair.warning}")

        duplicates = list(dict.fromkeys(c for i, c in enumerate(cpt_codes) if c in cpt_codes[:i]))
        if duplicates:
            warnings.append(f"Duplicate CPT codes detected: {', '.join(duplicates)}")
        return warnings

    def check_consistency(self, icd10_codes: list[str], cpt_codes: list[str]) -> list[str]:
        warnings = []
        radiology = self._tables.radiology_range
        has_radiology = any(c.isdigit() and radiology.contains(int(c)) for c in cpt_codes)
        if has_radiology and not icd10_codes:
            warnings.append("Radiology procedures require supporting diagnosis codes")

        has_high_em = any(c in self._tables.symptom_sensitive_em_codes for c in cpt_codes)
        symptom_only = bool(icd10_codes) and all(c.upper().startswith("R") for c in icd10_codes)
        if has_high_em and symptom_only:
            warnings.append(
                "High-level E/M with only symptom codes may be questioned - consider specific diagnoses"
            )
        return warnings

    def validate(
        self,
        icd10_codes: Iterable[str],
        cpt_codes: Iterable[str],
        modifiers: Iterable[str] = (),
    ) -> CodeValidationReport:
        """Validate a full encounter code set."""
        icd10_list = [c.strip() for c in icd10_codes]
        cpt_list = [c.strip() for c in cpt_codes]

        report = CodeValidationReport(
            icd10=[self.validate_icd10(c) for c in icd10_list],
            cpt=[self.validate_cpt(c) for c in cpt_list],
            bundling_warnings=self.check_bundling(cpt_list),
            consistency_warnings=self.check_consistency(icd10_list, cpt_list),
        )
        for modifier in modifiers:
            if not MODIFIER_PATTERN.match(modifier.replace("-", "", 1)):
                report.modifier_warnings.append(f"Invalid modifier format: {modifier}")

        logger.debug(
            f"Validated {len(icd10_list)} ICD-10 and {len(cpt_list)} CPT codes, "
            f"valid={report.valid}, warnings={len(report.all_warnings)}"
        )
        return report

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        return {
            "icd10_chapters": len(self._tables.icd10_chapters),
            "cpt_ranges": len(self._tables.cpt_ranges),
            "bundling_pairs": len(self._tables.bundling_pairs),
        }


# Singleton pattern
_validator: BillingCodeValidator | None = None
_validator_lock = threading.Lock()


def get_code_validator() -> BillingCodeValidator:
    """Get the singleton code validator instance."""
    global _validator
    if _validator is None:
        with _validator_lock:
            if _validator is None:
                _validator = BillingCodeValidator()
    return _validator


def reset_code_validator() -> None:
    """Reset the singleton instance (for testing)."""
    global _validator
    with _validator_lock:
        _validator = None
