"""Claim Denial Risk Scoring.

Scores an encounter code set for likelihood of payer denial. Each detected
risk factor contributes an additive weight (see ``CodeTables.denial_weights``);
the score is the clamped sum and is bucketed into a risk level.

Note: This is a decision support heuristic, not a payer adjudication engine.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
import re
import threading
from typing import Any

from billing_engine.schemas.base import ComplexityTier, DenialFactor, RiskLevel
from billing_engine.services.billing_alerts import BillingSnapshot
from billing_engine.services.code_tables import CodeTables, get_code_tables

logger = logging.getLogger(__name__)

MAX_RISK_SCORE = 100

# E/M levels at or above this are checked against documented MDM
CODE_MISMATCH_MIN_EM = 99214

RADIOLOGY_MODIFIERS = {"26", "-26", "TC", "-TC"}

FACTOR_MESSAGES: dict[DenialFactor, str] = {
    DenialFactor.MISSING_DIAGNOSIS: "Missing supporting diagnosis for procedure",
    DenialFactor.SYMPTOM_ONLY_CODES: "Only symptom codes (R-codes) - consider specific diagnosis",
    DenialFactor.UNSPECIFIED_CODES: "Unspecified diagnosis codes may require more specificity",
    DenialFactor.HIGH_EM_SYMPTOM: "High-level E/M with symptom-only diagnosis",
    DenialFactor.MODIFIER_MISSING: "Professional/Technical component modifier may be needed",
    DenialFactor.LCD_NCD_CONCERN: "May not meet Local/National Coverage Determination",
    DenialFactor.DUPLICATE_SERVICE: "Duplicate or similar service on same date",
    DenialFactor.CODE_MISMATCH: "E/M level may not match documented MDM complexity",
    DenialFactor.BUNDLING_ISSUE: "Potential bundling/unbundling issue detected",
    DenialFactor.VALIDATION_WARNINGS: "Code validation raised warnings",
}


@dataclass(frozen=True)
class RiskFactor:
    """A detected denial risk factor and its weight."""

    factor: DenialFactor
    weight: int
    message: str
    recommendation: str | None = None


@dataclass
class DenialRiskAssessment:
    """Denial risk score for an encounter."""

    risk_score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    factors: list[RiskFactor] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "factors": [
                {
                    "factor": f.factor.value,
                    "weight": f.weight,
                    "message": f.message,
                    "recommendation": f.recommendation,
                }
                for f in self.factors
            ],
            "recommendations": list(self.recommendations),
        }


def _em_number(em_level: str | None) -> int | None:
    digits = re.sub(r"\D", "", em_level or "")
    return int(digits) if digits else None


def _is_unspecified(icd10_code: str) -> bool:
    """Codes without at least two characters after the dot lack specificity."""
    parts = icd10_code.split(".")
    return len(parts) == 1 or len(parts[1]) < 2


class DenialRiskScorer:
    """Scores encounter code sets for denial risk."""

    def __init__(self, tables: CodeTables | None = None) -> None:
        self._tables = tables or get_code_tables()

    def _add(
        self,
        assessment: DenialRiskAssessment,
        factor: DenialFactor,
        recommendation: str,
        summary: str,
        weight: int | None = None,
    ) -> None:
        assessment.factors.append(
            RiskFactor(
                factor=factor,
                weight=self._tables.denial_weights[factor] if weight is None else weight,
                message=FACTOR_MESSAGES[factor],
                recommendation=recommendation,
            )
        )
        if summary not in assessment.recommendations:
            assessment.recommendations.append(summary)

    def score(
        self,
        snapshot: BillingSnapshot,
        validation_warnings: Iterable[str] = (),
    ) -> DenialRiskAssessment:
        """Score a snapshot, optionally folding in code validation warnings."""
        tables = self._tables
        icd10 = [c.strip().upper() for c in snapshot.icd10_code_strings]
        cpt = [c.strip() for c in snapshot.cpt_code_strings]
        modifiers = {m.strip().upper() for m in snapshot.modifiers}
        assessment = DenialRiskAssessment()

        if cpt and not icd10:
            self._add(
                assessment,
                DenialFactor.MISSING_DIAGNOSIS,
                "Add supporting diagnosis codes",
                "Add at least one diagnosis code to support the procedure",
            )

        symptom_only = bool(icd10) and all(c.startswith("R") for c in icd10)
        if symptom_only:
            self._add(
                assessment,
                DenialFactor.SYMPTOM_ONLY_CODES,
                "Consider adding definitive diagnosis if available",
                "Symptom codes alone may not support medical necessity - add specific diagnosis if known",
            )

        unspecified = [c for c in icd10 if _is_unspecified(c)]
        if unspecified:
            self._add(
                assessment,
                DenialFactor.UNSPECIFIED_CODES,
                f"Review codes: {', '.join(unspecified)}",
                "Use more specific ICD-10 codes when possible",
            )

        if symptom_only and any(c in tables.high_level_em_codes for c in cpt):
            self._add(
                assessment,
                DenialFactor.HIGH_EM_SYMPTOM,
                "Document specific diagnosis or explain medical decision making",
                "High-level E/M codes typically need definitive diagnoses for approval",
            )

        radiology = [c for c in cpt if c.isdigit() and tables.radiology_range.contains(int(c))]
        if radiology and not modifiers & RADIOLOGY_MODIFIERS:
            self._add(
                assessment,
                DenialFactor.MODIFIER_MISSING,
                "Add -26 modifier for professional component",
                "Consider adding -26 modifier for radiology professional component",
            )

        if any(c in tables.high_cost_imaging_codes for c in cpt):
            strong_indication = any(c.startswith(tables.strong_indication_prefixes) for c in icd10)
            if not strong_indication:
                self._add(
                    assessment,
                    DenialFactor.LCD_NCD_CONCERN,
                    "Ensure clinical indication meets coverage criteria",
                    "High-cost imaging requires strong clinical justification - document indication clearly",
                )

        duplicates = list(dict.fromkeys(c for i, c in enumerate(cpt) if c in cpt[:i]))
        if duplicates:
            self._add(
                assessment,
                DenialFactor.DUPLICATE_SERVICE,
                f"Review duplicates: {', '.join(duplicates)}",
                "Remove duplicate procedure codes or add appropriate modifiers",
            )

        em_number = _em_number(snapshot.em_level)
        if (
            em_number is not None
            and snapshot.mdm_complexity
            and em_number >= CODE_MISMATCH_MIN_EM
            and snapshot.mdm_tier.rank < ComplexityTier.MODERATE.rank
        ):
            self._add(
                assessment,
                DenialFactor.CODE_MISMATCH,
                "Verify documentation supports E/M level",
                "Ensure MDM complexity documentation supports the selected E/M level",
            )

        bundled = [pair for pair in tables.bundling_pairs if all(c in cpt for c in pair.codes)]
        if bundled:
            self._add(
                assessment,
                DenialFactor.BUNDLING_ISSUE,
                "; ".join(pair.warning for pair in bundled),
                "Review bundled codes and apply modifier -25 or remove the bundled code",
            )

        warnings = list(validation_warnings)
        if warnings:
            per_warning = tables.denial_weights[DenialFactor.VALIDATION_WARNINGS]
            self._add(
                assessment,
                DenialFactor.VALIDATION_WARNINGS,
                f"Resolve {len(warnings)} validation warning(s)",
                "Resolve code validation warnings before submission",
                weight=min(per_warning * len(warnings), tables.validation_warning_cap),
            )

        total = sum(f.weight for f in assessment.factors)
        assessment.risk_score = max(0, min(MAX_RISK_SCORE, total))
        assessment.risk_level = tables.risk_level_for(assessment.risk_score)

        logger.debug(
            f"Denial risk {assessment.risk_level.value} ({assessment.risk_score}) "
            f"from {[f.factor.value for f in assessment.factors]}"
        )
        return assessment

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        return {
            "factors": {f.value: w for f, w in self._tables.denial_weights.items()},
            "high_cost_imaging_codes": len(self._tables.high_cost_imaging_codes),
        }


# Singleton pattern
_scorer: DenialRiskScorer | None = None
_scorer_lock = threading.Lock()


def get_denial_risk_scorer() -> DenialRiskScorer:
    """Get the singleton denial risk scorer instance."""
    global _scorer
    if _scorer is None:
        with _scorer_lock:
            if _scorer is None:
                _scorer = DenialRiskScorer()
    return _scorer


def reset_denial_risk_scorer() -> None:
    """Reset the singleton instance (for testing)."""
    global _scorer
    with _scorer_lock:
        _scorer = None
