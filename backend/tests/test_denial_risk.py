"""Tests for claim denial risk scoring."""

import pytest

from billing_engine.schemas.base import DenialFactor, RiskLevel
from billing_engine.services.billing_alerts import BillingSnapshot, CodeEntry
from billing_engine.services.denial_risk import (
    DenialRiskScorer,
    get_denial_risk_scorer,
    reset_denial_risk_scorer,
)


def snapshot(
    cpt: list[str],
    icd10: list[str],
    em_level: str | None = None,
    mdm: str = "",
    modifiers: list[str] | None = None,
) -> BillingSnapshot:
    return BillingSnapshot(
        em_level=em_level,
        mdm_complexity=mdm,
        cpt_codes=[CodeEntry(code=c) for c in cpt],
        icd10_codes=[CodeEntry(code=c) for c in icd10],
        modifiers=modifiers or [],
    )


def factors(assessment) -> list[DenialFactor]:
    return [f.factor for f in assessment.factors]


class TestScore:
    """Test factor detection and scoring."""

    @pytest.fixture(autouse=True)
    def setup(self):
        self.scorer = DenialRiskScorer()

    def test_clean_claim(self):
        result = self.scorer.score(snapshot(["99213"], ["E11.65"], em_level="99213", mdm="Low"))
        assert result.factors == []
        assert result.risk_score == 0
        assert result.risk_level == RiskLevel.LOW
        assert result.recommendations == []

    def test_missing_diagnosis(self):
        result = self.scorer.score(snapshot(["99213"], []))
        assert factors(result) == [DenialFactor.MISSING_DIAGNOSIS]
        assert result.risk_score == 25
        assert result.risk_level == RiskLevel.MEDIUM

    def test_symptom_only_with_high_em(self):
        result = self.scorer.score(snapshot(["99215"], ["R06.02"]))
        assert factors(result) == [DenialFactor.SYMPTOM_ONLY_CODES, DenialFactor.HIGH_EM_SYMPTOM]
        assert result.risk_score == 30

    def test_unspecified_codes(self):
        result = self.scorer.score(snapshot(["99213"], ["E11.9", "J44"]))
        unspecified = result.factors[0]
        assert unspecified.factor == DenialFactor.UNSPECIFIED_CODES
        assert unspecified.recommendation == "Review codes: E11.9, J44"

    def test_radiology_without_modifier(self):
        result = self.scorer.score(snapshot(["71046"], ["J18.10"]))
        assert DenialFactor.MODIFIER_MISSING in factors(result)

    @pytest.mark.parametrize("modifier", ["26", "-26", "TC", "-tc"])
    def test_radiology_with_component_modifier(self, modifier):
        result = self.scorer.score(snapshot(["71046"], ["J18.10"], modifiers=[modifier]))
        assert DenialFactor.MODIFIER_MISSING not in factors(result)

    def test_high_cost_imaging_without_strong_indication(self):
        result = self.scorer.score(snapshot(["70551"], ["R51.9"], modifiers=["26"]))
        assert DenialFactor.LCD_NCD_CONCERN in factors(result)

    def test_high_cost_imaging_with_strong_indication(self):
        result = self.scorer.score(snapshot(["70551"], ["G43.909"], modifiers=["26"]))
        assert DenialFactor.LCD_NCD_CONCERN not in factors(result)

    def test_duplicate_service(self):
        result = self.scorer.score(snapshot(["99213", "99213"], ["E11.65"]))
        assert factors(result) == [DenialFactor.DUPLICATE_SERVICE]
        assert result.factors[0].recommendation == "Review duplicates: 99213"

    def test_code_mismatch(self):
        result = self.scorer.score(snapshot(["99214"], ["E11.65"], em_level="99214", mdm="Low"))
        assert factors(result) == [DenialFactor.CODE_MISMATCH]

    def test_code_mismatch_needs_documented_mdm(self):
        result = self.scorer.score(snapshot(["99214"], ["E11.65"], em_level="99214", mdm=""))
        assert DenialFactor.CODE_MISMATCH not in factors(result)

    def test_bundling_issue(self):
        result = self.scorer.score(snapshot(["99213", "99214"], ["E11.65"]))
        assert DenialFactor.BUNDLING_ISSUE in factors(result)

    def test_validation_warnings_capped(self):
        warnings = [f"warning {i}" for i in range(10)]
        result = self.scorer.score(snapshot(["99213"], ["E11.65"]), warnings)
        factor = result.factors[-1]
        assert factor.factor == DenialFactor.VALIDATION_WARNINGS
        assert factor.weight == 20

    def test_validation_warnings_per_warning(self):
        result = self.scorer.score(snapshot(["99213"], ["E11.65"]), ["a", "b"])
        assert result.risk_score == 10

    def test_score_is_clamped(self):
        result = self.scorer.score(
            snapshot(
                ["99215", "99215", "70551", "99214"],
                ["R51"],
                em_level="99215",
                mdm="Low",
            ),
            ["a", "b", "c", "d", "e"],
        )
        assert sum(f.weight for f in result.factors) > 100
        assert result.risk_score == 100
        assert result.risk_level == RiskLevel.CRITICAL

    def test_recommendations_are_distinct(self):
        result = self.scorer.score(snapshot(["99215", "99215"], ["R06.02"]))
        assert len(result.recommendations) == len(set(result.recommendations))
        assert len(result.recommendations) == len(result.factors)

    def test_to_dict(self):
        data = self.scorer.score(snapshot(["99213"], [])).to_dict()
        assert data["risk_level"] == "medium"
        assert data["factors"][0]["factor"] == "MISSING_DIAGNOSIS"


class TestServiceInit:
    """Test service initialization."""

    def test_singleton_reset(self):
        first = get_denial_risk_scorer()
        assert get_denial_risk_scorer() is first
        reset_denial_risk_scorer()
        assert get_denial_risk_scorer() is not first

    def test_stats(self):
        stats = DenialRiskScorer().get_stats()
        assert stats["factors"]["BUNDLING_ISSUE"] == 30
