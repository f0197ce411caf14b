"""Tests for billing compliance alerts."""

import pytest

from billing_engine.schemas.base import AlertSeverity, AlertType, ComplexityTier
from billing_engine.services.billing_alerts import (
    BillingAlertAnalyzer,
    BillingSnapshot,
    CodeEntry,
    get_billing_alert_analyzer,
    reset_billing_alert_analyzer,
    sort_alerts,
)


def snapshot(
    em_level: str | None = "99213",
    mdm: str = "Low",
    cpt: list[str] | None = None,
    icd10: list[str] | None = None,
    rvu: float = 1.3,
    modifiers: list[str] | None = None,
) -> BillingSnapshot:
    return BillingSnapshot(
        em_level=em_level,
        mdm_complexity=mdm,
        cpt_codes=[CodeEntry(code=c) for c in (cpt if cpt is not None else ["99213"])],
        icd10_codes=[CodeEntry(code=c) for c in (icd10 if icd10 is not None else ["E11.65", "I10"])],
        rvu=rvu,
        modifiers=modifiers or [],
    )


def alert_ids(alerts) -> list[str]:
    return [a.id for a in alerts]


# ============================================================================
# Data Type Tests
# ============================================================================


class TestSnapshot:
    """Test snapshot construction."""

    def test_negative_rvu_rejected(self):
        with pytest.raises(ValueError, match="rvu"):
            snapshot(rvu=-1)

    def test_lists_stored_as_tuples(self):
        snap = snapshot(modifiers=["25"])
        assert isinstance(snap.cpt_codes, tuple)
        assert snap.modifiers == ("25",)

    def test_mdm_tier_from_label(self):
        assert snapshot(mdm="Straightforward").mdm_tier == ComplexityTier.LOW
        assert snapshot(mdm="Moderate").mdm_tier == ComplexityTier.MODERATE
        assert snapshot(mdm="").mdm_tier == ComplexityTier.MINIMAL

    def test_code_entry_confidence_range(self):
        with pytest.raises(ValueError):
            CodeEntry(code="99213", confidence=101)


# ============================================================================
# Rule Tests
# ============================================================================


class TestAnalyze:
    """Test each alert rule."""

    @pytest.fixture(autouse=True)
    def setup(self):
        self.analyzer = BillingAlertAnalyzer()

    def test_clean_bill(self):
        assert self.analyzer.analyze(snapshot()) == []

    def test_upcode_risk(self):
        alerts = self.analyzer.analyze(
            snapshot(em_level="99215", mdm="Low", cpt=["99215"], rvu=2.8, icd10=["E11.65", "I10"])
        )
        upcode = next(a for a in alerts if a.id == "upcode-mdm-mismatch")
        assert upcode.type == AlertType.UPCODE
        assert upcode.severity == AlertSeverity.HIGH
        assert upcode.message == "E/M level 99215 requires high MDM, but documentation shows low."
        assert upcode.affected_codes == ["99215"]

    def test_supported_level_has_no_upcode(self):
        alerts = self.analyzer.analyze(snapshot(em_level="99214", mdm="Moderate", cpt=["99214"], rvu=1.92))
        assert "upcode-mdm-mismatch" not in alert_ids(alerts)

    def test_unknown_em_level_skips_em_rules(self):
        alerts = self.analyzer.analyze(snapshot(em_level="12345", mdm="", rvu=2.2))
        assert "upcode-mdm-mismatch" not in alert_ids(alerts)
        assert "consider-lower-code" not in alert_ids(alerts)

    def test_high_audit_codes(self):
        alerts = self.analyzer.analyze(snapshot(em_level="99215", mdm="High", cpt=["99215"], rvu=2.0))
        audit = next(a for a in alerts if a.id == "high-audit-codes")
        assert audit.severity == AlertSeverity.MEDIUM
        assert audit.affected_codes == ["99215"]

    def test_bundling_conflict(self):
        alerts = self.analyzer.analyze(snapshot(cpt=["71046", "71045"], rvu=0.5))
        bundling = next(a for a in alerts if a.id == "bundling-71046-71045")
        assert bundling.severity == AlertSeverity.HIGH
        assert bundling.message == "Single view chest X-ray bundles into 2-view"

    def test_modifier_review_needs_other_services(self):
        alone = self.analyzer.analyze(snapshot(em_level=None, cpt=["99291"], rvu=1.0))
        assert "modifier-review" not in alert_ids(alone)

        combined = self.analyzer.analyze(snapshot(em_level=None, cpt=["99291", "36556"], rvu=1.0))
        review = next(a for a in combined if a.id == "modifier-review")
        assert review.severity == AlertSeverity.LOW
        assert review.affected_codes == ["99291"]

    def test_conservative_coding(self):
        alerts = self.analyzer.analyze(snapshot(em_level="99214", mdm="Low", cpt=["99214"], rvu=2.1))
        assert "consider-lower-code" in alert_ids(alerts)

    def test_no_conservative_suggestion_at_floor(self):
        alerts = self.analyzer.analyze(snapshot(em_level="99213", mdm="Low", rvu=2.4))
        assert "consider-lower-code" not in alert_ids(alerts)

    def test_missing_diagnosis(self):
        alerts = self.analyzer.analyze(snapshot(icd10=[]))
        missing = next(a for a in alerts if a.id == "missing-diagnosis")
        assert missing.severity == AlertSeverity.CRITICAL
        assert missing.affected_codes == []

    def test_thin_diagnosis_support(self):
        alerts = self.analyzer.analyze(
            snapshot(em_level="99215", mdm="High", cpt=["99215"], icd10=["E11.65"], rvu=2.8)
        )
        assert "low-diagnosis-count" in alert_ids(alerts)

    def test_evaluation_is_repeatable(self):
        snap = snapshot(em_level="99215", mdm="Low", cpt=["99215", "71046", "71045"], icd10=[], rvu=3.0)
        assert self.analyzer.analyze(snap) == self.analyzer.analyze(snap)


class TestSortAlerts:
    """Test display ordering."""

    def test_most_severe_first(self):
        alerts = BillingAlertAnalyzer().analyze(
            snapshot(em_level="99215", mdm="Low", cpt=["99215", "71046", "71045"], icd10=[], rvu=3.0)
        )
        ordered = sort_alerts(alerts)
        ranks = [a.severity.rank for a in ordered]
        assert ranks == sorted(ranks)
        assert ordered[0].id == "missing-diagnosis"

    def test_equal_severity_keeps_rule_order(self):
        alerts = BillingAlertAnalyzer().analyze(
            snapshot(em_level="99215", mdm="Low", cpt=["99215", "71046", "71045"], rvu=3.0)
        )
        high = [a.id for a in sort_alerts(alerts) if a.severity == AlertSeverity.HIGH]
        assert high == ["upcode-mdm-mismatch", "bundling-71046-71045"]


class TestServiceInit:
    """Test service initialization."""

    def test_singleton_reset(self):
        first = get_billing_alert_analyzer()
        assert get_billing_alert_analyzer() is first
        reset_billing_alert_analyzer()
        assert get_billing_alert_analyzer() is not first

    def test_to_dict(self):
        alert = BillingAlertAnalyzer().analyze(snapshot(icd10=[]))[0]
        data = alert.to_dict()
        assert data["type"] == "audit_risk"
        assert data["severity"] == "critical"
