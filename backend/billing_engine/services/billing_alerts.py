"""Billing Compliance Alerts.

Evaluates a finished encounter code set before it is saved and flags:

- Upcode risk (E/M level above the documented MDM)
- Frequently audited codes
- Bundling conflicts
- Modifier review for multi-service claims
- Conservative coding opportunities
- Missing or thin diagnosis support

Alerts are derived values with content-stable ids, so re-evaluating the same
snapshot always yields the same list in the same order.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
import threading
from typing import Any

from billing_engine.schemas.base import AlertSeverity, AlertType, ComplexityTier
from billing_engine.services.code_tables import CodeTables, get_code_tables

logger = logging.getLogger(__name__)

# RVU above which a low-MDM encounter gets a conservative coding suggestion
CONSERVATIVE_RVU_THRESHOLD = 2.0

# RVU above which a single diagnosis is considered thin support
DIAGNOSIS_SUPPORT_RVU_THRESHOLD = 2.5
MIN_SUPPORTING_DIAGNOSES = 2

# Modifier review applies when billed alongside other services
MODIFIER_REVIEW_MIN_CPT = 2


@dataclass(frozen=True)
class CodeEntry:
    """A CPT or ICD-10 code with optional suggestion metadata."""

    code: str
    description: str = ""
    confidence: int | None = None  # 0-100
    reasoning: str | None = None
    alternatives: tuple["CodeEntry", ...] = ()

    def __post_init__(self) -> None:
        if self.confidence is not None and not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be 0-100, got {self.confidence}")


@dataclass(frozen=True)
class BillingSnapshot:
    """Complete code set for one encounter, as evaluated before saving."""

    em_level: str | None
    mdm_complexity: str
    cpt_codes: tuple[CodeEntry, ...] = ()
    icd10_codes: tuple[CodeEntry, ...] = ()
    rvu: float = 0.0
    note_type: str | None = None
    modifiers: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.rvu < 0:
            raise ValueError(f"rvu must be >= 0, got {self.rvu}")
        # Accept lists from callers but store immutably
        object.__setattr__(self, "cpt_codes", tuple(self.cpt_codes))
        object.__setattr__(self, "icd10_codes", tuple(self.icd10_codes))
        object.__setattr__(self, "modifiers", tuple(self.modifiers))

    @property
    def cpt_code_strings(self) -> list[str]:
        return [c.code for c in self.cpt_codes]

    @property
    def icd10_code_strings(self) -> list[str]:
        return [c.code for c in self.icd10_codes]

    @property
    def mdm_tier(self) -> ComplexityTier:
        return ComplexityTier.from_label(self.mdm_complexity)


@dataclass(frozen=True)
class BillingAlert:
    """A single compliance finding."""

    id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    recommendation: str | None = None
    affected_codes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "recommendation": self.recommendation,
            "affected_codes": list(self.affected_codes),
        }


def sort_alerts(alerts: Iterable[BillingAlert]) -> list[BillingAlert]:
    """Order alerts for display: critical, high, medium, low.

    Stable, so alerts of equal severity keep rule-evaluation order.
    """
    return sorted(alerts, key=lambda a: a.severity.rank)


class BillingAlertAnalyzer:
    """Evaluates encounter code sets for compliance risk."""

    def __init__(self, tables: CodeTables | None = None) -> None:
        self._tables = tables or get_code_tables()

    def analyze(self, snapshot: BillingSnapshot) -> list[BillingAlert]:
        """Run every rule against the snapshot.

        Returns alerts in rule-evaluation order; use ``sort_alerts`` for display.
        An empty list means a clean bill.
        """
        cpt_codes = snapshot.cpt_code_strings
        actual_tier = snapshot.mdm_tier
        em_info = self._tables.em_level(snapshot.em_level)
        alerts: list[BillingAlert] = []

        # 1. Upcode risk
        if em_info and actual_tier.rank < em_info.min_mdm.rank:
            alerts.append(
                BillingAlert(
                    id="upcode-mdm-mismatch",
                    type=AlertType.UPCODE,
                    severity=AlertSeverity.HIGH,
                    title="Potential Upcode Risk",
                    message=(
                        f"E/M level {em_info.code} requires {em_info.min_mdm.value} MDM, "
                        f"but documentation shows {snapshot.mdm_complexity.lower()}."
                    ),
                    recommendation=(
                        "Consider using a lower E/M code or ensure documentation supports "
                        f"{em_info.min_mdm.value} complexity."
                    ),
                    affected_codes=[em_info.code],
                )
            )

        # 2. Frequently audited codes
        high_risk = [c for c in cpt_codes if c in self._tables.high_audit_risk_codes]
        if high_risk:
            alerts.append(
                BillingAlert(
                    id="high-audit-codes",
                    type=AlertType.AUDIT_RISK,
                    severity=AlertSeverity.MEDIUM,
                    title="High-Audit Frequency Codes",
                    message=f"Code(s) {', '.join(high_risk)} are frequently audited by payers.",
                    recommendation="Ensure thorough documentation of medical necessity and all required elements.",
                    affected_codes=high_risk,
                )
            )

        # 3. Bundling conflicts
        for pair in self._tables.bundling_pairs:
            matching = [c for c in pair.codes if c in cpt_codes]
            if len(matching) > 1:
                alerts.append(
                    BillingAlert(
                        id=f"bundling-{'-'.join(matching)}",
                        type=AlertType.AUDIT_RISK,
                        severity=AlertSeverity.HIGH,
                        title="Potential Bundling Issue",
                        message=pair.warning,
                        recommendation="Review codes and consider using modifier -25 or removing one code.",
                        affected_codes=matching,
                    )
                )

        # 4. Modifier review
        needs_modifier = [c for c in cpt_codes if c in self._tables.modifier_required_codes]
        if needs_modifier and len(cpt_codes) >= MODIFIER_REVIEW_MIN_CPT:
            alerts.append(
                BillingAlert(
                    id="modifier-review",
                    type=AlertType.INFO,
                    severity=AlertSeverity.LOW,
                    title="Modifier Review Suggested",
                    message=(
                        f"Code(s) {', '.join(needs_modifier)} may require modifiers "
                        "when billed with other services."
                    ),
                    recommendation="Review modifier usage for bundled services.",
                    affected_codes=needs_modifier,
                )
            )

        # 5. Conservative coding
        if (
            em_info
            and snapshot.rvu > CONSERVATIVE_RVU_THRESHOLD
            and actual_tier.rank <= ComplexityTier.LOW.rank
            and em_info.code not in self._tables.conservative_floor_codes
        ):
            alerts.append(
                BillingAlert(
                    id="consider-lower-code",
                    type=AlertType.OPTIMAL,
                    severity=AlertSeverity.LOW,
                    title="Consider Conservative Coding",
                    message=(
                        f"With {snapshot.mdm_complexity} complexity, a lower E/M code "
                        "may be safer for audit compliance."
                    ),
                    recommendation="Review documentation to ensure it fully supports the selected level.",
                    affected_codes=[em_info.code],
                )
            )

        # 6. Missing diagnosis
        if not snapshot.icd10_codes:
            alerts.append(
                BillingAlert(
                    id="missing-diagnosis",
                    type=AlertType.AUDIT_RISK,
                    severity=AlertSeverity.CRITICAL,
                    title="Missing Diagnosis Codes",
                    message="No ICD-10 diagnosis codes are attached to this encounter.",
                    recommendation="Add at least one diagnosis code to support medical necessity.",
                )
            )

        # 7. Thin diagnosis support
        if (
            snapshot.rvu > DIAGNOSIS_SUPPORT_RVU_THRESHOLD
            and len(snapshot.icd10_codes) < MIN_SUPPORTING_DIAGNOSES
        ):
            alerts.append(
                BillingAlert(
                    id="low-diagnosis-count",
                    type=AlertType.INFO,
                    severity=AlertSeverity.LOW,
                    title="Consider Additional Diagnoses",
                    message="High-level E/M codes are better supported with multiple diagnosis codes.",
                    recommendation="Add any relevant secondary diagnoses to strengthen claim.",
                )
            )

        logger.debug(f"Billing alerts for {snapshot.em_level}: {[a.id for a in alerts]}")
        return alerts

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        return {
            "em_codes_tracked": len(self._tables.em_levels),
            "high_audit_risk_codes": len(self._tables.high_audit_risk_codes),
            "bundling_pairs": len(self._tables.bundling_pairs),
        }


# ============================================================================
# Singleton
# ============================================================================

_analyzer: BillingAlertAnalyzer | None = None
_analyzer_lock = threading.Lock()


def get_billing_alert_analyzer() -> BillingAlertAnalyzer:
    """Get the singleton billing alert analyzer instance."""
    global _analyzer
    if _analyzer is None:
        with _analyzer_lock:
            if _analyzer is None:
                _analyzer = BillingAlertAnalyzer()
    return _analyzer


def reset_billing_alert_analyzer() -> None:
    """Reset the singleton instance (for testing)."""
    global _analyzer
    with _analyzer_lock:
        _analyzer = None
