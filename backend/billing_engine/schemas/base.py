"""Base schemas and enums for the billing engine."""

from enum import Enum


class ComplexityTier(str, Enum):
    """Ordinal complexity tier for the three MDM elements (2024 CMS)."""

    MINIMAL = "minimal"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Ordinal position, minimal=0 .. high=3."""
        return _TIER_ORDER.index(self)

    @classmethod
    def from_rank(cls, rank: int) -> "ComplexityTier":
        return _TIER_ORDER[rank]

    @classmethod
    def from_label(cls, label: str | None) -> "ComplexityTier":
        """Parse a free-text MDM complexity label.

        "Straightforward" documentation is treated as low complexity;
        anything unrecognized falls back to minimal.
        """
        lower = (label or "").lower()
        if "high" in lower:
            return cls.HIGH
        if "moderate" in lower:
            return cls.MODERATE
        if "low" in lower or "straight" in lower:
            return cls.LOW
        return cls.MINIMAL


_TIER_ORDER: tuple[ComplexityTier, ...] = (
    ComplexityTier.MINIMAL,
    ComplexityTier.LOW,
    ComplexityTier.MODERATE,
    ComplexityTier.HIGH,
)


class AlertType(str, Enum):
    """Kind of billing compliance alert."""

    UPCODE = "upcode"
    DOWNCODE = "downcode"
    AUDIT_RISK = "audit_risk"
    OPTIMAL = "optimal"
    INFO = "info"


class AlertSeverity(str, Enum):
    """Severity of a billing alert."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Display rank; critical sorts first."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[AlertSeverity, int] = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.HIGH: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 3,
}


class RiskLevel(str, Enum):
    """Bucketed claim denial risk."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DenialFactor(str, Enum):
    """Weighted contributors to the denial risk score."""

    MISSING_DIAGNOSIS = "MISSING_DIAGNOSIS"
    SYMPTOM_ONLY_CODES = "SYMPTOM_ONLY_CODES"
    UNSPECIFIED_CODES = "UNSPECIFIED_CODES"
    HIGH_EM_SYMPTOM = "HIGH_EM_SYMPTOM"
    MODIFIER_MISSING = "MODIFIER_MISSING"
    LCD_NCD_CONCERN = "LCD_NCD_CONCERN"
    DUPLICATE_SERVICE = "DUPLICATE_SERVICE"
    CODE_MISMATCH = "CODE_MISMATCH"
    BUNDLING_ISSUE = "BUNDLING_ISSUE"
    VALIDATION_WARNINGS = "VALIDATION_WARNINGS"


class RAFBand(str, Enum):
    """Display band for a risk adjustment factor."""

    LOW = "low"
    MODERATE = "moderate"
    ELEVATED = "elevated"
    HIGH = "high"


class CodeType(str, Enum):
    """Code set a billing code belongs to."""

    ICD10 = "icd10"
    CPT = "cpt"


class BillSource(str, Enum):
    """Underlying table a unified bill was read from."""

    NOTE = "note"
    MANUAL = "manual"


class BillStatus(str, Enum):
    """Submission status of a bill."""

    PENDING = "pending"
    SUBMITTED = "submitted"


class TimeRange(str, Enum):
    """Analytics look-back window."""

    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    ALL = "all"


class Granularity(str, Enum):
    """Bucket size for analytics time series."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
