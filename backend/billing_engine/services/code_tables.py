"""Billing Reference Tables.

Static reference data consumed by every billing engine component:

- E/M codes with complexity label, minimum MDM tier and work RVU
- MDM outcome per effective complexity tier (2024 CMS 2-of-3 rule)
- High-audit-risk, modifier-review and conservative-floor code sets
- Bundling conflicts (codes that cannot be billed together)
- HCC categories with RAF weights and the ICD-10 -> HCC crosswalk (CMS-HCC V28)
- Denial risk weights and code groupings
- Code validation chapters and CPT ranges

The tables are bundled into an immutable ``CodeTables`` object that is passed
to each service at construction time. ``DEFAULT_CODE_TABLES`` holds the
shipped values; tests and alternate payer configurations build their own.

Note: RAF values and RVUs are approximate and vary by model year.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import threading
from types import MappingProxyType
from typing import Any

from billing_engine.schemas.base import ComplexityTier, DenialFactor, RiskLevel


@dataclass(frozen=True)
class EMLevelInfo:
    """Reference entry for an E/M code."""

    code: str
    complexity_label: str
    min_mdm: ComplexityTier  # Lowest MDM tier that supports this code
    rvu: float


@dataclass(frozen=True)
class EMResult:
    """E/M level derived from MDM complexity."""

    code: str
    complexity_label: str
    rvu: float


@dataclass(frozen=True)
class BundlingPair:
    """Codes that payer rules forbid billing together for one encounter."""

    codes: tuple[str, ...]
    warning: str


@dataclass(frozen=True)
class HCCCategory:
    """Hierarchical Condition Category with its community RAF weight."""

    hcc: str  # e.g. "HCC37"
    category: str  # Organ system grouping, e.g. "Endocrine"
    description: str
    raf: float


@dataclass(frozen=True)
class CPTRange:
    """Numeric CPT range belonging to one section of the code book."""

    name: str
    low: int
    high: int
    description: str

    def contains(self, code: int) -> bool:
        return self.low <= code <= self.high


def normalize_icd10(code: str) -> str:
    """Normalize an ICD-10 code for exact comparison.

    Case, surrounding whitespace and the dot separator are not significant:
    "e11.9", "E11.9" and "E119" are the same code.
    """
    return code.strip().upper().replace(".", "")


# ============================================================================
# E/M Codes
# ============================================================================

EM_LEVELS: list[EMLevelInfo] = [
    # Office / outpatient, established patient
    EMLevelInfo("99211", "Minimal", ComplexityTier.MINIMAL, 0.18),
    EMLevelInfo("99212", "Low", ComplexityTier.MINIMAL, 0.70),  # Straightforward MDM
    EMLevelInfo("99213", "Low", ComplexityTier.LOW, 1.30),
    EMLevelInfo("99214", "Moderate", ComplexityTier.MODERATE, 1.92),
    EMLevelInfo("99215", "High", ComplexityTier.HIGH, 2.80),
    # Initial hospital care
    EMLevelInfo("99221", "Low", ComplexityTier.LOW, 1.92),
    EMLevelInfo("99222", "Moderate", ComplexityTier.MODERATE, 2.61),
    EMLevelInfo("99223", "High", ComplexityTier.HIGH, 3.86),
    # Subsequent hospital care
    EMLevelInfo("99231", "Low", ComplexityTier.LOW, 0.76),
    EMLevelInfo("99232", "Moderate", ComplexityTier.MODERATE, 1.39),
    EMLevelInfo("99233", "High", ComplexityTier.HIGH, 2.00),
    # Discharge day management
    EMLevelInfo("99238", "Discharge", ComplexityTier.LOW, 1.28),
    EMLevelInfo("99239", "Discharge", ComplexityTier.MODERATE, 1.90),
    # Consultations
    EMLevelInfo("99241", "Minimal", ComplexityTier.MINIMAL, 0.64),
    EMLevelInfo("99242", "Low", ComplexityTier.MINIMAL, 1.29),
    EMLevelInfo("99243", "Moderate", ComplexityTier.LOW, 1.72),
    EMLevelInfo("99244", "Moderate-High", ComplexityTier.MODERATE, 2.58),
    EMLevelInfo("99245", "High", ComplexityTier.HIGH, 3.40),
]

# E/M level is set by the second-highest of problems/data/risk
MDM_OUTCOMES: dict[ComplexityTier, EMResult] = {
    ComplexityTier.MINIMAL: EMResult("99211", "Minimal", 0.18),
    ComplexityTier.LOW: EMResult("99212", "Straightforward", 0.70),
    ComplexityTier.MODERATE: EMResult("99214", "Moderate", 1.92),
    ComplexityTier.HIGH: EMResult("99215", "High", 2.80),
}

# Frequently audited by payers
HIGH_AUDIT_RISK_CODES = ["99215", "99223", "99233", "99245", "99291", "99292"]

# Often require modifier review when billed with other services
MODIFIER_REQUIRED_CODES = ["99291", "99292", "99354", "99355"]

# Lowest standard codes; no conservative-coding suggestion below these
CONSERVATIVE_FLOOR_CODES = ["99213", "99231"]

BUNDLING_PAIRS: list[BundlingPair] = [
    BundlingPair(("99213", "99214"), "Cannot bill multiple E/M levels for same encounter"),
    BundlingPair(("99214", "99215"), "Cannot bill multiple E/M levels for same encounter"),
    BundlingPair(("99291", "99285"), "Critical care and ED E/M typically cannot be billed together"),
    BundlingPair(("71046", "71045"), "Single view chest X-ray bundles into 2-view"),
]


# ============================================================================
# HCC Model V28 (partial list - common, high-value categories)
# ============================================================================

HCC_CATEGORIES: list[HCCCategory] = [
    HCCCategory("HCC1", "Infectious Disease", "HIV/AIDS", 0.329),
    # Neoplasms
    HCCCategory("HCC17", "Neoplasms", "Cancer, Metastatic/Acute Leukemia", 1.127),
    HCCCategory("HCC18", "Neoplasms", "Cancer, Lung/Upper Digestive Tract/Other Severe", 0.299),
    HCCCategory("HCC19", "Neoplasms", "Cancer, Lymphoma/Other Cancers", 0.143),
    HCCCategory("HCC20", "Neoplasms", "Cancer, Breast/Prostate/Colorectal/Other", 0.123),
    # Diabetes
    HCCCategory("HCC35", "Endocrine", "Diabetes with Acute Complications", 0.318),
    HCCCategory("HCC36", "Endocrine", "Diabetes with Chronic Complications", 0.318),
    HCCCategory("HCC37", "Endocrine", "Diabetes without Complications", 0.105),
    HCCCategory("HCC48", "Endocrine", "Morbid Obesity", 0.273),
    # Musculoskeletal
    HCCCategory("HCC40", "Musculoskeletal", "Rheumatoid Arthritis, Inflammatory Connective Tissue Disease", 0.374),
    # Neurological
    HCCCategory("HCC52", "Neurological", "Dementia with Complications", 0.346),
    HCCCategory("HCC53", "Neurological", "Dementia without Complications", 0.346),
    HCCCategory("HCC103", "Neurological", "Hemiplegia/Hemiparesis", 0.581),
    # Digestive
    HCCCategory("HCC57", "Digestive", "Chronic Liver Disease, Cirrhosis", 0.385),
    HCCCategory("HCC58", "Digestive", "Chronic Hepatitis", 0.385),
    # Mental health
    HCCCategory("HCC59", "Mental Health", "Major Depressive, Bipolar, Paranoid Disorders", 0.395),
    HCCCategory("HCC60", "Mental Health", "Schizophrenia", 0.476),
    # Cardiovascular
    HCCCategory("HCC85", "Cardiovascular", "Congestive Heart Failure", 0.368),
    HCCCategory("HCC86", "Cardiovascular", "Acute Myocardial Infarction", 0.234),
    HCCCategory("HCC87", "Cardiovascular", "Unstable Angina/Acute Ischemic Heart Disease", 0.234),
    HCCCategory("HCC88", "Cardiovascular", "Angina Pectoris", 0.140),
    HCCCategory("HCC96", "Cardiovascular", "Heart Arrhythmias", 0.280),
    # Cerebrovascular
    HCCCategory("HCC99", "Cerebrovascular", "Cerebral Hemorrhage", 0.256),
    HCCCategory("HCC100", "Cerebrovascular", "Ischemic or Unspecified Stroke", 0.256),
    # Vascular
    HCCCategory("HCC106", "Vascular", "Atherosclerosis of Arteries", 0.298),
    HCCCategory("HCC107", "Vascular", "Vascular Disease", 0.298),
    HCCCategory("HCC108", "Vascular", "Vascular Disease with Complications", 0.298),
    # Pulmonary
    HCCCategory("HCC111", "Pulmonary", "COPD", 0.335),
    HCCCategory("HCC112", "Pulmonary", "Fibrosis of Lung/Other Chronic Lung Disease", 0.211),
    # Renal
    HCCCategory("HCC135", "Renal", "Chronic Kidney Disease, Stage 5", 0.289),
    HCCCategory("HCC136", "Renal", "Chronic Kidney Disease, Severe (Stage 4)", 0.289),
    HCCCategory("HCC137", "Renal", "Chronic Kidney Disease, Moderate (Stage 3)", 0.069),
    HCCCategory("HCC138", "Renal", "Chronic Kidney Disease, Mild or Unspecified", 0.069),
]

# ICD-10 -> HCC crosswalk (partial - production tables hold thousands of rows)
ICD10_TO_HCC: dict[str, str] = {
    # Diabetes
    "E10.10": "HCC36", "E10.11": "HCC35", "E10.21": "HCC36", "E10.22": "HCC36",
    "E10.29": "HCC36", "E10.31": "HCC36", "E10.36": "HCC36", "E10.40": "HCC36",
    "E10.51": "HCC36", "E10.52": "HCC36", "E10.65": "HCC36", "E10.9": "HCC37",
    "E11.21": "HCC36", "E11.22": "HCC36", "E11.40": "HCC36", "E11.65": "HCC36",
    "E11.9": "HCC37",
    # Heart failure
    "I50.1": "HCC85", "I50.20": "HCC85", "I50.21": "HCC85", "I50.22": "HCC85",
    "I50.23": "HCC85", "I50.30": "HCC85", "I50.31": "HCC85", "I50.32": "HCC85",
    "I50.33": "HCC85", "I50.40": "HCC85", "I50.41": "HCC85", "I50.42": "HCC85",
    "I50.43": "HCC85", "I50.9": "HCC85",
    # COPD
    "J44.0": "HCC111", "J44.1": "HCC111", "J44.9": "HCC111",
    # CKD
    "N18.1": "HCC138", "N18.2": "HCC138", "N18.3": "HCC137", "N18.4": "HCC136",
    "N18.5": "HCC135", "N18.6": "HCC135",
    # Atrial fibrillation
    "I48.0": "HCC96", "I48.1": "HCC96", "I48.2": "HCC96", "I48.91": "HCC96",
    # Stroke
    "I63.0": "HCC100", "I63.1": "HCC100", "I63.2": "HCC100", "I63.3": "HCC100",
    "I63.4": "HCC100", "I63.5": "HCC100", "I63.9": "HCC100",
    # Mental health
    "F31.0": "HCC59", "F31.1": "HCC59", "F31.2": "HCC59", "F31.3": "HCC59",
    "F31.4": "HCC59", "F31.5": "HCC59", "F32.0": "HCC59", "F32.1": "HCC59",
    "F32.2": "HCC59", "F32.3": "HCC59", "F33.0": "HCC59", "F33.1": "HCC59",
    "F33.2": "HCC59", "F33.3": "HCC59",
    "F20.0": "HCC60", "F20.1": "HCC60", "F20.2": "HCC60", "F20.3": "HCC60",
    "F20.5": "HCC60", "F20.9": "HCC60",
    # Dementia
    "F01.50": "HCC52", "F01.51": "HCC52", "F02.80": "HCC52", "F02.81": "HCC52",
    "F03.90": "HCC53", "F03.91": "HCC53",
    "G30.0": "HCC52", "G30.1": "HCC52", "G30.8": "HCC52", "G30.9": "HCC52",
    # Cancer
    "C34.10": "HCC18", "C34.11": "HCC18", "C34.12": "HCC18", "C34.90": "HCC18",
    "C50.011": "HCC20", "C50.012": "HCC20", "C61": "HCC20", "C18.0": "HCC20",
    "C18.9": "HCC20",
    "C78.00": "HCC17", "C78.7": "HCC17", "C79.51": "HCC17",
    # Morbid obesity
    "E66.01": "HCC48", "E66.2": "HCC48",
    # Liver disease
    "K74.0": "HCC57", "K74.3": "HCC57", "K74.4": "HCC57", "K74.5": "HCC57",
    "K74.60": "HCC57", "K74.69": "HCC57",
    "B18.1": "HCC58", "B18.2": "HCC58",
    # Rheumatoid arthritis
    "M05.00": "HCC40", "M05.10": "HCC40", "M05.79": "HCC40", "M06.00": "HCC40",
    "M06.09": "HCC40",
}


# ============================================================================
# Denial Risk
# ============================================================================

DENIAL_WEIGHTS: dict[DenialFactor, int] = {
    DenialFactor.MISSING_DIAGNOSIS: 25,
    DenialFactor.SYMPTOM_ONLY_CODES: 15,
    DenialFactor.UNSPECIFIED_CODES: 10,
    DenialFactor.HIGH_EM_SYMPTOM: 15,
    DenialFactor.MODIFIER_MISSING: 10,
    DenialFactor.LCD_NCD_CONCERN: 20,
    DenialFactor.DUPLICATE_SERVICE: 25,
    DenialFactor.CODE_MISMATCH: 15,
    DenialFactor.BUNDLING_ISSUE: 30,
    DenialFactor.VALIDATION_WARNINGS: 5,  # Per warning, capped
}

VALIDATION_WARNING_CAP = 20

# Frequently denied high-level E/M
HIGH_LEVEL_EM_CODES = ["99215", "99223", "99233", "99255", "99285"]

HIGH_COST_IMAGING_CODES = [
    # MRI
    "70551", "70552", "70553", "72141", "72142", "72146", "72147", "72148",
    "72156", "72157", "72158", "73218", "73219", "73220", "73221", "73222", "73223",
    # CT
    "70450", "70460", "70470", "71250", "71260", "71270", "72125", "72126",
    "72127", "72128", "72129", "72130", "72131", "72132", "72133", "74150",
    "74160", "74170", "74176", "74177", "74178",
    # PET
    "78811", "78812", "78813", "78814", "78815", "78816",
]

# Diagnosis chapters that justify high-cost imaging (neoplasm, MSK, injury, nervous)
STRONG_INDICATION_PREFIXES = ["C", "M", "S", "G"]

# Exclusive upper bounds, checked in order; anything above is critical
RISK_LEVEL_THRESHOLDS: list[tuple[int, RiskLevel]] = [
    (20, RiskLevel.LOW),
    (45, RiskLevel.MEDIUM),
    (70, RiskLevel.HIGH),
]


# ============================================================================
# Code Validation
# ============================================================================

ICD10_CHAPTERS: dict[str, str] = {
    "C": "Neoplasms",
    "D": "Blood diseases / Neoplasms",
    "E": "Endocrine, nutritional and metabolic diseases",
    "F": "Mental disorders",
    "G": "Nervous system diseases",
    "H": "Eye and ear diseases",
    "I": "Circulatory system diseases",
    "J": "Respiratory system diseases",
    "K": "Digestive system diseases",
    "L": "Skin diseases",
    "M": "Musculoskeletal diseases",
    "N": "Genitourinary system diseases",
    "O": "Pregnancy complications",
    "P": "Perinatal conditions",
    "Q": "Congenital malformations",
    "R": "Symptoms and signs",
    "S": "Injuries",
    "T": "Injuries, poisoning",
    "Z": "Factors influencing health status",
}

CPT_RANGES: list[CPTRange] = [
    CPTRange("E/M", 99201, 99499, "Evaluation and Management"),
    CPTRange("Anesthesia", 100, 1999, "Anesthesia"),
    CPTRange("Surgery", 10004, 69990, "Surgery"),
    CPTRange("Radiology", 70010, 79999, "Radiology"),
    CPTRange("Pathology", 80047, 89398, "Pathology and Laboratory"),
    CPTRange("Medicine", 90281, 99199, "Medicine"),
]

RADIOLOGY_RANGE = CPTRange("Radiology", 70010, 79999, "Radiology")

# E/M levels that draw scrutiny when supported only by symptom codes
SYMPTOM_SENSITIVE_EM_CODES = ["99214", "99215", "99223", "99233"]

# E/M levels whose MDM must be documented to support the level
MDM_DOCUMENTATION_EM_CODES = ["99213", "99214", "99215"]


# ============================================================================
# Tables container
# ============================================================================


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class CodeTables:
    """Immutable bundle of billing reference data.

    Construct directly to version or swap tables; use ``build_code_tables`` for
    the list-based seed format above.
    """

    em_levels: Mapping[str, EMLevelInfo]
    mdm_outcomes: Mapping[ComplexityTier, EMResult]
    high_audit_risk_codes: frozenset[str]
    modifier_required_codes: frozenset[str]
    conservative_floor_codes: frozenset[str]
    bundling_pairs: tuple[BundlingPair, ...]
    hcc_categories: Mapping[str, HCCCategory]
    icd10_to_hcc: Mapping[str, str]  # Keys are normalized ICD-10 codes
    denial_weights: Mapping[DenialFactor, int]
    validation_warning_cap: int
    high_level_em_codes: frozenset[str]
    high_cost_imaging_codes: frozenset[str]
    strong_indication_prefixes: tuple[str, ...]
    risk_level_thresholds: tuple[tuple[int, RiskLevel], ...]
    icd10_chapters: Mapping[str, str]
    cpt_ranges: tuple[CPTRange, ...]
    radiology_range: CPTRange
    symptom_sensitive_em_codes: frozenset[str]
    mdm_documentation_em_codes: frozenset[str]
    version: str = field(default="2024")

    def __post_init__(self) -> None:
        missing = [tier for tier in ComplexityTier if tier not in self.mdm_outcomes]
        if missing:
            raise ValueError(f"mdm_outcomes missing tiers: {[t.value for t in missing]}")
        missing_factors = [f for f in DenialFactor if f not in self.denial_weights]
        if missing_factors:
            raise ValueError(f"denial_weights missing factors: {[f.value for f in missing_factors]}")
        unknown = sorted(set(self.icd10_to_hcc.values()) - set(self.hcc_categories))
        if unknown:
            raise ValueError(f"icd10_to_hcc references unknown HCCs: {unknown}")

    def em_level(self, code: str | None) -> EMLevelInfo | None:
        """Look up an E/M code, None if unknown or absent."""
        if not code:
            return None
        return self.em_levels.get(code)

    def hcc_for_icd10(self, icd10_code: str) -> HCCCategory | None:
        """Exact (normalized) ICD-10 -> HCC lookup."""
        hcc = self.icd10_to_hcc.get(normalize_icd10(icd10_code))
        return self.hcc_categories.get(hcc) if hcc else None

    def risk_level_for(self, score: int) -> RiskLevel:
        for upper, level in self.risk_level_thresholds:
            if score < upper:
                return level
        return RiskLevel.CRITICAL

    def get_stats(self) -> dict[str, Any]:
        """Get table statistics."""
        return {
            "version": self.version,
            "em_codes_tracked": len(self.em_levels),
            "hcc_categories": len(self.hcc_categories),
            "icd10_hcc_mappings": len(self.icd10_to_hcc),
            "bundling_pairs": len(self.bundling_pairs),
            "high_audit_risk_codes": len(self.high_audit_risk_codes),
            "denial_factors": len(self.denial_weights),
        }


def build_code_tables(
    em_levels: Iterable[EMLevelInfo] = EM_LEVELS,
    mdm_outcomes: Mapping[ComplexityTier, EMResult] = MDM_OUTCOMES,
    high_audit_risk_codes: Iterable[str] = HIGH_AUDIT_RISK_CODES,
    modifier_required_codes: Iterable[str] = MODIFIER_REQUIRED_CODES,
    conservative_floor_codes: Iterable[str] = CONSERVATIVE_FLOOR_CODES,
    bundling_pairs: Iterable[BundlingPair] = BUNDLING_PAIRS,
    hcc_categories: Iterable[HCCCategory] = HCC_CATEGORIES,
    icd10_to_hcc: Mapping[str, str] = ICD10_TO_HCC,
    denial_weights: Mapping[DenialFactor, int] = DENIAL_WEIGHTS,
    version: str = "2024",
) -> CodeTables:
    """Build a ``CodeTables`` from seed lists, overriding any subset."""
    return CodeTables(
        em_levels=_freeze({info.code: info for info in em_levels}),
        mdm_outcomes=_freeze(mdm_outcomes),
        high_audit_risk_codes=frozenset(high_audit_risk_codes),
        modifier_required_codes=frozenset(modifier_required_codes),
        conservative_floor_codes=frozenset(conservative_floor_codes),
        bundling_pairs=tuple(bundling_pairs),
        hcc_categories=_freeze({c.hcc: c for c in hcc_categories}),
        icd10_to_hcc=_freeze({normalize_icd10(k): v for k, v in icd10_to_hcc.items()}),
        denial_weights=_freeze(denial_weights),
        validation_warning_cap=VALIDATION_WARNING_CAP,
        high_level_em_codes=frozenset(HIGH_LEVEL_EM_CODES),
        high_cost_imaging_codes=frozenset(HIGH_COST_IMAGING_CODES),
        strong_indication_prefixes=tuple(STRONG_INDICATION_PREFIXES),
        risk_level_thresholds=tuple(RISK_LEVEL_THRESHOLDS),
        icd10_chapters=_freeze(ICD10_CHAPTERS),
        cpt_ranges=tuple(CPT_RANGES),
        radiology_range=RADIOLOGY_RANGE,
        symptom_sensitive_em_codes=frozenset(SYMPTOM_SENSITIVE_EM_CODES),
        mdm_documentation_em_codes=frozenset(MDM_DOCUMENTATION_EM_CODES),
        version=version,
    )


DEFAULT_CODE_TABLES = build_code_tables()

_tables: CodeTables | None = None
_tables_lock = threading.Lock()


def get_code_tables() -> CodeTables:
    """Get the process-wide code tables (defaults unless overridden)."""
    global _tables
    if _tables is None:
        with _tables_lock:
            if _tables is None:
                _tables = DEFAULT_CODE_TABLES
    return _tables


def set_code_tables(tables: CodeTables | None) -> None:
    """Install alternate tables process-wide (None restores defaults)."""
    global _tables
    with _tables_lock:
        _tables = tables
