"""Pydantic schemas for the coding and bills API."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from billing_engine.schemas.base import (
    AlertSeverity,
    AlertType,
    BillSource,
    BillStatus,
    CodeType,
    ComplexityTier,
    DenialFactor,
    Granularity,
    RAFBand,
    RiskLevel,
    TimeRange,
)


# ============================================================================
# Coding requests
# ============================================================================


class CodeEntrySchema(BaseModel):
    """A CPT or ICD-10 code, optionally with suggestion metadata."""

    code: str = Field(..., min_length=1, max_length=20)
    description: str = ""
    confidence: int | None = Field(None, ge=0, le=100)
    reasoning: str | None = None


class MDMRequest(BaseModel):
    """The three MDM element tiers for an encounter."""

    problems: ComplexityTier
    data: ComplexityTier
    risk: ComplexityTier


class MDMResponse(BaseModel):
    code: str
    complexity_label: str
    rvu: float
    effective_tier: ComplexityTier


class HCCRequest(BaseModel):
    icd10_codes: list[str] = Field(default_factory=list, description="ICD-10 codes to map")


class HCCMatchSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hcc: str
    category: str
    description: str
    raf: float
    icd10_source: str


class HCCResponse(BaseModel):
    matches: list[HCCMatchSchema]
    total_raf: float
    hcc_codes: list[str]
    band: RAFBand


class BillingSnapshotRequest(BaseModel):
    """A finished encounter code set."""

    em_level: str | None = Field(None, description="Selected E/M code, e.g. 99214")
    mdm_complexity: str = Field("", description="Documented MDM complexity label")
    cpt_codes: list[CodeEntrySchema] = Field(default_factory=list)
    icd10_codes: list[CodeEntrySchema] = Field(default_factory=list)
    rvu: float = Field(0.0, ge=0)
    note_type: str | None = None
    modifiers: list[str] = Field(default_factory=list)


class BillingAlertSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    recommendation: str | None = None
    affected_codes: list[str] = Field(default_factory=list)


class BillingAlertsResponse(BaseModel):
    alerts: list[BillingAlertSchema]
    total: int


class RiskFactorSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    factor: DenialFactor
    weight: int
    message: str
    recommendation: str | None = None


class DenialRiskResponse(BaseModel):
    risk_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    factors: list[RiskFactorSchema]
    recommendations: list[str]
    validation_warnings: list[str] = Field(default_factory=list)


class ValidateCodesRequest(BaseModel):
    icd10_codes: list[str] = Field(default_factory=list)
    cpt_codes: list[str] = Field(default_factory=list)
    modifiers: list[str] = Field(default_factory=list)


class CodeValidationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    code_type: CodeType
    valid: bool
    format_valid: bool
    errors: list[str]
    warnings: list[str]
    suggestions: list[str]
    category: str | None = None


class ValidateCodesResponse(BaseModel):
    valid: bool
    icd10: list[CodeValidationSchema]
    cpt: list[CodeValidationSchema]
    bundling_warnings: list[str]
    consistency_warnings: list[str]
    modifier_warnings: list[str]
    summary: dict[str, Any]


# ============================================================================
# Bills
# ============================================================================


class UnifiedBillSchema(BaseModel):
    """A bill from either source."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    source: BillSource
    user_id: str
    created_at: datetime
    status: BillStatus
    submitted_at: datetime | None = None
    facility: str | None = None
    rvu: float
    patient_name: str
    patient_mrn: str | None = None
    patient_dob: date | None = None
    cpt_codes: list[str] = Field(default_factory=list)
    cpt_description: str | None = None
    icd10_codes: list[str] = Field(default_factory=list)
    modifiers: list[str] | None = None
    diagnosis: str | None = None
    em_level: str | None = None
    mdm_complexity: str | None = None
    denial_risk_score: int | None = None
    denial_risk_factors: Any = None
    note_id: str | None = None
    note_type: str | None = None
    note_date: datetime | None = None
    provider_name: str | None = None
    provider_specialty: str | None = None


class BillingSummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_bills: int
    total_rvu: float
    estimated_revenue: float
    submitted_count: int
    pending_count: int
    submission_rate: float
    avg_rvu_per_bill: float


class BillListResponse(BaseModel):
    bills: list[UnifiedBillSchema]
    page: int
    page_size: int
    has_more: bool
    facilities: list[str]
    summary: BillingSummarySchema


class ManualBillCreate(BaseModel):
    """A manually entered bill."""

    patient_name: str = Field(..., min_length=1, max_length=255)
    patient_mrn: str | None = None
    patient_dob: date | None = None
    date_of_service: date
    facility: str | None = None
    cpt_code: str = Field(..., min_length=1, max_length=10)
    cpt_description: str | None = None
    modifiers: list[str] | None = None
    diagnosis: str | None = None
    rvu: float = Field(..., ge=0)
    user_id: str = Field(..., min_length=1, description="Billing provider")


class BillStatusUpdate(BaseModel):
    status: BillStatus


class BillFieldsUpdate(BaseModel):
    """Editable bill fields; omitted fields are left unchanged."""

    icd10_codes: list[str] | None = None
    cpt_codes: list[str] | None = None
    em_level: str | None = None
    mdm_complexity: str | None = None
    rvu: float | None = Field(None, ge=0)
    facility: str | None = None


class MutationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    error: str | None = None
    bill_id: str | None = None


# ============================================================================
# Analytics
# ============================================================================


class BillingMetricsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_rvu: float
    total_revenue: float
    submitted_count: int
    pending_count: int
    submission_rate: float
    rvu_change: float
    total_bills: int
    avg_rvu_per_bill: float


class TimeSeriesPointSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bucket_start: datetime
    label: str
    rvu: float
    revenue: float
    submitted: int
    pending: int
    total: int


class DistributionSliceSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    value: int


class CptCodeStatsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    count: int
    rvu: float


class FacilityStatsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    count: int
    rvu: float
    submitted: int
    pending: int
    revenue: float
    submission_rate: float
    avg_rvu: float


class BillingAnalyticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    time_range: TimeRange
    granularity: Granularity
    metrics: BillingMetricsSchema
    time_series: list[TimeSeriesPointSchema]
    status_distribution: list[DistributionSliceSchema]
    source_distribution: list[DistributionSliceSchema]
    top_cpt_codes: list[CptCodeStatsSchema]
    facilities: list[FacilityStatsSchema]
