"""Pydantic schemas for the billing engine."""

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
from billing_engine.schemas.billing import (
    BillFieldsUpdate,
    BillingAlertSchema,
    BillingAnalyticsResponse,
    BillingSnapshotRequest,
    BillListResponse,
    BillStatusUpdate,
    DenialRiskResponse,
    HCCRequest,
    HCCResponse,
    ManualBillCreate,
    MDMRequest,
    MDMResponse,
    MutationResponse,
    UnifiedBillSchema,
    ValidateCodesRequest,
    ValidateCodesResponse,
)

__all__ = [
    # Enums
    "AlertSeverity",
    "AlertType",
    "BillSource",
    "BillStatus",
    "CodeType",
    "ComplexityTier",
    "DenialFactor",
    "Granularity",
    "RAFBand",
    "RiskLevel",
    "TimeRange",
    # Coding
    "MDMRequest",
    "MDMResponse",
    "HCCRequest",
    "HCCResponse",
    "BillingSnapshotRequest",
    "BillingAlertSchema",
    "DenialRiskResponse",
    "ValidateCodesRequest",
    "ValidateCodesResponse",
    # Bills
    "UnifiedBillSchema",
    "BillListResponse",
    "ManualBillCreate",
    "BillStatusUpdate",
    "BillFieldsUpdate",
    "MutationResponse",
    "BillingAnalyticsResponse",
]
