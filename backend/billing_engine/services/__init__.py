"""Services for the billing engine.

Services implement business logic and data processing:
- CodeTables: E/M, HCC, bundling and denial reference data
- MDMResolver: E/M level from the three MDM elements
- HCCMapper: ICD-10 -> HCC categories and RAF
- BillingAlertAnalyzer: compliance alerts for a finished code set
- DenialRiskScorer: weighted claim denial risk
- BillingCodeValidator: ICD-10/CPT format and consistency checks
- BillingAnalyticsService: dashboard metrics and time series
- UnifiedBillingAggregator: merged view over note-based and manual bills
"""

from billing_engine.services.bill_sources import (
    BillingFilters,
    BillNotFoundError,
    BillSourceError,
    BillSourceRepository,
    BillUpdateNotAllowedError,
    ManualBillInput,
    ManualBillRepository,
    NoteBillingRecordRepository,
    StatusUpdate,
    UnifiedBill,
)
from billing_engine.services.billing_alerts import (
    BillingAlert,
    BillingAlertAnalyzer,
    BillingSnapshot,
    CodeEntry,
    get_billing_alert_analyzer,
    reset_billing_alert_analyzer,
    sort_alerts,
)
from billing_engine.services.billing_analytics import (
    BillingAnalyticsReport,
    BillingAnalyticsService,
    BillingDataPoint,
    BillingMetrics,
)
from billing_engine.services.code_tables import (
    DEFAULT_CODE_TABLES,
    CodeTables,
    EMResult,
    HCCCategory,
    build_code_tables,
    get_code_tables,
)
from billing_engine.services.code_validator import (
    BillingCodeValidator,
    CodeValidationReport,
    CodeValidationResult,
    get_code_validator,
    reset_code_validator,
)
from billing_engine.services.denial_risk import (
    DenialRiskAssessment,
    DenialRiskScorer,
    RiskFactor,
    get_denial_risk_scorer,
    reset_denial_risk_scorer,
)
from billing_engine.services.hcc_mapper import (
    HCCMapper,
    HCCMappingResult,
    HCCMatch,
    classify_raf,
    get_hcc_mapper,
    reset_hcc_mapper,
)
from billing_engine.services.mdm_resolver import (
    MDMInput,
    MDMResolver,
    get_mdm_resolver,
    reset_mdm_resolver,
)
from billing_engine.services.unified_billing import (
    BillingFetchError,
    BillingSummary,
    MutationResult,
    UnifiedBillingAggregator,
    UnifiedBillPage,
    merge_bills,
)

__all__ = [
    # Reference data
    "CodeTables",
    "DEFAULT_CODE_TABLES",
    "EMResult",
    "HCCCategory",
    "build_code_tables",
    "get_code_tables",
    # MDM
    "MDMInput",
    "MDMResolver",
    "get_mdm_resolver",
    "reset_mdm_resolver",
    # HCC
    "HCCMapper",
    "HCCMappingResult",
    "HCCMatch",
    "classify_raf",
    "get_hcc_mapper",
    "reset_hcc_mapper",
    # Alerts
    "BillingAlert",
    "BillingAlertAnalyzer",
    "BillingSnapshot",
    "CodeEntry",
    "get_billing_alert_analyzer",
    "reset_billing_alert_analyzer",
    "sort_alerts",
    # Denial risk
    "DenialRiskAssessment",
    "DenialRiskScorer",
    "RiskFactor",
    "get_denial_risk_scorer",
    "reset_denial_risk_scorer",
    # Validation
    "BillingCodeValidator",
    "CodeValidationReport",
    "CodeValidationResult",
    "get_code_validator",
    "reset_code_validator",
    # Analytics
    "BillingAnalyticsReport",
    "BillingAnalyticsService",
    "BillingDataPoint",
    "BillingMetrics",
    # Bill sources
    "BillingFilters",
    "BillNotFoundError",
    "BillSourceError",
    "BillSourceRepository",
    "BillUpdateNotAllowedError",
    "ManualBillInput",
    "ManualBillRepository",
    "NoteBillingRecordRepository",
    "StatusUpdate",
    "UnifiedBill",
    # Aggregation
    "BillingFetchError",
    "BillingSummary",
    "MutationResult",
    "UnifiedBillingAggregator",
    "UnifiedBillPage",
    "merge_bills",
]
