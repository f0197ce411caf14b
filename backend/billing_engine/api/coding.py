"""Coding Intelligence API Endpoints.

Thin HTTP layer over the billing rule engine:
- MDM: E/M level from the three MDM elements
- HCC: risk adjustment categories and RAF for a diagnosis list
- Alerts: compliance alerts for a finished code set
- Denial risk: validation plus weighted denial scoring
- Validate: ICD-10/CPT format and consistency checks

All endpoints are pure computations; nothing is persisted.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from billing_engine.schemas.billing import (
    BillingAlertSchema,
    BillingAlertsResponse,
    BillingSnapshotRequest,
    CodeValidationSchema,
    DenialRiskResponse,
    HCCMatchSchema,
    HCCRequest,
    HCCResponse,
    MDMRequest,
    MDMResponse,
    RiskFactorSchema,
    ValidateCodesRequest,
    ValidateCodesResponse,
)
from billing_engine.services.billing_alerts import (
    BillingSnapshot,
    CodeEntry,
    get_billing_alert_analyzer,
    sort_alerts,
)
from billing_engine.services.code_validator import get_code_validator
from billing_engine.services.denial_risk import get_denial_risk_scorer
from billing_engine.services.hcc_mapper import get_hcc_mapper
from billing_engine.services.mdm_resolver import MDMInput, get_mdm_resolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coding", tags=["Coding"])


def _to_snapshot(request: BillingSnapshotRequest) -> BillingSnapshot:
    try:
        return BillingSnapshot(
            em_level=request.em_level,
            mdm_complexity=request.mdm_complexity,
            cpt_codes=[
                CodeEntry(code=c.code, description=c.description, confidence=c.confidence, reasoning=c.reasoning)
                for c in request.cpt_codes
            ],
            icd10_codes=[
                CodeEntry(code=c.code, description=c.description, confidence=c.confidence, reasoning=c.reasoning)
                for c in request.icd10_codes
            ],
            rvu=request.rvu,
            note_type=request.note_type,
            modifiers=request.modifiers,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e


@router.post(
    "/mdm",
    response_model=MDMResponse,
    summary="Resolve E/M level from MDM",
)
async def resolve_mdm(request: MDMRequest) -> MDMResponse:
    """Derive the E/M level from Problems, Data and Risk.

    The level is set by the second-highest of the three tiers (2 of 3 rule).
    """
    resolver = get_mdm_resolver()
    mdm = MDMInput(problems=request.problems, data=request.data, risk=request.risk)
    result = resolver.resolve(mdm)
    return MDMResponse(
        code=result.code,
        complexity_label=result.complexity_label,
        rvu=result.rvu,
        effective_tier=resolver.effective_tier(mdm),
    )


@router.post(
    "/hcc",
    response_model=HCCResponse,
    summary="Map diagnoses to HCC categories",
)
async def map_hcc(request: HCCRequest) -> HCCResponse:
    """Map ICD-10 codes to HCC categories and sum RAF.

    Unmatched codes are omitted. Duplicate codes count once per occurrence.
    """
    result = get_hcc_mapper().map(request.icd10_codes)
    return HCCResponse(
        matches=[HCCMatchSchema.model_validate(m) for m in result.matches],
        total_raf=result.total_raf,
        hcc_codes=result.hcc_codes,
        band=result.band,
    )


@router.post(
    "/alerts",
    response_model=BillingAlertsResponse,
    summary="Evaluate billing compliance alerts",
)
async def billing_alerts(request: BillingSnapshotRequest) -> BillingAlertsResponse:
    """Evaluate a finished code set; alerts are returned most severe first."""
    snapshot = _to_snapshot(request)
    alerts = sort_alerts(get_billing_alert_analyzer().analyze(snapshot))
    logger.info(f"Billing alerts for em_level={request.em_level}: {len(alerts)} alerts")
    return BillingAlertsResponse(
        alerts=[BillingAlertSchema.model_validate(a) for a in alerts],
        total=len(alerts),
    )


@router.post(
    "/denial-risk",
    response_model=DenialRiskResponse,
    summary="Assess claim denial risk",
)
async def denial_risk(request: BillingSnapshotRequest) -> DenialRiskResponse:
    """Validate the codes, then score denial risk including validation warnings."""
    snapshot = _to_snapshot(request)
    report = get_code_validator().validate(
        snapshot.icd10_code_strings,
        snapshot.cpt_code_strings,
        snapshot.modifiers,
    )
    warnings = report.all_warnings
    assessment = get_denial_risk_scorer().score(snapshot, warnings)
    logger.info(
        f"Denial risk: {assessment.risk_level.value} ({assessment.risk_score}) "
        f"with {len(warnings)} validation warnings"
    )
    return DenialRiskResponse(
        risk_score=assessment.risk_score,
        risk_level=assessment.risk_level,
        factors=[RiskFactorSchema.model_validate(f) for f in assessment.factors],
        recommendations=assessment.recommendations,
        validation_warnings=warnings,
    )


@router.post(
    "/validate",
    response_model=ValidateCodesResponse,
    summary="Validate ICD-10 and CPT codes",
)
async def validate_codes(request: ValidateCodesRequest) -> ValidateCodesResponse:
    """Check code formats, categories, bundling and diagnosis consistency."""
    report = get_code_validator().validate(request.icd10_codes, request.cpt_codes, request.modifiers)
    return ValidateCodesResponse(
        valid=report.valid,
        icd10=[CodeValidationSchema.model_validate(r) for r in report.icd10],
        cpt=[CodeValidationSchema.model_validate(r) for r in report.cpt],
        bundling_warnings=report.bundling_warnings,
        consistency_warnings=report.consistency_warnings,
        modifier_warnings=report.modifier_warnings,
        summary=report.summary,
    )
