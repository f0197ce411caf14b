"""Bills API Endpoints.

Unified view over note-based billing records and manual bills:
- List bills with filters and pagination
- Billing analytics for the dashboard
- Create manual bills
- Status changes, field edits and deletes, addressed by (source, id)

Writes always answer with a MutationResponse body; failures use status 400.
"""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_engine.core.config import settings
from billing_engine.core.database import get_session_factory
from billing_engine.schemas.base import BillSource, BillStatus, Granularity, TimeRange
from billing_engine.schemas.billing import (
    BillFieldsUpdate,
    BillingAnalyticsResponse,
    BillingSummarySchema,
    BillListResponse,
    BillStatusUpdate,
    ManualBillCreate,
    MutationResponse,
    UnifiedBillSchema,
)
from billing_engine.services.bill_sources import (
    BillingFilters,
    ManualBillInput,
    ManualBillRepository,
    NoteBillingRecordRepository,
)
from billing_engine.services.billing_analytics import BillingAnalyticsService
from billing_engine.services.unified_billing import (
    BillingFetchError,
    MutationResult,
    UnifiedBillingAggregator,
    summarize_bills,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bills", tags=["Bills"])


def get_billing_aggregator(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> UnifiedBillingAggregator:
    """Dependency building an aggregator over both bill tables."""
    return UnifiedBillingAggregator(
        NoteBillingRecordRepository(session_factory),
        ManualBillRepository(session_factory),
    )


def get_bill_filters(
    status_filter: Annotated[BillStatus | None, Query(alias="status", description="Filter by status")] = None,
    facility: Annotated[str | None, Query(description="Filter by facility")] = None,
    source: Annotated[BillSource | None, Query(description="Restrict to one source")] = None,
    start_date: Annotated[date | None, Query(description="Created on or after")] = None,
    end_date: Annotated[date | None, Query(description="Created on or before (inclusive)")] = None,
    user_id: Annotated[str | None, Query(description="Only this provider's bills")] = None,
) -> BillingFilters:
    """Dependency parsing list filters from the query string."""
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date",
        )
    return BillingFilters(
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
        facility=facility,
        source=source,
        user_id=user_id,
    )


Aggregator = Annotated[UnifiedBillingAggregator, Depends(get_billing_aggregator)]
Filters = Annotated[BillingFilters, Depends(get_bill_filters)]


def _fetch_failed(e: BillingFetchError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": str(e), "source": e.source.value},
    )


def _mutation_response(result: MutationResult, response: Response, success_status: int) -> MutationResponse:
    response.status_code = success_status if result.success else status.HTTP_400_BAD_REQUEST
    return MutationResponse.model_validate(result)


@router.get(
    "",
    response_model=BillListResponse,
    summary="List unified bills",
)
async def list_bills(
    aggregator: Aggregator,
    filters: Filters,
    page: Annotated[int, Query(ge=0, description="Zero-based page")] = 0,
) -> BillListResponse:
    """List bills from both sources, newest first.

    Each page holds up to ``page_size`` rows per source. ``has_more`` is true
    while either source still returns full pages.
    """
    try:
        result = await aggregator.fetch_page(filters, page)
    except BillingFetchError as e:
        raise _fetch_failed(e) from e

    facilities = list(dict.fromkeys(b.facility for b in result.bills if b.facility))
    summary = summarize_bills(result.bills, aggregator.rvu_rate)
    return BillListResponse(
        bills=[UnifiedBillSchema.model_validate(b) for b in result.bills],
        page=result.page,
        page_size=aggregator.page_size,
        has_more=result.has_more,
        facilities=facilities,
        summary=BillingSummarySchema.model_validate(summary),
    )


@router.get(
    "/analytics",
    response_model=BillingAnalyticsResponse,
    summary="Billing analytics",
)
async def bill_analytics(
    aggregator: Aggregator,
    filters: Filters,
    time_range: Annotated[TimeRange, Query(description="Look-back window")] = TimeRange.LAST_30_DAYS,
    granularity: Annotated[Granularity, Query(description="Time series bucket size")] = Granularity.DAILY,
) -> BillingAnalyticsResponse:
    """Metrics, time series, distributions, top CPT codes and facility rollups."""
    try:
        await aggregator.load_all(filters, max_pages=settings.billing_analytics_max_pages)
    except BillingFetchError as e:
        raise _fetch_failed(e) from e

    report = BillingAnalyticsService(rvu_rate=aggregator.rvu_rate).analyze(
        aggregator.data_points(), time_range, granularity
    )
    return BillingAnalyticsResponse.model_validate(report)


@router.post(
    "",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a manual bill",
)
async def create_bill(
    request: ManualBillCreate,
    aggregator: Aggregator,
    response: Response,
) -> MutationResponse:
    """Create a pending manual bill."""
    try:
        data = ManualBillInput(**request.model_dump())
    except ValueError as e:
        return _mutation_response(MutationResult.failed(str(e)), response, status.HTTP_201_CREATED)

    result = await aggregator.add_manual_bill(data)
    return _mutation_response(result, response, status.HTTP_201_CREATED)


@router.patch(
    "/{source}/{bill_id}/status",
    response_model=MutationResponse,
    summary="Change bill status",
)
async def update_bill_status(
    source: BillSource,
    bill_id: str,
    request: BillStatusUpdate,
    aggregator: Aggregator,
    response: Response,
) -> MutationResponse:
    """Set status; submitting an already submitted bill succeeds without change."""
    result = await aggregator.update_status(bill_id, source, request.status)
    return _mutation_response(result, response, status.HTTP_200_OK)


@router.patch(
    "/{source}/{bill_id}",
    response_model=MutationResponse,
    summary="Edit bill fields",
)
async def update_bill(
    source: BillSource,
    bill_id: str,
    request: BillFieldsUpdate,
    aggregator: Aggregator,
    response: Response,
) -> MutationResponse:
    """Edit bill fields.

    Note-based bills accept codes, E/M level, MDM, RVU and facility.
    Manual bills accept RVU, a single CPT code and facility.
    """
    updates = request.model_dump(exclude_unset=True)
    result = await aggregator.update_bill(bill_id, source, updates)
    return _mutation_response(result, response, status.HTTP_200_OK)


@router.delete(
    "/{source}/{bill_id}",
    response_model=MutationResponse,
    summary="Delete a bill",
)
async def delete_bill(
    source: BillSource,
    bill_id: str,
    aggregator: Aggregator,
    response: Response,
) -> MutationResponse:
    """Delete a bill from the table its source names."""
    result = await aggregator.delete_bill(bill_id, source)
    return _mutation_response(result, response, status.HTTP_200_OK)
