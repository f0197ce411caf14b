"""Unified Billing Aggregator.

Merges note-based billing records and manual bills into one collection:

- Both sources are fetched concurrently, one page at a time
- A failure in either source fails the whole page (no half results)
- Results are sorted newest first with a deterministic tie-break
- Writes go to whichever table the bill's source names and return a
  ``MutationResult`` instead of raising

Pagination is per source: page k holds up to ``page_size`` rows from each
source. Rows are globally sorted within a page, but a later page can hold
rows newer than rows already shown when one source is much denser than the
other in a time window. Within a single source, ordering across pages holds.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
from typing import Any, Protocol

from billing_engine.core.audit import AuditAction, log_bill_change
from billing_engine.core.config import settings
from billing_engine.schemas.base import BillSource, BillStatus
from billing_engine.services.bill_sources import (
    BillingFilters,
    BillSourceRepository,
    ManualBillInput,
    UnifiedBill,
)
from billing_engine.services.billing_analytics import BillingDataPoint

logger = logging.getLogger(__name__)

# Tie-break for bills created at the same instant
SOURCE_ORDER: dict[BillSource, int] = {
    BillSource.NOTE: 0,
    BillSource.MANUAL: 1,
}


class ManualBillSource(BillSourceRepository, Protocol):
    """A bill source that also accepts new manual bills."""

    async def create(self, data: ManualBillInput) -> UnifiedBill: ...


class BillingFetchError(Exception):
    """A source failed while fetching a page."""

    def __init__(self, source: BillSource, message: str) -> None:
        self.source = source
        super().__init__(f"Failed to fetch {source.value} bills: {message}")


@dataclass
class UnifiedBillPage:
    bills: list[UnifiedBill] = field(default_factory=list)
    page: int = 0
    has_more: bool = False


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a bill write."""

    success: bool
    error: str | None = None
    bill_id: str | None = None

    @classmethod
    def ok(cls, bill_id: str | None = None) -> "MutationResult":
        return cls(success=True, bill_id=bill_id)

    @classmethod
    def failed(cls, error: str, bill_id: str | None = None) -> "MutationResult":
        return cls(success=False, error=error, bill_id=bill_id)


@dataclass
class BillingSummary:
    total_bills: int = 0
    total_rvu: float = 0.0
    estimated_revenue: float = 0.0
    submitted_count: int = 0
    pending_count: int = 0
    submission_rate: float = 0.0  # Percent
    avg_rvu_per_bill: float = 0.0


def summarize_bills(bills: Iterable[UnifiedBill], rvu_rate: float) -> BillingSummary:
    """Totals and submission rate over a set of bills."""
    bills = list(bills)
    total = len(bills)
    total_rvu = sum(bill.rvu for bill in bills)
    submitted = sum(1 for bill in bills if bill.status == BillStatus.SUBMITTED)
    pending = sum(1 for bill in bills if bill.status == BillStatus.PENDING)
    return BillingSummary(
        total_bills=total,
        total_rvu=total_rvu,
        estimated_revenue=total_rvu * rvu_rate,
        submitted_count=submitted,
        pending_count=pending,
        submission_rate=(submitted / total) * 100 if total else 0.0,
        avg_rvu_per_bill=total_rvu / total if total else 0.0,
    )


def merge_bills(*batches: Iterable[UnifiedBill]) -> list[UnifiedBill]:
    """Merge batches newest first; ties by source (note first) then id."""
    merged = [bill for batch in batches for bill in batch]
    merged.sort(key=lambda b: (SOURCE_ORDER[b.source], b.id))
    merged.sort(key=lambda b: b.created_at, reverse=True)
    return merged


def matches_filters(bill: UnifiedBill, filters: BillingFilters) -> bool:
    """Whether a bill would be returned by a query with these filters."""
    if not filters.includes(bill.source):
        return False
    if filters.user_id and bill.user_id != filters.user_id:
        return False
    if filters.status is not None and bill.status != filters.status:
        return False
    if filters.facility and bill.facility != filters.facility:
        return False
    created = bill.created_at.date()
    if filters.start_date and created < filters.start_date:
        return False
    if filters.end_date and created > filters.end_date:
        return False
    return True


def to_data_point(bill: UnifiedBill) -> BillingDataPoint:
    return BillingDataPoint(
        id=bill.id,
        date=bill.created_at,
        rvu=bill.rvu,
        status=bill.status,
        type=bill.source,
        cpt_codes=tuple(bill.cpt_codes),
        facility=bill.facility,
    )


class UnifiedBillingAggregator:
    """Merged, cached view over both bill sources."""

    def __init__(
        self,
        note_source: BillSourceRepository,
        manual_source: ManualBillSource,
        page_size: int | None = None,
        rvu_rate: float | None = None,
    ) -> None:
        self._sources: dict[BillSource, BillSourceRepository] = {
            BillSource.NOTE: note_source,
            BillSource.MANUAL: manual_source,
        }
        self._manual_source = manual_source
        self._page_size = page_size or settings.billing_page_size
        self._rvu_rate = settings.rvu_rate if rvu_rate is None else rvu_rate

        self._filters = BillingFilters()
        self._bills: list[UnifiedBill] = []
        self._facilities: list[str] = []
        self._page = 0
        self._has_more = False
        self._generation = 0
        self._refresh_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Cached state
    # ------------------------------------------------------------------

    @property
    def bills(self) -> list[UnifiedBill]:
        return list(self._bills)

    @property
    def facilities(self) -> list[str]:
        return list(self._facilities)

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def filters(self) -> BillingFilters:
        return self._filters

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def rvu_rate(self) -> float:
        return self._rvu_rate

    def _remember_facilities(self, bills: Iterable[UnifiedBill]) -> None:
        for bill in bills:
            if bill.facility and bill.facility not in self._facilities:
                self._facilities.append(bill.facility)

    def _find(self, bill_id: str, source: BillSource) -> UnifiedBill | None:
        for bill in self._bills:
            if bill.key == (bill_id, source):
                return bill
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_page(self, filters: BillingFilters, page: int = 0) -> UnifiedBillPage:
        """Fetch one page from every included source concurrently.

        Raises:
            BillingFetchError: if any source fails; the others are cancelled.
        """
        sources = [source for source in BillSource if filters.includes(source)]
        tasks = {
            source: asyncio.create_task(
                self._sources[source].fetch_page(filters, page, self._page_size)
            )
            for source in sources
        }
        try:
            await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
        finally:
            pending = [task for task in tasks.values() if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for source, task in tasks.items():
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                logger.error(f"Billing fetch failed for {source.value} (page {page}): {exc}")
                raise BillingFetchError(source, str(exc)) from exc

        results = {source: task.result() for source, task in tasks.items()}
        has_more = any(len(rows) >= self._page_size for rows in results.values())
        bills = merge_bills(*results.values())
        logger.debug(
            f"Fetched page {page}: "
            + ", ".join(f"{s.value}={len(r)}" for s, r in results.items())
            + f", has_more={has_more}"
        )
        return UnifiedBillPage(bills=bills, page=page, has_more=has_more)

    async def refresh(self, filters: BillingFilters | None = None) -> UnifiedBillPage | None:
        """Reload page 0, replacing the cached collection.

        A refresh started while another is in flight cancels it; the
        superseded call returns None and leaves the cache alone.
        """
        filters = filters if filters is not None else self._filters
        self._generation += 1
        generation = self._generation

        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        task = asyncio.create_task(self.fetch_page(filters, 0))
        self._refresh_task = task

        try:
            result = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if generation != self._generation and not (current and current.cancelling()):
                logger.debug(f"Refresh {generation} superseded by {self._generation}")
                return None
            raise

        if generation != self._generation:
            logger.debug(f"Discarding stale refresh {generation}")
            return None

        self._filters = filters
        self._bills = result.bills
        self._page = 0
        self._has_more = result.has_more
        self._remember_facilities(result.bills)
        return result

    async def load_more(self) -> UnifiedBillPage | None:
        """Fetch the next page and append it to the cache.

        Returns None if a refresh replaced the cache while loading.
        """
        if not self._has_more:
            return UnifiedBillPage(bills=[], page=self._page, has_more=False)

        generation = self._generation
        next_page = self._page + 1
        result = await self.fetch_page(self._filters, next_page)
        if generation != self._generation:
            return None

        seen = {bill.key for bill in self._bills}
        new_bills = [bill for bill in result.bills if bill.key not in seen]
        self._bills.extend(new_bills)
        self._page = next_page
        self._has_more = result.has_more
        self._remember_facilities(new_bills)
        return result

    async def load_all(self, filters: BillingFilters | None = None, max_pages: int = 20) -> list[UnifiedBill]:
        """Refresh and keep loading until exhausted or ``max_pages`` fetched."""
        if await self.refresh(filters) is None:
            return self.bills
        pages = 1
        while self._has_more and pages < max_pages:
            if await self.load_more() is None:
                break
            pages += 1
        return self.bills

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _failed(
        self,
        action: AuditAction,
        bill_id: str | None,
        source: BillSource,
        exc: Exception,
    ) -> MutationResult:
        logger.warning(f"{action.value} failed for {source.value} bill {bill_id}: {exc}")
        log_bill_change(action, bill_id, source.value, success=False, details={"error": str(exc)})
        return MutationResult.failed(str(exc), bill_id)

    async def update_status(self, bill_id: str, source: BillSource, status: BillStatus) -> MutationResult:
        """Set a bill's status. Re-applying the current status succeeds without a write."""
        try:
            update = await self._sources[source].set_status(bill_id, status)
        except Exception as exc:
            return self._failed(AuditAction.STATUS_CHANGE, bill_id, source, exc)

        cached = self._find(bill_id, source)
        if cached is not None:
            cached.status = update.status
            cached.submitted_at = update.submitted_at
        log_bill_change(
            AuditAction.STATUS_CHANGE,
            bill_id,
            source.value,
            details={"status": status.value, "changed": update.changed},
        )
        return MutationResult.ok(bill_id)

    async def mark_as_submitted(self, bill_id: str, source: BillSource) -> MutationResult:
        return await self.update_status(bill_id, source, BillStatus.SUBMITTED)

    async def delete_bill(self, bill_id: str, source: BillSource) -> MutationResult:
        try:
            await self._sources[source].delete(bill_id)
        except Exception as exc:
            return self._failed(AuditAction.DELETE, bill_id, source, exc)

        self._bills = [bill for bill in self._bills if bill.key != (bill_id, source)]
        log_bill_change(AuditAction.DELETE, bill_id, source.value)
        return MutationResult.ok(bill_id)

    async def update_bill(self, bill_id: str, source: BillSource, updates: dict[str, Any]) -> MutationResult:
        """Edit bill fields.

        Note bills accept code, E/M, MDM, RVU and facility edits; manual bills
        accept only RVU, a single CPT code and facility.
        """
        if not updates:
            return MutationResult.failed("No fields to update", bill_id)
        try:
            applied = await self._sources[source].update_fields(bill_id, updates)
        except Exception as exc:
            return self._failed(AuditAction.UPDATE, bill_id, source, exc)

        cached = self._find(bill_id, source)
        if cached is not None:
            for name, value in applied.items():
                setattr(cached, name, list(value) if isinstance(value, (list, tuple)) else value)
            self._remember_facilities([cached])
        log_bill_change(AuditAction.UPDATE, bill_id, source.value, details={"fields": sorted(applied)})
        return MutationResult.ok(bill_id)

    async def add_manual_bill(self, data: ManualBillInput) -> MutationResult:
        try:
            bill = await self._manual_source.create(data)
        except Exception as exc:
            return self._failed(AuditAction.CREATE, None, BillSource.MANUAL, exc)

        if matches_filters(bill, self._filters):
            self._bills = merge_bills(self._bills, [bill])
            self._remember_facilities([bill])
        log_bill_change(AuditAction.CREATE, bill.id, BillSource.MANUAL.value, details={"cpt_code": data.cpt_code})
        return MutationResult.ok(bill.id)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def metrics(self) -> BillingSummary:
        """Summary over the cached collection."""
        return summarize_bills(self._bills, self._rvu_rate)

    def data_points(self) -> list[BillingDataPoint]:
        return [to_data_point(bill) for bill in self._bills]

