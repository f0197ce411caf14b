"""Pytest configuration and fixtures for backend tests."""

import asyncio
from collections.abc import AsyncGenerator, Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from itertools import count
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from billing_engine.api.bills import get_billing_aggregator
from billing_engine.main import app
from billing_engine.schemas.base import BillSource, BillStatus
from billing_engine.services.bill_sources import (
    BillingFilters,
    BillNotFoundError,
    ManualBillInput,
    StatusUpdate,
    UnifiedBill,
)
from billing_engine.services.billing_alerts import reset_billing_alert_analyzer
from billing_engine.services.code_tables import set_code_tables
from billing_engine.services.code_validator import reset_code_validator
from billing_engine.services.denial_risk import reset_denial_risk_scorer
from billing_engine.services.hcc_mapper import reset_hcc_mapper
from billing_engine.services.mdm_resolver import reset_mdm_resolver
from billing_engine.services.unified_billing import UnifiedBillingAggregator, matches_filters


class FakeBillSource:
    """In-memory bill table implementing the bill source protocol.

    ``gate`` holds fetches until set; ``fail_with`` makes fetches raise.
    Fetches return copies so cache updates can be told apart from storage.
    """

    def __init__(self, source: BillSource, bills: list[UnifiedBill] | None = None) -> None:
        self.source = source
        self.rows: list[UnifiedBill] = list(bills or [])
        self.gate: asyncio.Event | None = None
        self.fail_with: Exception | None = None
        self.started = asyncio.Event()
        self.cancelled = False
        self.fetch_calls: list[tuple[BillingFilters, int, int]] = []
        self.status_writes = 0
        self._ids = count(1000)

    async def fetch_page(self, filters: BillingFilters, page: int, page_size: int) -> list[UnifiedBill]:
        self.fetch_calls.append((filters, page, page_size))
        self.started.set()
        gate = self.gate
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.fail_with is not None:
            raise self.fail_with

        rows = [b for b in self.rows if matches_filters(b, filters)]
        rows.sort(key=lambda b: b.id)
        rows.sort(key=lambda b: b.created_at, reverse=True)
        return [replace(b) for b in rows[page * page_size:(page + 1) * page_size]]

    def _get(self, bill_id: str) -> UnifiedBill:
        for row in self.rows:
            if row.id == bill_id:
                return row
        raise BillNotFoundError(self.source, bill_id)

    async def set_status(self, bill_id: str, status: BillStatus) -> StatusUpdate:
        row = self._get(bill_id)
        if row.status == status:
            return StatusUpdate(bill_id, status, row.submitted_at, changed=False)
        self.status_writes += 1
        row.status = status
        row.submitted_at = datetime.now(UTC) if status == BillStatus.SUBMITTED else None
        return StatusUpdate(bill_id, status, row.submitted_at, changed=True)

    async def delete(self, bill_id: str) -> None:
        self.rows.remove(self._get(bill_id))

    async def update_fields(self, bill_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        row = self._get(bill_id)
        for name, value in updates.items():
            setattr(row, name, value)
        return dict(updates)

    async def create(self, data: ManualBillInput) -> UnifiedBill:
        bill = UnifiedBill(
            id=f"m-{next(self._ids)}",
            source=self.source,
            user_id=data.user_id,
            created_at=datetime.now(UTC),
            status=BillStatus.PENDING,
            rvu=data.rvu,
            patient_name=data.patient_name,
            facility=data.facility,
            cpt_codes=[data.cpt_code],
        )
        self.rows.append(bill)
        return replace(bill)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time (a Wednesday)."""
    return datetime(2024, 6, 12, 15, 30, tzinfo=UTC)


@pytest.fixture
def make_bill() -> Callable[..., UnifiedBill]:
    """Factory for unified bills with sensible defaults."""

    def _make(
        bill_id: str,
        source: BillSource = BillSource.NOTE,
        created_at: datetime | None = None,
        **overrides: Any,
    ) -> UnifiedBill:
        fields: dict[str, Any] = {
            "user_id": "dr-1",
            "status": BillStatus.PENDING,
            "rvu": 1.5,
            "patient_name": "Jane Doe",
            "facility": "Main Clinic",
            "cpt_codes": ["99213"],
        }
        fields.update(overrides)
        return UnifiedBill(
            id=bill_id,
            source=source,
            created_at=created_at or datetime.now(UTC) - timedelta(hours=1),
            **fields,
        )

    return _make


@pytest.fixture
def note_source() -> FakeBillSource:
    return FakeBillSource(BillSource.NOTE)


@pytest.fixture
def manual_source() -> FakeBillSource:
    return FakeBillSource(BillSource.MANUAL)


@pytest.fixture
def aggregator(note_source: FakeBillSource, manual_source: FakeBillSource) -> UnifiedBillingAggregator:
    return UnifiedBillingAggregator(note_source, manual_source, page_size=2, rvu_rate=40.0)


@pytest.fixture(autouse=True)
def reset_services() -> None:
    """Give each test fresh engine singletons and default code tables."""
    set_code_tables(None)
    reset_mdm_resolver()
    reset_hcc_mapper()
    reset_billing_alert_analyzer()
    reset_denial_risk_scorer()
    reset_code_validator()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client without database mocking.

    Use this for endpoints that don't require database access.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def client_with_fake_sources(
    note_source: FakeBillSource,
    manual_source: FakeBillSource,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client whose bill endpoints read in-memory sources.

    This allows testing the bills API without a real database.
    """

    def override_get_billing_aggregator() -> UnifiedBillingAggregator:
        return UnifiedBillingAggregator(note_source, manual_source, page_size=2, rvu_rate=40.0)

    app.dependency_overrides[get_billing_aggregator] = override_get_billing_aggregator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()
