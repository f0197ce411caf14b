"""Tests for the unified billing aggregator."""

import asyncio
from datetime import UTC, date, datetime, timedelta

import pytest

from billing_engine.schemas.base import BillSource, BillStatus
from billing_engine.services.bill_sources import BillingFilters, ManualBillInput
from billing_engine.services.unified_billing import (
    BillingFetchError,
    MutationResult,
    UnifiedBillingAggregator,
    matches_filters,
    merge_bills,
    summarize_bills,
    to_data_point,
)

T0 = datetime(2024, 6, 12, 12, tzinfo=UTC)


def manual_input(**overrides) -> ManualBillInput:
    fields = {
        "user_id": "dr-1",
        "patient_name": "John Roe",
        "date_of_service": date(2024, 6, 12),
        "cpt_code": "99213",
        "rvu": 1.3,
        "facility": "North Campus",
    }
    fields.update(overrides)
    return ManualBillInput(**fields)


# ============================================================================
# Merge / Filter Helper Tests
# ============================================================================


class TestMergeBills:
    """Tests for merge ordering."""

    def test_newest_first(self, make_bill):
        older = make_bill("a", created_at=T0 - timedelta(hours=1))
        newer = make_bill("b", BillSource.MANUAL, created_at=T0)
        assert [b.id for b in merge_bills([older], [newer])] == ["b", "a"]

    def test_ties_put_note_before_manual(self, make_bill):
        manual = make_bill("1", BillSource.MANUAL, created_at=T0)
        note = make_bill("9", BillSource.NOTE, created_at=T0)
        merged = merge_bills([manual], [note])
        assert [b.source for b in merged] == [BillSource.NOTE, BillSource.MANUAL]

    def test_ties_within_source_by_id(self, make_bill):
        bills = [make_bill(i, created_at=T0) for i in ("c", "a", "b")]
        assert [b.id for b in merge_bills(bills)] == ["a", "b", "c"]

    def test_merge_is_deterministic(self, make_bill):
        notes = [make_bill(f"n{i}", created_at=T0 - timedelta(minutes=i % 3)) for i in range(6)]
        manuals = [make_bill(f"m{i}", BillSource.MANUAL, created_at=T0 - timedelta(minutes=i % 2)) for i in range(4)]
        first = [b.key for b in merge_bills(notes, manuals)]
        second = [b.key for b in merge_bills(list(reversed(manuals)), list(reversed(notes)))]
        assert first == second


class TestMatchesFilters:
    """Tests for client-side filter matching."""

    def test_no_filters(self, make_bill):
        assert matches_filters(make_bill("a"), BillingFilters())

    def test_source_filter(self, make_bill):
        bill = make_bill("a", BillSource.MANUAL)
        assert not matches_filters(bill, BillingFilters(source=BillSource.NOTE))

    def test_end_date_inclusive(self, make_bill):
        bill = make_bill("a", created_at=datetime(2024, 6, 12, 23, 59, tzinfo=UTC))
        assert matches_filters(bill, BillingFilters(end_date=date(2024, 6, 12)))
        assert not matches_filters(bill, BillingFilters(end_date=date(2024, 6, 11)))

    def test_status_facility_and_user(self, make_bill):
        bill = make_bill("a", status=BillStatus.SUBMITTED, facility="Main Clinic", user_id="dr-2")
        assert matches_filters(bill, BillingFilters(status=BillStatus.SUBMITTED, facility="Main Clinic"))
        assert not matches_filters(bill, BillingFilters(status=BillStatus.PENDING))
        assert not matches_filters(bill, BillingFilters(user_id="dr-1"))


class TestSummaries:
    """Tests for summaries and data points."""

    def test_summarize(self, make_bill):
        bills = [
            make_bill("a", rvu=2.0, status=BillStatus.SUBMITTED),
            make_bill("b", rvu=1.0),
        ]
        summary = summarize_bills(bills, rvu_rate=40.0)
        assert summary.total_bills == 2
        assert summary.total_rvu == 3.0
        assert summary.estimated_revenue == 120.0
        assert summary.submission_rate == 50.0
        assert summary.avg_rvu_per_bill == 1.5

    def test_summarize_empty(self):
        summary = summarize_bills([], rvu_rate=40.0)
        assert summary.submission_rate == 0.0
        assert summary.avg_rvu_per_bill == 0.0

    def test_to_data_point(self, make_bill):
        bill = make_bill("a", BillSource.MANUAL, created_at=T0, cpt_codes=["99214"])
        data_point = to_data_point(bill)
        assert data_point.type == BillSource.MANUAL
        assert data_point.date == T0
        assert data_point.cpt_codes == ("99214",)


# ============================================================================
# Read Tests
# ============================================================================


class TestFetchPage:
    """Tests for concurrent page fetches."""

    async def test_merges_both_sources(self, aggregator, note_source, manual_source, make_bill):
        note_source.rows = [make_bill("n1", created_at=T0 - timedelta(hours=2))]
        manual_source.rows = [make_bill("m1", BillSource.MANUAL, created_at=T0)]
        page = await aggregator.fetch_page(BillingFilters())
        assert [b.id for b in page.bills] == ["m1", "n1"]
        assert page.has_more is False

    async def test_has_more_when_any_source_is_full(self, aggregator, note_source, manual_source, make_bill):
        note_source.rows = [make_bill(f"n{i}", created_at=T0 - timedelta(hours=i)) for i in range(2)]
        manual_source.rows = [make_bill("m1", BillSource.MANUAL, created_at=T0)]
        page = await aggregator.fetch_page(BillingFilters())
        assert page.has_more is True

    async def test_source_filter_skips_other_source(self, aggregator, note_source, manual_source, make_bill):
        manual_source.rows = [make_bill("m1", BillSource.MANUAL)]
        page = await aggregator.fetch_page(BillingFilters(source=BillSource.MANUAL))
        assert [b.id for b in page.bills] == ["m1"]
        assert note_source.fetch_calls == []

    async def test_page_size_passed_to_sources(self, aggregator, note_source, manual_source):
        await aggregator.fetch_page(BillingFilters(), page=3)
        assert note_source.fetch_calls[0][1:] == (3, 2)
        assert manual_source.fetch_calls[0][1:] == (3, 2)

    async def test_failure_fails_whole_page(self, aggregator, note_source, manual_source, make_bill):
        note_source.rows = [make_bill("n1")]
        note_source.gate = asyncio.Event()
        manual_source.fail_with = RuntimeError("connection reset")

        with pytest.raises(BillingFetchError) as exc_info:
            await aggregator.fetch_page(BillingFilters())

        assert exc_info.value.source == BillSource.MANUAL
        assert "connection reset" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert note_source.cancelled is True


class TestRefreshAndLoadMore:
    """Tests for cached pagination."""

    @pytest.fixture
    def seeded(self, note_source, manual_source, make_bill):
        note_source.rows = [make_bill(f"n{i}", created_at=T0 - timedelta(hours=2 * i)) for i in range(3)]
        manual_source.rows = [
            make_bill(f"m{i}", BillSource.MANUAL, created_at=T0 - timedelta(hours=2 * i + 1), facility="North Campus")
            for i in range(2)
        ]

    async def test_refresh_replaces_cache(self, aggregator, seeded):
        page = await aggregator.refresh(BillingFilters())
        assert page is not None
        assert [b.id for b in aggregator.bills] == ["n0", "m0", "n1", "m1"]
        assert aggregator.has_more is True
        assert aggregator.page == 0
        assert aggregator.facilities == ["Main Clinic", "North Campus"]

    async def test_load_more_appends(self, aggregator, seeded):
        await aggregator.refresh(BillingFilters())
        page = await aggregator.load_more()
        assert [b.id for b in page.bills] == ["n2"]
        assert [b.id for b in aggregator.bills] == ["n0", "m0", "n1", "m1", "n2"]
        assert aggregator.page == 1
        assert aggregator.has_more is False

    async def test_load_more_when_exhausted(self, aggregator, seeded, note_source):
        await aggregator.refresh(BillingFilters())
        await aggregator.load_more()
        calls = len(note_source.fetch_calls)
        page = await aggregator.load_more()
        assert page.bills == []
        assert len(note_source.fetch_calls) == calls

    async def test_load_more_skips_rows_already_cached(self, aggregator, seeded, manual_source, make_bill):
        await aggregator.refresh(BillingFilters())
        # A new manual bill shifts the offset so m1 comes back on page 1
        manual_source.rows.append(make_bill("m9", BillSource.MANUAL, created_at=T0 + timedelta(hours=1)))
        await aggregator.load_more()
        keys = [b.key for b in aggregator.bills]
        assert len(keys) == len(set(keys))

    async def test_load_all(self, aggregator, seeded):
        bills = await aggregator.load_all(BillingFilters())
        assert len(bills) == 5
        assert aggregator.has_more is False

    async def test_load_all_respects_max_pages(self, aggregator, seeded):
        bills = await aggregator.load_all(BillingFilters(), max_pages=1)
        assert len(bills) == 4
        assert aggregator.has_more is True

    async def test_superseded_refresh_is_discarded(self, aggregator, note_source, manual_source, make_bill):
        note_source.rows = [
            make_bill("n-main", facility="Main Clinic"),
            make_bill("n-north", facility="North Campus"),
        ]
        gate = asyncio.Event()
        note_source.gate = gate

        first = asyncio.create_task(aggregator.refresh(BillingFilters(facility="Main Clinic")))
        await note_source.started.wait()

        note_source.gate = None
        second = await aggregator.refresh(BillingFilters(facility="North Campus"))

        assert await first is None
        assert [b.id for b in second.bills] == ["n-north"]
        assert [b.id for b in aggregator.bills] == ["n-north"]
        assert aggregator.filters.facility == "North Campus"
        assert note_source.cancelled is True

    async def test_failed_refresh_keeps_cache(self, aggregator, seeded, manual_source):
        await aggregator.refresh(BillingFilters())
        manual_source.fail_with = RuntimeError("timeout")
        with pytest.raises(BillingFetchError):
            await aggregator.refresh(BillingFilters())
        assert len(aggregator.bills) == 4


# ============================================================================
# Write Tests
# ============================================================================


class TestMutations:
    """Tests for status changes, edits, deletes and creates."""

    @pytest.fixture
    async def loaded(self, aggregator, note_source, manual_source, make_bill):
        note_source.rows = [make_bill("n1", created_at=T0, icd10_codes=["E11.65"])]
        manual_source.rows = [make_bill("m1", BillSource.MANUAL, created_at=T0 - timedelta(hours=1))]
        await aggregator.refresh(BillingFilters())
        return aggregator

    async def test_mark_as_submitted_patches_cache(self, loaded, note_source):
        result = await loaded.mark_as_submitted("n1", BillSource.NOTE)
        assert result == MutationResult.ok("n1")
        cached = loaded.bills[0]
        assert cached.status == BillStatus.SUBMITTED
        assert cached.submitted_at is not None
        assert note_source.rows[0].status == BillStatus.SUBMITTED

    async def test_submit_is_idempotent(self, loaded, note_source):
        await loaded.mark_as_submitted("n1", BillSource.NOTE)
        submitted_at = note_source.rows[0].submitted_at
        again = await loaded.mark_as_submitted("n1", BillSource.NOTE)
        assert again.success
        assert note_source.status_writes == 1
        assert note_source.rows[0].submitted_at == submitted_at

    async def test_back_to_pending_clears_submitted_at(self, loaded):
        await loaded.mark_as_submitted("m1", BillSource.MANUAL)
        await loaded.update_status("m1", BillSource.MANUAL, BillStatus.PENDING)
        cached = next(b for b in loaded.bills if b.id == "m1")
        assert cached.status == BillStatus.PENDING
        assert cached.submitted_at is None

    async def test_writes_go_to_named_source(self, loaded, note_source, manual_source):
        await loaded.mark_as_submitted("m1", BillSource.MANUAL)
        assert manual_source.status_writes == 1
        assert note_source.status_writes == 0

    async def test_missing_bill_fails_without_raising(self, loaded):
        result = await loaded.mark_as_submitted("m1", BillSource.NOTE)
        assert result.success is False
        assert "not found" in result.error

    async def test_failed_write_is_audited(self, loaded, caplog):
        with caplog.at_level("WARNING", logger="audit"):
            await loaded.delete_bill("nope", BillSource.MANUAL)
        assert any("success=False" in r.getMessage() for r in caplog.records)

    async def test_delete_removes_from_cache(self, loaded, manual_source):
        result = await loaded.delete_bill("m1", BillSource.MANUAL)
        assert result.success
        assert [b.id for b in loaded.bills] == ["n1"]
        assert manual_source.rows == []

    async def test_update_bill_patches_cache(self, loaded):
        result = await loaded.update_bill("n1", BillSource.NOTE, {"icd10_codes": ["I50.22"], "rvu": 2.5})
        assert result.success
        cached = loaded.bills[0]
        assert cached.icd10_codes == ["I50.22"]
        assert cached.rvu == 2.5

    async def test_update_bill_requires_fields(self, loaded):
        result = await loaded.update_bill("n1", BillSource.NOTE, {})
        assert result == MutationResult.failed("No fields to update", "n1")

    async def test_add_manual_bill(self, loaded, manual_source):
        result = await loaded.add_manual_bill(manual_input())
        assert result.success
        assert result.bill_id in {b.id for b in loaded.bills}
        assert loaded.bills[0].id == result.bill_id
        assert "North Campus" in loaded.facilities
        assert len(manual_source.rows) == 2

    async def test_add_manual_bill_outside_filters(self, aggregator, make_bill):
        await aggregator.refresh(BillingFilters(source=BillSource.NOTE))
        result = await aggregator.add_manual_bill(manual_input())
        assert result.success
        assert aggregator.bills == []

    async def test_add_manual_bill_failure(self, loaded, manual_source):
        async def broken(data):
            raise RuntimeError("insert failed")

        manual_source.create = broken
        result = await loaded.add_manual_bill(manual_input())
        assert result == MutationResult.failed("insert failed")

    async def test_metrics_and_data_points(self, loaded):
        await loaded.mark_as_submitted("n1", BillSource.NOTE)
        metrics = loaded.metrics()
        assert metrics.total_bills == 2
        assert metrics.submitted_count == 1
        assert metrics.estimated_revenue == pytest.approx(120.0)
        assert [p.id for p in loaded.data_points()] == ["n1", "m1"]


class TestDefaults:
    """Tests for settings-driven defaults."""

    def test_page_size_and_rate_from_settings(self, note_source, manual_source):
        aggregator = UnifiedBillingAggregator(note_source, manual_source)
        assert aggregator.page_size == 50
        assert aggregator.rvu_rate == 40.0
