"""Billing Analytics.

Dashboard metrics derived from billed encounters:

- Summary metrics (RVU, revenue, submission rate, period-over-period change)
- RVU time series by day, week or month
- Status and source distributions
- Top CPT codes
- Per-facility rollups

All functions are pure over a list of ``BillingDataPoint`` and take an explicit
``now`` so results are reproducible.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
import logging

from billing_engine.core.config import settings
from billing_engine.schemas.base import BillSource, BillStatus, Granularity, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_RVU_RATE = 40.0  # $ per RVU estimate

# Look-back in days per range; "all" uses the values below for comparison and charting
TIME_RANGE_DAYS: dict[TimeRange, int | None] = {
    TimeRange.LAST_7_DAYS: 7,
    TimeRange.LAST_30_DAYS: 30,
    TimeRange.LAST_90_DAYS: 90,
    TimeRange.ALL: None,
}
ALL_TIME_COMPARISON_DAYS = 365
ALL_TIME_SERIES_DAYS = 180

TOP_CPT_LIMIT = 5
UNASSIGNED_FACILITY = "Unassigned"


@dataclass(frozen=True)
class BillingDataPoint:
    """One bill, flattened for analytics."""

    id: str
    date: datetime
    rvu: float
    status: BillStatus
    type: BillSource
    cpt_codes: tuple[str, ...] = ()
    facility: str | None = None


@dataclass
class BillingMetrics:
    total_rvu: float = 0.0
    total_revenue: float = 0.0
    submitted_count: int = 0
    pending_count: int = 0
    submission_rate: float = 0.0  # Percent
    rvu_change: float = 0.0  # Percent vs previous period
    total_bills: int = 0
    avg_rvu_per_bill: float = 0.0


@dataclass
class TimeSeriesPoint:
    bucket_start: datetime
    label: str
    rvu: float = 0.0
    revenue: float = 0.0
    submitted: int = 0
    pending: int = 0
    total: int = 0


@dataclass
class DistributionSlice:
    name: str
    value: int


@dataclass
class CptCodeStats:
    code: str
    count: int = 0
    rvu: float = 0.0


@dataclass
class FacilityStats:
    name: str
    count: int = 0
    rvu: float = 0.0
    submitted: int = 0
    pending: int = 0
    revenue: float = 0.0
    submission_rate: float = 0.0
    avg_rvu: float = 0.0


@dataclass
class BillingAnalyticsReport:
    """Everything the billing dashboard renders for one range/granularity."""

    time_range: TimeRange
    granularity: Granularity
    metrics: BillingMetrics
    time_series: list[TimeSeriesPoint] = field(default_factory=list)
    status_distribution: list[DistributionSlice] = field(default_factory=list)
    source_distribution: list[DistributionSlice] = field(default_factory=list)
    top_cpt_codes: list[CptCodeStats] = field(default_factory=list)
    facilities: list[FacilityStats] = field(default_factory=list)


# ============================================================================
# Date helpers
# ============================================================================


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(value: datetime) -> datetime:
    """Sunday on or before ``value``, at midnight."""
    days_since_sunday = (value.weekday() + 1) % 7
    return start_of_day(value - timedelta(days=days_since_sunday))


def start_of_month(value: datetime) -> datetime:
    return start_of_day(value).replace(day=1)


def _next_month(value: datetime) -> datetime:
    if value.month == 12:
        return value.replace(year=value.year + 1, month=1)
    return value.replace(month=value.month + 1)


def _bucket_starts(start: datetime, end: datetime, granularity: Granularity) -> list[datetime]:
    if granularity == Granularity.DAILY:
        current, step = start_of_day(start), lambda d: d + timedelta(days=1)
    elif granularity == Granularity.WEEKLY:
        current, step = start_of_week(start), lambda d: d + timedelta(weeks=1)
    else:
        current, step = start_of_month(start), _next_month

    starts = []
    while current <= end:
        starts.append(current)
        current = step(current)
    return starts


def _bucket_label(bucket_start: datetime, granularity: Granularity) -> str:
    if granularity == Granularity.MONTHLY:
        return f"{bucket_start:%b %Y}"
    return f"{bucket_start:%b} {bucket_start.day}"


def _resolve_now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


# ============================================================================
# Metrics
# ============================================================================


def filter_by_time_range(
    points: Iterable[BillingDataPoint],
    time_range: TimeRange,
    now: datetime | None = None,
) -> list[BillingDataPoint]:
    """Keep points on or after midnight N days ago; ``all`` keeps everything."""
    days = TIME_RANGE_DAYS[time_range]
    if days is None:
        return list(points)
    cutoff = start_of_day(_resolve_now(now) - timedelta(days=days))
    return [p for p in points if p.date >= cutoff]


def compute_metrics(
    points: Sequence[BillingDataPoint],
    time_range: TimeRange,
    now: datetime | None = None,
    rvu_rate: float = DEFAULT_RVU_RATE,
) -> BillingMetrics:
    """Summary metrics for the range, with change vs the preceding window."""
    now = _resolve_now(now)
    current = filter_by_time_range(points, time_range, now)

    total_rvu = sum(p.rvu for p in current)
    submitted = sum(1 for p in current if p.status == BillStatus.SUBMITTED)
    pending = sum(1 for p in current if p.status == BillStatus.PENDING)

    days = TIME_RANGE_DAYS[time_range] or ALL_TIME_COMPARISON_DAYS
    prev_start = start_of_day(now - timedelta(days=days * 2))
    prev_end = start_of_day(now - timedelta(days=days))
    prev_rvu = sum(p.rvu for p in points if prev_start <= p.date < prev_end)

    count = len(current)
    return BillingMetrics(
        total_rvu=total_rvu,
        total_revenue=total_rvu * rvu_rate,
        submitted_count=submitted,
        pending_count=pending,
        submission_rate=(submitted / count) * 100 if count else 0.0,
        rvu_change=((total_rvu - prev_rvu) / prev_rvu) * 100 if prev_rvu > 0 else 0.0,
        total_bills=count,
        avg_rvu_per_bill=total_rvu / count if count else 0.0,
    )


def build_time_series(
    points: Sequence[BillingDataPoint],
    time_range: TimeRange,
    granularity: Granularity,
    now: datetime | None = None,
    rvu_rate: float = DEFAULT_RVU_RATE,
) -> list[TimeSeriesPoint]:
    """Bucket points into contiguous periods from the window start up to ``now``.

    Buckets are half-open ``[start, next_start)``; the final bucket closes at
    ``now`` inclusive. Weeks start on Sunday.
    """
    now = _resolve_now(now)
    current = filter_by_time_range(points, time_range, now)
    if not current:
        return []

    days = TIME_RANGE_DAYS[time_range] or ALL_TIME_SERIES_DAYS
    starts = _bucket_starts(start_of_day(now - timedelta(days=days)), now, granularity)

    series = []
    for index, bucket_start in enumerate(starts):
        is_last = index == len(starts) - 1
        if is_last:
            in_bucket = [p for p in current if bucket_start <= p.date <= now]
        else:
            bucket_end = starts[index + 1]
            in_bucket = [p for p in current if bucket_start <= p.date < bucket_end]

        rvu = sum(p.rvu for p in in_bucket)
        series.append(
            TimeSeriesPoint(
                bucket_start=bucket_start,
                label=_bucket_label(bucket_start, granularity),
                rvu=round(rvu, 2),
                revenue=round(rvu * rvu_rate),
                submitted=sum(1 for p in in_bucket if p.status == BillStatus.SUBMITTED),
                pending=sum(1 for p in in_bucket if p.status == BillStatus.PENDING),
                total=len(in_bucket),
            )
        )
    return series


def status_distribution(points: Sequence[BillingDataPoint]) -> list[DistributionSlice]:
    slices = [
        DistributionSlice("Submitted", sum(1 for p in points if p.status == BillStatus.SUBMITTED)),
        DistributionSlice("Pending", sum(1 for p in points if p.status == BillStatus.PENDING)),
    ]
    return [s for s in slices if s.value > 0]


def source_distribution(points: Sequence[BillingDataPoint]) -> list[DistributionSlice]:
    slices = [
        DistributionSlice("Note-Based", sum(1 for p in points if p.type == BillSource.NOTE)),
        DistributionSlice("Manual", sum(1 for p in points if p.type == BillSource.MANUAL)),
    ]
    return [s for s in slices if s.value > 0]


def top_cpt_codes(points: Sequence[BillingDataPoint], limit: int = TOP_CPT_LIMIT) -> list[CptCodeStats]:
    """Most frequent CPT codes; a bill's RVU is split evenly across its codes."""
    stats: dict[str, CptCodeStats] = {}
    for point in points:
        for code in point.cpt_codes:
            entry = stats.setdefault(code, CptCodeStats(code=code))
            entry.count += 1
            entry.rvu += point.rvu / len(point.cpt_codes)
    return sorted(stats.values(), key=lambda s: s.count, reverse=True)[:limit]


def facility_rollups(
    points: Sequence[BillingDataPoint],
    rvu_rate: float = DEFAULT_RVU_RATE,
) -> list[FacilityStats]:
    """Per-facility totals, highest RVU first."""
    stats: dict[str, FacilityStats] = {}
    for point in points:
        name = point.facility or UNASSIGNED_FACILITY
        entry = stats.setdefault(name, FacilityStats(name=name))
        entry.count += 1
        entry.rvu += point.rvu
        entry.revenue += point.rvu * rvu_rate
        if point.status == BillStatus.SUBMITTED:
            entry.submitted += 1
        else:
            entry.pending += 1

    for entry in stats.values():
        entry.submission_rate = (entry.submitted / entry.count) * 100
        entry.avg_rvu = entry.rvu / entry.count
    return sorted(stats.values(), key=lambda s: s.rvu, reverse=True)


# ============================================================================
# Service
# ============================================================================


class BillingAnalyticsService:
    """Builds the billing dashboard report."""

    def __init__(self, rvu_rate: float | None = None) -> None:
        self._rvu_rate = settings.rvu_rate if rvu_rate is None else rvu_rate

    @property
    def rvu_rate(self) -> float:
        return self._rvu_rate

    def analyze(
        self,
        points: Sequence[BillingDataPoint],
        time_range: TimeRange = TimeRange.LAST_30_DAYS,
        granularity: Granularity = Granularity.DAILY,
        now: datetime | None = None,
    ) -> BillingAnalyticsReport:
        now = _resolve_now(now)
        current = filter_by_time_range(points, time_range, now)
        report = BillingAnalyticsReport(
            time_range=time_range,
            granularity=granularity,
            metrics=compute_metrics(points, time_range, now, self._rvu_rate),
            time_series=build_time_series(points, time_range, granularity, now, self._rvu_rate),
            status_distribution=status_distribution(current),
            source_distribution=source_distribution(current),
            top_cpt_codes=top_cpt_codes(current),
            facilities=facility_rollups(current, self._rvu_rate),
        )
        logger.debug(
            f"Billing analytics {time_range.value}/{granularity.value}: "
            f"{report.metrics.total_bills} bills, {len(report.time_series)} buckets"
        )
        return report
