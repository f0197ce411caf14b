"""Bill Sources.

Database adapters for the two tables a unified bill can come from:

- ``billing_records``: codes derived from a visit note, joined to
  ``clinical_notes`` and ``patients`` for display fields
- ``bills``: manually entered bills with a single CPT code

Each adapter opens its own session from the session factory, so the
aggregator can read both tables concurrently. Filters are pushed down into
the SQL query; pagination is ``OFFSET page * size LIMIT size`` on
``created_at DESC, id``.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
import logging
from typing import Any, Protocol

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_engine.models.billing import Bill, BillingRecord, ClinicalNote, Patient, ProviderProfile
from billing_engine.schemas.base import BillSource, BillStatus

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

NOTE_EDITABLE_FIELDS = frozenset(
    {"icd10_codes", "cpt_codes", "em_level", "mdm_complexity", "rvu", "facility"}
)
MANUAL_EDITABLE_FIELDS = frozenset({"rvu", "cpt_codes", "facility"})


# ============================================================================
# Errors
# ============================================================================


class BillSourceError(Exception):
    """Base error raised by a bill source."""

    def __init__(self, source: BillSource, message: str) -> None:
        self.source = source
        super().__init__(message)


class BillNotFoundError(BillSourceError):
    def __init__(self, source: BillSource, bill_id: str) -> None:
        self.bill_id = bill_id
        super().__init__(source, f"{source.value} bill {bill_id} not found")


class BillUpdateNotAllowedError(BillSourceError):
    """Raised when an edit touches fields the source does not allow."""


# ============================================================================
# Data types
# ============================================================================


@dataclass
class BillingFilters:
    """Filters pushed down into each source query. None means no filter."""

    start_date: date | None = None
    end_date: date | None = None  # Inclusive
    status: BillStatus | None = None
    facility: str | None = None
    source: BillSource | None = None
    user_id: str | None = None  # Restrict to one provider ("my bills")

    def includes(self, source: BillSource) -> bool:
        return self.source is None or self.source == source


@dataclass
class UnifiedBill:
    """A bill from either source, normalized to one shape.

    ``id`` is only unique within ``source``; use ``key`` across sources.
    """

    id: str
    source: BillSource
    user_id: str
    created_at: datetime
    status: BillStatus
    rvu: float
    patient_name: str
    submitted_at: datetime | None = None
    facility: str | None = None
    patient_mrn: str | None = None
    patient_dob: date | None = None
    cpt_codes: list[str] = field(default_factory=list)
    cpt_description: str | None = None
    icd10_codes: list[str] = field(default_factory=list)
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

    @property
    def key(self) -> tuple[str, BillSource]:
        return (self.id, self.source)


@dataclass
class ManualBillInput:
    """Fields for a new manual bill."""

    user_id: str
    patient_name: str
    date_of_service: date
    cpt_code: str
    rvu: float
    patient_mrn: str | None = None
    patient_dob: date | None = None
    facility: str | None = None
    cpt_description: str | None = None
    modifiers: list[str] | None = None
    diagnosis: str | None = None

    def __post_init__(self) -> None:
        if not self.patient_name.strip():
            raise ValueError("patient_name is required")
        if not self.cpt_code.strip():
            raise ValueError("cpt_code is required")
        if self.rvu < 0:
            raise ValueError(f"rvu must be >= 0, got {self.rvu}")


@dataclass(frozen=True)
class StatusUpdate:
    """Outcome of a status write."""

    bill_id: str
    status: BillStatus
    submitted_at: datetime | None
    changed: bool


class BillSourceRepository(Protocol):
    """Read/write access to one underlying bill table."""

    source: BillSource

    async def fetch_page(self, filters: BillingFilters, page: int, page_size: int) -> list[UnifiedBill]: ...

    async def set_status(self, bill_id: str, status: BillStatus) -> StatusUpdate: ...

    async def delete(self, bill_id: str) -> None: ...

    async def update_fields(self, bill_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...


# ============================================================================
# Query helpers
# ============================================================================


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def apply_filters(stmt: Select, model: type[BillingRecord] | type[Bill], filters: BillingFilters) -> Select:
    """Push the filters down as WHERE clauses on ``model``."""
    if filters.user_id:
        stmt = stmt.where(model.user_id == filters.user_id)
    if filters.status is not None:
        stmt = stmt.where(model.status == filters.status)
    if filters.facility:
        stmt = stmt.where(model.facility == filters.facility)
    if filters.start_date:
        stmt = stmt.where(model.created_at >= _day_start(filters.start_date))
    if filters.end_date:
        # End date is inclusive through the end of that day
        stmt = stmt.where(model.created_at < _day_start(filters.end_date + timedelta(days=1)))
    return stmt


def paginate(stmt: Select, model: type[BillingRecord] | type[Bill], page: int, page_size: int) -> Select:
    if page < 0 or page_size <= 0:
        raise ValueError(f"invalid page {page} / page_size {page_size}")
    return stmt.order_by(model.created_at.desc(), model.id).offset(page * page_size).limit(page_size)


async def _attach_providers(session: AsyncSession, bills: list[UnifiedBill]) -> None:
    user_ids = sorted({b.user_id for b in bills})
    if not user_ids:
        return
    result = await session.execute(select(ProviderProfile).where(ProviderProfile.user_id.in_(user_ids)))
    profiles = {p.user_id: p for p in result.scalars().all()}
    for bill in bills:
        profile = profiles.get(bill.user_id)
        bill.provider_name = (profile.full_name if profile else None) or UNKNOWN
        bill.provider_specialty = (profile.specialty if profile else None) or UNKNOWN


class _SqlBillSource:
    """Shared write paths for both tables."""

    source: BillSource
    model: type[BillingRecord] | type[Bill]
    editable_fields: frozenset[str]

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _get(self, session: AsyncSession, bill_id: str) -> BillingRecord | Bill:
        row = await session.get(self.model, bill_id)
        if row is None:
            raise BillNotFoundError(self.source, bill_id)
        return row

    async def set_status(self, bill_id: str, status: BillStatus) -> StatusUpdate:
        """Set status; re-applying the current status is a no-op."""
        async with self._session_factory() as session:
            row = await self._get(session, bill_id)
            if row.status == status:
                return StatusUpdate(bill_id, status, row.submitted_at, changed=False)

            row.status = status
            row.submitted_at = datetime.now(UTC) if status == BillStatus.SUBMITTED else None
            await session.commit()
            logger.info(f"{self.source.value} bill {bill_id} status -> {status.value}")
            return StatusUpdate(bill_id, status, row.submitted_at, changed=True)

    async def delete(self, bill_id: str) -> None:
        async with self._session_factory() as session:
            row = await self._get(session, bill_id)
            await session.delete(row)
            await session.commit()
            logger.info(f"Deleted {self.source.value} bill {bill_id}")

    def _check_fields(self, updates: dict[str, Any]) -> None:
        disallowed = sorted(set(updates) - self.editable_fields)
        if disallowed:
            raise BillUpdateNotAllowedError(
                self.source,
                f"{self.source.value} bills cannot edit: {', '.join(disallowed)}",
            )
        if "rvu" in updates and (updates["rvu"] is None or updates["rvu"] < 0):
            raise BillUpdateNotAllowedError(self.source, f"rvu must be >= 0, got {updates['rvu']}")

    def _column_updates(self, updates: dict[str, Any]) -> dict[str, Any]:
        return dict(updates)

    async def update_fields(self, bill_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        """Apply field edits and return them as applied to the unified bill."""
        self._check_fields(updates)
        async with self._session_factory() as session:
            row = await self._get(session, bill_id)
            for column, value in self._column_updates(updates).items():
                setattr(row, column, value)
            await session.commit()
        logger.info(f"Updated {self.source.value} bill {bill_id}: {sorted(updates)}")
        return dict(updates)


# ============================================================================
# Note-based billing records
# ============================================================================


def note_row_to_bill(record: BillingRecord, note: ClinicalNote | None, patient: Patient | None) -> UnifiedBill:
    return UnifiedBill(
        id=str(record.id),
        source=BillSource.NOTE,
        user_id=record.user_id,
        created_at=record.created_at,
        status=record.status or BillStatus.PENDING,
        submitted_at=record.submitted_at,
        facility=record.facility or (patient.facility if patient else None),
        rvu=record.rvu or 0.0,
        patient_name=(patient.name if patient else None) or UNKNOWN,
        patient_mrn=patient.mrn if patient else None,
        patient_dob=patient.dob if patient else None,
        cpt_codes=list(record.cpt_codes or []),
        icd10_codes=list(record.icd10_codes or []),
        em_level=record.em_level,
        mdm_complexity=record.mdm_complexity,
        denial_risk_score=record.denial_risk_score,
        denial_risk_factors=record.denial_risk_factors,
        note_id=str(record.note_id),
        note_type=note.note_type if note else None,
        note_date=note.created_at if note else None,
    )


class NoteBillingRecordRepository(_SqlBillSource):
    """Bills generated from visit notes."""

    source = BillSource.NOTE
    model = BillingRecord
    editable_fields = NOTE_EDITABLE_FIELDS

    async def fetch_page(self, filters: BillingFilters, page: int, page_size: int) -> list[UnifiedBill]:
        stmt = (
            select(BillingRecord, ClinicalNote, Patient)
            .join(ClinicalNote, BillingRecord.note_id == ClinicalNote.id)
            .outerjoin(Patient, ClinicalNote.patient_id == Patient.id)
        )
        stmt = paginate(apply_filters(stmt, BillingRecord, filters), BillingRecord, page, page_size)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            bills = [note_row_to_bill(record, note, patient) for record, note, patient in result.all()]
            if filters.user_id is None:
                await _attach_providers(session, bills)

        logger.debug(f"Fetched {len(bills)} note billing records (page {page})")
        return bills


# ============================================================================
# Manual bills
# ============================================================================


def manual_row_to_bill(bill: Bill) -> UnifiedBill:
    return UnifiedBill(
        id=str(bill.id),
        source=BillSource.MANUAL,
        user_id=bill.user_id,
        created_at=bill.created_at,
        status=bill.status or BillStatus.PENDING,
        submitted_at=bill.submitted_at,
        facility=bill.facility,
        rvu=bill.rvu or 0.0,
        patient_name=bill.patient_name,
        patient_mrn=bill.patient_mrn,
        patient_dob=bill.patient_dob,
        cpt_codes=[bill.cpt_code],
        cpt_description=bill.cpt_description,
        modifiers=list(bill.modifiers) if bill.modifiers is not None else None,
        diagnosis=bill.diagnosis,
    )


class ManualBillRepository(_SqlBillSource):
    """Manually entered bills."""

    source = BillSource.MANUAL
    model = Bill
    editable_fields = MANUAL_EDITABLE_FIELDS

    async def fetch_page(self, filters: BillingFilters, page: int, page_size: int) -> list[UnifiedBill]:
        stmt = paginate(apply_filters(select(Bill), Bill, filters), Bill, page, page_size)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            bills = [manual_row_to_bill(row) for row in result.scalars().all()]
            if filters.user_id is None:
                await _attach_providers(session, bills)

        logger.debug(f"Fetched {len(bills)} manual bills (page {page})")
        return bills

    def _check_fields(self, updates: dict[str, Any]) -> None:
        super()._check_fields(updates)
        if "cpt_codes" in updates:
            codes = updates["cpt_codes"] or []
            if len(codes) != 1 or not str(codes[0]).strip():
                raise BillUpdateNotAllowedError(
                    self.source, "manual bills carry exactly one CPT code"
                )

    def _column_updates(self, updates: dict[str, Any]) -> dict[str, Any]:
        columns = dict(updates)
        if "cpt_codes" in columns:
            columns["cpt_code"] = columns.pop("cpt_codes")[0]
        return columns

    async def create(self, data: ManualBillInput) -> UnifiedBill:
        """Insert a new pending manual bill."""
        bill = Bill(
            user_id=data.user_id,
            patient_name=data.patient_name,
            patient_mrn=data.patient_mrn,
            patient_dob=data.patient_dob,
            date_of_service=data.date_of_service,
            facility=data.facility,
            cpt_code=data.cpt_code,
            cpt_description=data.cpt_description,
            modifiers=data.modifiers,
            diagnosis=data.diagnosis,
            rvu=data.rvu,
            status=BillStatus.PENDING,
        )
        async with self._session_factory() as session:
            session.add(bill)
            await session.commit()
            await session.refresh(bill)

        logger.info(f"Created manual bill {bill.id} ({bill.cpt_code})")
        return manual_row_to_bill(bill)
