"""SQLAlchemy models for patients, visit notes and the two billing tables."""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_engine.core.database import Base
from billing_engine.schemas.base import BillStatus


def _bill_status_column() -> Mapped[BillStatus]:
    return mapped_column(
        Enum(
            BillStatus,
            name="bill_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=BillStatus.PENDING,
        index=True,
    )


class Patient(Base):
    """Patient demographics used to label note-based bills."""

    __tablename__ = "patients"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mrn: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    dob: Mapped[date | None] = mapped_column(Date, nullable=True)
    facility: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes = relationship("ClinicalNote", back_populates="patient", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, name={self.name}, mrn={self.mrn})>"


class ClinicalNote(Base):
    """A generated visit note; billing records hang off it."""

    __tablename__ = "clinical_notes"

    patient_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    note_type: Mapped[str] = mapped_column(String(100), nullable=False)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient = relationship("Patient", back_populates="notes")
    billing_records = relationship(
        "BillingRecord", back_populates="note", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<ClinicalNote(id={self.id}, patient_id={self.patient_id}, note_type={self.note_type})>"


class BillingRecord(Base):
    """Billing codes derived from a visit note."""

    __tablename__ = "billing_records"

    note_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clinical_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[BillStatus] = _bill_status_column()
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    facility: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    rvu: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cpt_codes: Mapped[list[str]] = mapped_column(ARRAY(String(10)), nullable=False, default=list)
    icd10_codes: Mapped[list[str]] = mapped_column(ARRAY(String(10)), nullable=False, default=list)
    em_level: Mapped[str | None] = mapped_column(String(10), nullable=True)
    mdm_complexity: Mapped[str | None] = mapped_column(String(50), nullable=True)
    denial_risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    denial_risk_factors: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    note = relationship("ClinicalNote", back_populates="billing_records")

    def __repr__(self) -> str:
        return f"<BillingRecord(id={self.id}, note_id={self.note_id}, status={self.status})>"


class Bill(Base):
    """A manually entered bill with a single CPT code."""

    __tablename__ = "bills"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    patient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    patient_mrn: Mapped[str | None] = mapped_column(String(100), nullable=True)
    patient_dob: Mapped[date | None] = mapped_column(Date, nullable=True)
    date_of_service: Mapped[date] = mapped_column(Date, nullable=False)
    facility: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    cpt_code: Mapped[str] = mapped_column(String(10), nullable=False)
    cpt_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    modifiers: Mapped[list[str] | None] = mapped_column(ARRAY(String(10)), nullable=True)
    diagnosis: Mapped[str | None] = mapped_column(Text, nullable=True)
    rvu: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[BillStatus] = _bill_status_column()
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Bill(id={self.id}, cpt_code={self.cpt_code}, status={self.status})>"


class ProviderProfile(Base):
    """Provider attribution shown on shared (non "my bills") views."""

    __tablename__ = "provider_profiles"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    specialty: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<ProviderProfile(user_id={self.user_id}, full_name={self.full_name})>"
