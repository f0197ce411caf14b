"""SQLAlchemy ORM models for the billing engine.

All models inherit from Base which provides:
- id: UUID primary key
- created_at: Timestamp

Models:
- Patient, ClinicalNote (visit context for note-based bills)
- BillingRecord (codes derived from a note)
- Bill (manually entered bill)
- ProviderProfile (provider attribution)
"""

from billing_engine.core.database import Base
from billing_engine.models.billing import Bill, BillingRecord, ClinicalNote, Patient, ProviderProfile

__all__ = [
    "Base",
    "Patient",
    "ClinicalNote",
    "BillingRecord",
    "Bill",
    "ProviderProfile",
]
