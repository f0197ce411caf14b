"""HCC Mapper.

Maps ICD-10 diagnosis codes to CMS-HCC (V28) categories and sums their
community RAF weights.

Matching is exact on the normalized code (case, whitespace and the dot
separator are ignored). There is no prefix matching: "E11" does not match
"E11.9". Duplicate diagnoses contribute duplicate RAF, mirroring the
submitted claim lines.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
import threading
from typing import Any

from billing_engine.schemas.base import RAFBand
from billing_engine.services.code_tables import CodeTables, HCCCategory, get_code_tables

logger = logging.getLogger(__name__)

# Lower bounds, checked highest first
RAF_BAND_THRESHOLDS: list[tuple[float, RAFBand]] = [
    (0.5, RAFBand.HIGH),
    (0.3, RAFBand.ELEVATED),
    (0.1, RAFBand.MODERATE),
]


def classify_raf(raf: float) -> RAFBand:
    """Bucket a RAF value for display."""
    for threshold, band in RAF_BAND_THRESHOLDS:
        if raf >= threshold:
            return band
    return RAFBand.LOW


@dataclass(frozen=True)
class HCCMatch:
    """An input ICD-10 code joined to its HCC category."""

    hcc: str
    category: str
    description: str
    raf: float
    icd10_source: str  # The code as supplied by the caller


@dataclass
class HCCMappingResult:
    """Result of mapping a diagnosis list to HCCs."""

    matches: list[HCCMatch] = field(default_factory=list)
    total_raf: float = 0.0

    @property
    def hcc_codes(self) -> list[str]:
        """Distinct matched HCC ids, first-seen order."""
        return list(dict.fromkeys(m.hcc for m in self.matches))

    @property
    def band(self) -> RAFBand:
        return classify_raf(self.total_raf)


class HCCMapper:
    """Maps ICD-10 codes to HCC categories."""

    def __init__(self, tables: CodeTables | None = None) -> None:
        self._tables = tables or get_code_tables()

    def lookup(self, icd10_code: str) -> HCCCategory | None:
        """Find the HCC category for a single ICD-10 code."""
        return self._tables.hcc_for_icd10(icd10_code)

    def get_category(self, hcc: str) -> HCCCategory | None:
        return self._tables.hcc_categories.get(hcc)

    def map(self, icd10_codes: Iterable[str]) -> HCCMappingResult:
        """Map diagnosis codes to HCC matches in input order."""
        result = HCCMappingResult()
        for code in icd10_codes:
            category = self.lookup(code)
            if category is None:
                continue
            result.matches.append(
                HCCMatch(
                    hcc=category.hcc,
                    category=category.category,
                    description=category.description,
                    raf=category.raf,
                    icd10_source=code,
                )
            )
            result.total_raf += category.raf

        result.total_raf = round(result.total_raf, 3)
        logger.debug(f"Mapped {len(result.matches)} HCC matches, total RAF {result.total_raf}")
        return result

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        by_category: dict[str, int] = {}
        for hcc in self._tables.hcc_categories.values():
            by_category[hcc.category] = by_category.get(hcc.category, 0) + 1
        return {
            "total_hcc_definitions": len(self._tables.hcc_categories),
            "total_icd10_mappings": len(self._tables.icd10_to_hcc),
            "by_category": by_category,
        }


# Singleton pattern
_mapper: HCCMapper | None = None
_mapper_lock = threading.Lock()


def get_hcc_mapper() -> HCCMapper:
    """Get the singleton HCC mapper instance."""
    global _mapper
    if _mapper is None:
        with _mapper_lock:
            if _mapper is None:
                _mapper = HCCMapper()
    return _mapper


def reset_hcc_mapper() -> None:
    """Reset the singleton instance (for testing)."""
    global _mapper
    with _mapper_lock:
        _mapper = None
