"""Medical Decision Making (MDM) Resolver.

Derives the E/M level of an encounter from the three MDM elements
(2024 CMS office/outpatient guidelines):

- Number and complexity of problems addressed
- Amount and complexity of data reviewed and analyzed
- Risk of complications of patient management

The level is set by the element that two of the three meet or exceed, i.e.
the second-highest of the three tiers.
"""

from dataclasses import dataclass
import logging
import threading
from typing import Any

from billing_engine.schemas.base import ComplexityTier
from billing_engine.services.code_tables import CodeTables, EMResult, get_code_tables

logger = logging.getLogger(__name__)

__all__ = [
    "EMResult",
    "MDMInput",
    "MDMResolver",
    "get_mdm_resolver",
    "reset_mdm_resolver",
]


@dataclass(frozen=True)
class MDMInput:
    """The three MDM element tiers selected for an encounter."""

    problems: ComplexityTier
    data: ComplexityTier
    risk: ComplexityTier

    def __post_init__(self) -> None:
        for name in ("problems", "data", "risk"):
            value = getattr(self, name)
            if not isinstance(value, ComplexityTier):
                raise ValueError(f"MDM {name} must be a ComplexityTier, got {value!r}")

    @property
    def tiers(self) -> tuple[ComplexityTier, ComplexityTier, ComplexityTier]:
        return (self.problems, self.data, self.risk)


class MDMResolver:
    """Resolves MDM element tiers to an E/M level and RVU."""

    def __init__(self, tables: CodeTables | None = None) -> None:
        self._tables = tables or get_code_tables()

    def effective_tier(self, mdm: MDMInput) -> ComplexityTier:
        """Second-highest of the three element tiers (2 of 3 rule)."""
        ranks = sorted((tier.rank for tier in mdm.tiers), reverse=True)
        return ComplexityTier.from_rank(ranks[1])

    def resolve(self, mdm: MDMInput) -> EMResult:
        """Resolve MDM elements to an E/M result."""
        tier = self.effective_tier(mdm)
        result = self._tables.mdm_outcomes[tier]
        logger.debug(
            f"MDM {mdm.problems.value}/{mdm.data.value}/{mdm.risk.value} "
            f"-> {tier.value} ({result.code})"
        )
        return result

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        return {
            "tables_version": self._tables.version,
            "outcomes": {tier.value: out.code for tier, out in self._tables.mdm_outcomes.items()},
        }


# ============================================================================
# Singleton
# ============================================================================

_resolver: MDMResolver | None = None
_resolver_lock = threading.Lock()


def get_mdm_resolver() -> MDMResolver:
    """Get the singleton MDM resolver instance."""
    global _resolver
    if _resolver is None:
        with _resolver_lock:
            if _resolver is None:
                _resolver = MDMResolver()
    return _resolver


def reset_mdm_resolver() -> None:
    """Reset the singleton instance (for testing)."""
    global _resolver
    with _resolver_lock:
        _resolver = None
