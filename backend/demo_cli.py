#!/usr/bin/env python3
"""
Elyn Billing Engine - Demo CLI

Runs the billing rule engine on an encounter and prints a report:
MDM -> E/M level, HCC mapping, compliance alerts, code validation and
denial risk.

Usage:
    python demo_cli.py --sample
    python demo_cli.py --problems high --data low --risk moderate \\
        --em 99214 --mdm Moderate --cpt 99214 --icd10 E11.65 I50.22 --rvu 1.92
"""

import argparse
import sys

from billing_engine.schemas.base import AlertSeverity, ComplexityTier, RiskLevel
from billing_engine.services.billing_alerts import (
    BillingAlertAnalyzer,
    BillingSnapshot,
    CodeEntry,
    sort_alerts,
)
from billing_engine.services.code_validator import BillingCodeValidator
from billing_engine.services.denial_risk import DenialRiskScorer
from billing_engine.services.hcc_mapper import HCCMapper
from billing_engine.services.mdm_resolver import MDMInput, MDMResolver

# ============================================================================
# Sample Encounter
# ============================================================================

SAMPLE_ENCOUNTER = {
    "problems": ComplexityTier.HIGH,
    "data": ComplexityTier.LOW,
    "risk": ComplexityTier.LOW,
    "em_level": "99215",
    "mdm_complexity": "Low",
    "cpt_codes": ["99215", "71046", "71045"],
    "icd10_codes": ["R06.02"],
    "modifiers": [],
    "rvu": 2.80,
}


# ============================================================================
# Output Helpers
# ============================================================================


class Colors:
    """ANSI color codes for terminal output."""
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'
    GRAY = '\033[90m'


SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: Colors.RED,
    AlertSeverity.HIGH: Colors.RED,
    AlertSeverity.MEDIUM: Colors.YELLOW,
    AlertSeverity.LOW: Colors.GRAY,
}

RISK_COLORS = {
    RiskLevel.LOW: Colors.GREEN,
    RiskLevel.MEDIUM: Colors.YELLOW,
    RiskLevel.HIGH: Colors.RED,
    RiskLevel.CRITICAL: Colors.RED,
}


def print_header(text: str, char: str = "="):
    """Print a formatted header."""
    width = 80
    print()
    print(f"{Colors.BOLD}{Colors.CYAN}{char * width}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.CYAN}{text.center(width)}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.CYAN}{char * width}{Colors.END}")


def print_subheader(text: str):
    """Print a formatted subheader."""
    print()
    print(f"{Colors.BOLD}{Colors.YELLOW}  {text}{Colors.END}")
    print(f"{Colors.YELLOW}{'─' * 80}{Colors.END}")


def print_item(label: str, value: str, indent: int = 2):
    """Print a labeled item."""
    spaces = " " * indent
    print(f"{spaces}{Colors.GRAY}{label}:{Colors.END} {value}")


# ============================================================================
# Report
# ============================================================================


def run_report(encounter: dict) -> None:
    mdm = MDMInput(
        problems=encounter["problems"],
        data=encounter["data"],
        risk=encounter["risk"],
    )
    snapshot = BillingSnapshot(
        em_level=encounter["em_level"],
        mdm_complexity=encounter["mdm_complexity"],
        cpt_codes=[CodeEntry(code=c) for c in encounter["cpt_codes"]],
        icd10_codes=[CodeEntry(code=c) for c in encounter["icd10_codes"]],
        rvu=encounter["rvu"],
        modifiers=encounter["modifiers"],
    )

    print_subheader("MDM -> E/M LEVEL")
    resolver = MDMResolver()
    em = resolver.resolve(mdm)
    print_item("Problems / Data / Risk", f"{mdm.problems.value} / {mdm.data.value} / {mdm.risk.value}")
    print_item("Effective tier", resolver.effective_tier(mdm).value)
    print_item("E/M code", f"{em.code} ({em.complexity_label}, {em.rvu:.2f} RVU)")

    print_subheader("HCC MAPPING")
    hcc = HCCMapper().map(encounter["icd10_codes"])
    if not hcc.matches:
        print("  No HCC categories matched")
    for match in hcc.matches:
        print(f"  {match.icd10_source:10s} -> {match.hcc:7s} {match.description} (RAF {match.raf:.3f})")
    print_item("Total RAF", f"{hcc.total_raf:.3f} ({hcc.band.value})")

    print_subheader("COMPLIANCE ALERTS")
    alerts = sort_alerts(BillingAlertAnalyzer().analyze(snapshot))
    if not alerts:
        print(f"  {Colors.GREEN}✓{Colors.END} Clean bill")
    for alert in alerts:
        color = SEVERITY_COLORS[alert.severity]
        print(f"  {color}[{alert.severity.value.upper():8s}]{Colors.END} {alert.title}")
        print(f"    {alert.message}")
        if alert.recommendation:
            print(f"    {Colors.GRAY}→ {alert.recommendation}{Colors.END}")

    print_subheader("CODE VALIDATION")
    report = BillingCodeValidator().validate(
        encounter["icd10_codes"], encounter["cpt_codes"], encounter["modifiers"]
    )
    for result in report.results:
        mark = f"{Colors.GREEN}✓{Colors.END}" if result.valid else f"{Colors.RED}✗{Colors.END}"
        print(f"  {mark} {result.code:10s} {result.category or ''}")
        for error in result.errors:
            print(f"      {Colors.RED}{error}{Colors.END}")
    for warning in report.bundling_warnings + report.consistency_warnings + report.modifier_warnings:
        print(f"  {Colors.YELLOW}!{Colors.END} {warning}")

    print_subheader("DENIAL RISK")
    assessment = DenialRiskScorer().score(snapshot, report.all_warnings)
    color = RISK_COLORS[assessment.risk_level]
    print_item("Score", f"{color}{assessment.risk_score} ({assessment.risk_level.value}){Colors.END}")
    for factor in assessment.factors:
        print(f"  +{factor.weight:<3d} {factor.factor.value}: {factor.message}")
    for recommendation in assessment.recommendations:
        print(f"  {Colors.GRAY}→ {recommendation}{Colors.END}")
    print()


# ============================================================================
# Main Entry Point
# ============================================================================


def main():
    tiers = [t.value for t in ComplexityTier]
    parser = argparse.ArgumentParser(
        description="Elyn Billing Engine - Demo CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python demo_cli.py --sample
  python demo_cli.py --problems moderate --data moderate --risk low --em 99214 \\
      --mdm Moderate --cpt 99214 --icd10 E11.65 --rvu 1.92
""",
    )
    parser.add_argument('--sample', '-s', action='store_true', help='Use the sample encounter')
    parser.add_argument('--problems', choices=tiers, default='low', help='MDM problems tier')
    parser.add_argument('--data', choices=tiers, default='low', help='MDM data tier')
    parser.add_argument('--risk', choices=tiers, default='low', help='MDM risk tier')
    parser.add_argument('--em', help='Selected E/M code')
    parser.add_argument('--mdm', default='', help='Documented MDM complexity label')
    parser.add_argument('--cpt', nargs='*', default=[], help='CPT codes')
    parser.add_argument('--icd10', nargs='*', default=[], help='ICD-10 codes')
    parser.add_argument('--modifiers', nargs='*', default=[], help='Modifiers')
    parser.add_argument('--rvu', type=float, default=0.0, help='Total RVU')

    args = parser.parse_args()

    if args.sample:
        print_header("SAMPLE ENCOUNTER")
        run_report(SAMPLE_ENCOUNTER)
        return

    if args.rvu < 0:
        print("Error: --rvu must be >= 0")
        sys.exit(1)

    print_header("ENCOUNTER REPORT")
    run_report({
        "problems": ComplexityTier(args.problems),
        "data": ComplexityTier(args.data),
        "risk": ComplexityTier(args.risk),
        "em_level": args.em,
        "mdm_complexity": args.mdm,
        "cpt_codes": args.cpt,
        "icd10_codes": args.icd10,
        "modifiers": args.modifiers,
        "rvu": args.rvu,
    })


if __name__ == "__main__":
    main()
