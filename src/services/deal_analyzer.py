"""
Advanced deal analysis.

Rule-based annotator run after qualification. It reads the same property
snapshot as the rule engine but never scores or persists anything: the
alerts go back to a human for review.

Checks:
1. Comp validation (ARV present, year built, square footage, type, tax cross-check)
2. Rehab traps (old wiring, old foundation, lipstick on a pig, too expensive to flip)
3. Multifamily liquidity (5+ units at $900k+)
4. Transaction strategy (assignment vs double close)
5. Creative finance risk flags (wrap mortgage, contract for deed)
6. Property tax (missing or suspiciously low)
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from core.exceptions import ValidationError
from services.offer_calculator import MAO_MULTIPLIER

# =============================================================================
# THRESHOLDS
# =============================================================================

DOUBLE_CLOSE_FEE_THRESHOLD = 15000
LARGE_MULTI_UNIT_THRESHOLD = 5
LARGE_MULTI_PRICE_THRESHOLD = 900000
TOO_CHEAP_MIN_PROFIT = 15000
WIRING_YEAR_THRESHOLD = 1970        # knob-and-tube / aluminum wiring era
FOUNDATION_YEAR_THRESHOLD = 1950
LIPSTICK_YEAR_THRESHOLD = 1980
ESTIMATED_PROFIT_MARGIN = 0.15      # rough margin on MAO
LOW_TAX_RATIO = 0.005

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_DANGER = "danger"


@dataclass
class DealAlert:
    """One finding for the reviewer."""
    category: str
    severity: str
    title: str
    detail: str


@dataclass
class CompValidation:
    valid: bool
    issues: List[str] = field(default_factory=list)


@dataclass
class RehabAssessment:
    rehab_traps: List[DealAlert] = field(default_factory=list)
    too_expensive_to_flip: bool = False
    estimated_profit: Optional[float] = None


@dataclass
class TransactionStrategy:
    recommended: str  # assignment, double_close or hold
    reason: str
    assignment_fee: Optional[float] = None


@dataclass
class DealAnalysis:
    """Complete analysis result."""
    alerts: List[DealAlert]
    comp_validation: CompValidation
    rehab_assessment: RehabAssessment
    transaction_strategy: Optional[TransactionStrategy] = None
    multifamily_warning: Optional[DealAlert] = None
    tax_warning: Optional[DealAlert] = None

    @property
    def has_danger(self) -> bool:
        return any(alert.severity == SEVERITY_DANGER for alert in self.alerts)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _field(prop: Any, name: str) -> Any:
    if isinstance(prop, Mapping):
        return prop.get(name)
    return getattr(prop, name, None)


def _money(value: float) -> str:
    return f"${value:,.0f}"


# =============================================================================
# Individual checks
# =============================================================================


def validate_comps(prop: Any) -> CompValidation:
    """Appraiser-style sanity checks on the ARV and the data behind it."""
    issues: List[str] = []
    arv = _field(prop, "estimated_value")

    if not arv or arv <= 0:
        issues.append("No ARV/estimated value, cannot validate comps")
        return CompValidation(valid=False, issues=issues)

    if not _field(prop, "year_built"):
        issues.append("Year built missing, cannot verify comp year range (appraisers require +/-10yr match)")

    square_footage = _field(prop, "square_footage")
    if not square_footage or square_footage <= 0:
        issues.append("Square footage missing, cannot verify comp size range (appraisers cap at +/-20%)")

    if not _field(prop, "property_type"):
        issues.append("Property type missing, cannot verify comp type match")

    assessed = _field(prop, "tax_assessed_value")
    if assessed:
        ratio = arv / assessed
        if ratio > 2.0:
            issues.append(
                f"ARV ({_money(arv)}) is {ratio:.1f}x the tax assessed value ({_money(assessed)}), "
                "verify comps are accurate"
            )
        elif ratio < 0.5:
            issues.append(
                f"ARV ({_money(arv)}) is less than half the tax assessed value ({_money(assessed)}), "
                "check for data error"
            )

    return CompValidation(valid=not issues, issues=issues)


def detect_rehab_traps(prop: Any, repair_costs: float) -> RehabAssessment:
    traps: List[DealAlert] = []
    arv = _field(prop, "estimated_value") or 0
    year_built = _field(prop, "year_built")
    last_sale = _field(prop, "last_sale_price")

    if year_built and year_built < WIRING_YEAR_THRESHOLD:
        traps.append(DealAlert(
            category="rehab_trap",
            severity=SEVERITY_WARNING,
            title="Potential Wiring Issue",
            detail=(
                f"Built in {year_built}. Pre-1970 properties often have knob-and-tube or aluminum "
                "wiring. Budget $8-15k for rewiring if not already updated."
            ),
        ))

    if year_built and year_built < FOUNDATION_YEAR_THRESHOLD:
        traps.append(DealAlert(
            category="rehab_trap",
            severity=SEVERITY_DANGER,
            title="Foundation Risk",
            detail=(
                f"Built in {year_built}. Pre-1950 properties have elevated foundation risk; get a "
                "structural inspection before committing."
            ),
        ))

    if (
        year_built
        and year_built < LIPSTICK_YEAR_THRESHOLD
        and last_sale
        and arv > 0
        and repair_costs < arv * 0.1
        and arv / last_sale > 1.5
    ):
        uplift = round((arv / last_sale - 1) * 100)
        traps.append(DealAlert(
            category="rehab_trap",
            severity=SEVERITY_WARNING,
            title="Lipstick on a Pig Warning",
            detail=(
                f"Low repair estimate ({_money(repair_costs)}) on a {year_built} property expecting "
                f"{uplift}% value increase. Cosmetic rehab alone rarely produces this on older properties."
            ),
        ))

    mao = arv * MAO_MULTIPLIER - repair_costs
    estimated_profit = round(mao * ESTIMATED_PROFIT_MARGIN, 2) if mao > 0 else None
    spread = arv - repair_costs
    too_expensive = arv > 0 and repair_costs > 0 and spread < TOO_CHEAP_MIN_PROFIT

    if too_expensive:
        traps.append(DealAlert(
            category="rehab_trap",
            severity=SEVERITY_DANGER,
            title="Too Expensive to Flip",
            detail=(
                f"ARV ({_money(arv)}) minus repairs ({_money(repair_costs)}) leaves a {_money(spread)} "
                f"spread, below the {_money(TOO_CHEAP_MIN_PROFIT)} minimum profit threshold."
            ),
        ))

    return RehabAssessment(
        rehab_traps=traps,
        too_expensive_to_flip=too_expensive,
        estimated_profit=estimated_profit,
    )


def check_multifamily_liquidity(prop: Any) -> Optional[DealAlert]:
    units = _field(prop, "unit_count") or 1
    arv = _field(prop, "estimated_value") or 0

    if units >= LARGE_MULTI_UNIT_THRESHOLD and arv >= LARGE_MULTI_PRICE_THRESHOLD:
        return DealAlert(
            category="liquidity",
            severity=SEVERITY_WARNING,
            title="Large Multifamily Liquidity Warning",
            detail=(
                f"{units}-unit property at {_money(arv)} needs about {_money(arv * 0.20)} down (20%). "
                "Limited buyer pool in most B/C markets; consider seller financing to improve exit."
            ),
        )
    return None


def recommend_transaction_strategy(purchase_price: float, resale_price: float) -> TransactionStrategy:
    """Double close when the assignment fee is large enough for buyers to balk."""
    fee = resale_price - purchase_price

    if fee <= 0:
        return TransactionStrategy(
            recommended="hold",
            reason="No spread between purchase and resale; consider hold or a creative strategy",
        )

    if fee > DOUBLE_CLOSE_FEE_THRESHOLD:
        return TransactionStrategy(
            recommended="double_close",
            reason=(
                f"Assignment fee of {_money(fee)} exceeds {_money(DOUBLE_CLOSE_FEE_THRESHOLD)}; "
                "use a simultaneous close to keep the fee private."
            ),
            assignment_fee=fee,
        )

    return TransactionStrategy(
        recommended="assignment",
        reason=f"Assignment fee of {_money(fee)} is within range. Standard assignment is cheaper and faster.",
        assignment_fee=fee,
    )


def flag_creative_finance_risks(prop: Any) -> List[DealAlert]:
    alerts: List[DealAlert] = []
    debt = _field(prop, "debt_owed")
    rate = _field(prop, "interest_rate")
    equity = _field(prop, "equity_percent")

    if debt and debt > 0 and rate:
        alerts.append(DealAlert(
            category="creative_finance",
            severity=SEVERITY_INFO,
            title="Wrap Mortgage Consideration",
            detail=(
                f"Existing debt of {_money(debt)} at {rate}%. A wrap or subject-to structure carries "
                "due-on-sale risk; keep insurance and payments current."
            ),
        ))

    if equity and equity > 50:
        alerts.append(DealAlert(
            category="creative_finance",
            severity=SEVERITY_INFO,
            title="Contract for Deed Caution",
            detail=(
                f"{equity}% equity. The owner may propose a contract for deed; counter with a deed in "
                "lieu of foreclosure clause."
            ),
        ))

    return alerts


def check_property_tax(prop: Any) -> Optional[DealAlert]:
    annual_tax = _field(prop, "annual_property_tax")
    if not annual_tax:
        return DealAlert(
            category="tax",
            severity=SEVERITY_WARNING,
            title="Property Tax Data Missing",
            detail=(
                "Annual property tax not available. Look up county assessor records and budget 1-2% "
                "of ARV; taxes are often reassessed at the new sale price."
            ),
        )

    arv = _field(prop, "estimated_value") or 0
    if arv > 0 and annual_tax < arv * LOW_TAX_RATIO:
        return DealAlert(
            category="tax",
            severity=SEVERITY_INFO,
            title="Low Tax, Possible Reassessment",
            detail=(
                f"Annual tax {_money(annual_tax)} is under 0.5% of ARV ({_money(arv)}). "
                "Budget for higher taxes after purchase."
            ),
        )
    return None


# =============================================================================
# Full analysis
# =============================================================================


def analyze_deal(
    prop: Any,
    repair_costs: float = 0.0,
    purchase_price: Optional[float] = None,
) -> DealAnalysis:
    """
    Run every check against a property.

    Args:
        prop: Property row or mapping with snake_case property fields.
        repair_costs: Estimated repair costs (0 if unknown).
        purchase_price: Intended purchase price; enables the strategy recommendation.
    """
    if repair_costs is None or repair_costs < 0:
        raise ValidationError("repair_costs must be non-negative")
    if purchase_price is not None and purchase_price < 0:
        raise ValidationError("purchase_price must be non-negative")

    alerts: List[DealAlert] = []

    comp_validation = validate_comps(prop)
    alerts.extend(
        DealAlert(category="comp_validation", severity=SEVERITY_WARNING, title="Comp Issue", detail=issue)
        for issue in comp_validation.issues
    )

    rehab = detect_rehab_traps(prop, repair_costs)
    alerts.extend(rehab.rehab_traps)

    multifamily = check_multifamily_liquidity(prop)
    if multifamily:
        alerts.append(multifamily)

    strategy = None
    arv = _field(prop, "estimated_value")
    if purchase_price is not None and arv:
        strategy = recommend_transaction_strategy(purchase_price, arv * MAO_MULTIPLIER - repair_costs)

    alerts.extend(flag_creative_finance_risks(prop))

    tax_warning = check_property_tax(prop)
    if tax_warning:
        alerts.append(tax_warning)

    return DealAnalysis(
        alerts=alerts,
        comp_validation=comp_validation,
        rehab_assessment=rehab,
        transaction_strategy=strategy,
        multifamily_warning=multifamily,
        tax_warning=tax_warning,
    )


__all__ = [
    "DealAlert",
    "DealAnalysis",
    "analyze_deal",
    "check_multifamily_liquidity",
    "check_property_tax",
    "detect_rehab_traps",
    "flag_creative_finance_risks",
    "recommend_transaction_strategy",
    "validate_comps",
]
