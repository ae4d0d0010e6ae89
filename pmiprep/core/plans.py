"""
Pricing plans and plan terms.

Prices are held in the base currency (GHS). Conversion to a display currency
is an explicit call with an explicit rate table; nothing here keeps a
"selected currency" around.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pmiprep.core.errors import NotFoundError, ValidationError

BASE_CURRENCY = "GHS"

CURRENCY_SYMBOLS = {
    "GHS": "₵",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "C$",
    "AUD": "A$",
}

# Used when the live rate feed is unreachable
FALLBACK_RATES: dict[str, float] = {
    "GHS": 1.0,
    "USD": 0.085,
    "EUR": 0.078,
    "GBP": 0.067,
    "CAD": 0.11,
    "AUD": 0.12,
}


@dataclass(frozen=True)
class PricingPlan:
    """A purchasable plan and the terms that govern unenrollment."""

    name: str
    base_price: float  # In BASE_CURRENCY
    period: str
    description: str
    certifications: tuple[str, ...]
    cooldown_days: int
    refund_eligibility_days: int
    features: tuple[str, ...] = field(default_factory=tuple)
    popular: bool = False

    def covers(self, certification: str) -> bool:
        return certification in self.certifications


PLANS: tuple[PricingPlan, ...] = (
    PricingPlan(
        name="Starter Plan",
        base_price=2500,
        period="CAPM Certification",
        description="Perfect for those starting their PMI certification journey",
        certifications=("CAPM",),
        cooldown_days=30,
        refund_eligibility_days=14,
        features=(
            "Complete CAPM exam preparation",
            "Interactive study materials",
            "Practice exams and quizzes",
            "6-month support access",
        ),
    ),
    PricingPlan(
        name="Intermediate Plan",
        base_price=5500,
        period="PMP & PMI-ACP",
        description="Advanced certifications for professional project managers",
        certifications=("PMP", "PMI-ACP"),
        cooldown_days=45,
        refund_eligibility_days=14,
        features=(
            "Complete PMP exam preparation",
            "Complete PMI-ACP exam preparation",
            "Practice exams and simulations",
            "9-month support access",
        ),
        popular=True,
    ),
    PricingPlan(
        name="Comprehensive Plan",
        base_price=8500,
        period="All PMI Certifications",
        description="Complete portfolio for executive-level project management",
        certifications=("CAPM", "PMP", "PMI-ACP", "PfMP"),
        cooldown_days=60,
        refund_eligibility_days=14,
        features=(
            "All PMI certifications (CAPM, PMP, PMI-ACP, PfMP)",
            "Multiple project simulations",
            "One-on-one mentorship",
            "12-month support access",
        ),
    ),
)


def get_plan(name: str) -> PricingPlan:
    for plan in PLANS:
        if plan.name == name:
            return plan
    raise NotFoundError(f"Plan not found: {name}", collection="plans", key=name)


def convert_price(amount: float, currency: str, rates: dict[str, float]) -> float:
    """Convert an amount in BASE_CURRENCY to ``currency`` using ``rates``."""
    currency = currency.upper()
    if currency == BASE_CURRENCY:
        return amount
    rate = rates.get(currency)
    if rate is None:
        raise ValidationError(f"No exchange rate for {currency}", field="currency")
    return round(amount * rate, 2)


def format_price(amount: float, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), currency.upper() + " ")
    return f"{symbol}{amount:,.2f}"
