"""
Billing Configuration

This module defines the subscription package catalog and the credit
pricing constants.

Usage:
    from marketplace.src.billing.shared.config import PACKAGES, get_package_by_id

    package = get_package_by_id('pro')
    print(package.monthly_credits)  # 400
"""

from decimal import Decimal
from typing import Dict, List, Optional
from dataclasses import dataclass, field

from marketplace.core.conf import settings


# =============================================================================
# CREDIT CONSTANTS
# =============================================================================
# USD charged to the user per USD of provider cost (1.5 = 50% markup)
PROFIT_MARGIN: Decimal = Decimal(str(settings.PRICING_PROFIT_MARGIN))

# USD value of one credit (0.05 = 20 credits per dollar)
CREDIT_VALUE_USD: Decimal = Decimal(str(settings.PRICING_CREDIT_VALUE_USD))

# Package granted to every newly initialized user
FREE_PACKAGE_ID: str = "free"


# =============================================================================
# PACKAGE DEFINITION
# =============================================================================
@dataclass
class Package:
    """
    Subscription package configuration.

    Attributes:
        id: Internal package identifier
        name: Display name
        monthly_credits: Playground credits granted at every period start
        monthly_price_cents: Monthly price in cents
        yearly_price_cents: Yearly price in cents
        price_ids: Stripe price IDs that map to this package
        features: Marketing feature list
    """
    id: str
    name: str
    monthly_credits: int
    monthly_price_cents: int = 0
    yearly_price_cents: int = 0
    price_ids: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)


def _price_ids(*ids: str) -> List[str]:
    return [price_id for price_id in ids if price_id]


PACKAGES: Dict[str, Package] = {
    'free': Package(
        id='free',
        name='Free',
        monthly_credits=5,
        features=['5 credits per month', 'Basic AI services'],
    ),
    'basic': Package(
        id='basic',
        name='Basic',
        monthly_credits=175,
        monthly_price_cents=900,
        yearly_price_cents=9000,
        price_ids=_price_ids(
            settings.STRIPE_BASIC_MONTHLY_PRICE_ID,
            settings.STRIPE_BASIC_YEARLY_PRICE_ID,
        ),
        features=['175 credits per month', 'All AI services', 'Standard support'],
    ),
    'pro': Package(
        id='pro',
        name='Pro',
        monthly_credits=400,
        monthly_price_cents=1900,
        yearly_price_cents=19000,
        price_ids=_price_ids(
            settings.STRIPE_PRO_MONTHLY_PRICE_ID,
            settings.STRIPE_PRO_YEARLY_PRICE_ID,
        ),
        features=['400 credits per month', 'All AI services', 'Priority support'],
    ),
    'ultimate': Package(
        id='ultimate',
        name='Ultimate',
        monthly_credits=1000,
        monthly_price_cents=4900,
        yearly_price_cents=49000,
        price_ids=_price_ids(
            settings.STRIPE_ULTIMATE_MONTHLY_PRICE_ID,
            settings.STRIPE_ULTIMATE_YEARLY_PRICE_ID,
        ),
        features=['1000 credits per month', 'All AI services', 'Premium support', 'API access'],
    ),
}


def get_package_by_id(package_id: str) -> Optional[Package]:
    """Get a package by its identifier."""
    return PACKAGES.get(package_id)


def get_package_by_price_id(price_id: str) -> Optional[Package]:
    """Find the package a Stripe price ID belongs to."""
    if not price_id:
        return None
    for package in PACKAGES.values():
        if price_id in package.price_ids:
            return package
    return None
