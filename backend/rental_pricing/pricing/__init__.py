# backend/rental_pricing/pricing/__init__.py
from .extensions import (
    ExtensionOrchestrator,
    approve_extension,
    calculate_extension_price,
    create_extension_request,
    get_extension_history,
    reject_extension,
)
from .overage import OverageCalculator, RentalOverageService
from .resolver import PriceResolver
from .tiers import TierEngine

__all__ = [
    "ExtensionOrchestrator",
    "approve_extension",
    "calculate_extension_price",
    "create_extension_request",
    "get_extension_history",
    "reject_extension",
    "OverageCalculator",
    "RentalOverageService",
    "PriceResolver",
    "TierEngine",
]
