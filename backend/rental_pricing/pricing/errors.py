# backend/rental_pricing/pricing/errors.py
"""
Error types for the pricing and extension engine.

Every error carries a stable ``code`` (what API callers and the UI switch on)
plus a ``context`` dict (rental_id, extension_id, hours, cause ...) so the
place that catches it can log and report without re-deriving anything.
"""
from typing import Any, Dict


class PricingError(Exception):
    """Base class; never raised directly."""

    code = "PRICING_ERROR"
    default_message = "Error: pricing failed"

    def __init__(self, message: str = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        super().__init__(self.message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({ctx})"

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.code, "message": self.message, **{k: str(v) for k, v in self.context.items()}}


# ---------- input ----------
class InvalidDuration(PricingError):
    """Raised when the requested hours are <= 0 or not a number."""

    code = "INVALID_DURATION"
    default_message = "Error: extension hours must be a positive number"


class InvalidPrice(PricingError):
    code = "INVALID_PRICE"
    default_message = "Error: price must be a non-negative number"


class InvalidTierConfiguration(PricingError):
    """Raised when a model's active tiers overlap or are malformed."""

    code = "INVALID_TIER_CONFIG"
    default_message = "Error: pricing tiers overlap or are malformed"


# ---------- configuration ----------
class NoBasePriceConfigured(PricingError):
    """No rate resolvable; the caller should fall back to manual entry."""

    code = "NO_BASE_PRICE"
    default_message = "No pricing configured for this vehicle model"
    requires_manual_entry = True


# ---------- data ----------
class DataInconsistency(PricingError):
    """Stored and recomputed values disagree beyond tolerance."""

    code = "DATA_INCONSISTENCY"
    default_message = "Stored value disagrees with recomputed value"

    def __init__(self, message: str = None, stored=None, computed=None, **context: Any) -> None:
        self.stored = stored
        self.computed = computed
        super().__init__(message, stored=stored, computed=computed, **context)


# ---------- lookup ----------
class NotFound(PricingError):
    code = "NOT_FOUND"


class RentalNotFound(NotFound):
    default_message = "Error: rental not found"


class ExtensionNotFound(NotFound):
    default_message = "Error: extension not found"


class VehicleModelNotFound(NotFound):
    default_message = "Error: vehicle model not found"


# ---------- state machine ----------
class InvalidStateTransition(PricingError):
    """approve/reject attempted on an extension that is not pending."""

    code = "INVALID_STATE"
    default_message = "Error: extension is not pending"


class AlreadyApproved(InvalidStateTransition):
    code = "ALREADY_APPROVED"
    default_message = "Error: extension already approved"


# ---------- persistence ----------
class PersistenceFailure(PricingError):
    """The write failed and the whole unit of work was rolled back."""

    code = "PERSISTENCE_FAILURE"
    default_message = "Error: could not save changes"


class ConcurrentUpdate(PersistenceFailure):
    """The rental row changed underneath us more times than we retry."""

    code = "CONCURRENT_UPDATE"
    default_message = "Error: rental was modified concurrently"
