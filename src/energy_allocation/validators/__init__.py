"""
Energy Allocation Validators
============================

Validation logic for settlement inputs and allocation edits.
"""

from .errors import (
    ValidationError,
    InvalidInputError,
    ChargeConflictError,
)
from .allocation_validator import (
    AllocationValidator,
    ConsumerPriorityConfig,
    order_consumers,
    validate_charge_uniqueness,
    validate_charge_units,
    normalize_minimum_allocation,
)

__all__ = [
    "ValidationError",
    "InvalidInputError",
    "ChargeConflictError",
    "AllocationValidator",
    "ConsumerPriorityConfig",
    "order_consumers",
    "validate_charge_uniqueness",
    "validate_charge_units",
    "normalize_minimum_allocation",
]
