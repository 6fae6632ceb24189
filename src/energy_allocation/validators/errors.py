"""
Settlement Errors
=================

Error kinds:
- InvalidInputError: malformed input, the whole run is rejected
- ChargeConflictError: rejected edit, prior state unchanged
"""

from typing import Any, Dict, List


class ValidationError(Exception):
    """Settlement validation error with details"""

    def __init__(self, message: str, errors: List[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'errors': self.errors,
        }


class InvalidInputError(ValidationError, ValueError):
    """Negative quantity, out-of-range percentage or missing identity"""


class ChargeConflictError(ValidationError):
    """Another allocation of the same production site and month is charged"""
