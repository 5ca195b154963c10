"""Domain constants and enumerations for the trip document core.

Kept in one module so validators, the migrator and the HTTP layer agree on
the same literals.
"""

from enum import Enum


class ValidationErrorType(str, Enum):
    EXPENSE_NOT_FOUND = "EXPENSE_NOT_FOUND"
    TRAVEL_ITEM_NOT_FOUND = "TRAVEL_ITEM_NOT_FOUND"
    CROSS_TRIP_REFERENCE = "CROSS_TRIP_REFERENCE"
    INVALID_TRIP_DATA = "INVALID_TRIP_DATA"
    MISSING_TRIP_ID = "MISSING_TRIP_ID"
    DUPLICATE_LINK = "DUPLICATE_LINK"
    SPLIT_VALIDATION_FAILED = "SPLIT_VALIDATION_FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    # Store-level kinds
    TRIP_NOT_FOUND = "TRIP_NOT_FOUND"
    VERSION_CONFLICT = "VERSION_CONFLICT"


# Expense category whose links belong on an accommodation rather than its location
ACCOMMODATION_CATEGORY = "accommodation"

PERCENTAGE_TOTAL = 100.0
PERCENTAGE_TOLERANCE = 0.5
FIXED_AMOUNT_TOLERANCE = 0.01
