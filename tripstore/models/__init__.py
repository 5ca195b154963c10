"""Pydantic models for trip documents and the HTTP payloads around them."""

from .constants import ValidationErrorType  # re-export
from .trip import (
    Accommodation,
    CostTrackingLink,
    Expense,
    Location,
    Route,
    RouteSegment,
    TravelReference,
    TripCreate,
    TripDocument,
    TripSummary,
)
from .links import ExistingLink, ExpenseLinkOut, LinkTarget, SplitLink
from .validation import ValidationIssue, ValidationResult

__all__ = [
    "ValidationErrorType",
    "Accommodation",
    "CostTrackingLink",
    "Expense",
    "Location",
    "Route",
    "RouteSegment",
    "TravelReference",
    "TripCreate",
    "TripDocument",
    "TripSummary",
    "ExistingLink",
    "ExpenseLinkOut",
    "LinkTarget",
    "SplitLink",
    "ValidationIssue",
    "ValidationResult",
]
