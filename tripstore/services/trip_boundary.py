"""Trip boundary checks.

Every expense link and legacy expense reference must resolve inside the trip
document that declares it. The checks here are read-only and never raise for
a bad document; they return a ``ValidationResult`` and let the caller decide
whether a violation blocks the operation.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable, Iterator, List, Optional

from tripstore.core.errors import UnknownTravelItemType
from tripstore.models.constants import ValidationErrorType
from tripstore.models.trip import (
    Accommodation,
    Location,
    RouteSegment,
    TravelItem,
    TripDocument,
)
from tripstore.models.validation import (
    ValidationIssue,
    ValidationResult,
    ValidationSummary,
)


def get_travel_item_type(item: object) -> str:
    if isinstance(item, (Location, RouteSegment, Accommodation)):
        return item.kind
    raise UnknownTravelItemType(
        f"Unknown travel item type: {type(item).__name__}",
    )


def _document_problem(
    doc: Optional[TripDocument], expense_id: Optional[str] = None, item_id: Optional[str] = None
) -> Optional[ValidationIssue]:
    if doc is None:
        return ValidationIssue(
            type=ValidationErrorType.INVALID_TRIP_DATA,
            message="Trip data is missing",
            expense_id=expense_id,
            item_id=item_id,
        )
    if not doc.id:
        return ValidationIssue(
            type=ValidationErrorType.MISSING_TRIP_ID,
            message="Trip data missing ID",
            expense_id=expense_id,
            item_id=item_id,
        )
    return None


def validate_expense_belongs_to_trip(
    expense_id: str, doc: Optional[TripDocument]
) -> ValidationResult:
    problem = _document_problem(doc, expense_id=expense_id)
    if problem:
        return ValidationResult.from_errors([problem])
    if doc.find_expense(expense_id) is None:
        return ValidationResult.from_errors(
            [
                ValidationIssue(
                    type=ValidationErrorType.EXPENSE_NOT_FOUND,
                    message=f"Expense {expense_id} not found in trip {doc.id}",
                    expense_id=expense_id,
                    trip_id=doc.id,
                )
            ]
        )
    return ValidationResult.ok()


def validate_travel_item_belongs_to_trip(
    item_id: str, doc: Optional[TripDocument]
) -> ValidationResult:
    """Locations, routes and accommodations only; route segments are not items here."""
    problem = _document_problem(doc, item_id=item_id)
    if problem:
        return ValidationResult.from_errors([problem])
    if find_travel_item_by_id(item_id, doc) is None:
        return ValidationResult.from_errors(
            [
                ValidationIssue(
                    type=ValidationErrorType.TRAVEL_ITEM_NOT_FOUND,
                    message=f"Travel item {item_id} not found in trip {doc.id}",
                    item_id=item_id,
                    trip_id=doc.id,
                )
            ]
        )
    return ValidationResult.ok()


def validate_trip_boundary(
    expense_id: str, item_id: str, doc: Optional[TripDocument]
) -> ValidationResult:
    errors = list(validate_expense_belongs_to_trip(expense_id, doc).errors)
    errors.extend(validate_travel_item_belongs_to_trip(item_id, doc).errors)
    return ValidationResult.from_errors(errors)


def validate_cost_tracking_links(item: TravelItem, doc: Optional[TripDocument]) -> ValidationResult:
    errors: List[ValidationIssue] = []
    for link in item.cost_tracking_links or []:
        for issue in validate_expense_belongs_to_trip(link.expense_id, doc).errors:
            errors.append(issue.model_copy(update={"item_id": item.id}))
    return ValidationResult.from_errors(errors)


def _legacy_reference_errors(doc: TripDocument) -> Iterator[ValidationIssue]:
    for expense in doc.expenses:
        reference = expense.travel_reference
        if reference is None:
            continue
        target = reference.target_id
        if target and travel_item_exists_in_trip(target, doc):
            continue
        yield ValidationIssue(
            type=ValidationErrorType.CROSS_TRIP_REFERENCE,
            message=(
                f"Expense {expense.id} references {reference.type} {target} "
                f"which is not part of trip {doc.id}"
            ),
            expense_id=expense.id,
            item_id=target,
            trip_id=doc.id,
        )


def iter_linkable_items(doc: TripDocument) -> Iterator[TravelItem]:
    """Every item that can hold links, route segments included."""
    yield from doc.locations
    for route in doc.routes:
        yield route
        yield from route.sub_routes or []
    yield from doc.accommodations or []


def validate_all_trip_boundaries(doc: Optional[TripDocument]) -> ValidationResult:
    """Whole-document sweep: every link on every item, then legacy references."""
    if doc is None:
        return ValidationResult.from_errors(
            [
                ValidationIssue(
                    type=ValidationErrorType.INVALID_TRIP_DATA,
                    message="Trip data is missing",
                )
            ]
        )
    errors: List[ValidationIssue] = []
    for item in iter_linkable_items(doc):
        errors.extend(validate_cost_tracking_links(item, doc).errors)
    if doc.id:
        errors.extend(_legacy_reference_errors(doc))
    return ValidationResult.from_errors(errors)


# ----------------------------------------------------------------------
# Lookups


def expense_exists_in_trip(expense_id: str, doc: TripDocument) -> bool:
    return doc.find_expense(expense_id) is not None


def travel_item_exists_in_trip(item_id: str, doc: TripDocument) -> bool:
    return find_travel_item_by_id(item_id, doc) is not None


def get_all_expense_ids(doc: TripDocument) -> List[str]:
    return [e.id for e in doc.expenses]


def get_all_travel_item_ids(doc: TripDocument) -> List[str]:
    ids = [loc.id for loc in doc.locations]
    ids.extend(route.id for route in doc.routes)
    ids.extend(acc.id for acc in doc.accommodations or [])
    return ids


def _first(items: Iterable[TravelItem], item_id: str) -> Optional[TravelItem]:
    for item in items:
        if item.id == item_id:
            return item
    return None


def find_travel_item_by_id(
    item_id: str, doc: TripDocument, include_segments: bool = False
) -> Optional[TravelItem]:
    if include_segments:
        return _first(iter_linkable_items(doc), item_id)
    return (
        _first(doc.locations, item_id)
        or _first(doc.routes, item_id)
        or _first(doc.accommodations or [], item_id)
    )


def summarize_validation(result: ValidationResult) -> ValidationSummary:
    types = OrderedDict((e.type, None) for e in result.errors)
    expenses = OrderedDict((e.expense_id, None) for e in result.errors if e.expense_id)
    items = OrderedDict((e.item_id, None) for e in result.errors if e.item_id)
    return ValidationSummary(
        total_errors=len(result.errors),
        error_types=list(types),
        affected_expenses=list(expenses),
        affected_travel_items=list(items),
    )


__all__ = [
    "get_travel_item_type",
    "validate_expense_belongs_to_trip",
    "validate_travel_item_belongs_to_trip",
    "validate_trip_boundary",
    "validate_cost_tracking_links",
    "validate_all_trip_boundaries",
    "iter_linkable_items",
    "expense_exists_in_trip",
    "travel_item_exists_in_trip",
    "get_all_expense_ids",
    "get_all_travel_item_ids",
    "find_travel_item_by_id",
    "summarize_validation",
]
