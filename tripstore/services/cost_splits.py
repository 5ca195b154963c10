"""Split rules for an expense linked to several travel items.

Links carry ``split_mode`` (equal / percentage / fixed) and ``split_value``.
Percentage links must add up to 100 and fixed links to the expense amount,
each within a small tolerance; equal links share whatever is left.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from tripstore.models.constants import (
    FIXED_AMOUNT_TOLERANCE,
    PERCENTAGE_TOLERANCE,
    PERCENTAGE_TOTAL,
    ValidationErrorType,
)
from tripstore.models.validation import ValidationIssue, ValidationResult
from tripstore.services.money import round2, split_evenly

# Absorbs float noise so a sum sitting exactly on the tolerance passes.
_EPSILON = 1e-9


class SplitRule(Protocol):
    split_mode: Optional[str]
    split_value: Optional[float]


def _mode(link: SplitRule) -> str:
    return link.split_mode or "equal"


def _issue(message: str, expense_id: Optional[str], kind=ValidationErrorType.SPLIT_VALIDATION_FAILED):
    return ValidationIssue(type=kind, message=message, expense_id=expense_id)


def validate_split_configuration(
    links: Sequence[SplitRule],
    expense_amount: float,
    expense_id: Optional[str] = None,
) -> ValidationResult:
    if not links:
        return ValidationResult.from_errors(
            [_issue("At least one link is required", expense_id, ValidationErrorType.VALIDATION_ERROR)]
        )

    errors: List[ValidationIssue] = []
    for link in links:
        mode = _mode(link)
        if mode == "equal":
            continue
        if link.split_value is None:
            errors.append(_issue(f"{mode} split needs a splitValue", expense_id))
        elif link.split_value < 0:
            errors.append(_issue(f"{mode} split value cannot be negative", expense_id))
    if errors:
        return ValidationResult.from_errors(errors)

    percentages = [link.split_value for link in links if _mode(link) == "percentage"]
    if percentages:
        total = sum(percentages)
        if abs(total - PERCENTAGE_TOTAL) > PERCENTAGE_TOLERANCE + _EPSILON:
            errors.append(
                _issue(
                    f"Percentage splits must total 100% (got {total:g}%)",
                    expense_id,
                )
            )

    fixed = [link.split_value for link in links if _mode(link) == "fixed"]
    if fixed:
        total = sum(fixed)
        if abs(total - expense_amount) > FIXED_AMOUNT_TOLERANCE + _EPSILON:
            errors.append(
                _issue(
                    f"Fixed splits must total the expense amount {expense_amount:.2f} "
                    f"(got {total:.2f})",
                    expense_id,
                )
            )
    return ValidationResult.from_errors(errors)


def allocate_split_amounts(amount: float, links: Sequence[SplitRule]) -> List[float]:
    """Share of ``amount`` for each link, in link order, rounded to cents.

    Equal links split what fixed and percentage links leave over; the last
    equal link takes the rounding remainder so the shares add up exactly.
    """
    shares: List[Optional[float]] = []
    assigned = 0.0
    equal_positions = []
    for index, link in enumerate(links):
        mode = _mode(link)
        if mode == "fixed":
            share = round2(link.split_value or 0.0)
        elif mode == "percentage":
            share = round2(amount * (link.split_value or 0.0) / PERCENTAGE_TOTAL)
        else:
            equal_positions.append(index)
            shares.append(None)
            continue
        shares.append(share)
        assigned += share

    if equal_positions:
        even = split_evenly(round2(amount - assigned), len(equal_positions))
        for position, share in zip(equal_positions, even):
            shares[position] = share
    return [share or 0.0 for share in shares]
