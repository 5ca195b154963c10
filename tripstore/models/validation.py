from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import ValidationErrorType


class ValidationIssue(BaseModel):
    """One referential-integrity problem found in a trip document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: ValidationErrorType
    message: str
    item_id: Optional[str] = None
    expense_id: Optional[str] = None
    trip_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ValidationResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True, errors=[])

    @classmethod
    def from_errors(cls, errors: List[ValidationIssue]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors))

    def error_payloads(self) -> List[Dict[str, Any]]:
        return [e.to_payload() for e in self.errors]


class ValidationSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_errors: int
    error_types: List[ValidationErrorType]
    affected_expenses: List[str]
    affected_travel_items: List[str]


class ValidationReport(ValidationResult):
    trip_id: str
    summary: Optional[ValidationSummary] = None
