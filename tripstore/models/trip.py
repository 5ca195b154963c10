from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Timestamps revive to datetime; plain dates ("2024-06-01") stay strings.
DateValue = Union[datetime, str]


class DocumentModel(BaseModel):
    """Base for persisted document parts: camelCase on the wire, unknown keys kept."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CostTrackingLink(DocumentModel):
    expense_id: str
    description: Optional[str] = None
    split_mode: Optional[Literal["equal", "percentage", "fixed"]] = None
    split_value: Optional[float] = None

    @field_validator("expense_id")
    def _expense_id_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("expenseId cannot be empty")
        return value


class TravelReference(DocumentModel):
    type: Literal["location", "accommodation", "route"]
    location_id: Optional[str] = None
    accommodation_id: Optional[str] = None
    route_id: Optional[str] = None
    description: Optional[str] = None

    @property
    def target_id(self) -> Optional[str]:
        if self.type == "location":
            return self.location_id
        if self.type == "accommodation":
            return self.accommodation_id
        return self.route_id


class Location(DocumentModel):
    id: str
    kind: Literal["location"] = "location"
    name: str = ""
    coordinates: Optional[List[float]] = None
    arrival_time: Optional[str] = None
    departure_time: Optional[str] = None
    date: Optional[DateValue] = None
    end_date: Optional[DateValue] = None
    duration: Optional[float] = None
    notes: Optional[str] = None
    accommodation_ids: Optional[List[str]] = None
    # Legacy inline accommodation, moved out by the v1->v2 migration
    accommodation_data: Optional[str] = None
    is_accommodation_public: Optional[bool] = None
    cost_tracking_links: Optional[List[CostTrackingLink]] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class RouteSegment(DocumentModel):
    id: str
    kind: Literal["route"] = "route"
    type: str = "other"
    origin: str = Field("", alias="from")
    destination: str = Field("", alias="to")
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    distance: Optional[float] = None
    distance_override: Optional[float] = None
    from_coordinates: Optional[List[float]] = None
    to_coordinates: Optional[List[float]] = None
    route_points: Optional[List[List[float]]] = None
    private_notes: Optional[str] = None
    cost_tracking_links: Optional[List[CostTrackingLink]] = None

    @property
    def display_name(self) -> str:
        return f"{self.origin} → {self.destination}"


class Route(RouteSegment):
    sub_routes: Optional[List[RouteSegment]] = None


class Accommodation(DocumentModel):
    id: str
    kind: Literal["accommodation"] = "accommodation"
    name: str = ""
    location_id: str
    accommodation_data: Optional[str] = None
    is_accommodation_public: Optional[bool] = None
    cost_tracking_links: Optional[List[CostTrackingLink]] = None
    created_at: Optional[DateValue] = None
    updated_at: Optional[DateValue] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


TravelItem = Union[Location, Route, RouteSegment, Accommodation]


class Expense(DocumentModel):
    id: str
    date: Optional[DateValue] = None
    amount: float = 0.0
    currency: str = ""
    category: str = ""
    country: Optional[str] = None
    description: str = ""
    notes: Optional[str] = None
    expense_type: Optional[str] = None
    travel_reference: Optional[TravelReference] = None


class TravelData(DocumentModel):
    locations: List[Location] = Field(default_factory=list)
    routes: List[Route] = Field(default_factory=list)


class CostData(DocumentModel):
    overall_budget: Optional[float] = None
    reserved_budget: Optional[float] = None
    currency: Optional[str] = None
    country_budgets: Optional[List[Dict[str, Any]]] = None
    expenses: List[Expense] = Field(default_factory=list)
    custom_categories: Optional[List[str]] = None


class TripDocument(DocumentModel):
    """One trip: travel items, accommodations and expenses in a single record."""

    schema_version: int
    id: str = ""
    title: str = ""
    description: str = ""
    start_date: Optional[DateValue] = None
    end_date: Optional[DateValue] = None
    created_at: Optional[DateValue] = None
    updated_at: Optional[DateValue] = None
    travel_data: Optional[TravelData] = None
    accommodations: Optional[List[Accommodation]] = None
    cost_data: Optional[CostData] = None
    # Held by the store, never part of the persisted body
    document_version: int = Field(0, exclude=True)

    @model_validator(mode="after")
    def _unique_ids_per_collection(self) -> "TripDocument":
        # Collections are keyed by id; a repeated id would make deltas ambiguous.
        for kind, items in (
            ("location", self.locations),
            ("route", self.routes),
            ("accommodation", self.accommodations or []),
            ("expense", self.expenses),
        ):
            seen = set()
            for item in items:
                if item.id in seen:
                    raise ValueError(f"duplicate {kind} id '{item.id}'")
                seen.add(item.id)
        return self

    @property
    def locations(self) -> List[Location]:
        return self.travel_data.locations if self.travel_data else []

    @property
    def routes(self) -> List[Route]:
        return self.travel_data.routes if self.travel_data else []

    @property
    def expenses(self) -> List[Expense]:
        return self.cost_data.expenses if self.cost_data else []

    def find_expense(self, expense_id: str) -> Optional[Expense]:
        for expense in self.expenses:
            if expense.id == expense_id:
                return expense
        return None


# ----------------------------------------------------------------------
# API payloads


class TripCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    description: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    currency: Optional[str] = None
    overall_budget: Optional[float] = None

    @field_validator("title")
    def _title_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("title cannot be empty")
        return value.strip()

    @field_validator("end_date")
    def _end_not_before_start(cls, end: Optional[str], info) -> Optional[str]:
        start = info.data.get("start_date")
        if end and start and end[:10] < start[:10]:
            raise ValueError("endDate cannot be before startDate")
        return end


class TripSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    start_date: Optional[DateValue] = None
    end_date: Optional[DateValue] = None
    created_at: Optional[DateValue] = None
    schema_version: int
    document_version: int
    has_travel: bool
    has_cost: bool


__all__ = [
    "CostTrackingLink",
    "TravelReference",
    "Location",
    "RouteSegment",
    "Route",
    "Accommodation",
    "TravelItem",
    "Expense",
    "TravelData",
    "CostData",
    "TripDocument",
    "TripCreate",
    "TripSummary",
]
