from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TravelItemKind = Literal["location", "route", "accommodation"]
SplitMode = Literal["equal", "percentage", "fixed"]


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LinkTarget(_ApiModel):
    """Which travel item an expense should be attached to."""

    kind: TravelItemKind
    id: str
    name: Optional[str] = None

    @field_validator("id")
    def _id_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("travel item id cannot be empty")
        return value


class SplitLink(LinkTarget):
    description: Optional[str] = None
    split_mode: Optional[SplitMode] = None
    split_value: Optional[float] = None


class LinkOperation(_ApiModel):
    type: Literal["add", "update", "remove"]
    expense_id: str
    target: Optional[LinkTarget] = None
    description: Optional[str] = None


# ----------------------------------------------------------------------
# Requests


class LinkRequest(_ApiModel):
    expense_id: str
    travel_item_id: str
    travel_item_type: TravelItemKind
    description: Optional[str] = None

    def target(self) -> LinkTarget:
        return LinkTarget(kind=self.travel_item_type, id=self.travel_item_id)


class SplitLinkRequest(_ApiModel):
    expense_id: str
    links: List[SplitLink] = Field(default_factory=list)


class MoveLinkRequest(_ApiModel):
    expense_id: str
    from_travel_item_id: str
    to_travel_item_id: str
    to_travel_item_type: TravelItemKind
    description: Optional[str] = None


class LinkOperationsRequest(_ApiModel):
    operations: List[LinkOperation]


class ValidateRequest(_ApiModel):
    action: Literal["validate-expense", "validate-link", "validate-all"]
    expense_id: Optional[str] = None
    travel_item_id: Optional[str] = None


# ----------------------------------------------------------------------
# Responses


class ExistingLink(_ApiModel):
    travel_item_id: str
    travel_item_name: str
    travel_item_type: TravelItemKind


class ExpenseLinkOut(ExistingLink):
    expense_id: str
    description: Optional[str] = None
    split_mode: Optional[SplitMode] = None
    split_value: Optional[float] = None
    # Share of the expense amount, filled in on split responses
    amount: Optional[float] = None


class SyncResult(_ApiModel):
    synced: int
    errors: List[str] = Field(default_factory=list)
