"""Wire models for PATCH-style updates.

Request bodies are parsed here and handed to the delta services as plain
dicts (camelCase keys, only the fields the client actually sent).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    def to_delta(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


class CollectionDeltaIn(_WireModel):
    added: Optional[List[Dict[str, Any]]] = None
    updated: Optional[List[Dict[str, Any]]] = None
    removed_ids: Optional[List[str]] = None
    order: Optional[List[str]] = None


class TravelDataDeltaIn(_WireModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    instagram_username: Optional[str] = None
    locations: Optional[CollectionDeltaIn] = None
    routes: Optional[CollectionDeltaIn] = None
    accommodations: Optional[CollectionDeltaIn] = None


class CostDataDeltaIn(_WireModel):
    overall_budget: Optional[float] = None
    reserved_budget: Optional[float] = None
    currency: Optional[str] = None
    custom_categories: Optional[List[str]] = None
    country_budgets: Optional[CollectionDeltaIn] = None
    expenses: Optional[CollectionDeltaIn] = None
