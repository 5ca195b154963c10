"""Trip-level deltas for the travel half and the cost half of a document.

Both work on raw document dicts. Scalar fields are applied only when the key is
present in the delta; collection fields go through ``collection_delta``.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from tripstore.db.serialization import canonical, clone
from tripstore.services.collection_delta import (
    apply_delta,
    create_delta,
    has_collection_changes,
    is_collection_delta_shape,
)

TRAVEL_SCALARS = ("title", "description", "startDate", "endDate", "instagramUsername")
TRAVEL_COLLECTIONS = ("locations", "routes", "accommodations")
COST_SCALARS = ("overallBudget", "reservedBudget", "currency", "customCategories")
COST_COLLECTIONS = ("countryBudgets", "expenses")


def _travel_collection(doc: Mapping[str, Any], name: str) -> list:
    if name == "accommodations":
        return doc.get("accommodations") or []
    return (doc.get("travelData") or {}).get(name) or []


def _cost(doc: Mapping[str, Any]) -> Mapping[str, Any]:
    return doc.get("costData") or {}


def _changed(before: Any, after: Any) -> bool:
    return canonical(before) != canonical(after)


# ----------------------------------------------------------------------
# Travel


def is_travel_data_delta_empty(delta: Optional[Mapping[str, Any]]) -> bool:
    if not delta:
        return True
    if any(key in delta for key in TRAVEL_SCALARS):
        return False
    return not any(has_collection_changes(delta.get(key)) for key in TRAVEL_COLLECTIONS)


def create_travel_data_delta(
    previous: Mapping[str, Any], current: Mapping[str, Any]
) -> Optional[Dict[str, Any]]:
    delta: Dict[str, Any] = {}
    for key in TRAVEL_SCALARS:
        if _changed(previous.get(key), current.get(key)):
            delta[key] = clone(current.get(key))
    for key in TRAVEL_COLLECTIONS:
        collection = create_delta(
            _travel_collection(previous, key), _travel_collection(current, key)
        )
        if collection:
            delta[key] = collection
    return None if is_travel_data_delta_empty(delta) else delta


def apply_travel_data_delta(
    doc: Mapping[str, Any], delta: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """Return a copy of ``doc`` with the travel delta applied."""
    result = clone(dict(doc))
    if not delta:
        return result

    travel = result.get("travelData") or {}
    for key in ("locations", "routes"):
        if delta.get(key) is not None or key in travel:
            travel[key] = apply_delta(travel.get(key) or [], delta.get(key))
    if travel:
        result["travelData"] = travel
    if delta.get("accommodations") is not None:
        result["accommodations"] = apply_delta(
            result.get("accommodations") or [], delta["accommodations"]
        )

    if "title" in delta:
        result["title"] = delta["title"] or ""
    if "description" in delta:
        result["description"] = delta["description"] or ""
    for key in ("startDate", "endDate"):
        if delta.get(key) is not None:
            result[key] = delta[key]
    if "instagramUsername" in delta:
        result["instagramUsername"] = delta["instagramUsername"]
    return result


def _is_date_like(value: Any) -> bool:
    return isinstance(value, (str, date, datetime))


def is_travel_data_delta(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    for key in ("title", "description", "instagramUsername"):
        if value.get(key) is not None and not isinstance(value[key], str):
            return False
    for key in ("startDate", "endDate"):
        if value.get(key) is not None and not _is_date_like(value[key]):
            return False
    return all(
        value.get(key) is None or is_collection_delta_shape(value[key])
        for key in TRAVEL_COLLECTIONS
    )


# ----------------------------------------------------------------------
# Cost


def is_cost_data_delta_empty(delta: Optional[Mapping[str, Any]]) -> bool:
    if not delta:
        return True
    if any(key in delta for key in COST_SCALARS):
        return False
    return not any(has_collection_changes(delta.get(key)) for key in COST_COLLECTIONS)


def create_cost_data_delta(
    previous: Mapping[str, Any], current: Mapping[str, Any]
) -> Optional[Dict[str, Any]]:
    before, after = _cost(previous), _cost(current)
    delta: Dict[str, Any] = {}
    for key in COST_SCALARS:
        if _changed(before.get(key), after.get(key)):
            delta[key] = clone(after.get(key))
    for key in COST_COLLECTIONS:
        collection = create_delta(before.get(key) or [], after.get(key) or [])
        if collection:
            delta[key] = collection
    return None if is_cost_data_delta_empty(delta) else delta


def apply_cost_data_delta(
    doc: Mapping[str, Any], delta: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    result = clone(dict(doc))
    if not delta:
        return result

    cost = result.get("costData") or {"expenses": []}
    for key in COST_COLLECTIONS:
        if delta.get(key) is not None or key in cost:
            cost[key] = apply_delta(cost.get(key) or [], delta.get(key))
    for key in COST_SCALARS:
        if key in delta:
            cost[key] = clone(delta[key])
    result["costData"] = cost
    return result


def is_cost_data_delta(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    for key in ("overallBudget", "reservedBudget"):
        item = value.get(key)
        if item is not None and (isinstance(item, bool) or not isinstance(item, (int, float))):
            return False
    if value.get("currency") is not None and not isinstance(value["currency"], str):
        return False
    categories = value.get("customCategories")
    if categories is not None and not (
        isinstance(categories, list) and all(isinstance(c, str) for c in categories)
    ):
        return False
    return all(
        value.get(key) is None or is_collection_delta_shape(value[key])
        for key in COST_COLLECTIONS
    )
