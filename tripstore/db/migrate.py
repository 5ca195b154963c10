"""Trip document migrations.

Handles schema evolution of stored trip documents by applying ordered,
idempotent steps keyed by the integer ``schemaVersion`` carried in every
document. Each step upgrades the document in place on a private copy, so the
caller's object is never touched.

Migration never fails a load: a document that cannot be advanced is handed
back unchanged at its original version and the problem is logged. Callers that
need the current shape (the linking service) check the version themselves.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from tripstore.db.serialization import format_timestamp
from tripstore.models.constants import ACCOMMODATION_CATEGORY

logger = logging.getLogger("tripstore.migrate")

CURRENT_SCHEMA_VERSION = 4
LEGACY_COST_PREFIX_RE = re.compile(r"^(cost-)+")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MigrationReport:
    document: Any
    from_version: Optional[int]
    to_version: Optional[int]
    removed: List[str] = field(default_factory=list)

    @property
    def migrated(self) -> bool:
        return (
            self.from_version is not None
            and self.to_version is not None
            and self.to_version > self.from_version
        )


class MigrationAuditLog:
    """In-memory record of links dropped by migrations, keyed by trip id."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[str]] = {}

    def record(self, trip_id: Optional[str], messages: Iterable[str]) -> None:
        messages = list(messages)
        if messages:
            self._entries.setdefault(trip_id or "", []).extend(messages)

    def entries_for(self, trip_id: str) -> List[str]:
        return list(self._entries.get(trip_id, []))


def migrate_with_report(doc: Any, now: Optional[Clock] = None) -> MigrationReport:
    """Bring ``doc`` up to ``CURRENT_SCHEMA_VERSION`` and report what changed."""
    if not isinstance(doc, dict):
        logger.warning("Cannot migrate trip document of type %s", type(doc).__name__)
        return MigrationReport(doc, None, None)

    trip_id = doc.get("id")
    version = doc.get("schemaVersion")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        logger.warning(
            "Trip %s has invalid schema version %r; leaving it unmigrated",
            trip_id,
            version,
            extra={"trip_id": trip_id},
        )
        return MigrationReport(doc, None, None)
    if version >= CURRENT_SCHEMA_VERSION:
        return MigrationReport(doc, version, version)

    clock = now or _utc_now
    work = copy.deepcopy(doc)
    removed: List[str] = []
    try:
        for target, step in _STEPS:
            if work["schemaVersion"] < target:
                stamp = format_timestamp(clock())
                removed.extend(step(work, stamp))
                work["schemaVersion"] = target
                work["updatedAt"] = stamp
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        logger.warning(
            "Trip %s could not be migrated from v%s: %s",
            trip_id,
            version,
            exc,
            extra={"trip_id": trip_id, "from_version": version},
        )
        return MigrationReport(doc, version, version)

    if removed:
        logger.info(
            "Trip %s v3→v4 migration cleanup: removed %d invalid reference(s)",
            trip_id,
            len(removed),
            extra={"trip_id": trip_id, "removed": removed},
        )
    return MigrationReport(work, version, work["schemaVersion"], removed)


def migrate_to_latest_schema(
    doc: Any,
    audit_log: Optional[MigrationAuditLog] = None,
    now: Optional[Clock] = None,
) -> Any:
    report = migrate_with_report(doc, now=now)
    if audit_log is not None and report.removed:
        audit_log.record(doc.get("id"), report.removed)
    return report.document


# ----------------------------------------------------------------------
# Steps


def _locations(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    travel = doc.get("travelData") or {}
    return travel.get("locations") or []


def _routes(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    travel = doc.get("travelData") or {}
    return travel.get("routes") or []


def _expenses(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    cost = doc.get("costData") or {}
    return cost.get("expenses") or []


def _unique_id(base: str, taken: Set[str]) -> str:
    candidate, n = base, 2
    while candidate in taken:
        candidate = f"{base}-{n}"
        n += 1
    taken.add(candidate)
    return candidate


def _accommodation_name(data: str, location: Dict[str, Any]) -> str:
    for line in data.splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            return line[:80]
    return f"Accommodation in {location.get('name') or location['id']}"


def _extract_accommodations(doc: Dict[str, Any], stamp: str) -> None:
    """Move inline ``accommodationData`` blobs into standalone records.

    Locations that already own an accommodation keep it; only their inline
    copy is dropped.
    """
    accommodations = doc.get("accommodations") or []
    doc["accommodations"] = accommodations
    by_location = {a.get("locationId"): a for a in accommodations}
    taken = {a["id"] for a in accommodations}

    for location in _locations(doc):
        location_id = location["id"]
        data = location.pop("accommodationData", None)
        is_public = location.pop("isAccommodationPublic", None)
        if not isinstance(data, str) or not data.strip():
            continue

        pointers = location.setdefault("accommodationIds", [])
        existing = by_location.get(location_id)
        if existing is not None:
            if existing["id"] not in pointers:
                pointers.append(existing["id"])
            continue

        accommodation = {
            "id": _unique_id(f"{location_id}-accommodation", taken),
            "kind": "accommodation",
            "name": _accommodation_name(data, location),
            "locationId": location_id,
            "accommodationData": data,
            "isAccommodationPublic": bool(is_public),
            "costTrackingLinks": [],
            "createdAt": stamp,
            "updatedAt": stamp,
        }
        accommodations.append(accommodation)
        by_location[location_id] = accommodation
        pointers.append(accommodation["id"])


def _migrate_to_v2(doc: Dict[str, Any], stamp: str) -> List[str]:
    _extract_accommodations(doc, stamp)
    return []


def _migrate_to_v3(doc: Dict[str, Any], stamp: str) -> List[str]:
    # The v2 extraction shipped incomplete; run it again before splitting links.
    _extract_accommodations(doc, stamp)

    categories = {
        e["id"]: str(e.get("category") or "").strip().lower()
        for e in _expenses(doc)
        if isinstance(e, dict) and "id" in e
    }
    by_location = {}
    for accommodation in doc.get("accommodations") or []:
        by_location.setdefault(accommodation.get("locationId"), accommodation)

    for location in _locations(doc):
        links = location.get("costTrackingLinks")
        accommodation = by_location.get(location["id"])
        if not links or accommodation is None:
            continue
        target = accommodation.setdefault("costTrackingLinks", [])
        already = {link.get("expenseId") for link in target}
        kept = []
        for link in links:
            if categories.get(link.get("expenseId")) == ACCOMMODATION_CATEGORY:
                if link.get("expenseId") not in already:
                    target.append(link)
                    already.add(link.get("expenseId"))
            else:
                kept.append(link)
        location["costTrackingLinks"] = kept
    return []


def _prune_links(item: Dict[str, Any], label: str, expense_ids: Set[str]) -> List[str]:
    removed = []
    kept = []
    for link in item.get("costTrackingLinks") or []:
        expense_id = link.get("expenseId") if isinstance(link, dict) else None
        if isinstance(expense_id, str) and expense_id in expense_ids:
            kept.append(link)
        else:
            removed.append(
                f"Removed invalid expense link {expense_id} from {label} {item['id']}"
            )
    item["costTrackingLinks"] = kept
    return removed


def _reference_target(reference: Dict[str, Any]) -> Optional[str]:
    key = {
        "location": "locationId",
        "accommodation": "accommodationId",
        "route": "routeId",
    }.get(reference.get("type"))
    return reference.get(key) if key else None


def _migrate_to_v4(doc: Dict[str, Any], stamp: str) -> List[str]:
    expense_ids = {e["id"] for e in _expenses(doc) if isinstance(e, dict) and "id" in e}
    removed: List[str] = []

    for location in _locations(doc):
        removed.extend(_prune_links(location, "location", expense_ids))
    for accommodation in doc.get("accommodations") or []:
        removed.extend(_prune_links(accommodation, "accommodation", expense_ids))
    for route in _routes(doc):
        removed.extend(_prune_links(route, "route", expense_ids))
        for segment in route.get("subRoutes") or []:
            removed.extend(_prune_links(segment, "route segment", expense_ids))

    item_ids = {item["id"] for item in _locations(doc)}
    item_ids.update(item["id"] for item in _routes(doc))
    item_ids.update(item["id"] for item in doc.get("accommodations") or [])
    for expense in _expenses(doc):
        reference = expense.get("travelReference")
        if not isinstance(reference, dict):
            continue
        target = _reference_target(reference)
        if target not in item_ids:
            expense.pop("travelReference")
            removed.append(
                f"Cleared invalid travel reference {target} from expense {expense['id']}"
            )
    return removed


_STEPS = (
    (2, _migrate_to_v2),
    (3, _migrate_to_v3),
    (4, _migrate_to_v4),
)


# ----------------------------------------------------------------------
# Pre-unified formats (separate travel and cost files)


def is_unified_format(data: Any) -> bool:
    version = data.get("schemaVersion") if isinstance(data, dict) else None
    return isinstance(version, int) and not isinstance(version, bool) and version >= 1


def is_legacy_travel_format(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("locations"), list)
        and not data.get("schemaVersion")
    )


def is_legacy_cost_format(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and bool(data.get("tripId"))
        and isinstance(data.get("expenses"), list)
        and not data.get("schemaVersion")
    )


def _legacy_cost_data(cost: Dict[str, Any]) -> Dict[str, Any]:
    result = {
        "overallBudget": cost.get("overallBudget", 0),
        "currency": cost.get("currency"),
        "countryBudgets": cost.get("countryBudgets") or [],
        "expenses": cost.get("expenses") or [],
    }
    if cost.get("ynabImportData") is not None:
        result["ynabImportData"] = cost["ynabImportData"]
    return result


def _legacy_travel_document(
    travel: Dict[str, Any], cost: Optional[Dict[str, Any]], stamp: str
) -> Dict[str, Any]:
    travel_data = {
        "locations": travel.get("locations") or [],
        "routes": travel.get("routes") or [],
    }
    if travel.get("days") is not None:
        travel_data["days"] = travel["days"]
    doc = {
        "schemaVersion": 1,
        "id": travel.get("id") or "",
        "title": travel.get("title", ""),
        "description": travel.get("description", ""),
        "startDate": travel.get("startDate"),
        "endDate": travel.get("endDate"),
        "createdAt": travel.get("createdAt") or stamp,
        "updatedAt": travel.get("updatedAt") or stamp,
        "travelData": travel_data,
    }
    if cost is not None:
        doc["costData"] = _legacy_cost_data(cost)
    return doc


def _legacy_cost_document(cost: Dict[str, Any], stamp: str) -> Dict[str, Any]:
    return {
        "schemaVersion": 1,
        "id": LEGACY_COST_PREFIX_RE.sub("", cost["tripId"]),
        "title": cost.get("tripTitle", ""),
        "description": "",
        "startDate": cost.get("tripStartDate"),
        "endDate": cost.get("tripEndDate"),
        "createdAt": cost.get("createdAt") or stamp,
        "updatedAt": cost.get("updatedAt") or stamp,
        "costData": _legacy_cost_data(cost),
    }


def upgrade_legacy_document(data: Any, now: Optional[Clock] = None) -> Any:
    """Wrap a stored pre-unified travel or cost body as a version 1 document.

    Anything else is returned as is. The result still has to go through
    ``migrate_with_report`` to reach the current version.
    """
    if is_legacy_travel_format(data):
        return _legacy_travel_document(data, None, format_timestamp((now or _utc_now)()))
    if is_legacy_cost_format(data):
        return _legacy_cost_document(data, format_timestamp((now or _utc_now)()))
    return data


def migrate_legacy_travel_data(
    travel: Dict[str, Any],
    cost: Optional[Dict[str, Any]] = None,
    now: Optional[Clock] = None,
) -> Dict[str, Any]:
    """Combine a legacy travel file (and optional cost file) into one document.

    The result starts at version 1 and runs through every step, so inline
    accommodations are extracted and dangling links pruned like any old trip.
    """
    doc = _legacy_travel_document(travel, cost, format_timestamp((now or _utc_now)()))
    return migrate_to_latest_schema(doc, now=now)


def migrate_legacy_cost_data(cost: Dict[str, Any], now: Optional[Clock] = None) -> Dict[str, Any]:
    doc = _legacy_cost_document(cost, format_timestamp((now or _utc_now)()))
    return migrate_to_latest_schema(doc, now=now)
