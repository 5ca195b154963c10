"""Load/save of trip documents on top of the blob store.

Every load migrates the stored JSON to the current schema (persisting it when
the version advanced) and parses it into a ``TripDocument`` once, so callers
never see raw or outdated shapes. Saves are compare-and-swap on the
``document_version`` the caller loaded.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from tripstore.core.config import Settings
from tripstore.core.errors import (
    BoundaryViolationError,
    ConflictError,
    InvalidTripDataError,
    OutdatedSchemaError,
    TripDataError,
    TripNotFoundError,
    jsonable_errors,
)
from tripstore.db.dal import Database, validate_trip_id
from tripstore.db.migrate import (
    CURRENT_SCHEMA_VERSION,
    MigrationReport,
    migrate_with_report,
    upgrade_legacy_document,
)
from tripstore.db.serialization import dumps, loads
from tripstore.models.trip import CostData, TravelData, TripCreate, TripDocument, TripSummary
from tripstore.services.composite_route import validate_and_normalize_composite_route
from tripstore.services.trip_boundary import (
    find_travel_item_by_id,
    validate_all_trip_boundaries,
)
from tripstore.services.trip_delta import (
    apply_cost_data_delta,
    apply_travel_data_delta,
    is_cost_data_delta,
    is_travel_data_delta,
)

logger = logging.getLogger("tripstore.unified_data")


class UnifiedDataService:
    def __init__(
        self,
        db: Database,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Reading
    def _decode(self, trip_id: str, body: str) -> MigrationReport:
        """Stored body brought to the current schema in memory only."""
        try:
            raw = loads(body)
        except ValueError as exc:
            raise InvalidTripDataError(
                f"Trip {trip_id} is not valid JSON", trip_id=trip_id
            ) from exc
        return migrate_with_report(upgrade_legacy_document(raw, now=self.clock), now=self.clock)

    def _read(self, trip_id: str, retry: bool = True) -> Optional[Tuple[Any, int]]:
        """Raw migrated document and its document_version, or None."""
        row = self.db.get_document(trip_id)
        if row is None:
            return None
        version = int(row["document_version"])
        report = self._decode(trip_id, row["body"])
        if not report.migrated:
            return report.document, version

        try:
            version = self.db.replace_document(
                trip_id, dumps(report.document), report.to_version, version
            )
        except ConflictError:
            if not retry:
                raise
            # Another request migrated (or saved) it first; read its result.
            logger.debug("Trip %s changed during migration; re-reading", trip_id)
            return self._read(trip_id, retry=False)
        self.db.record_link_cleanup(
            trip_id, report.removed, report.from_version, report.to_version
        )
        logger.info(
            "Trip %s migrated from v%s to v%s",
            trip_id,
            report.from_version,
            report.to_version,
            extra={
                "trip_id": trip_id,
                "from_version": report.from_version,
                "to_version": report.to_version,
            },
        )
        return report.document, version

    def _parse(self, trip_id: str, raw: Any, version: int) -> TripDocument:
        try:
            doc = TripDocument.model_validate(raw)
        except ValidationError as exc:
            raise InvalidTripDataError(
                f"Trip {trip_id} does not match the trip document schema",
                errors=jsonable_errors(exc.errors(include_url=False, include_input=False)),
                trip_id=trip_id,
            ) from exc
        if not doc.id:
            # The store key is authoritative for documents written without one
            doc.id = trip_id
        doc.document_version = version
        return doc

    def load(self, trip_id: str) -> Optional[TripDocument]:
        found = self._read(trip_id)
        if found is None:
            return None
        raw, version = found
        return self._parse(trip_id, raw, version)

    def require(self, trip_id: str) -> TripDocument:
        doc = self.load(trip_id)
        if doc is None:
            raise TripNotFoundError(f"Trip {trip_id} not found", trip_id=trip_id)
        return doc

    def _require_raw(self, trip_id: str) -> Tuple[Dict[str, Any], int]:
        found = self._read(trip_id)
        if found is None:
            raise TripNotFoundError(f"Trip {trip_id} not found", trip_id=trip_id)
        return found

    def _peek(self, trip_id: str) -> Optional[TripDocument]:
        """Current-schema view of a stored trip that never writes it back."""
        row = self.db.get_document(trip_id)
        if row is None:
            return None
        report = self._decode(trip_id, row["body"])
        return self._parse(trip_id, report.document, int(row["document_version"]))

    def _try_load(self, trip_id: str, persist: bool = True) -> Optional[TripDocument]:
        try:
            return self.load(trip_id) if persist else self._peek(trip_id)
        except InvalidTripDataError as exc:
            logger.warning(
                "Skipping unreadable trip %s: %s", trip_id, exc.message,
                extra={"trip_id": trip_id, "errors": exc.errors or None},
            )
            return None

    def list_trips(self) -> List[TripSummary]:
        summaries = []
        for trip_id in self.db.list_document_ids():
            doc = self._try_load(trip_id)
            if doc is None:
                continue
            summaries.append(
                TripSummary(
                    id=doc.id or trip_id,
                    title=doc.title,
                    start_date=doc.start_date,
                    end_date=doc.end_date,
                    created_at=doc.created_at,
                    schema_version=doc.schema_version,
                    document_version=doc.document_version,
                    has_travel=doc.travel_data is not None,
                    has_cost=doc.cost_data is not None,
                )
            )
        return summaries

    def locate_expense(self, expense_id: str, exclude: Optional[str] = None) -> Optional[str]:
        """Id of another stored trip that declares ``expense_id``.

        Other trips are only read, so an outdated one is not migrated here.
        """
        for trip_id in self.db.list_document_ids():
            if trip_id == exclude:
                continue
            doc = self._try_load(trip_id, persist=False)
            if doc is not None and doc.find_expense(expense_id) is not None:
                return trip_id
        return None

    def locate_travel_item(self, item_id: str, exclude: Optional[str] = None) -> Optional[str]:
        for trip_id in self.db.list_document_ids():
            if trip_id == exclude:
                continue
            doc = self._try_load(trip_id, persist=False)
            if doc is not None and find_travel_item_by_id(item_id, doc, include_segments=True):
                return trip_id
        return None

    def list_cleanup_log(self, trip_id: str) -> List[Dict[str, Any]]:
        if not self.db.document_exists(trip_id):
            raise TripNotFoundError(f"Trip {trip_id} not found", trip_id=trip_id)
        return self.db.list_link_cleanup(trip_id)

    # ------------------------------------------------------------------
    # Writing
    def save(self, doc: TripDocument, expected_version: Optional[int] = None) -> TripDocument:
        """Persist the whole document; a ``document_version`` of 0 means insert."""
        validate_trip_id(doc.id)
        expected = doc.document_version if expected_version is None else expected_version
        doc.updated_at = self.clock()
        body = dumps(doc.to_document())
        if expected == 0:
            doc.document_version = self.db.insert_document(doc.id, body, doc.schema_version)
        else:
            doc.document_version = self.db.replace_document(
                doc.id, body, doc.schema_version, expected
            )
        return doc

    def create_trip(self, payload: TripCreate) -> TripDocument:
        validate_trip_id(payload.id)
        if self.db.document_exists(payload.id):
            raise ConflictError(f"Trip {payload.id} already exists", trip_id=payload.id)
        now = self.clock()
        doc = TripDocument(
            schema_version=CURRENT_SCHEMA_VERSION,
            id=payload.id,
            title=payload.title,
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
            created_at=now,
            updated_at=now,
            travel_data=TravelData(),
            accommodations=[],
            cost_data=CostData(
                overall_budget=payload.overall_budget or 0,
                currency=(payload.currency or self.settings.default_currency).upper(),
                country_budgets=[],
                expenses=[],
            ),
        )
        self.save(doc, expected_version=0)
        logger.info("Trip %s created", doc.id, extra={"trip_id": doc.id})
        return doc

    def delete_trip(self, trip_id: str) -> None:
        self.db.delete_document(trip_id)
        logger.info("Trip %s deleted", trip_id, extra={"trip_id": trip_id})

    def update_travel_data(
        self, trip_id: str, delta: Mapping[str, Any], base_version: Optional[int] = None
    ) -> TripDocument:
        if not is_travel_data_delta(delta):
            raise TripDataError("Malformed travel data delta", trip_id=trip_id)
        raw, version = self._require_raw(trip_id)
        self._check_base(trip_id, version, base_version)
        updated = apply_travel_data_delta(raw, delta)
        self._normalize_routes(trip_id, updated, delta.get("routes"))
        return self._commit(trip_id, updated, version)

    def update_cost_data(
        self, trip_id: str, delta: Mapping[str, Any], base_version: Optional[int] = None
    ) -> TripDocument:
        if not is_cost_data_delta(delta):
            raise TripDataError("Malformed cost data delta", trip_id=trip_id)
        raw, version = self._require_raw(trip_id)
        self._check_base(trip_id, version, base_version)
        return self._commit(trip_id, apply_cost_data_delta(raw, delta), version)

    def _check_base(self, trip_id: str, version: int, base_version: Optional[int]) -> None:
        if base_version is not None and base_version != version:
            raise ConflictError(
                f"Trip {trip_id} changed since it was loaded "
                f"(expected version {base_version}, found {version})",
                trip_id=trip_id,
                expected_version=base_version,
                current_version=version,
            )

    def _normalize_routes(
        self, trip_id: str, doc: Dict[str, Any], routes_delta: Optional[Mapping[str, Any]]
    ) -> None:
        if not routes_delta:
            return
        touched = {
            entry.get("id")
            for key in ("added", "updated")
            for entry in routes_delta.get(key) or []
            if isinstance(entry, Mapping)
        }
        routes = (doc.get("travelData") or {}).get("routes") or []
        for index, route in enumerate(routes):
            if route.get("id") not in touched:
                continue
            result = validate_and_normalize_composite_route(route)
            if not result.ok:
                raise TripDataError(
                    f"Route {route.get('id')}: {result.describe()}",
                    trip_id=trip_id,
                    route_id=route.get("id"),
                    code=result.code,
                    segment_number=result.segment_number,
                )
            routes[index] = result.route

    def _commit(self, trip_id: str, raw: Dict[str, Any], version: int) -> TripDocument:
        doc = self._parse(trip_id, raw, version)
        if doc.schema_version < CURRENT_SCHEMA_VERSION:
            raise OutdatedSchemaError(
                f"Trip {trip_id} is at schema v{doc.schema_version} and cannot be updated",
                trip_id=trip_id,
            )
        result = validate_all_trip_boundaries(doc)
        if not result.is_valid:
            if self.settings.strict_boundary_checks:
                raise BoundaryViolationError(
                    f"Update would leave {len(result.errors)} invalid reference(s) in trip {trip_id}",
                    errors=result.error_payloads(),
                    trip_id=trip_id,
                )
            logger.warning(
                "Trip %s has %d boundary violation(s) after update",
                trip_id,
                len(result.errors),
                extra={"trip_id": trip_id, "errors": result.error_payloads()},
            )
        return self.save(doc, expected_version=version)
