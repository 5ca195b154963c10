"""Expense ↔ travel item links for one trip.

Links live on the travel item side (``costTrackingLinks``). Every write
loads the trip, validates the request against that document, mutates it and
saves the whole document back with compare-and-swap. Nothing is saved when a
check fails, so a rejected request leaves every stored trip untouched.

The expense-side ``travelReference`` is legacy: writes clear it and
``derive_travel_reference`` rebuilds the same shape from the links on read.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from tripstore.core.errors import (
    CrossTripReferenceError,
    DuplicateLinkError,
    ExpenseNotFoundError,
    OutdatedSchemaError,
    SplitValidationError,
    TravelItemNotFoundError,
    TripDataError,
)
from tripstore.db.migrate import CURRENT_SCHEMA_VERSION
from tripstore.models.constants import ValidationErrorType
from tripstore.models.links import (
    ExistingLink,
    ExpenseLinkOut,
    LinkOperation,
    LinkTarget,
    SplitLink,
    SyncResult,
)
from tripstore.models.trip import (
    CostTrackingLink,
    Expense,
    TravelItem,
    TravelReference,
    TripDocument,
)
from tripstore.models.validation import ValidationIssue
from tripstore.services.cost_splits import allocate_split_amounts, validate_split_configuration
from tripstore.services.trip_boundary import (
    find_travel_item_by_id,
    iter_linkable_items,
    validate_all_trip_boundaries,
    validate_expense_belongs_to_trip,
)
from tripstore.services.unified_data import UnifiedDataService

logger = logging.getLogger("tripstore.expense_linking")

_REFERENCE_FIELD = {
    "location": "location_id",
    "accommodation": "accommodation_id",
    "route": "route_id",
}


def _items_of_kind(doc: TripDocument, kind: str) -> Iterator[TravelItem]:
    if kind == "location":
        yield from doc.locations
    elif kind == "accommodation":
        yield from doc.accommodations or []
    elif kind == "route":
        for route in doc.routes:
            yield route
            yield from route.sub_routes or []


def find_link_target(doc: TripDocument, kind: str, item_id: str) -> Optional[TravelItem]:
    """Travel item of the given kind; routes include their segments."""
    for item in _items_of_kind(doc, kind):
        if item.id == item_id:
            return item
    return None


def _links_for(doc: TripDocument, expense_id: str) -> Iterator[Tuple[TravelItem, CostTrackingLink]]:
    for item in iter_linkable_items(doc):
        for link in item.cost_tracking_links or []:
            if link.expense_id == expense_id:
                yield item, link


class ExpenseLinkingService:
    def __init__(self, trip_id: str, store: UnifiedDataService):
        self.trip_id = trip_id
        self.store = store

    # ------------------------------------------------------------------
    # Loading / saving
    def _load(self) -> TripDocument:
        doc = self.store.require(self.trip_id)
        if doc.schema_version < CURRENT_SCHEMA_VERSION:
            raise OutdatedSchemaError(
                f"Trip {self.trip_id} is at schema v{doc.schema_version}; "
                f"links need v{CURRENT_SCHEMA_VERSION}",
                trip_id=self.trip_id,
            )
        return doc

    def _save(self, doc: TripDocument) -> TripDocument:
        self.store.save(doc)
        result = validate_all_trip_boundaries(doc)
        if not result.is_valid:
            logger.warning(
                "Trip %s has %d boundary violation(s) after link update",
                self.trip_id,
                len(result.errors),
                extra={"trip_id": self.trip_id, "errors": result.error_payloads()},
            )
        return doc

    # ------------------------------------------------------------------
    # Checks
    def _check_request(
        self, doc: TripDocument, expense_id: str, targets: Sequence[LinkTarget]
    ) -> Expense:
        """Raise unless the expense and every target live in this trip."""
        errors: List[ValidationIssue] = list(
            validate_expense_belongs_to_trip(expense_id, doc).errors
        )
        for target in targets:
            if find_link_target(doc, target.kind, target.id) is None:
                errors.append(
                    ValidationIssue(
                        type=ValidationErrorType.TRAVEL_ITEM_NOT_FOUND,
                        message=f"Travel item {target.id} ({target.kind}) not found in trip {doc.id}",
                        item_id=target.id,
                        trip_id=doc.id,
                    )
                )
        if not errors:
            return doc.find_expense(expense_id)
        self._raise_for(errors, expense_id)

    def _raise_for(self, errors: List[ValidationIssue], expense_id: str) -> None:
        reclassified = []
        owner = None
        for issue in errors:
            elsewhere = None
            if issue.type == ValidationErrorType.EXPENSE_NOT_FOUND:
                elsewhere = self.store.locate_expense(expense_id, exclude=self.trip_id)
            elif issue.type == ValidationErrorType.TRAVEL_ITEM_NOT_FOUND:
                elsewhere = self.store.locate_travel_item(issue.item_id, exclude=self.trip_id)
            if elsewhere:
                owner = owner or elsewhere
                issue = issue.model_copy(
                    update={
                        "type": ValidationErrorType.CROSS_TRIP_REFERENCE,
                        "message": f"{issue.item_id or expense_id} belongs to trip {elsewhere}, "
                        f"not {self.trip_id}",
                    }
                )
            reclassified.append(issue)

        payloads = [issue.to_payload() for issue in reclassified]
        if owner:
            raise CrossTripReferenceError(
                f"Cannot link across trips: reference belongs to trip {owner}",
                errors=payloads,
                trip_id=self.trip_id,
                expense_id=expense_id,
                owner_trip_id=owner,
            )
        first = reclassified[0].type
        if first == ValidationErrorType.EXPENSE_NOT_FOUND:
            raise ExpenseNotFoundError(
                reclassified[0].message, errors=payloads, trip_id=self.trip_id, expense_id=expense_id
            )
        if first == ValidationErrorType.TRAVEL_ITEM_NOT_FOUND:
            raise TravelItemNotFoundError(
                reclassified[0].message, errors=payloads, trip_id=self.trip_id, expense_id=expense_id
            )
        raise TripDataError(
            reclassified[0].message, error_type=first, errors=payloads, trip_id=self.trip_id
        )

    # ------------------------------------------------------------------
    # Mutation helpers
    @staticmethod
    def _remove_links(doc: TripDocument, expense_id: str) -> int:
        removed = 0
        for item in iter_linkable_items(doc):
            links = item.cost_tracking_links or []
            kept = [link for link in links if link.expense_id != expense_id]
            removed += len(links) - len(kept)
            if item.cost_tracking_links is not None:
                item.cost_tracking_links = kept
        return removed

    @staticmethod
    def _add_link(item: TravelItem, link: CostTrackingLink) -> None:
        if item.cost_tracking_links is None:
            item.cost_tracking_links = []
        item.cost_tracking_links.append(link)

    @staticmethod
    def _clear_reference(expense: Optional[Expense]) -> None:
        if expense is not None:
            expense.travel_reference = None

    def _link_out(
        self, item: TravelItem, link: CostTrackingLink, amount: Optional[float] = None
    ) -> ExpenseLinkOut:
        return ExpenseLinkOut(
            expense_id=link.expense_id,
            travel_item_id=item.id,
            travel_item_name=item.display_name,
            travel_item_type=item.kind,
            description=link.description,
            split_mode=link.split_mode,
            split_value=link.split_value,
            amount=amount,
        )

    # ------------------------------------------------------------------
    # Operations
    def create_or_update_link(
        self, expense_id: str, target: LinkTarget, description: Optional[str] = None
    ) -> ExpenseLinkOut:
        """Point ``expense_id`` at exactly one travel item, replacing any prior link."""
        doc = self._load()
        expense = self._check_request(doc, expense_id, [target])
        item = find_link_target(doc, target.kind, target.id)
        self._remove_links(doc, expense_id)
        link = CostTrackingLink(
            expense_id=expense_id, description=description or target.name or item.display_name
        )
        self._add_link(item, link)
        self._clear_reference(expense)
        self._save(doc)
        logger.info(
            "Linked expense %s to %s %s", expense_id, item.kind, item.id,
            extra={"trip_id": self.trip_id, "expense_id": expense_id},
        )
        return self._link_out(item, link)

    def create_multiple_links(self, expense_id: str, links: Sequence[SplitLink]) -> List[ExpenseLinkOut]:
        doc = self._load()
        expense = self._check_request(doc, expense_id, [])
        result = validate_split_configuration(links, expense.amount, expense_id=expense_id)
        if not result.is_valid:
            first = result.errors[0]
            if first.type == ValidationErrorType.SPLIT_VALIDATION_FAILED:
                raise SplitValidationError(
                    first.message, errors=result.error_payloads(),
                    trip_id=self.trip_id, expense_id=expense_id,
                )
            raise TripDataError(
                first.message, error_type=first.type, errors=result.error_payloads(),
                trip_id=self.trip_id, expense_id=expense_id,
            )

        seen = set()
        for link in links:
            key = (link.kind, link.id)
            if key in seen:
                raise DuplicateLinkError(
                    f"Travel item {link.id} appears more than once",
                    trip_id=self.trip_id, expense_id=expense_id, travel_item_id=link.id,
                )
            seen.add(key)

        self._check_request(doc, expense_id, links)
        self._remove_links(doc, expense_id)
        created = []
        shares = allocate_split_amounts(expense.amount, links)
        for split, share in zip(links, shares):
            item = find_link_target(doc, split.kind, split.id)
            link = CostTrackingLink(
                expense_id=expense_id,
                description=split.description or split.name or item.display_name,
                split_mode=split.split_mode,
                split_value=split.split_value,
            )
            self._add_link(item, link)
            created.append(self._link_out(item, link, amount=share))
        self._clear_reference(expense)
        self._save(doc)
        logger.info(
            "Split expense %s across %d travel items", expense_id, len(created),
            extra={"trip_id": self.trip_id, "expense_id": expense_id},
        )
        return created

    def remove_link(self, expense_id: str) -> int:
        """Drop every link for ``expense_id``; returns how many were removed."""
        doc = self._load()
        removed = self._remove_links(doc, expense_id)
        expense = doc.find_expense(expense_id)
        had_reference = expense is not None and expense.travel_reference is not None
        self._clear_reference(expense)
        if removed or had_reference:
            self._save(doc)
        return removed

    def link_expense(
        self, expense_id: str, target: LinkTarget, description: Optional[str] = None
    ) -> ExpenseLinkOut:
        """Like ``create_or_update_link`` but refuses an expense that is already linked."""
        doc = self._load()
        self._check_request(doc, expense_id, [target])
        existing = self.find_existing_link(expense_id, doc)
        if existing is not None:
            raise DuplicateLinkError(
                f"Expense {expense_id} is already linked to {existing.travel_item_name}",
                trip_id=self.trip_id,
                expense_id=expense_id,
                existing_link=existing.model_dump(by_alias=True),
            )
        return self.create_or_update_link(expense_id, target, description)

    def unlink_from_item(self, expense_id: str, item_id: str) -> bool:
        doc = self._load()
        item = find_travel_item_by_id(item_id, doc, include_segments=True)
        if item is None:
            raise TravelItemNotFoundError(
                f"Travel item {item_id} not found in trip {self.trip_id}",
                trip_id=self.trip_id, travel_item_id=item_id,
            )
        links = item.cost_tracking_links or []
        kept = [link for link in links if link.expense_id != expense_id]
        if len(kept) == len(links):
            return False
        item.cost_tracking_links = kept
        self._clear_reference(doc.find_expense(expense_id))
        self._save(doc)
        return True

    def move_link(
        self,
        expense_id: str,
        from_item_id: str,
        target: LinkTarget,
        description: Optional[str] = None,
    ) -> ExpenseLinkOut:
        doc = self._load()
        expense = self._check_request(doc, expense_id, [target])
        previous = None
        for item, link in _links_for(doc, expense_id):
            if item.id == from_item_id:
                previous = link
                break
        item = find_link_target(doc, target.kind, target.id)
        self._remove_links(doc, expense_id)
        link = CostTrackingLink(
            expense_id=expense_id,
            description=description or (previous.description if previous else None),
        )
        self._add_link(item, link)
        self._clear_reference(expense)
        self._save(doc)
        logger.info(
            "Moved expense %s from %s to %s", expense_id, from_item_id, item.id,
            extra={"trip_id": self.trip_id, "expense_id": expense_id},
        )
        return self._link_out(item, link)

    def apply_link_operations(self, operations: Sequence[LinkOperation]) -> TripDocument:
        """Run add/update/remove operations in order and save once."""
        doc = self._load()
        for op in operations:
            if op.type == "remove":
                self._remove_links(doc, op.expense_id)
                self._clear_reference(doc.find_expense(op.expense_id))
                continue
            if op.target is None:
                raise TripDataError(
                    f"Operation '{op.type}' for expense {op.expense_id} needs a target",
                    trip_id=self.trip_id, expense_id=op.expense_id,
                )
            expense = self._check_request(doc, op.expense_id, [op.target])
            item = find_link_target(doc, op.target.kind, op.target.id)
            self._remove_links(doc, op.expense_id)
            self._add_link(
                item,
                CostTrackingLink(
                    expense_id=op.expense_id,
                    description=op.description or op.target.name or item.display_name,
                ),
            )
            self._clear_reference(expense)
        return self._save(doc)

    def sync_legacy_travel_references(self) -> SyncResult:
        """Turn legacy ``travelReference`` values into travel item links."""
        doc = self._load()
        synced = 0
        errors = []
        changed = False
        for expense in doc.expenses:
            reference = expense.travel_reference
            if reference is None:
                continue
            item = None
            if reference.target_id:
                item = find_link_target(doc, reference.type, reference.target_id)
            if item is None:
                errors.append(f"Expense {expense.id}: referenced {reference.type} not found")
                continue
            if not any(link.expense_id == expense.id for link in item.cost_tracking_links or []):
                self._add_link(
                    item,
                    CostTrackingLink(
                        expense_id=expense.id,
                        description=reference.description or "Synced from travelReference",
                    ),
                )
                synced += 1
            expense.travel_reference = None
            changed = True
        if changed:
            self._save(doc)
        if synced:
            logger.info(
                "Synced %d legacy travel reference(s)", synced,
                extra={"trip_id": self.trip_id},
            )
        return SyncResult(synced=synced, errors=errors)

    # ------------------------------------------------------------------
    # Reads
    def find_existing_link(
        self, expense_id: str, doc: Optional[TripDocument] = None
    ) -> Optional[ExistingLink]:
        doc = doc or self.store.require(self.trip_id)
        for item, _link in _links_for(doc, expense_id):
            return ExistingLink(
                travel_item_id=item.id,
                travel_item_name=item.display_name,
                travel_item_type=item.kind,
            )
        return None

    def list_links(self) -> List[ExpenseLinkOut]:
        """Links whose expense still exists in the trip."""
        doc = self.store.require(self.trip_id)
        expense_ids = {e.id for e in doc.expenses}
        return [
            self._link_out(item, link)
            for item in iter_linkable_items(doc)
            for link in item.cost_tracking_links or []
            if link.expense_id in expense_ids
        ]

    def derive_travel_reference(
        self, expense_id: str, doc: Optional[TripDocument] = None
    ) -> Optional[TravelReference]:
        doc = doc or self.store.require(self.trip_id)
        for item, link in _links_for(doc, expense_id):
            return TravelReference(
                type=item.kind,
                description=link.description or item.display_name,
                **{_REFERENCE_FIELD[item.kind]: item.id},
            )
        expense = doc.find_expense(expense_id)
        return expense.travel_reference if expense is not None else None

    def expenses_with_references(self) -> List[Dict]:
        doc = self.store.require(self.trip_id)
        views = []
        for expense in doc.expenses:
            view = expense.model_copy(
                update={"travel_reference": self.derive_travel_reference(expense.id, doc)}
            )
            views.append(view.to_document())
        return views
