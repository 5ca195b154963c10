from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from tripstore.core.errors import TripDataError
from tripstore.db.dal import validate_trip_id
from tripstore.db.serialization import to_jsonable
from tripstore.models.delta import CostDataDeltaIn, TravelDataDeltaIn
from tripstore.models.links import ValidateRequest
from tripstore.models.trip import TripCreate, TripSummary
from tripstore.models.validation import ValidationReport
from tripstore.routers.deps import document_out, get_linking_service, get_store
from tripstore.services.expense_linking import ExpenseLinkingService
from tripstore.services.trip_boundary import (
    summarize_validation,
    validate_all_trip_boundaries,
    validate_expense_belongs_to_trip,
    validate_trip_boundary,
)
from tripstore.services.unified_data import UnifiedDataService

router = APIRouter(prefix="/trips", tags=["trips"])


@router.get("", response_model=list[TripSummary], summary="List trips")
async def list_trips(store: UnifiedDataService = Depends(get_store)):
    return store.list_trips()


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create trip")
async def create_trip(payload: TripCreate, store: UnifiedDataService = Depends(get_store)):
    return document_out(store.create_trip(payload))


@router.get("/{trip_id}", summary="Get trip document")
async def get_trip(trip_id: str, store: UnifiedDataService = Depends(get_store)):
    return document_out(store.require(validate_trip_id(trip_id)))


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete trip")
async def delete_trip(trip_id: str, store: UnifiedDataService = Depends(get_store)):
    store.delete_trip(validate_trip_id(trip_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{trip_id}/travel-data", summary="Apply a travel data delta")
async def patch_travel_data(
    trip_id: str,
    delta: Optional[TravelDataDeltaIn] = Body(None),
    base_version: Optional[int] = Query(
        None, alias="baseVersion", description="documentVersion the delta was computed against"
    ),
    store: UnifiedDataService = Depends(get_store),
):
    validate_trip_id(trip_id)
    if delta is None:
        return document_out(store.require(trip_id))
    return document_out(store.update_travel_data(trip_id, delta.to_delta(), base_version))


@router.patch("/{trip_id}/cost-data", summary="Apply a cost data delta")
async def patch_cost_data(
    trip_id: str,
    delta: Optional[CostDataDeltaIn] = Body(None),
    base_version: Optional[int] = Query(None, alias="baseVersion"),
    store: UnifiedDataService = Depends(get_store),
):
    validate_trip_id(trip_id)
    if delta is None:
        return document_out(store.require(trip_id))
    return document_out(store.update_cost_data(trip_id, delta.to_delta(), base_version))


@router.get("/{trip_id}/expenses", summary="Expenses with their derived travel reference")
async def list_expenses(service: ExpenseLinkingService = Depends(get_linking_service)):
    return to_jsonable(service.expenses_with_references())


@router.post("/{trip_id}/validate", summary="Run trip boundary checks")
async def validate_trip(
    trip_id: str,
    payload: ValidateRequest,
    store: UnifiedDataService = Depends(get_store),
):
    doc = store.require(validate_trip_id(trip_id))
    if payload.action == "validate-expense":
        if not payload.expense_id:
            raise TripDataError("expenseId is required", trip_id=trip_id)
        result = validate_expense_belongs_to_trip(payload.expense_id, doc)
    elif payload.action == "validate-link":
        if not payload.expense_id or not payload.travel_item_id:
            raise TripDataError("expenseId and travelItemId are required", trip_id=trip_id)
        result = validate_trip_boundary(payload.expense_id, payload.travel_item_id, doc)
    else:
        result = validate_all_trip_boundaries(doc)

    report = ValidationReport(
        trip_id=trip_id,
        is_valid=result.is_valid,
        errors=result.errors,
        summary=summarize_validation(result) if payload.action == "validate-all" else None,
    )
    return report.model_dump(by_alias=True, exclude_none=True, mode="json")


@router.get("/{trip_id}/cleanup-log", summary="Links removed by document migrations")
async def cleanup_log(trip_id: str, store: UnifiedDataService = Depends(get_store)):
    return store.list_cleanup_log(validate_trip_id(trip_id))
