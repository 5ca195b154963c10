from __future__ import annotations

from fastapi import APIRouter, Depends, status

from tripstore.models.links import (
    ExpenseLinkOut,
    LinkOperationsRequest,
    LinkRequest,
    LinkTarget,
    MoveLinkRequest,
    SplitLinkRequest,
    SyncResult,
)
from tripstore.routers.deps import document_out, get_linking_service
from tripstore.services.expense_linking import ExpenseLinkingService

router = APIRouter(prefix="/trips/{trip_id}/expense-links", tags=["expense-links"])


@router.get("", response_model=list[ExpenseLinkOut], summary="List expense links")
async def list_links(service: ExpenseLinkingService = Depends(get_linking_service)):
    return service.list_links()


@router.post(
    "",
    response_model=ExpenseLinkOut,
    status_code=status.HTTP_201_CREATED,
    summary="Link an unlinked expense",
)
async def link_expense(
    payload: LinkRequest, service: ExpenseLinkingService = Depends(get_linking_service)
):
    return service.link_expense(payload.expense_id, payload.target(), payload.description)


@router.put("", response_model=ExpenseLinkOut, summary="Create or replace an expense link")
async def set_link(
    payload: LinkRequest, service: ExpenseLinkingService = Depends(get_linking_service)
):
    return service.create_or_update_link(
        payload.expense_id, payload.target(), payload.description
    )


@router.post("/split", response_model=list[ExpenseLinkOut], summary="Split an expense")
async def split_links(
    payload: SplitLinkRequest, service: ExpenseLinkingService = Depends(get_linking_service)
):
    return service.create_multiple_links(payload.expense_id, payload.links)


@router.post("/move", response_model=ExpenseLinkOut, summary="Move a link to another item")
async def move_link(
    payload: MoveLinkRequest, service: ExpenseLinkingService = Depends(get_linking_service)
):
    target = LinkTarget(kind=payload.to_travel_item_type, id=payload.to_travel_item_id)
    return service.move_link(
        payload.expense_id, payload.from_travel_item_id, target, payload.description
    )


@router.post("/batch", summary="Apply several link operations in one write")
async def batch(
    payload: LinkOperationsRequest,
    service: ExpenseLinkingService = Depends(get_linking_service),
):
    return document_out(service.apply_link_operations(payload.operations))


@router.post("/sync-legacy", response_model=SyncResult, summary="Convert legacy travel references")
async def sync_legacy(service: ExpenseLinkingService = Depends(get_linking_service)):
    return service.sync_legacy_travel_references()


@router.get("/{expense_id}", summary="Where an expense is linked")
async def get_link(expense_id: str, service: ExpenseLinkingService = Depends(get_linking_service)):
    existing = service.find_existing_link(expense_id)
    reference = service.derive_travel_reference(expense_id)
    return {
        "expenseId": expense_id,
        "existingLink": existing.model_dump(by_alias=True) if existing else None,
        "travelReference": reference.to_document() if reference else None,
    }


@router.delete("/{expense_id}", summary="Remove every link for an expense")
async def remove_link(
    expense_id: str, service: ExpenseLinkingService = Depends(get_linking_service)
):
    return {"success": True, "removed": service.remove_link(expense_id)}


@router.delete("/{expense_id}/items/{item_id}", summary="Unlink an expense from one item")
async def unlink_from_item(
    expense_id: str,
    item_id: str,
    service: ExpenseLinkingService = Depends(get_linking_service),
):
    return {"success": True, "removed": service.unlink_from_item(expense_id, item_id)}
