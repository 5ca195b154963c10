from __future__ import annotations

from typing import Any, Dict

from fastapi import Path, Request

from tripstore.db.dal import validate_trip_id
from tripstore.db.serialization import to_jsonable
from tripstore.models.trip import TripDocument
from tripstore.services.expense_linking import ExpenseLinkingService
from tripstore.services.unified_data import UnifiedDataService


def get_store(request: Request) -> UnifiedDataService:
    return request.app.state.store


def get_linking_service(
    request: Request, trip_id: str = Path(..., description="Alphanumeric trip id")
) -> ExpenseLinkingService:
    return ExpenseLinkingService(validate_trip_id(trip_id), get_store(request))


def document_out(doc: TripDocument) -> Dict[str, Any]:
    payload = to_jsonable(doc.to_document())
    payload["documentVersion"] = doc.document_version
    return payload
