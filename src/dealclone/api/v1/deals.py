"""REST API endpoints for deal duplication.

Thin wrappers over DuplicationService. Both endpoints return HTTP 200 with a
typed result body whose ``status`` is "ok" or "error"; engine failures are
never surfaced as HTTP errors. 503 only when the service is not initialized.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel

from src.dealclone.deals.schemas import AssociationSummary, DuplicateResult

router = APIRouter(prefix="/deals", tags=["deals"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class DuplicateDealRequest(BaseModel):
    """Request body for duplicating a deal.

    ``associations`` is the raw association payload previously returned by
    the associations endpoint (or a GraphQL collections document). When
    omitted, associations are read from HubSpot.
    """

    associations: dict[str, Any] | None = None


# ── Dependency Injection Helper ──────────────────────────────────────────────


def _get_duplication_service(request: Request) -> Any:
    """Retrieve DuplicationService from app.state, 503 if not available."""
    service = getattr(request.app.state, "duplication_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal duplication not initialized",
        )
    return service


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/{deal_id}/duplicate", response_model=DuplicateResult)
async def duplicate_deal(
    deal_id: str,
    request: Request,
    body: DuplicateDealRequest | None = None,
) -> DuplicateResult:
    """Clone a deal with its curated properties and associations."""
    service = _get_duplication_service(request)
    associations = body.associations if body is not None else None
    return await service.duplicate(deal_id, associations)


@router.get("/{deal_id}/associations", response_model=AssociationSummary)
async def get_deal_associations(deal_id: str, request: Request) -> AssociationSummary:
    """Canonical associations of a deal plus its clone count."""
    service = _get_duplication_service(request)
    return await service.fetch_associations(deal_id)
