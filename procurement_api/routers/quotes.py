"""Quote intake and selection endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from procurement_api.dependencies import get_actor, get_container
from procurement_api.schemas import QuoteIn, QuoteOut, QuoteSelectionOut, SelectQuoteIn
from procurement_kernel.domain.roles import Actor
from procurement_services.container import ServiceContainer

router = APIRouter(prefix="/quotes", tags=["Quotes"])


@router.post("", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def submit_quote(
    body: QuoteIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return QuoteOut.from_dto(container.rfqs.submit_quote(body.to_submission(), actor))


@router.get("/{quote_id}", response_model=QuoteOut)
def get_quote(
    quote_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return QuoteOut.from_dto(container.rfqs.get_quote(quote_id))


@router.post("/{quote_id}/select", response_model=QuoteSelectionOut)
def select_quote(
    quote_id: str,
    body: SelectQuoteIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    selection = container.rfqs.select_quote(
        quote_id, body.reason, actor, expected_version=body.expected_version,
    )
    return QuoteSelectionOut.from_dto(selection)
