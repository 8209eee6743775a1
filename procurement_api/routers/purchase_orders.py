"""Purchase order endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from procurement_api.dependencies import get_actor, get_container
from procurement_api.schemas import (
    DeliveryConfirmationIn,
    PurchaseOrderApproveIn,
    PurchaseOrderGenerateIn,
    PurchaseOrderGenerateOut,
    PurchaseOrderOut,
    ReceiptConfirmationIn,
)
from procurement_kernel.domain.roles import Actor
from procurement_services.container import ServiceContainer

router = APIRouter(prefix="/purchase-orders", tags=["Purchase Orders"])


@router.post("/generate", response_model=PurchaseOrderGenerateOut, status_code=status.HTTP_201_CREATED)
def generate_purchase_order(
    body: PurchaseOrderGenerateIn,
    response: Response,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    result = container.purchase_orders.generate(body.to_request(), actor)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    out = PurchaseOrderGenerateOut.from_dto(result.purchase_order, result.warnings)
    return out.model_copy(update={"created": result.created})


@router.get("/{purchase_order_id}", response_model=PurchaseOrderOut)
def get_purchase_order(
    purchase_order_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return PurchaseOrderOut.from_dto(container.purchase_orders.get(purchase_order_id))


@router.post("/{purchase_order_id}/approve", response_model=PurchaseOrderOut)
def approve_purchase_order(
    purchase_order_id: str,
    body: PurchaseOrderApproveIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    result = container.purchase_orders.approve(purchase_order_id, actor, body.comments)
    return PurchaseOrderOut.from_dto(result.purchase_order, result.warnings)


@router.post("/{purchase_order_id}/delivery-confirmation", response_model=PurchaseOrderOut)
def confirm_delivery(
    purchase_order_id: str,
    body: DeliveryConfirmationIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    purchase_order = container.purchase_orders.confirm_delivery(
        purchase_order_id, actor, delivered_at=body.delivered_at, notes=body.notes,
    )
    return PurchaseOrderOut.from_dto(purchase_order)


@router.post("/{purchase_order_id}/receipt-confirmation", response_model=PurchaseOrderOut)
def confirm_receipt(
    purchase_order_id: str,
    body: ReceiptConfirmationIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    purchase_order = container.purchase_orders.confirm_receipt(
        purchase_order_id, actor, body.condition, body.to_lines(), notes=body.notes,
    )
    return PurchaseOrderOut.from_dto(purchase_order)
