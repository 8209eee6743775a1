"""Invoice intake, three-way match and payment approval endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from procurement_api.dependencies import get_actor, get_container
from procurement_api.schemas import ApprovePaymentIn, InvoiceIn, InvoiceOut
from procurement_kernel.domain.roles import Actor
from procurement_services.container import ServiceContainer

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def submit_invoice(
    body: InvoiceIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return InvoiceOut.from_dto(container.invoices.submit(body.to_submission(), actor))


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(
    invoice_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return InvoiceOut.from_dto(container.invoices.get(invoice_id))


@router.post("/{invoice_id}/three-way-match", response_model=InvoiceOut)
def three_way_match(
    invoice_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return InvoiceOut.from_dto(container.invoices.match(invoice_id, actor))


@router.post("/{invoice_id}/approve-payment", response_model=InvoiceOut)
def approve_payment(
    invoice_id: str,
    body: ApprovePaymentIn | None = None,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    invoice = container.invoices.approve_for_payment(
        invoice_id, actor, expected_version=body.expected_version if body else None,
    )
    return InvoiceOut.from_dto(invoice)
