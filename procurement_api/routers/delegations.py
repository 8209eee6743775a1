"""Delegation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from procurement_api.dependencies import get_actor, get_container
from procurement_api.schemas import DelegationIn, DelegationOut, RevokeIn
from procurement_kernel.domain.roles import Actor
from procurement_services.container import ServiceContainer

router = APIRouter(prefix="/delegations", tags=["Delegations"])


@router.post("", response_model=DelegationOut, status_code=status.HTTP_201_CREATED)
def create_delegation(
    body: DelegationIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return DelegationOut.from_dto(container.delegations.create(body.to_request(), actor))


@router.post("/{delegation_id}/revoke", response_model=DelegationOut)
def revoke_delegation(
    delegation_id: str,
    body: RevokeIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return DelegationOut.from_dto(container.delegations.revoke(delegation_id, actor, body.reason))
