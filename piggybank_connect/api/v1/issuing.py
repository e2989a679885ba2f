"""/v1/issuing - issuing reserve, cardholder and virtual card"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from piggybank_connect.api.dependencies import (
    get_balance_manager,
    get_card_manager,
    get_idempotency_key,
    get_owner_id,
    get_request_id,
)
from piggybank_connect.api.tracking import tracked
from piggybank_connect.api.v1.schemas import (
    AuthorizationRequest,
    CardholderRequest,
    TopUpRequest,
    VirtualCardRequest,
)
from piggybank_connect.services.balances import BalanceManager
from piggybank_connect.services.cards import CardManager

router = APIRouter()


@router.get("/issuing/balance")
async def get_issuing_balance(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: BalanceManager = Depends(get_balance_manager),
):
    with tracked(get_request_id(request), owner_id, "getIssuingBalance"):
        return await manager.get_issuing_balance(owner_id)


@router.post("/issuing/topups")
async def top_up_issuing(
    body: TopUpRequest,
    request: Request,
    owner_id: str = Depends(get_owner_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    manager: BalanceManager = Depends(get_balance_manager),
):
    """Move funds from the payable balance into the issuing reserve"""
    with tracked(get_request_id(request), owner_id, "topUpIssuing"):
        return await manager.top_up(owner_id, body.amount_cents, idempotency_key)


@router.post("/issuing/cardholders")
async def create_cardholder(
    body: CardholderRequest,
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: CardManager = Depends(get_card_manager),
):
    with tracked(get_request_id(request), owner_id, "createCardholder"):
        return await manager.create_cardholder(owner_id, body.as_profile())


@router.post("/issuing/cards")
async def create_virtual_card(
    request: Request,
    body: Optional[VirtualCardRequest] = None,
    owner_id: str = Depends(get_owner_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    manager: CardManager = Depends(get_card_manager),
):
    body = body or VirtualCardRequest()
    with tracked(get_request_id(request), owner_id, "createVirtualCard"):
        return await manager.create_virtual_card(
            owner_id, body.spending_limit_amount, body.spending_limit_interval, idempotency_key
        )


@router.get("/issuing/card")
async def get_card_details(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: CardManager = Depends(get_card_manager),
):
    with tracked(get_request_id(request), owner_id, "getCardDetails"):
        return await manager.get_card_details(owner_id)


@router.post("/issuing/test-authorizations")
async def create_test_authorization(
    request: Request,
    body: Optional[AuthorizationRequest] = None,
    owner_id: str = Depends(get_owner_id),
    manager: CardManager = Depends(get_card_manager),
):
    body = body or AuthorizationRequest()
    with tracked(get_request_id(request), owner_id, "createTestAuthorization"):
        return await manager.create_test_authorization(owner_id, body.amount)
