"""/v1/payouts - withdrawals to the linked bank account"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from piggybank_connect.api.dependencies import (
    get_idempotency_key,
    get_owner_id,
    get_payout_manager,
    get_request_id,
)
from piggybank_connect.api.tracking import tracked
from piggybank_connect.api.v1.schemas import PayoutRequest
from piggybank_connect.services.payouts import PayoutManager

router = APIRouter()


@router.get("/payouts")
async def list_payouts(
    request: Request,
    limit: int = Query(10, description="Page size, 1 to 100"),
    starting_after: Optional[str] = Query(None, description="Cursor: last id of the previous page"),
    owner_id: str = Depends(get_owner_id),
    manager: PayoutManager = Depends(get_payout_manager),
):
    with tracked(get_request_id(request), owner_id, "getPayouts"):
        return await manager.list_payouts(owner_id, limit, starting_after)


@router.post("/payouts")
async def create_payout(
    request: Request,
    body: Optional[PayoutRequest] = None,
    owner_id: str = Depends(get_owner_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    manager: PayoutManager = Depends(get_payout_manager),
):
    """
    Pay out to the linked bank account.

    Without an amount, the whole available payable balance is paid out.
    """
    body = body or PayoutRequest()
    with tracked(get_request_id(request), owner_id, "createPayout"):
        return await manager.request_payout(owner_id, body.amount, body.currency, idempotency_key)
