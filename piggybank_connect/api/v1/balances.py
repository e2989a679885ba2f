"""/v1/balance and /v1/transactions - payable balance and its history"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from piggybank_connect.api.dependencies import get_balance_manager, get_owner_id, get_request_id
from piggybank_connect.api.tracking import tracked
from piggybank_connect.services.balances import BalanceManager

router = APIRouter()


@router.get("/balance")
async def get_balance(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: BalanceManager = Depends(get_balance_manager),
):
    with tracked(get_request_id(request), owner_id, "getBalance"):
        return await manager.get_balance(owner_id)


@router.get("/transactions")
async def get_transactions(
    request: Request,
    limit: int = Query(10, description="Page size, 1 to 100"),
    starting_after: Optional[str] = Query(None, description="Cursor: last id of the previous page"),
    owner_id: str = Depends(get_owner_id),
    manager: BalanceManager = Depends(get_balance_manager),
):
    with tracked(get_request_id(request), owner_id, "getTransactions"):
        return await manager.get_transactions(owner_id, limit, starting_after)
