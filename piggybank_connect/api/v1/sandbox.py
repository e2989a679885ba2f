"""/v1/sandbox - test-mode verification and funding helpers"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from piggybank_connect.api.dependencies import get_owner_id, get_request_id, get_sandbox_manager
from piggybank_connect.api.tracking import tracked
from piggybank_connect.api.v1.schemas import SandboxAmountRequest
from piggybank_connect.services.sandbox import (
    DEFAULT_BALANCE_CENTS,
    DEFAULT_TRANSACTION_CENTS,
    SandboxManager,
)

router = APIRouter()


@router.post("/sandbox/verify-account")
async def verify_account(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: SandboxManager = Depends(get_sandbox_manager),
):
    with tracked(get_request_id(request), owner_id, "testVerifyAccount"):
        return await manager.verify_account(owner_id)


@router.post("/sandbox/balance")
async def add_balance(
    request: Request,
    body: Optional[SandboxAmountRequest] = None,
    owner_id: str = Depends(get_owner_id),
    manager: SandboxManager = Depends(get_sandbox_manager),
):
    amount = body.amount if body and body.amount is not None else DEFAULT_BALANCE_CENTS
    with tracked(get_request_id(request), owner_id, "testAddBalance"):
        return await manager.add_balance(owner_id, amount)


@router.post("/sandbox/transactions")
async def create_transaction(
    request: Request,
    body: Optional[SandboxAmountRequest] = None,
    owner_id: str = Depends(get_owner_id),
    manager: SandboxManager = Depends(get_sandbox_manager),
):
    """Route a test card payment to the caller's account"""
    amount = body.amount if body and body.amount is not None else DEFAULT_TRANSACTION_CENTS
    with tracked(get_request_id(request), owner_id, "testCreateTransaction"):
        return await manager.create_transaction(owner_id, amount)
