"""/v1/accounts - connected-account onboarding, status and profile"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from piggybank_connect.api.dependencies import (
    get_idempotency_key,
    get_onboarding_manager,
    get_owner_id,
    get_profile_manager,
    get_request_id,
)
from piggybank_connect.api.tracking import tracked
from piggybank_connect.api.v1.schemas import (
    AccountInfoPatch,
    BankAccountRequest,
    CreateAccountRequest,
    TermsRequest,
)
from piggybank_connect.services.onboarding import OnboardingManager
from piggybank_connect.services.profile import ProfileManager

router = APIRouter()


@router.post("/accounts")
async def create_account(
    body: CreateAccountRequest,
    request: Request,
    owner_id: str = Depends(get_owner_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    manager: OnboardingManager = Depends(get_onboarding_manager),
):
    """
    Create the caller's connected account.

    Returns the already-recorded account (existing=true) instead of
    creating a second one.
    """
    with tracked(get_request_id(request), owner_id, "createAccount"):
        return await manager.create_account(owner_id, body.model_dump(exclude_none=True), idempotency_key)


@router.post("/accounts/onboarding-link")
async def create_onboarding_link(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: OnboardingManager = Depends(get_onboarding_manager),
):
    with tracked(get_request_id(request), owner_id, "createOnboardingLink"):
        return await manager.create_onboarding_link(owner_id)


@router.get("/accounts/status")
async def get_account_status(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: OnboardingManager = Depends(get_onboarding_manager),
):
    with tracked(get_request_id(request), owner_id, "getAccountStatus"):
        return await manager.get_account_status(owner_id)


@router.post("/accounts/capabilities")
async def update_capabilities(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: OnboardingManager = Depends(get_onboarding_manager),
):
    with tracked(get_request_id(request), owner_id, "updateCapabilities"):
        return await manager.update_capabilities(owner_id)


@router.get("/accounts/details")
async def get_account_details(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: ProfileManager = Depends(get_profile_manager),
):
    with tracked(get_request_id(request), owner_id, "getAccountDetails"):
        return await manager.get_account_details(owner_id)


@router.patch("/accounts/info")
async def update_account_info(
    body: AccountInfoPatch,
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: ProfileManager = Depends(get_profile_manager),
):
    with tracked(get_request_id(request), owner_id, "updateAccountInfo"):
        return await manager.update_account_info(owner_id, body.model_dump(exclude_none=True))


@router.post("/accounts/terms")
async def accept_terms_of_service(
    request: Request,
    body: Optional[TermsRequest] = None,
    owner_id: str = Depends(get_owner_id),
    manager: ProfileManager = Depends(get_profile_manager),
):
    """Accept the processor's terms; the caller's address is used when no ip is sent"""
    ip = (body.ip if body else None) or (request.client.host if request.client else None)
    with tracked(get_request_id(request), owner_id, "acceptTermsOfService"):
        return await manager.accept_terms_of_service(owner_id, ip)


@router.post("/accounts/bank-accounts")
async def add_bank_account(
    body: BankAccountRequest,
    request: Request,
    owner_id: str = Depends(get_owner_id),
    manager: ProfileManager = Depends(get_profile_manager),
):
    with tracked(get_request_id(request), owner_id, "addBankAccount"):
        return await manager.add_bank_account(owner_id, body.model_dump(exclude_none=True))
