"""Unit tests for payouts to linked bank accounts"""

import asyncio

import pytest

from piggybank_connect.domain.exceptions import (
    InsufficientFundsError,
    InvalidInputError,
    NotEligibleError,
    UpstreamTransientError,
)

BANK = {"account_holder_name": "Avery Quinn", "routing_number": "110000000", "account_number": "000123456789"}


async def _with_bank(profiles, processor, open_account, available=5000):
    account_id = await open_account()
    await profiles.add_bank_account("owner_1", BANK)
    processor.fund(account_id, available=available)
    return account_id


async def test_payout_defaults_to_full_available_balance(payouts, profiles, processor, open_account):
    account_id = await _with_bank(profiles, processor, open_account)

    result = await payouts.request_payout("owner_1")

    assert result["amount"] == 5000
    assert result["status"] == "pending"
    assert result["currency"] == "usd"
    assert processor.payable[account_id] == 0


@pytest.mark.parametrize("amount", [0, -100])
async def test_non_positive_amount_fails_before_any_processor_call(payouts, profiles, processor, open_account, amount):
    await _with_bank(profiles, processor, open_account)
    calls_before = processor.count()

    with pytest.raises(InvalidInputError):
        await payouts.request_payout("owner_1", amount=amount)

    assert processor.count() == calls_before


async def test_amount_above_available_is_insufficient(payouts, profiles, processor, open_account):
    await _with_bank(profiles, processor, open_account)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await payouts.request_payout("owner_1", amount=5001)

    assert exc_info.value.code == "balance_insufficient"
    assert processor.count("payouts.create") == 0


async def test_empty_balance_with_default_amount_is_insufficient(payouts, profiles, processor, open_account):
    await _with_bank(profiles, processor, open_account, available=0)

    with pytest.raises(InsufficientFundsError):
        await payouts.request_payout("owner_1")


async def test_payout_requires_linked_bank_account(payouts, processor, open_account):
    account_id = await open_account()
    processor.fund(account_id, available=5000)

    with pytest.raises(NotEligibleError) as exc_info:
        await payouts.request_payout("owner_1", amount=1000)

    assert exc_info.value.code == "no_external_account"
    assert processor.count("payouts.create") == 0


async def test_payout_requires_approved_account(payouts, processor, open_account):
    await open_account(approve=False, submit=True)

    with pytest.raises(NotEligibleError) as exc_info:
        await payouts.request_payout("owner_1", amount=1000)

    assert exc_info.value.code == "not_eligible"


async def test_list_payouts_paginates(payouts, profiles, processor, open_account):
    account_id = await _with_bank(profiles, processor, open_account, available=3000)
    for _ in range(3):
        await payouts.request_payout("owner_1", amount=1000)

    first = await payouts.list_payouts("owner_1", limit=2)
    second = await payouts.list_payouts("owner_1", limit=2, starting_after=first["data"][-1]["id"])

    assert len(first["data"]) == 2
    assert first["hasMore"] is True
    assert len(second["data"]) == 1
    assert second["hasMore"] is False
    assert processor.payable[account_id] == 0


async def test_full_balance_payout_retry_after_lost_response(payouts, profiles, processor, open_account):
    """The retried default amount is the one resolved on the first attempt, not the drained balance"""
    account_id = await _with_bank(profiles, processor, open_account)
    processor.lose_next_response("payouts.create")

    with pytest.raises(UpstreamTransientError):
        await payouts.request_payout("owner_1", idempotency_key="payout-1")
    assert processor.payable[account_id] == 0

    result = await payouts.request_payout("owner_1", idempotency_key="payout-1")

    assert result["amount"] == 5000
    assert len(processor.payouts[account_id]) == 1


async def test_concurrent_payouts_for_one_owner_cannot_overdraw(payouts, profiles, processor, open_account):
    account_id = await _with_bank(profiles, processor, open_account, available=5000)

    results = await asyncio.gather(
        payouts.request_payout("owner_1", amount=3000),
        payouts.request_payout("owner_1", amount=3000),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert [type(f) for f in failures] == [InsufficientFundsError]
    assert failures[0].code == "balance_insufficient"
    assert processor.payable[account_id] == 2000
    assert processor.count("payouts.create") == 1
