"""Unit tests for per-operation outcome tracking"""

import pytest
from prometheus_client import REGISTRY

from piggybank_connect.api.tracking import tracked
from piggybank_connect.domain.exceptions import InsufficientFundsError


def _count(operation: str, outcome: str) -> float:
    return REGISTRY.get_sample_value("piggybank_operation_total", {"operation": operation, "outcome": outcome}) or 0.0


def test_success_is_counted_ok():
    before = _count("trackOk", "ok")

    with tracked("req-1", "owner_1", "trackOk"):
        pass

    assert _count("trackOk", "ok") == before + 1


def test_domain_error_is_counted_by_kind():
    before = _count("trackDomain", "InsufficientFunds")

    with pytest.raises(InsufficientFundsError):
        with tracked("req-2", "owner_1", "trackDomain"):
            raise InsufficientFundsError("Not enough.")

    assert _count("trackDomain", "InsufficientFunds") == before + 1


def test_unexpected_error_is_counted_unknown_and_propagates(caplog):
    before = _count("trackCrash", "Unknown")

    with pytest.raises(RuntimeError):
        with tracked("req-3", "owner_1", "trackCrash"):
            raise RuntimeError("boom")

    assert _count("trackCrash", "Unknown") == before + 1
    assert "Operation failed" in caplog.text
