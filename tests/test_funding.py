"""Tests for on-demand funding and the credit check."""

from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from permadeploy.funding import (
    FREE_THRESHOLD_BYTES,
    InsufficientCreditsError,
    OnDemandFunding,
    check_credits,
    get_folder_size,
)


def test_from_flags_needs_both_flags() -> None:
    """Without token type and max amount there is no funding mode."""
    assert OnDemandFunding.from_flags(None, None) is None
    assert OnDemandFunding.from_flags("ario", None) is None
    assert OnDemandFunding.from_flags(None, "1") is None


def test_from_flags_valid() -> None:
    """Supported token and positive amount build a funding mode."""
    funding = OnDemandFunding.from_flags("base-eth", "0.01")
    assert funding == OnDemandFunding(token_type="base-eth", max_token_amount=Decimal("0.01"))
    assert funding.as_params()["onDemand"] == "base-eth"


@pytest.mark.parametrize("token,amount", [("solana", "1"), ("ario", "abc"), ("ario", "0"), ("ario", "-2"), ("ario", "NaN")])
def test_from_flags_invalid(token: str, amount: str) -> None:
    """Unsupported tokens and non-positive or non-numeric amounts raise ValueError."""
    with pytest.raises(ValueError):
        OnDemandFunding.from_flags(token, amount)


def test_get_folder_size(tmp_path: Path) -> None:
    """get_folder_size sums all files recursively."""
    (tmp_path / "sub").mkdir()
    (tmp_path / "a").write_bytes(b"12345")
    (tmp_path / "sub" / "b").write_bytes(b"123")
    assert get_folder_size(tmp_path) == 8


def test_check_credits_skips_free_uploads() -> None:
    """Uploads under the free threshold make no requests."""
    api = MagicMock()
    check_credits(api, FREE_THRESHOLD_BYTES - 1)
    api.get_upload_costs.assert_not_called()
    api.get_balance.assert_not_called()


def test_check_credits_enough_balance() -> None:
    """A balance covering the quote passes."""
    api = MagicMock()
    api.get_upload_costs.return_value = [{"winc": "500"}]
    api.get_balance.return_value = {"winc": "500"}
    check_credits(api, FREE_THRESHOLD_BYTES)
    api.get_upload_costs.assert_called_once_with([FREE_THRESHOLD_BYTES])


def test_check_credits_insufficient_raises() -> None:
    """A quote above the balance raises with both amounts."""
    api = MagicMock()
    api.get_upload_costs.return_value = [{"winc": "1000000000000000000001"}]
    api.get_balance.return_value = {"winc": "1000000000000000000000"}
    with pytest.raises(InsufficientCreditsError) as exc_info:
        check_credits(api, 10 * FREE_THRESHOLD_BYTES)
    assert exc_info.value.required_winc == 1000000000000000000001
    assert exc_info.value.available_winc == 1000000000000000000000
