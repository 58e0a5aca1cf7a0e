"""Payment: on-demand funding mode and the pre-upload credit check."""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)

# Uploads below this size are free on the upload service; no balance needed (~105 KiB)
FREE_THRESHOLD_BYTES = 107_520

# Tokens that can pay on demand
ON_DEMAND_TOKENS = ("ario", "base-eth")


class InsufficientCreditsError(RuntimeError):
    """Credit balance is below the quoted upload cost."""

    def __init__(self, required_winc: int, available_winc: int) -> None:
        self.required_winc = required_winc
        self.available_winc = available_winc
        super().__init__(
            "Insufficient Turbo credits for this upload. "
            f"Required: {required_winc} winc, available: {available_winc} winc. "
            "Top up your Turbo balance (or re-run with --on-demand and --max-token-amount)."
        )


@dataclass(frozen=True)
class OnDemandFunding:
    """
    Pay for uploads from a token wallet when credits run short, spending at most
    max_token_amount. Passed through to every upload request unchanged.
    """

    token_type: str
    max_token_amount: Decimal
    top_up_buffer_multiplier: float = 1.1

    @classmethod
    def from_flags(cls, token_type: Optional[str], max_token_amount: Optional[str]) -> Optional["OnDemandFunding"]:
        """Funding mode from --on-demand/--max-token-amount; None unless both are given."""
        if not token_type or not max_token_amount:
            return None
        if token_type not in ON_DEMAND_TOKENS:
            raise ValueError(f"Unsupported on-demand token type: {token_type} (use ario or base-eth)")
        try:
            amount = Decimal(max_token_amount)
        except InvalidOperation:
            raise ValueError(f"Max token amount must be a number, got {max_token_amount!r}") from None
        if not amount.is_finite() or amount <= 0:
            raise ValueError(f"Max token amount must be positive, got {max_token_amount!r}")
        return cls(token_type=token_type, max_token_amount=amount)

    def as_params(self) -> Dict[str, str]:
        """Query parameters sent with each upload."""
        return {
            "onDemand": self.token_type,
            "maxTokenAmount": str(self.max_token_amount),
            "topUpBufferMultiplier": str(self.top_up_buffer_multiplier),
        }


def get_folder_size(path: Path) -> int:
    """Return total size in bytes of all files under path (recursive)."""
    total = 0
    for f in path.rglob("*"):
        if f.is_file():
            total += f.stat().st_size
    return total


def check_credits(api: Any, upload_bytes: int) -> None:
    """
    Raise InsufficientCreditsError if the quoted cost of upload_bytes exceeds the
    balance. Uploads under FREE_THRESHOLD_BYTES are not checked. api needs
    get_upload_costs() and get_balance() (see TurboUploadAPI).
    """
    if upload_bytes < FREE_THRESHOLD_BYTES:
        log.debug("Upload of %d bytes is under the free threshold; skipping credit check", upload_bytes)
        return
    [quote] = api.get_upload_costs([upload_bytes])
    balance = api.get_balance()
    # winc amounts come back as strings; compare as integers
    required = int(quote["winc"])
    available = int(balance["winc"])
    log.info("Credit check: %d bytes cost %d winc, balance %d winc", upload_bytes, required, available)
    if required > available:
        raise InsufficientCreditsError(required, available)
