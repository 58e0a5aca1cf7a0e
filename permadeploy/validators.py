"""Validation of deploy options. Each validate_* raises ValueError with a user-facing message."""

import os
import re
from pathlib import Path

TTL_MIN = 60
TTL_MAX = 86_400

ARWEAVE_TX_ID_REGEX = re.compile(r"[a-zA-Z0-9_-]{43}")

ARIO_MAINNET_PROCESS_ID = "qNvAoz0TgcH7DMg8BCVn8jF32QH5L6T29VjHxhHqqGE"
ARIO_TESTNET_PROCESS_ID = "agYcCFJtrMG6cqMuZfskIkFTGvUPddICmtQSBIoPdiA"


def expand_path(file_path: str) -> Path:
    """Expand a leading ~ to the home directory."""
    return Path(os.path.expanduser(file_path))


def validate_ttl(value: str) -> int:
    """Parse and range-check a TTL in seconds."""
    try:
        num = int(value)
    except (TypeError, ValueError):
        raise ValueError("TTL must be a valid number") from None
    if num < TTL_MIN or num > TTL_MAX:
        raise ValueError(f"TTL must be between {TTL_MIN} and {TTL_MAX} seconds")
    return num


def validate_undername(value: str) -> None:
    if len(value) == 0:
        raise ValueError("Undername must not be empty")


def validate_arns_name(value: str) -> None:
    if len(value) == 0:
        raise ValueError("ArNS name is required")


def validate_ario_process(value: str) -> None:
    """Accept "mainnet", "testnet" or a 43-character transaction ID."""
    if value in ("mainnet", "testnet"):
        return
    if not ARWEAVE_TX_ID_REGEX.fullmatch(value):
        raise ValueError('ARIO process must be a valid Arweave transaction ID, "mainnet", or "testnet"')


def resolve_ario_process(value: str) -> str:
    """Map the mainnet/testnet shorthands to process IDs."""
    if value == "mainnet":
        return ARIO_MAINNET_PROCESS_ID
    if value == "testnet":
        return ARIO_TESTNET_PROCESS_ID
    return value


def validate_file_exists(value: str) -> None:
    if not expand_path(value).exists():
        raise ValueError(f"File {value} does not exist")


def validate_folder_exists(value: str) -> None:
    if not expand_path(value).exists():
        raise ValueError(f"Folder {value} does not exist")
