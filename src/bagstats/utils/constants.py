"""Shared constants for Solana wallet earnings."""

from datetime import datetime, timezone

# Utility function to get timezone-aware UTC datetime
def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)

LAMPORTS_PER_SOL = 1_000_000_000

# Base58 encoded ed25519 public keys are 32 to 44 characters long.
MIN_ADDRESS_LENGTH = 32
MAX_ADDRESS_LENGTH = 44


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


__all__ = [
    "utc_now",
    "lamports_to_sol",
    "LAMPORTS_PER_SOL",
    "MIN_ADDRESS_LENGTH",
    "MAX_ADDRESS_LENGTH",
]
