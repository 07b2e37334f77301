"""Data models shared by ingestion, aggregation, monitoring and storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ..utils.constants import lamports_to_sol


@dataclass(slots=True, frozen=True)
class Position:
    """A single claimable fee-share position as reported upstream."""

    mint: str
    claimable_lamports: int = 0


@dataclass(slots=True, frozen=True)
class TokenMetadata:
    """Display metadata for a token mint."""

    mint: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    logo_uri: Optional[str] = None


@dataclass(slots=True, frozen=True)
class TokenAggregate:
    """All positions of one wallet that share a mint, merged and valued."""

    mint: str
    unclaimed_lamports: int
    claimed_lamports: int
    position_count: int
    name: Optional[str] = None
    symbol: Optional[str] = None
    logo_uri: Optional[str] = None
    unclaimed_value: float = 0.0
    claimed_value: float = 0.0
    total_value: float = 0.0

    @property
    def display_name(self) -> str:
        return self.name or f"{self.mint[:6]}..."

    @property
    def display_symbol(self) -> str:
        return self.symbol or self.mint[:4].upper()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "name": self.display_name,
            "symbol": self.display_symbol,
            "logoURI": self.logo_uri,
            "unclaimed": self.unclaimed_value,
            "claimed": self.claimed_value,
            "total": self.total_value,
            "unclaimedLamports": self.unclaimed_lamports,
            "claimedLamports": self.claimed_lamports,
            "positionCount": self.position_count,
        }


@dataclass(slots=True, frozen=True)
class WalletEarningsView:
    """Consistent earnings view of one wallet, valued in the pricing currency."""

    wallet: str
    total_earned_value: float
    unclaimed_value: float
    claimed_value: float
    tokens_count: int
    positions_count: int
    tokens: Tuple[TokenAggregate, ...] = ()
    sol_price: float = 0.0
    total_unclaimed_lamports: int = 0
    total_claimed_lamports: int = 0
    computed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet,
            "totalEarned": self.total_earned_value,
            "unclaimedFees": self.unclaimed_value,
            "claimedFees": self.claimed_value,
            "tokensCount": self.tokens_count,
            "positionsCount": self.positions_count,
            "solPrice": self.sol_price,
            "tokens": [token.to_dict() for token in self.tokens],
            "computedAt": self.computed_at.isoformat() if self.computed_at else None,
        }


@dataclass(slots=True)
class Subscription:
    """A device subscribed to earnings notifications for a wallet."""

    device_token: str
    wallet: str
    platform: str = "ios"
    created_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Aggregate unclaimed balance of a wallet at a point in time."""

    wallet: str
    total_unclaimed_lamports: int
    positions_count: int
    taken_at: datetime
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet,
            "totalUnclaimedLamports": self.total_unclaimed_lamports,
            "positionsCount": self.positions_count,
            "takenAt": self.taken_at.isoformat(),
        }


@dataclass(slots=True)
class NotificationRecord:
    """Audit entry for one dispatch attempt."""

    wallet: str
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    sent_at: Optional[datetime] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet,
            "type": self.type,
            "payload": self.payload,
            "sentAt": self.sent_at.isoformat() if self.sent_at else None,
        }


@dataclass(slots=True, frozen=True)
class EarningsEvent:
    """A positive change of a wallet's unclaimed balance between two snapshots."""

    wallet: str
    delta_lamports: int
    delta_value: float
    previous_lamports: int
    current_lamports: int
    sol_price: float

    @property
    def delta_sol(self) -> float:
        return lamports_to_sol(self.delta_lamports)


@dataclass(slots=True, frozen=True)
class PushMessage:
    """Transport-agnostic notification body."""

    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class SendResult:
    """Outcome reported by a notification transport."""

    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.error is not None:
            payload["error"] = self.error
        return payload


__all__ = [
    "EarningsEvent",
    "NotificationRecord",
    "Position",
    "PushMessage",
    "SendResult",
    "Snapshot",
    "Subscription",
    "TokenAggregate",
    "TokenMetadata",
    "WalletEarningsView",
]
