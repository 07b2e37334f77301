"""Detects new earnings by comparing the current unclaimed total with the last snapshot."""

from __future__ import annotations

from typing import Optional

from ..analytics.earnings import lamports_to_value
from ..datalake.schemas import EarningsEvent, Snapshot


class ChangeDetector:
    """Emits an :class:`EarningsEvent` only for a strict increase over a known baseline.

    A missing snapshot means the wallet has no baseline yet, so nothing fires.
    Decreases come from claims and are ignored.
    """

    def detect(
        self,
        wallet: str,
        current_lamports: int,
        previous: Optional[Snapshot],
        sol_price: float,
    ) -> Optional[EarningsEvent]:
        if previous is None:
            return None
        delta = current_lamports - previous.total_unclaimed_lamports
        if delta <= 0:
            return None
        return EarningsEvent(
            wallet=wallet,
            delta_lamports=delta,
            delta_value=lamports_to_value(delta, sol_price),
            previous_lamports=previous.total_unclaimed_lamports,
            current_lamports=current_lamports,
            sol_price=sol_price,
        )


__all__ = ["ChangeDetector"]
