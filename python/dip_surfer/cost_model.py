"""Swap venue cost model."""

from __future__ import annotations

from .config import CostConfig


class RoundTripCostModel:
    """Costs:
    - one aggregate fee per round trip (buy + sell), charged on exit
    - no slippage model; executed quote prices already include it in live mode
    """

    def __init__(self, cfg: CostConfig):
        if cfg.round_trip_fee_pct < 0:
            raise ValueError("round_trip_fee_pct must be non-negative")
        self.cfg = cfg

    @property
    def fee_pct(self) -> float:
        return float(self.cfg.round_trip_fee_pct)

    def net_return(self, gross_return: float) -> float:
        """Gross fractional return minus the round-trip fee."""
        return float(gross_return) - self.fee_pct
