"""
State types for the reserve system.

- Checkpoint: last observed (timestamp, total_reserves) for a market
- MarketConfig: authority/handler wiring for a market
- ExtractionDecision: output of the extraction policy
- DispatchResult: what one per-market dispatch did
"""

from dataclasses import dataclass
from typing import Optional

from .core import DecisionKind


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """
    Last recorded reserves observation for a market.

    The zero checkpoint {0, 0} is the default for a market never dispatched.
    """
    timestamp: int = 0
    total_reserves: int = 0

    @property
    def is_empty(self) -> bool:
        """True if this market has never been dispatched."""
        return self.timestamp == 0 and self.total_reserves == 0

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "total_reserves": self.total_reserves}


@dataclass(frozen=True, slots=True)
class MarketConfig:
    """Operator-assigned wiring for one market."""
    extraction_authority: Optional[str] = None
    conversion_handler: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "extraction_authority": self.extraction_authority,
            "conversion_handler": self.conversion_handler,
        }


@dataclass(frozen=True, slots=True)
class ExtractionDecision:
    """
    Result of running the extraction policy.

    Attributes:
        kind: SKIP or EXTRACT
        amount: Amount to extract (always 0 for SKIP, may be 0 for EXTRACT)
        live_total_reserves: Reserves observed on the market
        checkpoint: Checkpoint the decision was made against
        cooldown_ok: Whether the cooldown window has elapsed
    """
    kind: DecisionKind
    amount: int
    live_total_reserves: int
    checkpoint: Checkpoint
    cooldown_ok: bool

    @property
    def extract(self) -> bool:
        return self.kind == DecisionKind.EXTRACT


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome of one per-market dispatch."""
    market: str
    extracted: bool
    amount_extracted: int
    asset: Optional[str]
    checkpoint: Checkpoint
