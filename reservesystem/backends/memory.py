"""
In-memory collaborators.

Used for paper mode (no chain access) and as test doubles. Authorities
and handlers record every call so callers can assert on sequencing.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import orjson

from ..interfaces import (
    ConversionHandler,
    ExtractionAuthority,
    Market,
    MarketDirectory,
    MarketRegistry,
)

logger = logging.getLogger(__name__)


class InMemoryMarketRegistry(MarketRegistry):
    """Listing set backed by a Python set."""

    def __init__(self, listed: Optional[set[str]] = None):
        self._listed: set[str] = set(listed or ())

    def is_listed(self, market: str) -> bool:
        return market in self._listed

    def list_market(self, market: str) -> None:
        self._listed.add(market)

    def delist_market(self, market: str) -> None:
        self._listed.discard(market)


@dataclass
class InMemoryMarket(Market):
    """A market with mutable reserves."""
    market_id: str
    market_symbol: str = ""
    underlying_asset: str = ""
    admin_id: str = ""
    reserves: int = 0

    def total_reserves(self) -> int:
        return self.reserves

    def symbol(self) -> str:
        return self.market_symbol

    def underlying(self) -> str:
        return self.underlying_asset

    def admin(self) -> str:
        return self.admin_id


@dataclass
class RecordingAuthority(ExtractionAuthority):
    """
    Extraction authority that records calls.

    When a market handle is resolvable, the extracted amount is removed
    from its reserves, as the real admin contract does.
    """
    authority_id: str
    directory: Optional["InMemoryMarketDirectory"] = None
    succeed: bool = True
    calls: list[tuple[str, int]] = field(default_factory=list)

    def extract_reserves(self, market: str, amount: int) -> bool:
        self.calls.append((market, amount))
        if not self.succeed:
            return False
        if self.directory is not None and self.directory.has_market(market):
            handle = self.directory.market(market)
            handle.reserves -= min(amount, handle.reserves)
        return True


@dataclass
class RecordingConversionHandler(ConversionHandler):
    """Conversion handler that records calls."""
    handler_id: str
    succeed: bool = True
    calls: list[str] = field(default_factory=list)

    def convert(self, asset: str) -> bool:
        self.calls.append(asset)
        return self.succeed


class InMemoryMarketDirectory(MarketDirectory):
    """
    Identifier -> handle maps.

    Unknown authorities and handlers are created on first lookup so any
    wiring set by the operator resolves to a recording handle.
    """

    def __init__(self):
        self._markets: dict[str, InMemoryMarket] = {}
        self._authorities: dict[str, RecordingAuthority] = {}
        self._handlers: dict[str, RecordingConversionHandler] = {}

    def add_market(self, market: InMemoryMarket) -> InMemoryMarket:
        self._markets[market.market_id] = market
        return market

    def add_authority(self, authority: RecordingAuthority) -> RecordingAuthority:
        if authority.directory is None:
            authority.directory = self
        self._authorities[authority.authority_id] = authority
        return authority

    def add_handler(self, handler: RecordingConversionHandler) -> RecordingConversionHandler:
        self._handlers[handler.handler_id] = handler
        return handler

    def has_market(self, market: str) -> bool:
        return market in self._markets

    def market(self, market: str) -> InMemoryMarket:
        try:
            return self._markets[market]
        except KeyError:
            raise KeyError(f"Unknown market {market}") from None

    def authority(self, authority: str) -> RecordingAuthority:
        if authority not in self._authorities:
            self.add_authority(RecordingAuthority(authority_id=authority))
        return self._authorities[authority]

    def handler(self, handler: str) -> RecordingConversionHandler:
        if handler not in self._handlers:
            self.add_handler(RecordingConversionHandler(handler_id=handler))
        return self._handlers[handler]

    @property
    def markets(self) -> list[str]:
        return list(self._markets)


@dataclass
class PaperBackend:
    """Registry plus directory, loadable from a JSON fixture."""
    registry: InMemoryMarketRegistry
    directory: InMemoryMarketDirectory

    @classmethod
    def empty(cls) -> "PaperBackend":
        return cls(registry=InMemoryMarketRegistry(), directory=InMemoryMarketDirectory())

    @classmethod
    def from_dict(cls, data: dict) -> "PaperBackend":
        """
        Build from a dict.

        Format:
            {"markets": [{"id": "0x..", "symbol": "crUSDT", "underlying": "0x..",
                          "admin": "0x..", "total_reserves": "1000", "listed": true}]}

        total_reserves may be a string to carry uint256 values.
        """
        backend = cls.empty()
        for entry in data.get("markets", []):
            market = backend.directory.add_market(InMemoryMarket(
                market_id=entry["id"],
                market_symbol=entry.get("symbol", ""),
                underlying_asset=entry.get("underlying", ""),
                admin_id=entry.get("admin", ""),
                reserves=int(entry.get("total_reserves", 0)),
            ))
            if entry.get("listed", True):
                backend.registry.list_market(market.market_id)
        logger.info(f"Paper backend loaded {len(backend.directory.markets)} markets")
        return backend

    @classmethod
    def from_file(cls, path: str) -> "PaperBackend":
        return cls.from_dict(orjson.loads(Path(path).read_bytes()))
