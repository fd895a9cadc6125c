"""
Interfaces to the external collaborators.

The orchestrator only ever talks to markets, the registry, extraction
authorities and conversion handlers through these narrow contracts.
Implementations live in backends/.
"""

from abc import ABC, abstractmethod


class MarketRegistry(ABC):
    """Says which markets exist and are active (the comptroller)."""

    @abstractmethod
    def is_listed(self, market: str) -> bool:
        """True if the market is currently listed."""


class Market(ABC):
    """A lending market exposing reserve totals and metadata."""

    @abstractmethod
    def total_reserves(self) -> int:
        """Current protocol reserves held by the market."""

    @abstractmethod
    def symbol(self) -> str:
        """Market token symbol."""

    @abstractmethod
    def underlying(self) -> str:
        """Identifier of the underlying asset."""

    @abstractmethod
    def admin(self) -> str:
        """Identifier of the account allowed to extract reserves."""


class ExtractionAuthority(ABC):
    """Moves extracted reserves out of a market."""

    @abstractmethod
    def extract_reserves(self, market: str, amount: int) -> bool:
        """
        Extract reserves from a market.

        Returns:
            True on success, False if the authority refused
        """


class ConversionHandler(ABC):
    """Converts (burns) an asset into the target asset."""

    @abstractmethod
    def convert(self, asset: str) -> bool:
        """
        Convert the full held balance of an asset.

        Returns:
            True on success, False on failure
        """


class MarketDirectory(ABC):
    """
    Resolves identifiers to collaborator handles.

    On-chain this is address -> contract; the paper backend keeps dicts.
    """

    @abstractmethod
    def market(self, market: str) -> Market:
        """Get the market handle for an identifier."""

    @abstractmethod
    def authority(self, authority: str) -> ExtractionAuthority:
        """Get the extraction authority handle for an identifier."""

    @abstractmethod
    def handler(self, handler: str) -> ConversionHandler:
        """Get the conversion handler handle for an identifier."""
