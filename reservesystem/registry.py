"""
Configuration registry.

Holds per-market extraction authorities and conversion handlers plus the
global extraction ratio. Every mutation is restricted to the owner and
emits an audit event carrying the old and new values. Events are
published before the lock is released, so the journal sees commits in order.

Validation runs over the whole batch before anything is written, so a
failing pair leaves every earlier pair untouched.
"""

import logging
import threading
from typing import Callable, Optional, Sequence, TYPE_CHECKING

from .constants import DEFAULT_RATIO, RATIO_DENOMINATOR
from .errors import (
    AdminMismatchError,
    InvalidInputError,
    InvalidRatioError,
    NotListedError,
    UnauthorizedError,
)
from .interfaces import MarketDirectory, MarketRegistry
from .journal import EventJournal
from .types import (
    AuditEvent,
    AuthorityUpdatedEvent,
    HandlerUpdatedEvent,
    MarketConfig,
    RatioUpdatedEvent,
    wall_s,
)

if TYPE_CHECKING:
    from .store_sqlite import StateStoreSQLite

logger = logging.getLogger(__name__)


def _check_ratio(ratio: int) -> None:
    if isinstance(ratio, bool) or not isinstance(ratio, int):
        raise InvalidRatioError(f"ratio must be an integer, got {type(ratio).__name__}")
    if ratio < 0 or ratio > RATIO_DENOMINATOR:
        raise InvalidRatioError(f"ratio {ratio} outside [0, {RATIO_DENOMINATOR}]")


class ConfigurationRegistry:
    """
    Operator-owned wiring for the orchestrator.

    Handlers are keyed by identifier: a market identifier maps to the
    handler converting that market's underlying asset, and the target
    asset identifier maps to the handler running the final conversion.
    """

    def __init__(
        self,
        owner: str,
        market_registry: MarketRegistry,
        directory: MarketDirectory,
        journal: Optional[EventJournal] = None,
        store: Optional["StateStoreSQLite"] = None,
        clock: Callable[[], int] = wall_s,
        ratio: int = DEFAULT_RATIO,
        initial_handlers: Optional[dict[str, str]] = None,
    ):
        """
        Initialize the registry.

        Args:
            owner: Identifier of the single privileged operator
            market_registry: Listing source (comptroller)
            directory: Resolves market identifiers to market handles
            journal: Where audit events go
            store: Optional write-through persistence
            clock: Seconds clock used to stamp events
            ratio: Initial extraction ratio
            initial_handlers: Handlers seeded at construction without events
                (the target asset burner)
        """
        _check_ratio(ratio)

        self._owner = owner
        self._market_registry = market_registry
        self._directory = directory
        self._journal = journal or EventJournal()
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()

        self._ratio = ratio
        self._configs: dict[str, MarketConfig] = {
            key: MarketConfig(conversion_handler=handler)
            for key, handler in (initial_handlers or {}).items()
        }

    def load(self, store: "StateStoreSQLite") -> None:
        """Restore ratio and wiring from a state store (overrides defaults)."""
        configs = store.load_market_configs()
        ratio = store.load_ratio()
        with self._lock:
            self._configs.update(configs)
            if ratio is not None:
                self._ratio = ratio
        logger.info(f"Restored config for {len(configs)} identifiers, ratio={self._ratio}")

    # ----- reads -----

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def ratio(self) -> int:
        with self._lock:
            return self._ratio

    def config_of(self, market: str) -> MarketConfig:
        with self._lock:
            return self._configs.get(market, MarketConfig())

    def authority_of(self, market: str) -> Optional[str]:
        return self.config_of(market).extraction_authority

    def handler_of(self, key: str) -> Optional[str]:
        return self.config_of(key).conversion_handler

    def configured_markets(self) -> list[str]:
        """Identifiers with an extraction authority assigned."""
        with self._lock:
            return [
                market for market, cfg in self._configs.items()
                if cfg.extraction_authority is not None
            ]

    def snapshot(self) -> dict[str, MarketConfig]:
        with self._lock:
            return dict(self._configs)

    # ----- operator operations -----

    def _require_owner(self, caller: str) -> None:
        if caller != self._owner:
            logger.warning(f"Rejected operator call from {caller}")
            raise UnauthorizedError(f"{caller} is not the owner")

    def set_extraction_authorities(
        self,
        caller: str,
        markets: Sequence[str],
        authorities: Sequence[str],
    ) -> None:
        """
        Assign extraction authorities in bulk.

        Each authority must be the market's own admin.

        Raises:
            UnauthorizedError: caller is not the owner
            InvalidInputError: list lengths differ
            NotListedError: a market is not listed
            AdminMismatchError: an authority is not the market's admin
        """
        self._require_owner(caller)
        if len(markets) != len(authorities):
            raise InvalidInputError(
                f"markets ({len(markets)}) and authorities ({len(authorities)}) differ in length"
            )

        for market, authority in zip(markets, authorities):
            if not self._market_registry.is_listed(market):
                raise NotListedError(f"market {market} not listed", market=market)
            admin = self._directory.market(market).admin()
            if authority != admin:
                raise AdminMismatchError(
                    f"authority {authority} is not admin {admin} of {market}",
                    market=market,
                )

        now = self._clock()
        events: list[AuditEvent] = []
        with self._lock:
            staged = dict(self._configs)
            for market, authority in zip(markets, authorities):
                old = staged.get(market, MarketConfig())
                staged[market] = MarketConfig(
                    extraction_authority=authority,
                    conversion_handler=old.conversion_handler,
                )
                events.append(AuthorityUpdatedEvent(
                    event_type=None,
                    ts=now,
                    market=market,
                    old_authority=old.extraction_authority,
                    new_authority=authority,
                ))
            self._commit(staged, {m: staged[m] for m in markets})
            self._journal.publish_all(events)

        logger.info(f"Extraction authorities updated for {len(markets)} markets")

    def set_conversion_handlers(
        self,
        caller: str,
        markets: Sequence[str],
        handlers: Sequence[str],
    ) -> None:
        """
        Assign conversion handlers in bulk.

        No listing or admin cross-check is applied: keys may be markets or
        the target asset.

        Raises:
            UnauthorizedError: caller is not the owner
            InvalidInputError: list lengths differ
        """
        self._require_owner(caller)
        if len(markets) != len(handlers):
            raise InvalidInputError(
                f"markets ({len(markets)}) and handlers ({len(handlers)}) differ in length"
            )

        now = self._clock()
        events: list[AuditEvent] = []
        with self._lock:
            staged = dict(self._configs)
            for market, handler in zip(markets, handlers):
                old = staged.get(market, MarketConfig())
                staged[market] = MarketConfig(
                    extraction_authority=old.extraction_authority,
                    conversion_handler=handler,
                )
                events.append(HandlerUpdatedEvent(
                    event_type=None,
                    ts=now,
                    market=market,
                    old_handler=old.conversion_handler,
                    new_handler=handler,
                ))
            self._commit(staged, {m: staged[m] for m in markets})
            self._journal.publish_all(events)

        logger.info(f"Conversion handlers updated for {len(markets)} identifiers")

    def set_ratio(self, caller: str, new_ratio: int) -> None:
        """
        Set the global extraction ratio.

        Raises:
            UnauthorizedError: caller is not the owner
            InvalidRatioError: ratio not an int or outside [0, RATIO_DENOMINATOR]
        """
        self._require_owner(caller)
        _check_ratio(new_ratio)

        with self._lock:
            old_ratio = self._ratio
            if self._store is not None:
                self._store.save_ratio(new_ratio)
            self._ratio = new_ratio
            self._journal.publish(RatioUpdatedEvent(
                event_type=None,
                ts=self._clock(),
                old_ratio=old_ratio,
                new_ratio=new_ratio,
            ))

        logger.info(f"Ratio updated {old_ratio} -> {new_ratio}")

    def _commit(self, staged: dict[str, MarketConfig], changed: dict[str, MarketConfig]) -> None:
        """Swap in staged wiring. Caller holds the lock."""
        if self._store is not None:
            self._store.save_market_configs(changed)
        self._configs = staged
