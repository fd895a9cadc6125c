"""
Dispatch orchestrator.

For one or many markets: read live reserves, run the extraction policy,
call the extraction authority and conversion handler when due, then
checkpoint the market. A final conversion of the target asset closes every
invocation; batches share a single final conversion.

Atomicity:
    Checkpoint writes and audit events are staged in a unit of work and
    committed only after the whole invocation succeeds. Any exception
    leaves the ledger and journal untouched.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from .constants import COOLDOWN_PERIOD, NATIVE_ASSET, NATIVE_MARKER, TARGET_ASSET
from .errors import (
    AuthorityNotSetError,
    ConversionFailedError,
    CooldownActiveError,
    ExtractionFailedError,
    HandlerNotSetError,
    NotListedError,
    ReserveSystemError,
)
from .interfaces import Market, MarketDirectory, MarketRegistry
from .journal import EventJournal
from .ledger import ReserveLedger
from .policy import cooldown_elapsed, decide
from .registry import ConfigurationRegistry
from .types import (
    AuditEvent,
    Checkpoint,
    DispatchResult,
    ExtractionDecision,
    ReservesDispatchedEvent,
    wall_s,
)

logger = logging.getLogger(__name__)


@dataclass
class UnitOfWork:
    """State changes staged by one dispatch invocation."""
    checkpoints: dict[str, Checkpoint] = field(default_factory=dict)
    events: list[AuditEvent] = field(default_factory=list)


class DispatchOrchestrator:
    """
    Extracts and converts protocol reserves.

    Invocations are serialized by an internal lock; the checkpoint
    timestamp and cooldown are the only guard between invocations.
    """

    def __init__(
        self,
        registry: ConfigurationRegistry,
        ledger: ReserveLedger,
        market_registry: MarketRegistry,
        directory: MarketDirectory,
        journal: Optional[EventJournal] = None,
        clock: Callable[[], int] = wall_s,
        target_asset: str = TARGET_ASSET,
        native_asset: str = NATIVE_ASSET,
    ):
        """
        Initialize the orchestrator.

        Args:
            registry: Authority/handler wiring and ratio
            ledger: Checkpoint storage (written only here)
            market_registry: Listing source
            directory: Resolves identifiers to collaborator handles
            journal: Receives committed audit events
            clock: Seconds clock (block timestamp on-chain)
            target_asset: Asset the final conversion runs on
            native_asset: Identifier used as underlying for native markets
        """
        self.registry = registry
        self.ledger = ledger
        self._market_registry = market_registry
        self._directory = directory
        self._journal = journal or EventJournal()
        self._clock = clock
        self.target_asset = target_asset
        self.native_asset = native_asset
        self._lock = threading.RLock()

    # ----- public operations -----

    def dispatch_one(self, market: str, is_batched: bool = False) -> DispatchResult:
        """
        Dispatch a single market.

        When not batched, the target asset conversion runs afterwards and
        its boolean result is ignored.

        Raises:
            ReserveSystemError subclasses; nothing is committed on failure
        """
        with self._lock:
            now = self._clock()
            uow = UnitOfWork()
            result = self._dispatch(market, now, uow)
            if not is_batched:
                self._convert_target(strict=False)
            self._commit(uow)
            return result

    def dispatch_many(self, markets: Sequence[str]) -> list[DispatchResult]:
        """
        Dispatch several markets, in order, with one final conversion.

        All markets share one timestamp and one unit of work: a market listed
        twice sees the checkpoint staged by its first occurrence.

        Raises:
            ReserveSystemError subclasses; nothing is committed on failure
        """
        with self._lock:
            now = self._clock()
            uow = UnitOfWork()
            results = [self._dispatch(market, now, uow) for market in markets]
            self._convert_target(strict=True)
            self._commit(uow)
            logger.info(
                f"Batch dispatched {len(results)} markets, "
                f"{sum(1 for r in results if r.extracted)} extracted"
            )
            return results

    def preview(self, market: str) -> ExtractionDecision:
        """
        Run the policy for a market without side effects.

        Raises:
            NotListedError, ArithmeticUnderflowError
        """
        if not self._market_registry.is_listed(market):
            raise NotListedError(f"market {market} not listed", market=market)
        live = self._directory.market(market).total_reserves()
        checkpoint = self.ledger.get(market)
        return decide(
            checkpoint,
            live,
            self.registry.ratio,
            cooldown_elapsed(checkpoint, self._clock(), COOLDOWN_PERIOD),
        )

    def due_markets(self, markets: Sequence[str]) -> list[str]:
        """
        Markets a keeper can dispatch now without a predictable failure.

        A market is due once its cooldown has elapsed and, on the extraction
        branch, it has both an authority and a handler.
        """
        due = []
        for market in markets:
            try:
                decision = self.preview(market)
            except ReserveSystemError as e:
                logger.warning(f"Skipping {market}: {e.kind.value} ({e})")
                continue

            if not decision.cooldown_ok:
                continue
            if decision.extract:
                config = self.registry.config_of(market)
                if config.extraction_authority is None or config.conversion_handler is None:
                    logger.warning(f"Skipping {market}: not fully configured")
                    continue
            due.append(market)
        return due

    # ----- internals -----

    def _dispatch(self, market: str, now: int, uow: UnitOfWork) -> DispatchResult:
        if not self._market_registry.is_listed(market):
            raise NotListedError(f"market {market} not listed", market=market)

        handle = self._directory.market(market)
        live = handle.total_reserves()
        if market in uow.checkpoints:
            checkpoint = uow.checkpoints[market]
        else:
            checkpoint = self.ledger.get(market)

        decision = decide(
            checkpoint,
            live,
            self.registry.ratio,
            cooldown_elapsed(checkpoint, now, COOLDOWN_PERIOD),
        )

        asset = None
        if decision.extract:
            config = self.registry.config_of(market)
            if config.extraction_authority is None:
                raise AuthorityNotSetError(f"no authority for {market}", market=market)
            if config.conversion_handler is None:
                raise HandlerNotSetError(f"no handler for {market}", market=market)
            if not decision.cooldown_ok:
                ready_at = checkpoint.timestamp + COOLDOWN_PERIOD
                raise CooldownActiveError(
                    f"{market} in cooldown until {ready_at}",
                    market=market,
                    ready_at=ready_at,
                )

            asset = self._underlying_of(handle)

            authority = self._directory.authority(config.extraction_authority)
            if not authority.extract_reserves(market, decision.amount):
                raise ExtractionFailedError(f"extraction from {market} failed", market=market)

            handler = self._directory.handler(config.conversion_handler)
            if not handler.convert(asset):
                raise ConversionFailedError(f"conversion of {asset} failed", market=market)

            uow.events.append(ReservesDispatchedEvent(
                event_type=None,
                ts=now,
                market=market,
                asset=asset,
                amount_extracted=decision.amount,
                amount_produced=0,
            ))
            logger.info(f"Extracted {decision.amount} of {asset} from {market}")
        else:
            logger.debug(f"{market} reserves grew {checkpoint.total_reserves} -> {live}, no extraction")

        new_checkpoint = Checkpoint(timestamp=now, total_reserves=live)
        uow.checkpoints[market] = new_checkpoint

        return DispatchResult(
            market=market,
            extracted=decision.extract,
            amount_extracted=decision.amount,
            asset=asset,
            checkpoint=new_checkpoint,
        )

    def _underlying_of(self, handle: Market) -> str:
        if handle.symbol() == NATIVE_MARKER:
            return self.native_asset
        return handle.underlying()

    def _convert_target(self, strict: bool) -> None:
        handler_id = self.registry.handler_of(self.target_asset)
        if handler_id is None:
            raise HandlerNotSetError(f"no handler for target asset {self.target_asset}")

        ok = self._directory.handler(handler_id).convert(self.target_asset)
        if not ok:
            if strict:
                raise ConversionFailedError(f"target conversion of {self.target_asset} failed")
            logger.warning(f"Target conversion of {self.target_asset} reported failure, ignored")

    def _commit(self, uow: UnitOfWork) -> None:
        self.ledger.set_many(uow.checkpoints)
        self._journal.publish_all(uow.events)
