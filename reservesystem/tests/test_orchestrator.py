"""Tests for the dispatch orchestrator."""

import threading
import time

import pytest

from reservesystem.backends import (
    InMemoryMarket,
    PaperBackend,
    RecordingAuthority,
    RecordingConversionHandler,
)
from reservesystem.constants import (
    COOLDOWN_PERIOD,
    NATIVE_ASSET,
    NATIVE_MARKER,
    RATIO_DENOMINATOR,
    TARGET_ASSET,
)
from reservesystem.errors import (
    ArithmeticUnderflowError,
    AuthorityNotSetError,
    ConversionFailedError,
    CooldownActiveError,
    ExtractionFailedError,
    HandlerNotSetError,
    NotListedError,
)
from reservesystem.journal import EventJournal
from reservesystem.ledger import ReserveLedger
from reservesystem.orchestrator import DispatchOrchestrator
from reservesystem.registry import ConfigurationRegistry
from reservesystem.types import Checkpoint, DecisionKind, ReservesDispatchedEvent

OWNER = "0xowner"
MARKET = "0xmarket"
ADMIN = "0xadmin"
HANDLER = "0xburner"
STABLE_BURNER = "0xstableburner"
UNDERLYING = "0xdai"
T0 = 1_700_000_000


class FakeClock:
    """Settable seconds clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class System:
    """Wired orchestrator over a paper backend with a shared call log."""

    def __init__(self, with_target_handler: bool = True):
        self.clock = FakeClock()
        self.backend = PaperBackend.empty()
        self.directory = self.backend.directory
        self.journal = EventJournal()
        self.call_log: list[tuple[str, str]] = []

        initial = {TARGET_ASSET: STABLE_BURNER} if with_target_handler else None
        self.registry = ConfigurationRegistry(
            owner=OWNER,
            market_registry=self.backend.registry,
            directory=self.directory,
            journal=self.journal,
            clock=self.clock,
            initial_handlers=initial,
        )
        self.ledger = ReserveLedger()
        self.orchestrator = DispatchOrchestrator(
            registry=self.registry,
            ledger=self.ledger,
            market_registry=self.backend.registry,
            directory=self.directory,
            journal=self.journal,
            clock=self.clock,
        )

        self._registered: set[str] = set()
        self.stable_burner = self.register_handler(STABLE_BURNER)

    def add_market(
        self,
        market_id: str = MARKET,
        reserves: int = 1000,
        symbol: str = "crDAI",
        underlying: str = UNDERLYING,
        admin: str = ADMIN,
        handler: str = HANDLER,
        configure: bool = True,
    ) -> InMemoryMarket:
        market = self.directory.add_market(InMemoryMarket(
            market_id=market_id,
            market_symbol=symbol,
            underlying_asset=underlying,
            admin_id=admin,
            reserves=reserves,
        ))
        self.backend.registry.list_market(market_id)
        if configure:
            self.register_handler(handler)
            self.registry.set_extraction_authorities(OWNER, [market_id], [admin])
            self.registry.set_conversion_handlers(OWNER, [market_id], [handler])
        return market

    def register_handler(self, handler_id: str) -> RecordingConversionHandler:
        """Add a handler whose conversions also land in the shared call log."""
        if handler_id in self._registered:
            return self.directory.handler(handler_id)
        self._registered.add(handler_id)
        return self.directory.add_handler(RecordingConversionHandler(
            handler_id=handler_id,
            calls=_LoggedCalls(self.call_log, handler_id),
        ))

    def handler(self, handler_id: str = HANDLER) -> RecordingConversionHandler:
        return self.directory.handler(handler_id)

    def authority(self, authority_id: str = ADMIN) -> RecordingAuthority:
        return self.directory.authority(authority_id)

    def dispatched_events(self) -> list[ReservesDispatchedEvent]:
        return [e for e in self.journal.recent() if isinstance(e, ReservesDispatchedEvent)]


class _LoggedCalls(list):
    """A calls list that also appends (handler, asset) to a shared log."""

    def __init__(self, log: list, handler_id: str):
        super().__init__()
        self._log = log
        self._handler_id = handler_id

    def append(self, asset) -> None:
        super().append(asset)
        self._log.append((self._handler_id, asset))


class TestGrowthBranch:
    """Reserves grew since the checkpoint: no extraction."""

    def test_first_dispatch_skips_and_checkpoints(self):
        """A fresh market only records a checkpoint and converts the target asset."""
        system = System()
        system.add_market(reserves=1000)

        result = system.orchestrator.dispatch_one(MARKET)

        assert result.extracted is False
        assert result.amount_extracted == 0
        assert result.asset is None
        assert system.ledger.get(MARKET) == Checkpoint(T0, 1000)
        assert system.authority().calls == []
        assert system.handler().calls == []
        assert system.stable_burner.calls == [TARGET_ASSET]
        assert system.dispatched_events() == []

    def test_growth_ignores_cooldown(self):
        """Growth within the cooldown still succeeds and refreshes the checkpoint."""
        system = System()
        market = system.add_market(reserves=1000)
        system.orchestrator.dispatch_one(MARKET)

        system.clock.advance(60)
        market.reserves = 1500
        system.orchestrator.dispatch_one(MARKET)

        assert system.ledger.get(MARKET) == Checkpoint(T0 + 60, 1500)
        assert system.authority().calls == []

    def test_growth_does_not_need_configuration(self):
        """An unconfigured listed market can still be checkpointed."""
        system = System()
        system.add_market(reserves=10, configure=False)

        result = system.orchestrator.dispatch_one(MARKET)

        assert result.extracted is False
        assert system.ledger.get(MARKET) == Checkpoint(T0, 10)


class TestExtractionBranch:
    """Reserves at or below the checkpoint: extraction path."""

    def test_end_to_end(self):
        """First call checkpoints, second call after cooldown extracts zero."""
        system = System()
        system.add_market(reserves=1000)

        system.orchestrator.dispatch_one(MARKET)
        assert system.stable_burner.calls == [TARGET_ASSET]

        system.clock.advance(COOLDOWN_PERIOD)
        result = system.orchestrator.dispatch_one(MARKET)

        assert result.extracted is True
        assert result.amount_extracted == 0
        assert result.asset == UNDERLYING
        assert system.authority().calls == [(MARKET, 0)]
        assert system.handler().calls == [UNDERLYING]
        assert system.stable_burner.calls == [TARGET_ASSET, TARGET_ASSET]
        assert system.ledger.get(MARKET) == Checkpoint(T0 + COOLDOWN_PERIOD, 1000)

        [event] = system.dispatched_events()
        assert event.market == MARKET
        assert event.asset == UNDERLYING
        assert event.amount_extracted == 0
        assert event.amount_produced == 0
        assert event.ts == T0 + COOLDOWN_PERIOD

    def test_reserves_below_checkpoint_underflow(self):
        """Lower live reserves fail arithmetically and commit nothing."""
        system = System()
        market = system.add_market(reserves=1000)
        system.orchestrator.dispatch_one(MARKET)

        system.clock.advance(COOLDOWN_PERIOD)
        market.reserves = 900

        with pytest.raises(ArithmeticUnderflowError):
            system.orchestrator.dispatch_one(MARKET)

        assert system.ledger.get(MARKET) == Checkpoint(T0, 1000)
        assert system.authority().calls == []

    def test_cooldown_active(self):
        """Extraction inside the cooldown window fails with the ready time."""
        system = System()
        system.add_market(reserves=1000)
        system.orchestrator.dispatch_one(MARKET)

        system.clock.advance(COOLDOWN_PERIOD - 1)
        with pytest.raises(CooldownActiveError) as exc:
            system.orchestrator.dispatch_one(MARKET)

        assert exc.value.ready_at == T0 + COOLDOWN_PERIOD
        assert system.ledger.get(MARKET) == Checkpoint(T0, 1000)
        assert system.authority().calls == []
        assert system.stable_burner.calls == [TARGET_ASSET]

    def test_cooldown_boundary_inclusive(self):
        """Exactly one period after the checkpoint is allowed."""
        system = System()
        system.add_market(reserves=1000)
        system.orchestrator.dispatch_one(MARKET)

        system.clock.advance(COOLDOWN_PERIOD)

        assert system.orchestrator.dispatch_one(MARKET).extracted is True

    def test_authority_not_set(self):
        """The extraction branch requires an authority."""
        system = System()
        system.add_market(reserves=0, configure=False)
        system.registry.set_conversion_handlers(OWNER, [MARKET], [HANDLER])

        with pytest.raises(AuthorityNotSetError) as exc:
            system.orchestrator.dispatch_one(MARKET)

        assert exc.value.market == MARKET
        assert MARKET not in system.ledger

    def test_handler_not_set(self):
        """The extraction branch requires a handler."""
        system = System()
        system.add_market(reserves=0, configure=False)
        system.registry.set_extraction_authorities(OWNER, [MARKET], [ADMIN])

        with pytest.raises(HandlerNotSetError):
            system.orchestrator.dispatch_one(MARKET)

        assert MARKET not in system.ledger

    def test_zero_reserves_fresh_market_extracts(self):
        """A fresh market at zero reserves takes the extraction branch at once."""
        system = System()
        system.add_market(reserves=0)

        result = system.orchestrator.dispatch_one(MARKET)

        assert result.extracted is True
        assert system.authority().calls == [(MARKET, 0)]

    def test_native_market_uses_native_asset(self):
        """The native marker resolves to the wrapped native asset."""
        system = System()
        system.add_market(reserves=0, symbol=NATIVE_MARKER, underlying="")

        result = system.orchestrator.dispatch_one(MARKET)

        assert result.asset == NATIVE_ASSET
        assert system.handler().calls == [NATIVE_ASSET]

    def test_extraction_failure_commits_nothing(self):
        """A refused extraction aborts before conversion."""
        system = System()
        system.add_market(reserves=0)
        system.authority().succeed = False

        with pytest.raises(ExtractionFailedError):
            system.orchestrator.dispatch_one(MARKET)

        assert system.handler().calls == []
        assert MARKET not in system.ledger
        assert system.dispatched_events() == []

    def test_conversion_failure_commits_nothing(self):
        """A failed per-market conversion aborts the invocation."""
        system = System()
        system.add_market(reserves=0)
        system.handler().succeed = False

        with pytest.raises(ConversionFailedError):
            system.orchestrator.dispatch_one(MARKET)

        assert MARKET not in system.ledger
        assert system.dispatched_events() == []
        assert system.stable_burner.calls == []


class TestUnlisted:
    """Unlisted markets are rejected before anything happens."""

    def test_dispatch_one(self):
        system = System()
        market = system.add_market(reserves=1000)
        system.backend.registry.delist_market(market.market_id)

        with pytest.raises(NotListedError):
            system.orchestrator.dispatch_one(MARKET)

        assert system.stable_burner.calls == []
        assert MARKET not in system.ledger


class TestTargetConversion:
    """The final conversion of the target asset."""

    def test_single_dispatch_ignores_failure(self):
        """A failed target conversion does not fail a single dispatch."""
        system = System()
        system.add_market(reserves=1000)
        system.stable_burner.succeed = False

        result = system.orchestrator.dispatch_one(MARKET)

        assert result.extracted is False
        assert system.ledger.get(MARKET) == Checkpoint(T0, 1000)

    def test_batch_propagates_failure(self):
        """A failed target conversion fails the batch and commits nothing."""
        system = System()
        system.add_market(reserves=1000)
        system.stable_burner.succeed = False

        with pytest.raises(ConversionFailedError):
            system.orchestrator.dispatch_many([MARKET])

        assert MARKET not in system.ledger

    def test_batched_flag_skips_target_conversion(self):
        """dispatch_one with is_batched leaves the target asset alone."""
        system = System()
        system.add_market(reserves=1000)

        system.orchestrator.dispatch_one(MARKET, is_batched=True)

        assert system.stable_burner.calls == []
        assert system.ledger.get(MARKET) == Checkpoint(T0, 1000)

    @pytest.mark.parametrize("batch", [False, True])
    def test_missing_target_handler(self, batch):
        """Both paths fail when the target asset has no handler."""
        system = System(with_target_handler=False)
        system.add_market(reserves=1000)

        with pytest.raises(HandlerNotSetError):
            if batch:
                system.orchestrator.dispatch_many([MARKET])
            else:
                system.orchestrator.dispatch_one(MARKET)

        assert MARKET not in system.ledger


class TestBatch:
    """Tests for dispatch_many."""

    def test_target_conversion_runs_once_last(self):
        """Per-market conversions run in order, target conversion runs once at the end."""
        system = System()
        system.add_market("0xa", reserves=0, admin="0xadmin_a", handler="0xburner_a")
        system.add_market("0xb", reserves=0, admin="0xadmin_b", handler="0xburner_b", underlying="0xweth")
        system.add_market("0xc", reserves=0, admin="0xadmin_c", handler="0xburner_c", underlying="0xwbtc")

        results = system.orchestrator.dispatch_many(["0xa", "0xb", "0xc"])

        assert [r.market for r in results] == ["0xa", "0xb", "0xc"]
        assert system.call_log == [
            ("0xburner_a", UNDERLYING),
            ("0xburner_b", "0xweth"),
            ("0xburner_c", "0xwbtc"),
            (STABLE_BURNER, TARGET_ASSET),
        ]

    def test_shared_timestamp(self):
        """Every checkpoint in a batch carries the same timestamp."""
        system = System()
        system.add_market("0xa", reserves=5, configure=False)
        system.add_market("0xb", reserves=7, configure=False)

        system.orchestrator.dispatch_many(["0xa", "0xb"])

        assert system.ledger.get("0xa") == Checkpoint(T0, 5)
        assert system.ledger.get("0xb") == Checkpoint(T0, 7)

    def test_failure_rolls_back_earlier_markets(self):
        """A failing market discards checkpoints staged for earlier ones."""
        system = System()
        system.add_market("0xa", reserves=5, configure=False)
        system.add_market("0xb", reserves=0, configure=False)

        with pytest.raises(AuthorityNotSetError):
            system.orchestrator.dispatch_many(["0xa", "0xb"])

        assert "0xa" not in system.ledger
        assert "0xb" not in system.ledger
        assert system.stable_burner.calls == []

    def test_duplicate_market_sees_staged_checkpoint(self):
        """A repeated market sees the first occurrence's checkpoint and hits cooldown."""
        system = System()
        system.add_market(reserves=1000)

        with pytest.raises(CooldownActiveError):
            system.orchestrator.dispatch_many([MARKET, MARKET])

        assert MARKET not in system.ledger

    def test_empty_batch(self):
        """An empty batch only converts the target asset."""
        system = System()

        assert system.orchestrator.dispatch_many([]) == []
        assert system.stable_burner.calls == [TARGET_ASSET]
        assert len(system.ledger) == 0


class TestRatio:
    """The ratio scales the extracted amount."""

    def test_full_ratio_zero_delta(self):
        """Even at 100% the extracted amount on equal reserves is zero."""
        system = System()
        system.add_market(reserves=1000)
        system.registry.set_ratio(OWNER, RATIO_DENOMINATOR)
        system.orchestrator.dispatch_one(MARKET)

        system.clock.advance(COOLDOWN_PERIOD)
        result = system.orchestrator.dispatch_one(MARKET)

        assert result.amount_extracted == 0


class TestPreview:
    """Tests for preview and due_markets."""

    def test_preview_has_no_side_effects(self):
        """preview reports the decision without touching anything."""
        system = System()
        system.add_market(reserves=1000)

        decision = system.orchestrator.preview(MARKET)

        assert decision.kind == DecisionKind.SKIP
        assert decision.cooldown_ok is True
        assert MARKET not in system.ledger
        assert system.stable_burner.calls == []

    def test_preview_unlisted(self):
        system = System()

        with pytest.raises(NotListedError):
            system.orchestrator.preview("0xunknown")

    def test_due_markets(self):
        """Cooldown and configuration gate keeper selection."""
        system = System()
        system.add_market("0xready", reserves=1000)
        system.add_market("0xcooling", reserves=1000)
        system.add_market("0xbare", reserves=0, configure=False)
        system.orchestrator.dispatch_one("0xcooling")

        due = system.orchestrator.due_markets(["0xready", "0xcooling", "0xbare", "0xunlisted"])

        assert due == ["0xready"]


class SlowAuthority(RecordingAuthority):
    """Authority that holds the extraction open long enough for callers to overlap."""

    def extract_reserves(self, market: str, amount: int) -> bool:
        time.sleep(0.05)
        return super().extract_reserves(market, amount)


class TestSerialization:
    """Concurrent invocations never extract twice in one cooldown window."""

    def test_concurrent_dispatch_one(self):
        """Two threads on the same due market yield one extraction and one cooldown failure."""
        system = System()
        system.directory.add_authority(SlowAuthority(authority_id=ADMIN))
        system.add_market(reserves=1000)
        system.orchestrator.dispatch_one(MARKET)
        system.clock.advance(COOLDOWN_PERIOD)

        results, errors = [], []

        def dispatch():
            try:
                results.append(system.orchestrator.dispatch_one(MARKET))
            except CooldownActiveError as e:
                errors.append(e)

        threads = [threading.Thread(target=dispatch) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert results[0].extracted is True
        assert len(errors) == 1
        assert errors[0].ready_at == T0 + 2 * COOLDOWN_PERIOD
        assert system.authority().calls == [(MARKET, 0)]
        assert len(system.dispatched_events()) == 1
        assert system.ledger.get(MARKET) == Checkpoint(T0 + COOLDOWN_PERIOD, 1000)
