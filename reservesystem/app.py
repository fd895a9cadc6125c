"""
Reserve keeper application.

Wires all components together and manages application lifecycle.

Component threading layout:
- Main thread: keeper loop (dispatch due markets every KEEPER_INTERVAL_S)
- Thread 1: control plane (aiohttp on its own event loop)

The orchestrator serializes dispatches internally, so keeper ticks and
operator-triggered dispatches never interleave.
"""

import argparse
import asyncio
import logging
import signal
import sys
import threading
from typing import Optional

from .backends import PaperBackend
from .config import AppConfig
from .control_plane import ControlPlaneServer
from .errors import ReserveSystemError
from .journal import EventJournal, JsonlEventLog
from .ledger import ReserveLedger
from .orchestrator import DispatchOrchestrator
from .registry import ConfigurationRegistry
from .store_sqlite import StateStoreSQLite
from .types import DispatchResult

logger = logging.getLogger(__name__)


class KeeperApplication:
    """
    Main reserve keeper application.

    - Startup: restore state, wire registry/ledger/orchestrator, start control plane
    - Running: periodically dispatch every market whose cooldown has elapsed
    - Shutdown: stop control plane, close audit log and store
    """

    def __init__(
        self,
        config: AppConfig,
        backend: Optional[PaperBackend] = None,
        enable_control_plane: bool = True,
    ):
        """
        Initialize application.

        Args:
            config: Application configuration
            backend: Collaborators (loaded from PAPER_MARKETS_FILE if None)
            enable_control_plane: Start the operator HTTP server
        """
        self._config = config
        self._backend = backend
        self._enable_control_plane = enable_control_plane

        # Components (initialized in setup)
        self._store: Optional[StateStoreSQLite] = None
        self._audit_log: Optional[JsonlEventLog] = None
        self.journal: Optional[EventJournal] = None
        self.ledger: Optional[ReserveLedger] = None
        self.registry: Optional[ConfigurationRegistry] = None
        self.orchestrator: Optional[DispatchOrchestrator] = None
        self._control_plane: Optional[ControlPlaneServer] = None
        self._control_thread: Optional[threading.Thread] = None

        self._stop_event = threading.Event()
        self._ticks = 0
        self._failed_ticks = 0
        self._last_dispatched: list[str] = []

    def setup(self) -> None:
        """Build and wire all components."""
        errors = self._config.validate()
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            raise ValueError(f"Invalid configuration: {errors}")

        config = self._config

        if self._backend is None:
            if config.paper_markets_file:
                self._backend = PaperBackend.from_file(config.paper_markets_file)
            else:
                logger.warning("No PAPER_MARKETS_FILE set, starting with no markets")
                self._backend = PaperBackend.empty()

        self._store = StateStoreSQLite(config.sqlite_path, enabled=config.sqlite_enabled)
        self._store.init_schema()

        self.journal = EventJournal()
        self._audit_log = JsonlEventLog(config.audit_log_dir)
        self.journal.subscribe(self._audit_log)
        self.journal.subscribe(self._store.append_event)

        self.ledger = ReserveLedger.load(self._store)

        self.registry = ConfigurationRegistry(
            owner=config.owner_address,
            market_registry=self._backend.registry,
            directory=self._backend.directory,
            journal=self.journal,
            store=self._store,
            initial_handlers={config.target_asset: config.target_handler},
        )
        self.registry.load(self._store)

        self.orchestrator = DispatchOrchestrator(
            registry=self.registry,
            ledger=self.ledger,
            market_registry=self._backend.registry,
            directory=self._backend.directory,
            journal=self.journal,
            target_asset=config.target_asset,
            native_asset=config.native_asset,
        )

        if self._enable_control_plane:
            self._control_plane = ControlPlaneServer(
                registry=self.registry,
                orchestrator=self.orchestrator,
                operator_token=config.operator_token,
                bind_host=config.control_host,
                port=config.control_port,
            )
            self._control_plane.set_status_callback(self.status)

        logger.info(
            f"Keeper wired: owner={config.owner_address} "
            f"markets={len(self.registry.configured_markets())} "
            f"checkpoints={len(self.ledger)}"
        )

    def run_once(self) -> list[DispatchResult]:
        """
        Run one keeper cycle.

        Dispatches every due market in one batch. A failed batch commits
        nothing and is retried on the next cycle.
        """
        self._ticks += 1
        try:
            due = self.orchestrator.due_markets(self.registry.configured_markets())
            if not due:
                logger.debug("No markets due")
                return []
            results = self.orchestrator.dispatch_many(due)
        except ReserveSystemError as e:
            self._failed_ticks += 1
            logger.error(f"Keeper batch failed ({e.kind.value}) on {e.market or 'target'}: {e}")
            return []
        except Exception as e:
            self._failed_ticks += 1
            logger.exception(f"Keeper batch failed on collaborator error: {e}")
            return []

        self._last_dispatched = [r.market for r in results]
        return results

    def status(self) -> dict:
        """Status snapshot for the control plane."""
        checkpoints = self.ledger.snapshot() if self.ledger else {}
        configs = self.registry.snapshot() if self.registry else {}
        return {
            "owner": self.registry.owner if self.registry else None,
            "ratio": str(self.registry.ratio) if self.registry else None,
            "markets": {key: cfg.to_dict() for key, cfg in configs.items()},
            "checkpoints": {
                market: {"timestamp": cp.timestamp, "total_reserves": str(cp.total_reserves)}
                for market, cp in checkpoints.items()
            },
            "keeper": {
                "ticks": self._ticks,
                "failed_ticks": self._failed_ticks,
                "last_dispatched": self._last_dispatched,
            },
            "events_published": self.journal.published_count if self.journal else 0,
        }

    def _run_control_plane(self) -> None:
        async def serve() -> None:
            await self._control_plane.start()
            try:
                while not self._stop_event.is_set():
                    await asyncio.sleep(0.5)
            finally:
                await self._control_plane.stop()

        try:
            asyncio.run(serve())
        except Exception as e:
            logger.exception(f"Control plane crashed: {e}")

    def start(self) -> None:
        """Set up components and start background threads."""
        logger.info("Starting keeper application...")
        self.setup()
        self._stop_event.clear()

        if self._control_plane:
            self._control_thread = threading.Thread(
                target=self._run_control_plane,
                name="control-plane",
                daemon=True,
            )
            self._control_thread.start()

        logger.info("Keeper application started")

    def stop(self) -> None:
        """Stop the application."""
        logger.info("Stopping keeper application...")
        self._stop_event.set()

        if self._control_thread:
            self._control_thread.join(timeout=5.0)

        if self._audit_log:
            self._audit_log.close()

        if self._store:
            self._store.close()

        logger.info("Keeper application stopped")

    def run(self) -> None:
        """Run the keeper loop until a shutdown signal."""

        def signal_handler(signum, frame):
            logger.warning(f"Received signal {signum} - shutting down")
            self._stop_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        try:
            self.start()

            while not self._stop_event.is_set():
                if self._config.keeper_enabled:
                    self.run_once()
                self._stop_event.wait(self._config.keeper_interval_s)

        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
        except Exception as e:
            logger.exception(f"Application error: {e}")
        finally:
            self.stop()


def main() -> None:
    """Entry point."""
    parser = argparse.ArgumentParser(description="Reserve extraction keeper")
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    parser.add_argument("--once", action="store_true", help="Run one keeper cycle and exit")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    config = AppConfig.from_env_file(args.env_file)

    if config.log_level:
        logging.getLogger().setLevel(config.log_level)

    if args.once:
        app = KeeperApplication(config, enable_control_plane=False)
        app.setup()
        try:
            results = app.run_once()
            logger.info(f"Dispatched {len(results)} markets")
        finally:
            app.stop()
        return

    app = KeeperApplication(config)
    app.run()


if __name__ == "__main__":
    main()
