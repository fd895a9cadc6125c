"""
Reserve ledger.

Holds the last observed checkpoint per market. Single writer: only the
dispatch orchestrator calls set()/set_many().
"""

import logging
import threading
from typing import Optional, TYPE_CHECKING

from .types import Checkpoint

if TYPE_CHECKING:
    from .store_sqlite import StateStoreSQLite

logger = logging.getLogger(__name__)

_EMPTY = Checkpoint()


class ReserveLedger:
    """
    Per-market checkpoint storage.

    - get() returns the zero checkpoint for unknown markets
    - set() is last-writer-wins with no validation
    - Writes go through to the state store when one is attached
    """

    def __init__(self, store: Optional["StateStoreSQLite"] = None):
        self._checkpoints: dict[str, Checkpoint] = {}
        self._lock = threading.Lock()
        self._store = store

    @classmethod
    def load(cls, store: "StateStoreSQLite") -> "ReserveLedger":
        """Build a ledger restored from a state store."""
        ledger = cls(store=store)
        ledger._checkpoints = store.load_checkpoints()
        logger.info(f"Restored {len(ledger._checkpoints)} checkpoints")
        return ledger

    def get(self, market: str) -> Checkpoint:
        """Get the checkpoint for a market ({0, 0} if never set)."""
        with self._lock:
            return self._checkpoints.get(market, _EMPTY)

    def set(self, market: str, checkpoint: Checkpoint) -> None:
        """Overwrite the checkpoint for a market."""
        self.set_many({market: checkpoint})

    def set_many(self, checkpoints: dict[str, Checkpoint]) -> None:
        """Overwrite several checkpoints at once."""
        if not checkpoints:
            return
        with self._lock:
            if self._store is not None:
                self._store.save_checkpoints(checkpoints)
            self._checkpoints.update(checkpoints)

    def snapshot(self) -> dict[str, Checkpoint]:
        """Copy of all checkpoints."""
        with self._lock:
            return dict(self._checkpoints)

    def __contains__(self, market: str) -> bool:
        with self._lock:
            return market in self._checkpoints

    def __len__(self) -> int:
        with self._lock:
            return len(self._checkpoints)
