"""
Reserve System - periodic extraction of protocol reserves from lending markets.

Extracts a configurable share of reserves per market, converts the extracted
asset into the target stable asset, and checkpoints every market so it cannot
be drained twice within one cooldown window.
"""

__version__ = "0.1.0"

# Constants
from .constants import (
    COOLDOWN_PERIOD,
    RATIO_DENOMINATOR,
    DEFAULT_RATIO,
    NATIVE_MARKER,
    NATIVE_ASSET,
    TARGET_ASSET,
)

# Errors
from .errors import (
    ErrorKind,
    ReserveSystemError,
    NotListedError,
    AuthorityNotSetError,
    HandlerNotSetError,
    CooldownActiveError,
    ConversionFailedError,
    ExtractionFailedError,
    AdminMismatchError,
    InvalidInputError,
    InvalidRatioError,
    UnauthorizedError,
    ArithmeticUnderflowError,
    ArithmeticOverflowError,
)

# Core types
from .types import (
    DecisionKind,
    AuditEventType,
    Checkpoint,
    MarketConfig,
    ExtractionDecision,
    DispatchResult,
    AuditEvent,
    ReservesDispatchedEvent,
    AuthorityUpdatedEvent,
    HandlerUpdatedEvent,
    RatioUpdatedEvent,
    wall_s,
)

# Collaborator interfaces
from .interfaces import (
    MarketRegistry,
    Market,
    ExtractionAuthority,
    ConversionHandler,
    MarketDirectory,
)

# Components
from .policy import decide, cooldown_elapsed, extraction_amount
from .ledger import ReserveLedger
from .registry import ConfigurationRegistry
from .orchestrator import DispatchOrchestrator
from .journal import EventJournal, JsonlEventLog
from .store_sqlite import StateStoreSQLite

# Application
from .config import AppConfig
from .control_plane import ControlPlaneServer
from .app import KeeperApplication

__all__ = [
    # Version
    "__version__",
    # Constants
    "COOLDOWN_PERIOD",
    "RATIO_DENOMINATOR",
    "DEFAULT_RATIO",
    "NATIVE_MARKER",
    "NATIVE_ASSET",
    "TARGET_ASSET",
    # Errors
    "ErrorKind",
    "ReserveSystemError",
    "NotListedError",
    "AuthorityNotSetError",
    "HandlerNotSetError",
    "CooldownActiveError",
    "ConversionFailedError",
    "ExtractionFailedError",
    "AdminMismatchError",
    "InvalidInputError",
    "InvalidRatioError",
    "UnauthorizedError",
    "ArithmeticUnderflowError",
    "ArithmeticOverflowError",
    # Types
    "DecisionKind",
    "AuditEventType",
    "Checkpoint",
    "MarketConfig",
    "ExtractionDecision",
    "DispatchResult",
    "AuditEvent",
    "ReservesDispatchedEvent",
    "AuthorityUpdatedEvent",
    "HandlerUpdatedEvent",
    "RatioUpdatedEvent",
    "wall_s",
    # Interfaces
    "MarketRegistry",
    "Market",
    "ExtractionAuthority",
    "ConversionHandler",
    "MarketDirectory",
    # Components
    "decide",
    "cooldown_elapsed",
    "extraction_amount",
    "ReserveLedger",
    "ConfigurationRegistry",
    "DispatchOrchestrator",
    "EventJournal",
    "JsonlEventLog",
    "StateStoreSQLite",
    # Application
    "AppConfig",
    "ControlPlaneServer",
    "KeeperApplication",
]
