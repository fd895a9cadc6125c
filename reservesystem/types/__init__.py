"""
Reserve system types.

Example:
    from reservesystem.types import Checkpoint, MarketConfig, wall_s
    from reservesystem.types.events import RatioUpdatedEvent
"""

# Core enums
from .core import (
    DecisionKind,
    AuditEventType,
)

# Utility functions
from .utils import (
    wall_s,
)

# State types
from .state import (
    Checkpoint,
    MarketConfig,
    ExtractionDecision,
    DispatchResult,
)

# Audit events
from .events import (
    AuditEvent,
    ReservesDispatchedEvent,
    AuthorityUpdatedEvent,
    HandlerUpdatedEvent,
    RatioUpdatedEvent,
)

__all__ = [
    # Enums
    "DecisionKind",
    "AuditEventType",
    # Utilities
    "wall_s",
    # State
    "Checkpoint",
    "MarketConfig",
    "ExtractionDecision",
    "DispatchResult",
    # Events
    "AuditEvent",
    "ReservesDispatchedEvent",
    "AuthorityUpdatedEvent",
    "HandlerUpdatedEvent",
    "RatioUpdatedEvent",
]
