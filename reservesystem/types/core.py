"""
Core enums - the basic vocabulary of the reserve system.
"""

from enum import Enum, auto


class DecisionKind(Enum):
    """Outcome of the extraction policy for one market."""
    SKIP = auto()
    EXTRACT = auto()


class AuditEventType(Enum):
    """Audit events emitted by the registry and the orchestrator."""
    RESERVES_DISPATCHED = auto()
    AUTHORITY_UPDATED = auto()
    HANDLER_UPDATED = auto()
    RATIO_UPDATED = auto()
