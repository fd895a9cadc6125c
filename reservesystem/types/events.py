"""
Audit event types.

Every configuration overwrite carries the old and new value; every
extraction carries the asset and amounts.
"""

from dataclasses import dataclass
from typing import Optional

from .core import AuditEventType


@dataclass(slots=True)
class AuditEvent:
    """Base class for audit events."""
    event_type: Optional[AuditEventType]
    ts: int

    def to_dict(self) -> dict:
        """Flatten to a JSON-friendly dict."""
        data = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if name == "event_type":
                value = value.name if value else "UNKNOWN"
            data[name] = value
        return data


@dataclass(slots=True)
class ReservesDispatchedEvent(AuditEvent):
    """
    Reserves were extracted from a market and converted.

    amount_produced is always 0: conversion handlers do not report output.
    """
    market: str = ""
    asset: str = ""
    amount_extracted: int = 0
    amount_produced: int = 0

    def __post_init__(self):
        self.event_type = AuditEventType.RESERVES_DISPATCHED


@dataclass(slots=True)
class AuthorityUpdatedEvent(AuditEvent):
    """Extraction authority reassigned for a market."""
    market: str = ""
    old_authority: Optional[str] = None
    new_authority: Optional[str] = None

    def __post_init__(self):
        self.event_type = AuditEventType.AUTHORITY_UPDATED


@dataclass(slots=True)
class HandlerUpdatedEvent(AuditEvent):
    """Conversion handler reassigned for a market or asset."""
    market: str = ""
    old_handler: Optional[str] = None
    new_handler: Optional[str] = None

    def __post_init__(self):
        self.event_type = AuditEventType.HANDLER_UPDATED


@dataclass(slots=True)
class RatioUpdatedEvent(AuditEvent):
    """Global extraction ratio changed."""
    old_ratio: int = 0
    new_ratio: int = 0

    def __post_init__(self):
        self.event_type = AuditEventType.RATIO_UPDATED
