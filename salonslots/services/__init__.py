"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability_service import AppointmentSourceProtocol, AvailabilityService, AvailabilityState
from .invalidation import InMemoryChangeChannel, LiveInvalidationChannel, RecordChange, live_window_predicate

__all__ = [
    "AppointmentSourceProtocol",
    "AvailabilityService",
    "AvailabilityState",
    "InMemoryChangeChannel",
    "LiveInvalidationChannel",
    "RecordChange",
    "live_window_predicate",
]
