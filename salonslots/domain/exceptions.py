"""
Domain-specific exception hierarchy for the availability engine.
"""


class SalonSlotsError(Exception):
    """Base class for all application-level errors."""


class AppointmentSourceError(SalonSlotsError):
    """Raised when appointment data cannot be fetched or parsed."""


class SubscriptionError(SalonSlotsError):
    """Raised when a live change subscription cannot be established or drops."""
