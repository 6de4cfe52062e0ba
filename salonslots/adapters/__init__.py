"""
Adapters layer - External integrations (hosted appointment store).
"""

from .json_store import JsonAppointmentStore
from .rest_store import RestAppointmentStore

__all__ = ["JsonAppointmentStore", "RestAppointmentStore"]
