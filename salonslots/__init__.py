"""
salonslots - appointment availability engine for salon booking.
"""

__version__ = "0.1.0"
