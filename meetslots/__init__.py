"""
meetslots - availability slots and conflict-free booking.
"""

__version__ = "0.1.0"
