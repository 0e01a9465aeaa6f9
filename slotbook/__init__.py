"""
slotbook - weekly availability templates and dual-calendar booking.
"""

__version__ = "0.1.0"
