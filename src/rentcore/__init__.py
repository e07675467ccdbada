"""Reservation and financial settlement core for a vacation-rental marketplace."""

__version__ = "0.1.0"
