"""Plunge & Heat - session ledger, progress engine and companion sync."""

__version__ = "1.0.0"
