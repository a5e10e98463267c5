"""Reconcile client-roster exports into canonical client records."""

__version__ = "0.3.0"
