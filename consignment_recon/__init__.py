"""Reconcile consignment load reports against market sales reports."""

__version__ = "0.1.0"
