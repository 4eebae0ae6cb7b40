"""Scan-to-fulfillment controller for volunteer field devices."""

__version__ = "2.0.5"
