"""Shipment tracking timelines: milestone status derivation and layout."""

__version__ = "1.0.0"
