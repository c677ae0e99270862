"""Shipment status engine.

Derives a shipment's lifecycle status from its facts, persists it with an
append-only audit trail, and supports manual overrides, warehouse receipt
confirmation and scheduled date-based reconciliation.
"""

__version__ = "0.1.0"
