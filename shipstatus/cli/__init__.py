"""Command-line interface for the shipment status engine."""
