"""Metric export scheduling."""

from telemetrykit.adapters.export.periodic import PeriodicExporter

__all__ = ["PeriodicExporter"]
