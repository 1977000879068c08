"""Adapters connecting the core to sinks, exporters and frameworks."""
