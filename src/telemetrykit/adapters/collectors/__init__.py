"""Metric collectors sampling external state into gauges.

Import ``telemetrykit.adapters.collectors.process`` directly; it needs psutil.
"""
