"""Sync layer.

Scheduling of live telemetry ticks, the demo-fleet simulation, retry
policy and per-route aggregation.
"""
