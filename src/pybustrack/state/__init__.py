"""State/store layer.

This package holds the shared document store that the sync engine writes
bus locations and route aggregates into, and that the distribution layer
reads from through change subscriptions.
"""
