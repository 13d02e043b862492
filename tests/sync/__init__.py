"""
Test suite for vault synchronization.

Covers the reconciliation engine, the sync orchestrator with its single-flight
guarantee, and the debounced vault watcher.
"""
