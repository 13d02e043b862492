"""
Tests for the structured cache backends.
"""
