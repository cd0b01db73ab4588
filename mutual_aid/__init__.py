"""Mutual aid matching and settlement engine."""
