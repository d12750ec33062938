"""Exact and similarity grouping."""
