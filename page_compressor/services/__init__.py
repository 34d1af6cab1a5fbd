"""Optimization, metrics and caching services."""
