"""Pydantic API models."""
