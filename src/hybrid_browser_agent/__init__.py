"""Hybrid browser agent execution core."""
