"""Reasoning clients."""
